import logging

from fastapi import HTTPException, Request, status

from config_promoter.core.exceptions import (
    AuthRejectedError,
    HostError,
    MissingCredentialError,
    NotFoundError,
    PromotionError,
    ValidationError,
)
from config_promoter.services.promotion_orchestrator import PromotionContext, PromotionOrchestrator

logger = logging.getLogger(__name__)


def get_context(request: Request) -> PromotionContext:
    return request.app.state.context


def get_orchestrator(request: Request) -> PromotionOrchestrator:
    return request.app.state.orchestrator


def to_http_exception(exc: PromotionError) -> HTTPException:
    """Map a domain error onto the HTTP status clients expect."""
    if isinstance(exc, (MissingCredentialError, AuthRejectedError)):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, HostError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    logger.error(f"Unhandled promotion error: {exc}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
