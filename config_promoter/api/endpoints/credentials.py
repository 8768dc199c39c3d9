import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from config_promoter.api.deps import get_context, to_http_exception
from config_promoter.core.exceptions import PromotionError
from config_promoter.schemas.promotion import CredentialStatusResponse, CredentialUpdate
from config_promoter.services.promotion_orchestrator import PromotionContext

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=CredentialStatusResponse)
async def get_credential_status(
    verify: bool = Query(False, description="Check the token against GitHub"),
    context: PromotionContext = Depends(get_context),
):
    """Report whether a GitHub token is configured. The token itself is never returned."""
    configured = bool(context.credentials.load())
    if not verify or not configured:
        return CredentialStatusResponse(configured=configured)

    try:
        login = await context.host.get_authenticated_login()
    except PromotionError as e:
        raise to_http_exception(e)
    return CredentialStatusResponse(configured=True, login=login)


@router.put("/", response_model=CredentialStatusResponse)
async def set_credential(credential: CredentialUpdate, context: PromotionContext = Depends(get_context)):
    try:
        context.credentials.set(credential.token)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return CredentialStatusResponse(configured=True)


@router.delete("/", status_code=status.HTTP_204_NO_CONTENT)
async def clear_credential(context: PromotionContext = Depends(get_context)):
    context.credentials.clear()
