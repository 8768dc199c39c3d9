import logging
from typing import Optional

from fastapi import FastAPI

from config_promoter import __version__
from config_promoter.api.endpoints import credentials, environments, promotions
from config_promoter.core.config import settings
from config_promoter.core.logging import setup_logging
from config_promoter.services.promotion_orchestrator import PromotionContext, PromotionOrchestrator

logger = logging.getLogger(__name__)


def create_app(context: Optional[PromotionContext] = None) -> FastAPI:
    """Build the API around one promotion context, defaulting to one built from settings."""
    setup_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Promote configuration folders across a chain of GitHub-backed environments",
        version=__version__,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    )

    app.state.context = context or PromotionContext.from_settings()
    app.state.orchestrator = PromotionOrchestrator(app.state.context)

    app.include_router(environments.router, prefix=f"{settings.API_V1_PREFIX}/environments", tags=["environments"])
    app.include_router(credentials.router, prefix=f"{settings.API_V1_PREFIX}/credentials", tags=["credentials"])
    app.include_router(promotions.router, prefix=f"{settings.API_V1_PREFIX}/promotions", tags=["promotions"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "environments": app.state.context.registry.names(),
            "github_configured": bool(app.state.context.credentials.load()),
        }

    logger.info(f"{settings.PROJECT_NAME} started with chain {' -> '.join(app.state.context.registry.names())}")
    return app


app = create_app()
