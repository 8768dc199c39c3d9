"""
Environments API

Endpoints:
- GET    /environments                 - List environments in chain order
- GET    /environments/{name}          - Get one environment
- POST   /environments                 - Append an environment to the chain
- PATCH  /environments/{name}          - Update repository or API settings
- DELETE /environments/{name}          - Remove an environment
- GET    /environments/{name}/source   - Resolve the promotion source
- GET    /environments/{name}/folders  - List folders promotable into it
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from config_promoter.api.deps import get_context, get_orchestrator, to_http_exception
from config_promoter.core.exceptions import PromotionError
from config_promoter.schemas.environment import (
    EnvironmentCreate,
    EnvironmentResponse,
    EnvironmentUpdate,
    FolderListResponse,
    SourceEnvironmentResponse,
)
from config_promoter.services.environment_registry import Environment
from config_promoter.services.promotion_orchestrator import PromotionContext, PromotionOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_response(env: Environment) -> EnvironmentResponse:
    return EnvironmentResponse(**env.to_dict())


@router.get("/", response_model=List[EnvironmentResponse])
async def list_environments(context: PromotionContext = Depends(get_context)):
    return [_to_response(env) for env in context.registry.list()]


@router.get("/{name}", response_model=EnvironmentResponse)
async def get_environment(name: str, context: PromotionContext = Depends(get_context)):
    env = context.registry.get(name)
    if env is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Environment {name} not found")
    return _to_response(env)


@router.post("/", response_model=EnvironmentResponse, status_code=status.HTTP_201_CREATED)
async def create_environment(
    environment: EnvironmentCreate,
    context: PromotionContext = Depends(get_context),
):
    """Append an environment; it becomes the new last stage of the chain."""
    env = Environment(name=environment.name, repo_name=environment.repo_name, api_url=environment.api_url)
    if not context.registry.add(env):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Environment {environment.name} already exists",
        )
    logger.info(f"Added environment {env.name} at position {context.registry.position(env.name)}")
    return _to_response(env)


@router.patch("/{name}", response_model=EnvironmentResponse)
async def update_environment(
    name: str,
    environment: EnvironmentUpdate,
    context: PromotionContext = Depends(get_context),
):
    try:
        env = context.registry.upsert(name, environment.model_dump(exclude_unset=True))
    except PromotionError as e:
        raise to_http_exception(e)
    return _to_response(env)


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_environment(name: str, context: PromotionContext = Depends(get_context)):
    if not context.registry.remove(name):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Environment {name} not found")
    logger.info(f"Removed environment {name}")


@router.get("/{name}/source", response_model=SourceEnvironmentResponse)
async def get_source_environment(
    name: str,
    orchestrator: PromotionOrchestrator = Depends(get_orchestrator),
):
    """Nearest earlier environment with a repository; null for the first stage."""
    try:
        target = orchestrator.registry.require(name)
    except PromotionError as e:
        raise to_http_exception(e)
    source = orchestrator.source_resolver.resolve(target)
    return SourceEnvironmentResponse(target=name, source=_to_response(source) if source else None)


@router.get("/{name}/folders", response_model=FolderListResponse)
async def list_available_folders(
    name: str,
    orchestrator: PromotionOrchestrator = Depends(get_orchestrator),
):
    try:
        folders = await orchestrator.available_folders(name)
    except PromotionError as e:
        raise to_http_exception(e)
    env = orchestrator.registry.require(name)
    return FolderListResponse(
        environment=name,
        source_environment=env.source_environment_name,
        folders=folders,
    )
