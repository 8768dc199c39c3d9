"""
Promotions API

Lifecycle runs across all environments:
- POST /promotions/repositories    - Create or verify every repository
- POST /promotions/artifacts       - Ingest artifacts into created repositories
- POST /promotions/versions        - Tag every ingested repository

Folder promotion:
- POST /promotions/batch           - Promote several environments at once
- POST /promotions/folders/refresh - Reload promotable folders for every environment
- POST /promotions/{name}          - Promote a folder into one environment
"""
import logging
from dataclasses import asdict
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from config_promoter.api.deps import get_orchestrator, to_http_exception
from config_promoter.core.exceptions import PromotionError
from config_promoter.schemas.promotion import (
    AddArtifactsRequest,
    BulkOperationResponse,
    CreateVersionsRequest,
    OperationOutcomeResponse,
    PromoteManyRequest,
    PromoteRequest,
    PromotionResponse,
)
from config_promoter.services.folder_sync import FileArtifact
from config_promoter.services.promotion_orchestrator import (
    BulkOperationResult,
    PromotionOrchestrator,
    PromotionResult,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class PromotionConflictError(HTTPException):
    """
    Raised when a promotion cannot start because another promotion is
    already running for the same target environment.
    """
    def __init__(self, result: PromotionResult):
        detail = {
            "error": "promotion_conflict",
            "message": result.message,
            "target_environment": result.target_environment,
            "folder_name": result.folder_name,
        }
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )
        self.result = result


def _to_bulk_response(result: BulkOperationResult) -> BulkOperationResponse:
    return BulkOperationResponse(
        operation=result.operation,
        message=result.message,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        outcomes=[OperationOutcomeResponse(**asdict(o)) for o in result.outcomes],
    )


def _to_response(result: PromotionResult) -> PromotionResponse:
    data = asdict(result)
    data.pop("conflict")
    return PromotionResponse(**data)


@router.post("/repositories", response_model=BulkOperationResponse)
async def create_repositories(orchestrator: PromotionOrchestrator = Depends(get_orchestrator)):
    """Create every environment's repository, or confirm it already exists."""
    try:
        result = await orchestrator.create_repositories()
    except PromotionError as e:
        raise to_http_exception(e)
    return _to_bulk_response(result)


@router.post("/artifacts", response_model=BulkOperationResponse)
async def add_artifacts(
    request: AddArtifactsRequest,
    orchestrator: PromotionOrchestrator = Depends(get_orchestrator),
):
    """
    Commit artifacts into each created repository.

    Environments with inline artifacts in the request use them; the rest
    fetch from their configured api_url, or get sample documents when
    use_samples is set.
    """
    artifacts_by_env: Dict[str, List[FileArtifact]] = {
        env_name: [FileArtifact.create(a.filename, a.content) for a in items]
        for env_name, items in request.artifacts.items()
    }
    try:
        result = await orchestrator.add_artifacts(
            artifacts_by_env,
            version_folder=request.version_folder,
            use_samples=request.use_samples,
        )
    except PromotionError as e:
        raise to_http_exception(e)
    return _to_bulk_response(result)


@router.post("/versions", response_model=BulkOperationResponse)
async def create_versions(
    request: CreateVersionsRequest,
    orchestrator: PromotionOrchestrator = Depends(get_orchestrator),
):
    try:
        result = await orchestrator.create_versions(
            tag_name=request.tag_name,
            message=request.message,
            use_release=request.use_release,
        )
    except PromotionError as e:
        raise to_http_exception(e)
    return _to_bulk_response(result)


@router.post("/batch", response_model=List[PromotionResponse])
async def promote_many(
    request: PromoteManyRequest,
    orchestrator: PromotionOrchestrator = Depends(get_orchestrator),
):
    """Run several promotions concurrently. Failures are reported per item."""
    try:
        results = await orchestrator.promote_many(
            [(item.environment, item.folder_name) for item in request.promotions]
        )
    except PromotionError as e:
        raise to_http_exception(e)
    return [_to_response(r) for r in results]


@router.post("/folders/refresh", response_model=Dict[str, List[str]])
async def refresh_folders(orchestrator: PromotionOrchestrator = Depends(get_orchestrator)):
    try:
        return await orchestrator.refresh_available_folders()
    except PromotionError as e:
        raise to_http_exception(e)


@router.post("/{name}", response_model=PromotionResponse)
async def promote(
    name: str,
    request: PromoteRequest,
    orchestrator: PromotionOrchestrator = Depends(get_orchestrator),
):
    """
    Promote a folder into environment `name` from its nearest configured
    predecessor.

    Key behaviors:
    - Files keep their folder name in the target repository
    - Any file that fails after retries fails the whole promotion
    - The environment's status records the outcome either way
    """
    try:
        orchestrator.require_credentials()
        result = await orchestrator.promote(name, request.folder_name)
    except PromotionError as e:
        raise to_http_exception(e)

    if result.conflict:
        raise PromotionConflictError(result)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": result.message,
                "failed_files": result.failed_files,
                "files_promoted": result.files_promoted,
            },
        )
    return _to_response(result)
