"""
Schemas for lifecycle runs and folder promotions.

Bulk runs (repositories, artifacts, versions) operate on every environment
in the chain and report one outcome per environment.
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from config_promoter.services.environment_registry import EnvironmentStatus


class ArtifactPayload(BaseModel):
    """A single configuration document supplied inline"""
    filename: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)


class AddArtifactsRequest(BaseModel):
    """
    Request schema for ingesting artifacts into every created environment.

    Attributes:
        version_folder: Folder the artifacts are committed under
        artifacts: Inline artifacts per environment name; environments not
            listed fetch from their api_url
        use_samples: Generate sample documents instead of fetching
    """
    version_folder: Optional[str] = Field(None, description="Target folder, defaults to V1")
    artifacts: Dict[str, List[ArtifactPayload]] = Field(default_factory=dict)
    use_samples: bool = False


class CreateVersionsRequest(BaseModel):
    """Request schema for tagging every ingested environment"""
    tag_name: Optional[str] = Field(None, description="Tag to create, defaults to v1.0.0")
    message: Optional[str] = None
    use_release: bool = Field(False, description="Create a GitHub release instead of a bare tag")


class PromoteRequest(BaseModel):
    """Request schema for promoting a folder into an environment"""
    folder_name: str = Field("", description="Folder in the source repository, e.g. 'V1'")


class PromoteManyItem(PromoteRequest):
    environment: str


class PromoteManyRequest(BaseModel):
    promotions: List[PromoteManyItem] = Field(..., min_length=1)


class OperationOutcomeResponse(BaseModel):
    environment: str
    success: bool
    message: str
    status: EnvironmentStatus
    skipped: bool = False


class BulkOperationResponse(BaseModel):
    """Outcome of a bulk run across all environments"""
    operation: str
    message: str
    succeeded: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    outcomes: List[OperationOutcomeResponse] = []


class PromotionResponse(BaseModel):
    """Response for a folder promotion"""
    success: bool
    message: str
    source_repo: Optional[str] = None
    target_repo: Optional[str] = None
    folder_name: Optional[str] = None
    source_environment: Optional[str] = None
    target_environment: Optional[str] = None
    files_promoted: int = 0
    failed_files: List[str] = []


class CredentialUpdate(BaseModel):
    token: str = Field(..., min_length=1, description="GitHub personal access token")


class CredentialStatusResponse(BaseModel):
    configured: bool
    login: Optional[str] = None
