from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from config_promoter.services.environment_registry import EnvironmentStatus


class EnvironmentBase(BaseModel):
    """Fields an operator may configure on an environment"""
    repo_name: Optional[str] = Field(None, description="Repository as 'owner/repo'")
    api_url: Optional[str] = Field(None, description="Source-of-truth API for artifacts")


class EnvironmentCreate(EnvironmentBase):
    """Schema for appending an environment to the end of the chain"""
    name: str = Field(..., min_length=1, description="Environment name, e.g. 'Dev'")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be blank")
        return v


class EnvironmentUpdate(EnvironmentBase):
    """Schema for updating an environment; only set fields are applied"""
    selected_folder: Optional[str] = None


class EnvironmentResponse(BaseModel):
    """Environment record with live status"""
    name: str
    repo_name: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    api_url: Optional[str] = None
    repo_url: Optional[str] = None
    status: EnvironmentStatus
    artifact_count: int = 0
    version: Optional[str] = None
    error_message: Optional[str] = None
    available_folders: List[str] = []
    selected_folder: Optional[str] = None
    source_environment_name: Optional[str] = None


class SourceEnvironmentResponse(BaseModel):
    """Where promotions into an environment read from"""
    target: str
    source: Optional[EnvironmentResponse] = None


class FolderListResponse(BaseModel):
    """Folders promotable into an environment"""
    environment: str
    source_environment: Optional[str] = None
    folders: List[str] = []
