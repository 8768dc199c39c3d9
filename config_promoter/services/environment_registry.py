"""
Environment registry.

Single source of truth for environment configuration and status. Records
are kept in promotion-chain order; that order is fixed once the registry is
built and no operation reorders it.
"""
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from config_promoter.core.config import settings
from config_promoter.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class EnvironmentStatus(str, Enum):
    """Lifecycle status of an environment within a run."""
    PENDING = "pending"
    CREATED = "created"
    XMLS_ADDED = "xmlsAdded"
    V1_CREATED = "v1Created"
    PROMOTING = "promoting"
    COMPLETED = "completed"
    ERROR = "error"


def parse_repo_name(repo_name: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split an 'owner/repo' string. Returns None unless both parts are non-empty."""
    if not repo_name or "/" not in repo_name:
        return None
    owner, _, repo = repo_name.strip().partition("/")
    owner, repo = owner.strip(), repo.strip()
    if not owner or not repo or "/" in repo:
        return None
    return owner, repo


@dataclass
class Environment:
    """One deployment stage backed by its own repository."""
    name: str
    repo_name: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    api_url: Optional[str] = None
    repo_url: Optional[str] = None
    status: EnvironmentStatus = EnvironmentStatus.PENDING
    artifact_count: int = 0
    version: Optional[str] = None
    error_message: Optional[str] = None
    available_folders: List[str] = field(default_factory=list)
    selected_folder: Optional[str] = None
    source_environment_name: Optional[str] = None
    status_history: List[EnvironmentStatus] = field(default_factory=list)

    def __post_init__(self):
        self.status = EnvironmentStatus(self.status)
        if not self.status_history:
            self.status_history = [self.status]
        self._apply_repo_name()

    def _apply_repo_name(self) -> None:
        parsed = parse_repo_name(self.repo_name)
        if parsed:
            self.owner, self.repo = parsed
        else:
            self.owner, self.repo = None, None

    @property
    def repo_identifier(self) -> Optional[Tuple[str, str]]:
        """(owner, repo) when provisioned, otherwise None."""
        if self.owner and self.repo:
            return self.owner, self.repo
        return None

    @property
    def full_repo_name(self) -> Optional[str]:
        ident = self.repo_identifier
        return f"{ident[0]}/{ident[1]}" if ident else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "repo_name": self.repo_name,
            "owner": self.owner,
            "repo": self.repo,
            "api_url": self.api_url,
            "repo_url": self.repo_url,
            "status": self.status.value,
            "artifact_count": self.artifact_count,
            "version": self.version,
            "error_message": self.error_message,
            "available_folders": list(self.available_folders),
            "selected_folder": self.selected_folder,
            "source_environment_name": self.source_environment_name,
        }


# Fields callers may not set through upsert
_PROTECTED_FIELDS = {"name", "owner", "repo", "status_history"}
_ENVIRONMENT_FIELDS = {f.name for f in fields(Environment)}


def default_repo_name(env_name: str, owner: Optional[str] = None) -> str:
    base = settings.REPO_NAME_TEMPLATE.format(env=env_name.lower())
    return f"{owner}/{base}" if owner else base


class EnvironmentRegistry:
    """Ordered collection of environment records."""

    def __init__(self, environments: Optional[List[Environment]] = None):
        self._environments: List[Environment] = []
        for env in environments or []:
            self.add(env)

    @classmethod
    def from_settings(cls) -> "EnvironmentRegistry":
        """Build the default chain from settings.ENVIRONMENT_CHAIN."""
        return cls([
            Environment(name=name, repo_name=default_repo_name(name, settings.GITHUB_OWNER))
            for name in settings.ENVIRONMENT_CHAIN
        ])

    def list(self) -> List[Environment]:
        return list(self._environments)

    def names(self) -> List[str]:
        return [env.name for env in self._environments]

    def get(self, name: str) -> Optional[Environment]:
        for env in self._environments:
            if env.name == name:
                return env
        return None

    def require(self, name: str) -> Environment:
        env = self.get(name)
        if env is None:
            raise NotFoundError(f"Environment {name} not found")
        return env

    def position(self, name: str) -> int:
        """Ordinal position in the chain, or -1 when absent."""
        for index, env in enumerate(self._environments):
            if env.name == name:
                return index
        return -1

    def upsert(self, name: str, updates: Dict[str, Any]) -> Environment:
        """
        Merge updates into an existing environment.

        A repo_name update is parsed into owner/repo. Malformed values keep the
        raw string but leave the parsed fields unset; callers must check
        repo_identifier before using it.

        Raises:
            NotFoundError: unknown environment
            ValidationError: unknown or protected field
        """
        env = self.require(name)

        unknown = set(updates) - _ENVIRONMENT_FIELDS
        if unknown:
            raise ValidationError(f"Unknown environment fields: {', '.join(sorted(unknown))}")
        protected = {
            key for key in set(updates) & _PROTECTED_FIELDS
            if updates[key] != getattr(env, key)
        }
        if protected:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(protected))}")

        for key, value in updates.items():
            if key in _PROTECTED_FIELDS:
                continue
            if key == "status":
                value = EnvironmentStatus(value)
            setattr(env, key, value)

        if "repo_name" in updates:
            env._apply_repo_name()
            if env.repo_name and not env.repo_identifier:
                logger.warning(f"Repository name '{env.repo_name}' for {name} is not in owner/repo format")

        return env

    def add(self, env: Environment) -> bool:
        """Append an environment to the end of the chain. No-op if the name exists."""
        if self.get(env.name) is not None:
            return False
        self._environments.append(env)
        return True

    def remove(self, name: str) -> bool:
        env = self.get(name)
        if env is None:
            return False
        self._environments.remove(env)
        return True

    def format_repo_name(self, owner: str, env: Environment) -> str:
        """Qualify an environment's repository name with an owner."""
        base = env.repo
        if not base and env.repo_name:
            base = env.repo_name.split("/")[-1]
        if not base:
            base = default_repo_name(env.name)
        return f"{owner}/{base}"
