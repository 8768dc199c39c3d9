"""
Error taxonomy for the promotion engine.

Host client errors are translated into these types at the GitHub boundary,
so services never need to know about PyGithub, requests or httpx exceptions.
"""
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from config_promoter.services.folder_sync import CommitOutcome


class PromotionError(Exception):
    """Base class for all promotion engine errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class MissingCredentialError(PromotionError):
    """No GitHub token is configured; raised before any network call."""

    def __init__(self, message: str = "GitHub token not set"):
        super().__init__(message)


class ValidationError(PromotionError):
    """Malformed input such as a bad owner/repo string or an empty folder selection."""


class NotFoundError(PromotionError):
    """Repository, folder or environment does not exist."""


class AuthRejectedError(PromotionError):
    """The host rejected the token (HTTP 401)."""

    def __init__(self, message: str = "GitHub token is invalid or expired"):
        super().__init__(message)


class HostError(PromotionError):
    """The host refused the request for a reason retrying will not fix."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientHostError(HostError):
    """Network failure, rate limit or 5xx; safe to retry."""


class AggregateFailure(PromotionError):
    """Some files in a batch failed after retries were exhausted."""

    def __init__(self, message: str, failures: List["CommitOutcome"]):
        super().__init__(message)
        self.failures = failures

    @property
    def failed_filenames(self) -> List[str]:
        return [f.filename for f in self.failures]


class InvalidTransitionError(PromotionError):
    """An environment was asked to move to a status its current status cannot reach."""

    def __init__(self, environment: str, current: str, target: str):
        super().__init__(
            f"Environment {environment} cannot move from '{current}' to '{target}'"
        )
        self.environment = environment
        self.current = current
        self.target = target
