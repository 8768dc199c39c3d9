"""
Credential store for the process-wide GitHub token.

The token is configuration: it is set rarely and read by every host call.
The engine only sees this interface; where the token is persisted (if at
all) is the caller's concern.
"""
import logging
from typing import Optional, Protocol, runtime_checkable

from config_promoter.core.config import settings

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialStore(Protocol):
    def load(self) -> Optional[str]:
        """Return the current token, or None when unset."""
        ...

    def set(self, token: str) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemoryCredentialStore:
    """Keeps the token in process memory, optionally seeded from settings."""

    def __init__(self, token: Optional[str] = None):
        self._token = token.strip() if token and token.strip() else None

    @classmethod
    def from_settings(cls) -> "InMemoryCredentialStore":
        return cls(settings.GITHUB_TOKEN)

    def load(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        if not token or not token.strip():
            raise ValueError("Token must not be empty")
        self._token = token.strip()
        logger.info("GitHub token updated")

    def clear(self) -> None:
        self._token = None
        logger.info("GitHub token cleared")

    def is_set(self) -> bool:
        return self._token is not None
