"""Repository host protocol defining the interface the promotion engine consumes.

The engine only talks to the remote host through this protocol. The GitHub
implementation lives in github_service.py; tests substitute AsyncMock objects
with the same surface.

All methods are async to support non-blocking I/O operations.
"""
from dataclasses import dataclass
from typing import List, Optional, Protocol, Union, runtime_checkable


@dataclass
class RepositoryInfo:
    """A repository as reported by the host."""
    owner: str
    name: str
    full_name: str
    url: str
    html_url: str


@dataclass
class ContentEntry:
    """One entry of a repository directory listing."""
    name: str
    path: str
    type: str  # "file" | "dir" | "symlink" | "submodule"
    sha: Optional[str] = None
    download_url: Optional[str] = None
    content: Optional[str] = None  # base64, only present on single-file reads

    @property
    def is_file(self) -> bool:
        return self.type == "file"

    @property
    def is_dir(self) -> bool:
        return self.type == "dir"


@dataclass
class CommitInfo:
    sha: str
    message: Optional[str] = None


@dataclass
class CommitResult:
    """Result of a create-or-update file write."""
    path: str
    commit_sha: Optional[str] = None
    content_sha: Optional[str] = None
    created: bool = True


@dataclass
class TagResult:
    tag: str
    sha: str


@dataclass
class RefResult:
    ref: str
    sha: str


@dataclass
class ReleaseInfo:
    tag_name: str
    name: Optional[str] = None
    html_url: Optional[str] = None


@runtime_checkable
class RepositoryHost(Protocol):
    """Protocol for the remote repository host.

    Implementations raise the errors from config_promoter.core.exceptions:
    MissingCredentialError before any network call when no token is set,
    AuthRejectedError on HTTP 401, NotFoundError on 404 and
    TransientHostError for failures worth retrying.
    """

    async def get_authenticated_login(self) -> str:
        """Login of the user owning the current token."""
        ...

    async def repository_exists(self, owner: str, repo: str) -> bool:
        """Existence probe; a 404 is a normal False, not an error."""
        ...

    async def get_repository(self, owner: str, repo: str) -> Optional[RepositoryInfo]:
        """Repository details, or None when it does not exist."""
        ...

    async def create_repository(
        self,
        owner: Optional[str],
        name: str,
        description: str = "",
        private: bool = False,
        auto_init: bool = True,
    ) -> RepositoryInfo:
        """Create a repository for the authenticated user or an organization."""
        ...

    async def list_contents(self, owner: str, repo: str, path: str = "") -> List[ContentEntry]:
        """List entries directly under path."""
        ...

    async def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: Union[str, bytes],
        message: str,
        branch: Optional[str] = None,
    ) -> CommitResult:
        """Create or overwrite a single file."""
        ...

    async def download(self, url: str) -> bytes:
        """Fetch raw bytes from a download URL."""
        ...

    async def list_commits(self, owner: str, repo: str) -> List[CommitInfo]:
        """Commits on the default branch, newest first. Empty repository gives []."""
        ...

    async def create_tag_object(
        self,
        owner: str,
        repo: str,
        tag: str,
        message: str,
        object_sha: str,
        type: str = "commit",
    ) -> TagResult:
        """Create an annotated tag object (not yet visible as a ref)."""
        ...

    async def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> RefResult:
        """Create a git reference such as refs/tags/<tag>."""
        ...

    async def create_release(
        self,
        owner: str,
        repo: str,
        tag_name: str,
        name: str,
        body: str,
        draft: bool = False,
        prerelease: bool = False,
    ) -> ReleaseInfo:
        """Create a release, which also creates its tag."""
        ...
