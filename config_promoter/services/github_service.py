import asyncio
import base64
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

import httpx
import requests
from github import Auth, Github, GithubException, RateLimitExceededException, UnknownObjectException

from config_promoter.core.config import settings
from config_promoter.core.exceptions import (
    AuthRejectedError,
    HostError,
    MissingCredentialError,
    NotFoundError,
    PromotionError,
    TransientHostError,
)
from config_promoter.services.credential_store import CredentialStore
from config_promoter.services.repository_host import (
    CommitInfo,
    CommitResult,
    ContentEntry,
    RefResult,
    ReleaseInfo,
    RepositoryInfo,
    TagResult,
)
from config_promoter.utils.async_utils import retry_async

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 409 on a contents write means the branch head moved under a concurrent write
RETRYABLE_STATUSES = {409, 429, 500, 502, 503, 504}


def decode_content(encoded: str) -> bytes:
    """Decode base64 file content as returned by the contents API."""
    return base64.b64decode(encoded)


def _error_message(exc: GithubException) -> str:
    data = exc.data
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return str(exc)


class GitHubService:
    """GitHub implementation of the RepositoryHost protocol.

    PyGithub is blocking, so every call runs in a worker thread. Transient
    failures are retried with the configured fixed delay.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        base_url: str = None,
        branch: str = None,
        max_retries: int = None,
        retry_delay: float = None,
        retry_backoff: float = None,
        timeout: float = None,
    ):
        self.credentials = credentials
        self.base_url = base_url or settings.GITHUB_API_URL
        self.branch = branch or settings.GITHUB_BRANCH
        self.max_retries = settings.GITHUB_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.GITHUB_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.retry_backoff = settings.GITHUB_RETRY_BACKOFF if retry_backoff is None else retry_backoff
        self.timeout = timeout or settings.GITHUB_TIMEOUT_SECONDS

        self._github: Optional[Github] = None
        self._github_token: Optional[str] = None
        self._repos: Dict[str, Any] = {}

    def is_configured(self) -> bool:
        return bool(self.credentials.load())

    def _token(self) -> str:
        token = self.credentials.load()
        if not token:
            raise MissingCredentialError()
        return token

    def _client(self) -> Github:
        """Github client for the current token, rebuilt when the token changes."""
        token = self._token()
        if self._github is None or token != self._github_token:
            # Retries are handled here, not by PyGithub's urllib3 adapter
            self._github = Github(
                auth=Auth.Token(token),
                base_url=self.base_url,
                timeout=int(self.timeout),
                retry=None,
            )
            self._github_token = token
            self._repos = {}
        return self._github

    def _get_repo(self, gh: Github, owner: str, repo: str):
        full_name = f"{owner}/{repo}"
        if full_name not in self._repos:
            self._repos[full_name] = gh.get_repo(full_name)
        return self._repos[full_name]

    def _translate_error(self, exc: Exception, action: str) -> PromotionError:
        if isinstance(exc, RateLimitExceededException):
            return TransientHostError(f"GitHub rate limit exceeded while trying to {action}", exc.status)
        if isinstance(exc, GithubException):
            message = _error_message(exc)
            if exc.status == 401:
                return AuthRejectedError()
            if exc.status == 404:
                return NotFoundError(f"Not found while trying to {action}: {message}")
            if exc.status == 403 and "rate limit" in message.lower():
                return TransientHostError(f"GitHub rate limit exceeded while trying to {action}", 403)
            if exc.status in RETRYABLE_STATUSES:
                return TransientHostError(f"Failed to {action}: {message}", exc.status)
            return HostError(f"Failed to {action}: {message}", exc.status)
        if isinstance(exc, httpx.HTTPStatusError):
            code = exc.response.status_code
            if code == 401:
                return AuthRejectedError()
            if code == 404:
                return NotFoundError(f"Not found while trying to {action}")
            if code in RETRYABLE_STATUSES:
                return TransientHostError(f"Failed to {action}: HTTP {code}", code)
            return HostError(f"Failed to {action}: HTTP {code}", code)
        return TransientHostError(f"Failed to {action}: {exc}")

    async def _call(self, action: str, fn: Callable[[Github], T]) -> T:
        """Run a blocking PyGithub call with error translation and retries."""
        gh = self._client()

        async def attempt() -> T:
            try:
                return await asyncio.to_thread(fn, gh)
            except (GithubException, requests.exceptions.RequestException) as e:
                raise self._translate_error(e, action) from e

        return await retry_async(
            attempt,
            max_attempts=self.max_retries,
            delay=self.retry_delay,
            backoff=self.retry_backoff,
            exceptions=(TransientHostError,),
            description=action,
        )

    @staticmethod
    def _repository_info(repository) -> RepositoryInfo:
        return RepositoryInfo(
            owner=repository.owner.login,
            name=repository.name,
            full_name=repository.full_name,
            url=repository.url,
            html_url=repository.html_url,
        )

    async def get_authenticated_login(self) -> str:
        return await self._call("get authenticated user", lambda gh: gh.get_user().login)

    async def get_repository(self, owner: str, repo: str) -> Optional[RepositoryInfo]:
        try:
            return await self._call(
                f"get repository {owner}/{repo}",
                lambda gh: self._repository_info(self._get_repo(gh, owner, repo)),
            )
        except NotFoundError:
            return None

    async def repository_exists(self, owner: str, repo: str) -> bool:
        if not owner or not repo:
            return False
        return await self.get_repository(owner, repo) is not None

    async def create_repository(
        self,
        owner: Optional[str],
        name: str,
        description: str = "",
        private: bool = False,
        auto_init: bool = True,
    ) -> RepositoryInfo:
        def create(gh: Github) -> RepositoryInfo:
            user = gh.get_user()
            if owner and owner.lower() != user.login.lower():
                parent = gh.get_organization(owner)
            else:
                parent = user
            repository = parent.create_repo(
                name,
                description=description,
                private=private,
                auto_init=auto_init,
            )
            self._repos[repository.full_name] = repository
            return self._repository_info(repository)

        info = await self._call(f"create repository {name}", create)
        logger.info(f"Created repository {info.full_name}")
        return info

    async def list_contents(self, owner: str, repo: str, path: str = "") -> List[ContentEntry]:
        def list_entries(gh: Github) -> List[ContentEntry]:
            contents = self._get_repo(gh, owner, repo).get_contents(path, ref=self.branch)
            if isinstance(contents, list):
                # Directory listings carry no inline content
                return [
                    ContentEntry(
                        name=item.name,
                        path=item.path,
                        type=item.type,
                        sha=item.sha,
                        download_url=item.download_url,
                    )
                    for item in contents
                ]
            return [
                ContentEntry(
                    name=contents.name,
                    path=contents.path,
                    type=contents.type,
                    sha=contents.sha,
                    download_url=contents.download_url,
                    content=contents.content,
                )
            ]

        return await self._call(f"list contents of {owner}/{repo}/{path}", list_entries)

    async def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: Union[str, bytes],
        message: str,
        branch: Optional[str] = None,
    ) -> CommitResult:
        branch = branch or self.branch

        def put(gh: Github) -> CommitResult:
            repository = self._get_repo(gh, owner, repo)
            try:
                existing = repository.get_contents(path, ref=branch)
            except UnknownObjectException:
                existing = None

            if existing is not None and not isinstance(existing, list):
                result = repository.update_file(
                    path=path,
                    message=message,
                    content=content,
                    sha=existing.sha,
                    branch=branch,
                )
                created = False
            else:
                result = repository.create_file(
                    path=path,
                    message=message,
                    content=content,
                    branch=branch,
                )
                created = True

            commit = result.get("commit")
            content_file = result.get("content")
            return CommitResult(
                path=path,
                commit_sha=commit.sha if commit is not None else None,
                content_sha=content_file.sha if content_file is not None else None,
                created=created,
            )

        return await self._call(f"commit file {path}", put)

    async def download(self, url: str) -> bytes:
        headers = {"Authorization": f"token {self._token()}"}

        async def fetch() -> bytes:
            try:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, headers=headers, timeout=self.timeout)
                    response.raise_for_status()
                    return response.content
            except httpx.HTTPError as e:
                raise self._translate_error(e, f"download {url}") from e

        return await retry_async(
            fetch,
            max_attempts=self.max_retries,
            delay=self.retry_delay,
            backoff=self.retry_backoff,
            exceptions=(TransientHostError,),
            description=f"download {url}",
        )

    async def list_commits(self, owner: str, repo: str) -> List[CommitInfo]:
        def commits(gh: Github) -> List[CommitInfo]:
            try:
                page = self._get_repo(gh, owner, repo).get_commits().get_page(0)
            except GithubException as e:
                # GitHub answers 409 "Git Repository is empty." for repos without commits
                if e.status == 409:
                    return []
                raise
            return [CommitInfo(sha=c.sha, message=c.commit.message) for c in page]

        return await self._call(f"list commits of {owner}/{repo}", commits)

    async def create_tag_object(
        self,
        owner: str,
        repo: str,
        tag: str,
        message: str,
        object_sha: str,
        type: str = "commit",
    ) -> TagResult:
        git_tag = await self._call(
            f"create tag {tag}",
            lambda gh: self._get_repo(gh, owner, repo).create_git_tag(tag, message, object_sha, type),
        )
        return TagResult(tag=tag, sha=git_tag.sha)

    async def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> RefResult:
        git_ref = await self._call(
            f"create ref {ref}",
            lambda gh: self._get_repo(gh, owner, repo).create_git_ref(ref, sha),
        )
        return RefResult(ref=git_ref.ref, sha=sha)

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
        release = await self._call(
            f"create release {tag_name}",
            lambda gh: self._get_repo(gh, owner, repo).create_git_release(
                tag_name, name, body, draft=draft, prerelease=prerelease
            ),
        )
        return ReleaseInfo(tag_name=release.tag_name, name=release.title, html_url=release.html_url)
