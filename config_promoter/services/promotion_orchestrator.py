"""
Promotion Orchestrator

Drives every environment through its lifecycle and owns the status state
machine. The orchestrator is the only writer of environment records.

Lifecycle for a run:
1. ensure_repository   pending   -> created
2. ingest_artifacts    created   -> xmlsAdded
3. cut_version         xmlsAdded -> v1Created
4. promote             any       -> promoting -> completed | error

Each operation works on one environment and converts failures into a typed
outcome on that environment. Bulk runs fan out over the registry with
asyncio.gather; one environment failing never stops the others.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from config_promoter.core.config import settings
from config_promoter.core.exceptions import (
    AggregateFailure,
    InvalidTransitionError,
    MissingCredentialError,
    NotFoundError,
    PromotionError,
    ValidationError,
)
from config_promoter.services.artifact_service import ArtifactService
from config_promoter.services.credential_store import CredentialStore, InMemoryCredentialStore
from config_promoter.services.environment_registry import (
    Environment,
    EnvironmentRegistry,
    EnvironmentStatus,
    default_repo_name,
)
from config_promoter.services.folder_sync import FileArtifact, FolderSync
from config_promoter.services.github_service import GitHubService
from config_promoter.services.repository_host import RepositoryHost
from config_promoter.services.source_resolver import SourceResolver

logger = logging.getLogger(__name__)

S = EnvironmentStatus

# Every status may fail into ERROR; reset to PENDING is handled separately
ALLOWED_TRANSITIONS: Dict[EnvironmentStatus, set] = {
    S.PENDING: {S.CREATED, S.PROMOTING, S.ERROR},
    S.CREATED: {S.CREATED, S.XMLS_ADDED, S.PROMOTING, S.ERROR},
    S.XMLS_ADDED: {S.V1_CREATED, S.PROMOTING, S.ERROR},
    S.V1_CREATED: {S.PROMOTING, S.ERROR},
    S.COMPLETED: {S.V1_CREATED, S.PROMOTING, S.ERROR},
    S.PROMOTING: {S.COMPLETED, S.ERROR},
    S.ERROR: {S.PROMOTING, S.ERROR},
}


@dataclass
class PromotionContext:
    """Everything an orchestration run needs, passed explicitly."""
    registry: EnvironmentRegistry
    host: RepositoryHost
    credentials: CredentialStore
    artifact_service: ArtifactService = field(default_factory=ArtifactService)

    @classmethod
    def from_settings(cls) -> "PromotionContext":
        credentials = InMemoryCredentialStore.from_settings()
        return cls(
            registry=EnvironmentRegistry.from_settings(),
            host=GitHubService(credentials),
            credentials=credentials,
        )


@dataclass
class PromotionResult:
    """Terminal value of a promotion attempt."""
    success: bool
    message: str
    source_repo: Optional[str] = None
    target_repo: Optional[str] = None
    folder_name: Optional[str] = None
    source_environment: Optional[str] = None
    target_environment: Optional[str] = None
    files_promoted: int = 0
    failed_files: List[str] = field(default_factory=list)
    conflict: bool = False


@dataclass
class OperationOutcome:
    """Result of one lifecycle operation on one environment."""
    environment: str
    success: bool
    message: str
    status: EnvironmentStatus
    skipped: bool = False


@dataclass
class BulkOperationResult:
    """Aggregate of one operation run across every environment."""
    operation: str
    outcomes: List[OperationOutcome]
    message: str

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success and not o.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)


class PromotionOrchestrator:
    """
    Lifecycle and promotion engine for all environments in a registry.
    """

    def __init__(
        self,
        context: PromotionContext,
        folder_sync: Optional[FolderSync] = None,
        source_resolver: Optional[SourceResolver] = None,
    ):
        self.context = context
        self.registry = context.registry
        self.host = context.host
        self.folder_sync = folder_sync or FolderSync(context.host)
        self.source_resolver = source_resolver or SourceResolver(context.registry)

    # =========================================================================
    # State machine
    # =========================================================================

    def _set_status(self, env: Environment, status: EnvironmentStatus, error_message: str = None) -> None:
        if status not in ALLOWED_TRANSITIONS[env.status]:
            raise InvalidTransitionError(env.name, env.status.value, status.value)
        if status != env.status:
            logger.info(f"Environment {env.name}: {env.status.value} -> {status.value}")
            env.status_history.append(status)
        env.status = status
        env.error_message = error_message if status == S.ERROR else None

    def reset(self, env: Environment) -> None:
        """Start a new run for env."""
        env.status = S.PENDING
        env.status_history = [S.PENDING]
        env.error_message = None

    def _environment(self, env: Union[Environment, str]) -> Environment:
        return env if isinstance(env, Environment) else self.registry.require(env)

    def require_credentials(self) -> None:
        if not self.context.credentials.load():
            raise MissingCredentialError("GitHub token is required")

    def _operation_failed(self, env: Environment, message: str) -> OperationOutcome:
        logger.error(message)
        self._set_status(env, S.ERROR, message)
        return OperationOutcome(environment=env.name, success=False, message=message, status=env.status)

    def _skipped(self, env: Environment, message: str) -> OperationOutcome:
        logger.warning(message)
        return OperationOutcome(environment=env.name, success=False, message=message, status=env.status, skipped=True)

    def _superseded(self, env: Environment, started: EnvironmentStatus, operation: str) -> Optional[OperationOutcome]:
        """Skip outcome when another operation moved env away from started."""
        if env.status == started:
            return None
        return self._skipped(
            env,
            f"{env.name} moved from {started.value} to {env.status.value} during {operation}; status left unchanged",
        )

    @staticmethod
    def _has_ingested(env: Environment) -> bool:
        if env.status == S.XMLS_ADDED:
            return True
        return env.status == S.COMPLETED and S.CREATED in env.status_history

    # =========================================================================
    # Lifecycle operations
    # =========================================================================

    async def _repository_name(self, env: Environment) -> Tuple[str, str]:
        """Owner and name for env's repository; bare names belong to the token owner."""
        if env.repo_identifier:
            return env.repo_identifier

        base = (env.repo_name or "").strip().strip("/").split("/")[-1] or default_repo_name(env.name)
        owner = settings.GITHUB_OWNER or await self.host.get_authenticated_login()
        return owner, base

    async def ensure_repository(self, env: Union[Environment, str], description: str = None) -> OperationOutcome:
        """
        Make sure env's repository exists, creating it with an initial commit.

        An existing repository counts as success. New repositories are created
        with auto_init so that tags can be cut later.
        """
        env = self._environment(env)
        if env.status == S.PROMOTING:
            return self._skipped(env, f"Cannot provision {env.name} while a promotion is running")
        if env.status in (S.ERROR, S.COMPLETED):
            self.reset(env)
        started = env.status

        try:
            owner, repo = await self._repository_name(env)
            info = await self.host.get_repository(owner, repo)
            if info is None:
                info = await self.host.create_repository(
                    owner,
                    repo,
                    description=description or f"Repository for {env.name} configuration files",
                    private=False,
                    auto_init=True,
                )
                message = f"Created repository {info.full_name}"
            else:
                message = f"Repository {info.full_name} already exists"
        except PromotionError as e:
            return self._superseded(env, started, "repository creation") or self._operation_failed(
                env, f"Failed to create {env.name} repository: {e}"
            )

        superseded = self._superseded(env, started, "repository creation")
        if superseded:
            return superseded

        self.registry.upsert(env.name, {"repo_name": info.full_name, "repo_url": info.html_url})
        if env.status in (S.PENDING, S.CREATED):
            self._set_status(env, S.CREATED)
        logger.info(f"{env.name}: {message}")
        return OperationOutcome(environment=env.name, success=True, message=message, status=env.status)

    async def ingest_artifacts(
        self,
        env: Union[Environment, str],
        artifacts: Optional[List[FileArtifact]] = None,
        version_folder: str = None,
        use_samples: bool = False,
    ) -> OperationOutcome:
        """
        Commit artifacts into a version folder of env's repository.

        Artifacts are fetched from env.api_url when not given. At least one
        file must land for the environment to count as ingested.
        """
        env = self._environment(env)
        if env.status != S.CREATED:
            return self._skipped(
                env, f"Skipping {env.name}: repository not created in this run (status {env.status.value})"
            )
        if not env.repo_identifier:
            return self._operation_failed(env, f"Environment {env.name} has no repository configured")

        owner, repo = env.repo_identifier
        folder = version_folder or settings.DEFAULT_VERSION_FOLDER

        try:
            if artifacts is None:
                if use_samples:
                    artifacts = self.context.artifact_service.generate_sample_artifacts(env.name)
                else:
                    artifacts = await self.context.artifact_service.fetch_artifacts(env.api_url)
            if not artifacts:
                raise ValidationError("No artifacts to add")

            files = [FileArtifact.create(f"{folder}/{a.filename}", a.content) for a in artifacts]
            outcomes = await self.folder_sync.batch_commit(owner, repo, files, f"Add artifacts for {env.name}")
        except PromotionError as e:
            return self._superseded(env, S.CREATED, "artifact ingestion") or self._operation_failed(
                env, f"Failed to process artifacts for {env.name}: {e}"
            )

        superseded = self._superseded(env, S.CREATED, "artifact ingestion")
        if superseded:
            return superseded

        successes = sum(1 for o in outcomes if o.success)
        failures = [o for o in outcomes if not o.success]
        if successes == 0:
            return self._operation_failed(
                env, f"Failed to process artifacts for {env.name}: no files committed ({failures[0].error})"
            )

        env.artifact_count = successes
        if folder not in env.available_folders:
            env.available_folders.append(folder)
        self._set_status(env, S.XMLS_ADDED)

        message = f"Added {successes} of {len(outcomes)} artifacts to {env.name}/{folder}"
        if failures:
            message += f"; failed: {', '.join(o.filename for o in failures)}"
        return OperationOutcome(environment=env.name, success=True, message=message, status=env.status)

    async def cut_version(
        self,
        env: Union[Environment, str],
        tag_name: str = None,
        message: str = None,
        use_release: bool = False,
    ) -> OperationOutcome:
        """
        Tag the latest commit of env's repository.

        A tag object alone is not listable, so the refs/tags/<tag> reference is
        created right after it. With use_release a GitHub release is created
        instead, which makes both in one call.
        """
        env = self._environment(env)
        tag_name = tag_name or settings.DEFAULT_TAG_NAME
        message = message or f"Initial version for {env.name}"

        if not self._has_ingested(env):
            return self._skipped(
                env, f"Skipping {env.name}: no artifacts ingested in this run (status {env.status.value})"
            )
        if not env.repo_identifier:
            return self._operation_failed(env, f"Environment {env.name} has no repository configured")

        owner, repo = env.repo_identifier
        started = env.status
        try:
            if use_release:
                await self.host.create_release(owner, repo, tag_name, tag_name, message)
            else:
                commits = await self.host.list_commits(owner, repo)
                if not commits:
                    raise NotFoundError("No commits found")
                tag = await self.host.create_tag_object(owner, repo, tag_name, message, commits[0].sha, "commit")
                await self.host.create_ref(owner, repo, f"refs/tags/{tag_name}", tag.sha)
        except PromotionError as e:
            return self._superseded(env, started, "version creation") or self._operation_failed(
                env, f"Failed to create version {tag_name} for {env.name}: {e}"
            )

        superseded = self._superseded(env, started, "version creation")
        if superseded:
            return superseded

        env.version = tag_name
        self._set_status(env, S.V1_CREATED)
        return OperationOutcome(
            environment=env.name,
            success=True,
            message=f"Created version {tag_name} for {env.name}",
            status=env.status,
        )

    # =========================================================================
    # Promotion
    # =========================================================================

    def _promotion_failed(
        self,
        target: Environment,
        message: str,
        folder_name: Optional[str],
        source: Optional[Environment] = None,
        failed_files: Optional[List[str]] = None,
        files_promoted: int = 0,
    ) -> PromotionResult:
        logger.error(f"Promotion to {target.name} failed: {message}")
        self._set_status(target, S.ERROR, message)
        return PromotionResult(
            success=False,
            message=message,
            source_repo=source.full_repo_name if source else None,
            target_repo=target.full_repo_name,
            folder_name=folder_name,
            source_environment=source.name if source else None,
            target_environment=target.name,
            files_promoted=files_promoted,
            failed_files=failed_files or [],
        )

    def _promotion_superseded(
        self,
        target: Environment,
        folder_name: str,
        source: Environment,
    ) -> Optional[PromotionResult]:
        """Conflict result when target left promoting while files were being copied."""
        if target.status == S.PROMOTING:
            return None
        message = (
            f"Promotion of {folder_name} to {target.name} was superseded: "
            f"status changed to {target.status.value}"
        )
        logger.warning(message)
        return PromotionResult(
            success=False,
            message=message,
            source_repo=source.full_repo_name,
            target_repo=target.full_repo_name,
            folder_name=folder_name,
            source_environment=source.name,
            target_environment=target.name,
            conflict=True,
        )

    async def _download_all(self, entries) -> List[bytes]:
        results = await asyncio.gather(
            *[self.folder_sync.download_file(entry) for entry in entries],
            return_exceptions=True,
        )
        for entry, result in zip(entries, results):
            if isinstance(result, PromotionError):
                raise PromotionError(f"Failed to download {entry.name}: {result}")
            if isinstance(result, BaseException):
                raise result
        return results

    async def promote(
        self,
        target: Union[Environment, str],
        folder_name: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PromotionResult:
        """
        Copy a folder from the nearest configured predecessor into target.

        Files land under the same folder name and file name in the target
        repository, with their bytes unchanged. This method never raises for
        promotion failures; the returned result and target.status carry the
        outcome. A cancelled promotion leaves the target in error and
        re-raises CancelledError.
        """
        target = self._environment(target)
        folder_name = (folder_name or "").strip().strip("/")

        if target.status == S.PROMOTING:
            return PromotionResult(
                success=False,
                message=f"Cannot start promotion: another promotion is already running for {target.name}",
                target_repo=target.full_repo_name,
                folder_name=folder_name or None,
                target_environment=target.name,
                conflict=True,
            )
        if not folder_name:
            return self._promotion_failed(target, "Please select a folder to promote", None)

        source = self.source_resolver.resolve(target)
        if source is None:
            return self._promotion_failed(target, f"No source environment found for {target.name}", folder_name)
        if not target.repo_identifier:
            return self._promotion_failed(
                target,
                f"Invalid target repository for {target.name}. Expected format: owner/repo",
                folder_name,
                source,
            )

        target.selected_folder = folder_name
        target.source_environment_name = source.name
        self._set_status(target, S.PROMOTING)
        logger.info(f"Promoting {folder_name} from {source.name} to {target.name}")

        src_owner, src_repo = source.repo_identifier
        tgt_owner, tgt_repo = target.repo_identifier
        try:
            try:
                entries = await self.folder_sync.list_folder_contents(src_owner, src_repo, folder_name)
            except NotFoundError:
                entries = []
            files = [entry for entry in entries if entry.is_file]
            if not files:
                raise NotFoundError(f"No files found in folder {folder_name}")

            contents = await self._download_all(files)
            # Copied as-is: no extension or XML declaration is added on promotion
            artifacts = [
                FileArtifact(filename=f"{folder_name}/{entry.name}", content=content)
                for entry, content in zip(files, contents)
            ]
            outcomes = await self.folder_sync.batch_commit(
                tgt_owner,
                tgt_repo,
                artifacts,
                f"Promote {folder_name} from {source.name} to {target.name}",
                cancel_event=cancel_event,
            )
            failures = [o for o in outcomes if not o.success]
            if failures:
                raise AggregateFailure(
                    f"{len(failures)} of {len(outcomes)} files failed: "
                    f"{', '.join(f'{o.filename} ({o.error})' for o in failures)}",
                    failures,
                )
        except asyncio.CancelledError:
            logger.warning(f"Promotion of {folder_name} to {target.name} cancelled")
            if target.status == S.PROMOTING:
                self._set_status(target, S.ERROR, "Promotion cancelled")
            raise
        except AggregateFailure as e:
            return self._promotion_superseded(target, folder_name, source) or self._promotion_failed(
                target,
                f"Failed to promote folder {folder_name}: {e}",
                folder_name,
                source,
                failed_files=e.failed_filenames,
                files_promoted=len(outcomes) - len(e.failures),
            )
        except PromotionError as e:
            return self._promotion_superseded(target, folder_name, source) or self._promotion_failed(
                target, f"Failed to promote folder {folder_name}: {e}", folder_name, source
            )
        except Exception as e:
            # Never leave the target stuck in promoting
            logger.exception(f"Unexpected error promoting {folder_name} to {target.name}")
            return self._promotion_superseded(target, folder_name, source) or self._promotion_failed(
                target, f"Failed to promote folder {folder_name}: {e}", folder_name, source
            )

        superseded = self._promotion_superseded(target, folder_name, source)
        if superseded:
            return superseded

        target.artifact_count = len(outcomes)
        if folder_name not in target.available_folders:
            target.available_folders.append(folder_name)
        self._set_status(target, S.COMPLETED)
        return PromotionResult(
            success=True,
            message=f"Successfully promoted {folder_name} from {source.name} to {target.name}",
            source_repo=source.full_repo_name,
            target_repo=target.full_repo_name,
            folder_name=folder_name,
            source_environment=source.name,
            target_environment=target.name,
            files_promoted=len(outcomes),
        )

    async def available_folders(self, target: Union[Environment, str]) -> List[str]:
        """Folders that can be promoted into target, read from its source environment."""
        target = self._environment(target)
        source = self.source_resolver.resolve(target)
        target.source_environment_name = source.name if source else None
        target.available_folders = await self.folder_sync.list_folders(source) if source else []
        return target.available_folders

    # =========================================================================
    # Runs across all environments
    # =========================================================================

    async def _run_isolated(
        self,
        operation: str,
        fn: Callable[..., Awaitable[OperationOutcome]],
        **kwargs,
    ) -> List[OperationOutcome]:
        async def run(env: Environment) -> OperationOutcome:
            started = env.status
            try:
                return await fn(env, **kwargs)
            except Exception as e:
                # Unexpected failures stay confined to their environment
                logger.exception(f"Unexpected error during {operation} for {env.name}")
                message = f"Unexpected error during {operation} for {env.name}: {e}"
                if env.status != started or env.status == S.PROMOTING:
                    # Another operation owns the status now
                    return OperationOutcome(environment=env.name, success=False, message=message, status=env.status)
                return self._operation_failed(env, message)

        return list(await asyncio.gather(*[run(env) for env in self.registry.list()]))

    @staticmethod
    def _summarize(operation: str, outcomes: List[OperationOutcome], success: str, failure: str) -> BulkOperationResult:
        succeeded = sum(1 for o in outcomes if o.success)
        if succeeded:
            message = success.format(count=succeeded)
        elif outcomes and all(o.skipped for o in outcomes):
            message = f"No environments were ready to {operation}"
        else:
            message = failure
        return BulkOperationResult(operation=operation, outcomes=outcomes, message=message)

    async def create_repositories(self) -> BulkOperationResult:
        self.require_credentials()
        outcomes = await self._run_isolated("create repositories", self.ensure_repository)
        return self._summarize(
            "create repositories",
            outcomes,
            "Successfully created {count} repositories",
            "Failed to create any repositories",
        )

    async def add_artifacts(
        self,
        artifacts_by_env: Optional[Dict[str, List[FileArtifact]]] = None,
        version_folder: str = None,
        use_samples: bool = False,
    ) -> BulkOperationResult:
        self.require_credentials()
        artifacts_by_env = artifacts_by_env or {}

        async def ingest(env: Environment) -> OperationOutcome:
            return await self.ingest_artifacts(
                env,
                artifacts=artifacts_by_env.get(env.name),
                version_folder=version_folder,
                use_samples=use_samples,
            )

        outcomes = await self._run_isolated("add artifacts", ingest)
        return self._summarize(
            "add artifacts",
            outcomes,
            "Successfully added artifacts to {count} repositories",
            "Failed to add artifacts to any repositories",
        )

    async def create_versions(
        self,
        tag_name: str = None,
        message: str = None,
        use_release: bool = False,
    ) -> BulkOperationResult:
        self.require_credentials()
        outcomes = await self._run_isolated(
            "create versions",
            self.cut_version,
            tag_name=tag_name,
            message=message,
            use_release=use_release,
        )
        return self._summarize(
            "create versions",
            outcomes,
            "Successfully created versions for {count} repositories",
            "Failed to create versions for any repositories",
        )

    async def promote_many(self, requests: List[Tuple[str, str]]) -> List[PromotionResult]:
        """Run several promotions concurrently; results follow request order."""
        self.require_credentials()

        async def run(env_name: str, folder_name: str) -> PromotionResult:
            try:
                return await self.promote(env_name, folder_name)
            except NotFoundError as e:
                return PromotionResult(success=False, message=str(e), folder_name=folder_name, target_environment=env_name)

        return list(await asyncio.gather(*[run(name, folder) for name, folder in requests]))

    async def refresh_available_folders(self) -> Dict[str, List[str]]:
        """Reload promotable folders for every environment."""
        envs = self.registry.list()
        folders = await asyncio.gather(*[self.available_folders(env) for env in envs])
        return {env.name: env_folders for env, env_folders in zip(envs, folders)}
