"""
Shared fixtures for config promoter tests.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from config_promoter.main import create_app
from config_promoter.services.artifact_service import ArtifactService
from config_promoter.services.credential_store import InMemoryCredentialStore
from config_promoter.services.environment_registry import Environment, EnvironmentRegistry
from config_promoter.services.folder_sync import FolderSync
from config_promoter.services.promotion_orchestrator import PromotionContext, PromotionOrchestrator
from config_promoter.services.repository_host import (
    CommitInfo,
    CommitResult,
    RefResult,
    ReleaseInfo,
    RepositoryInfo,
    TagResult,
)

TEST_OWNER = "acme"
TEST_TOKEN = "ghp_test_token"


def repository_info(owner: str, name: str) -> RepositoryInfo:
    return RepositoryInfo(
        owner=owner,
        name=name,
        full_name=f"{owner}/{name}",
        url=f"https://api.github.com/repos/{owner}/{name}",
        html_url=f"https://github.com/{owner}/{name}",
    )


@pytest.fixture(name="repository_info")
def repository_info_factory():
    return repository_info


@pytest.fixture
def mock_host():
    """Repository host double with every protocol method as an AsyncMock."""
    host = MagicMock()
    host.get_authenticated_login = AsyncMock(return_value=TEST_OWNER)
    host.repository_exists = AsyncMock(return_value=False)
    host.get_repository = AsyncMock(return_value=None)
    host.create_repository = AsyncMock(
        side_effect=lambda owner, name, **kwargs: repository_info(owner, name)
    )
    host.list_contents = AsyncMock(return_value=[])
    host.put_file = AsyncMock(
        side_effect=lambda owner, repo, path, content, message, branch=None: CommitResult(
            path=path, commit_sha=f"sha-{path}"
        )
    )
    host.download = AsyncMock(return_value=b"")
    host.list_commits = AsyncMock(return_value=[CommitInfo(sha="abc123", message="Initial commit")])
    host.create_tag_object = AsyncMock(return_value=TagResult(tag="v1.0.0", sha="tag123"))
    host.create_ref = AsyncMock(return_value=RefResult(ref="refs/tags/v1.0.0", sha="tag123"))
    host.create_release = AsyncMock(return_value=ReleaseInfo(tag_name="v1.0.0", name="v1.0.0"))
    return host


@pytest.fixture
def credentials():
    return InMemoryCredentialStore(TEST_TOKEN)


@pytest.fixture
def registry():
    """Four-stage chain with every repository configured."""
    return EnvironmentRegistry([
        Environment(name="Dev", repo_name=f"{TEST_OWNER}/config-dev-repo", api_url="https://dev.example.com/configs"),
        Environment(name="QA", repo_name=f"{TEST_OWNER}/config-qa-repo"),
        Environment(name="Stage", repo_name=f"{TEST_OWNER}/config-stage-repo"),
        Environment(name="Prod", repo_name=f"{TEST_OWNER}/config-prod-repo"),
    ])


@pytest.fixture
def context(registry, mock_host, credentials):
    return PromotionContext(
        registry=registry,
        host=mock_host,
        credentials=credentials,
        artifact_service=ArtifactService(max_retries=1, retry_delay=0),
    )


@pytest.fixture
def orchestrator(context, mock_host):
    """Orchestrator without inter-batch delays."""
    return PromotionOrchestrator(
        context,
        folder_sync=FolderSync(mock_host, batch_size=5, inter_batch_delay=0),
    )


@pytest.fixture
def app(context, orchestrator):
    app = create_app(context)
    app.state.orchestrator = orchestrator
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
