"""
Unit tests for the environment registry.
"""
import pytest

from config_promoter.core.exceptions import NotFoundError, ValidationError
from config_promoter.services.environment_registry import (
    Environment,
    EnvironmentRegistry,
    EnvironmentStatus,
    default_repo_name,
    parse_repo_name,
)


class TestParseRepoName:
    """Tests for owner/repo parsing."""

    @pytest.mark.unit
    def test_parses_owner_and_repo(self):
        assert parse_repo_name("acme/config-dev-repo") == ("acme", "config-dev-repo")

    @pytest.mark.unit
    def test_strips_whitespace(self):
        assert parse_repo_name("  acme / dev  ") == ("acme", "dev")

    @pytest.mark.unit
    @pytest.mark.parametrize("value", [None, "", "config-dev-repo", "/dev", "acme/", "a/b/c"])
    def test_malformed_values_return_none(self, value):
        assert parse_repo_name(value) is None


class TestEnvironment:
    """Tests for the Environment record."""

    @pytest.mark.unit
    def test_repo_name_populates_identifier(self):
        env = Environment(name="Dev", repo_name="acme/dev")
        assert env.owner == "acme"
        assert env.repo == "dev"
        assert env.repo_identifier == ("acme", "dev")
        assert env.full_repo_name == "acme/dev"

    @pytest.mark.unit
    def test_unconfigured_environment_has_no_identifier(self):
        env = Environment(name="QA")
        assert env.repo_identifier is None
        assert env.full_repo_name is None
        assert env.status == EnvironmentStatus.PENDING
        assert env.status_history == [EnvironmentStatus.PENDING]

    @pytest.mark.unit
    def test_status_string_is_coerced(self):
        env = Environment(name="Dev", status="xmlsAdded")
        assert env.status is EnvironmentStatus.XMLS_ADDED

    @pytest.mark.unit
    def test_to_dict_uses_status_value(self):
        data = Environment(name="Dev", repo_name="acme/dev").to_dict()
        assert data["status"] == "pending"
        assert data["owner"] == "acme"
        assert "status_history" not in data


class TestEnvironmentRegistry:
    """Tests for EnvironmentRegistry ordering and updates."""

    @pytest.mark.unit
    def test_preserves_chain_order(self, registry):
        assert registry.names() == ["Dev", "QA", "Stage", "Prod"]
        assert registry.position("Dev") == 0
        assert registry.position("Prod") == 3
        assert registry.position("Missing") == -1

    @pytest.mark.unit
    def test_require_unknown_raises_not_found(self, registry):
        with pytest.raises(NotFoundError):
            registry.require("Missing")

    @pytest.mark.unit
    def test_upsert_reparses_repo_name(self, registry):
        env = registry.upsert("QA", {"repo_name": "other/qa-configs"})
        assert env.repo_identifier == ("other", "qa-configs")

    @pytest.mark.unit
    def test_upsert_malformed_repo_name_clears_identifier(self, registry):
        env = registry.upsert("QA", {"repo_name": "not-a-full-name"})
        assert env.repo_name == "not-a-full-name"
        assert env.repo_identifier is None

    @pytest.mark.unit
    def test_upsert_does_not_reorder(self, registry):
        registry.upsert("Dev", {"api_url": "https://example.com"})
        assert registry.names() == ["Dev", "QA", "Stage", "Prod"]

    @pytest.mark.unit
    def test_upsert_unknown_environment_raises(self, registry):
        with pytest.raises(NotFoundError):
            registry.upsert("Missing", {"api_url": "https://example.com"})

    @pytest.mark.unit
    def test_upsert_unknown_field_raises(self, registry):
        with pytest.raises(ValidationError):
            registry.upsert("Dev", {"colour": "blue"})

    @pytest.mark.unit
    def test_upsert_cannot_rename(self, registry):
        with pytest.raises(ValidationError):
            registry.upsert("Dev", {"name": "Development"})

    @pytest.mark.unit
    def test_add_appends_and_rejects_duplicates(self, registry):
        assert registry.add(Environment(name="DR")) is True
        assert registry.names()[-1] == "DR"
        assert registry.add(Environment(name="Dev")) is False

    @pytest.mark.unit
    def test_remove(self, registry):
        assert registry.remove("Stage") is True
        assert registry.remove("Stage") is False
        assert registry.names() == ["Dev", "QA", "Prod"]

    @pytest.mark.unit
    def test_format_repo_name(self, registry):
        env = registry.require("QA")
        assert registry.format_repo_name("other", env) == "other/config-qa-repo"
        assert registry.format_repo_name("other", Environment(name="Perf")) == "other/config-perf-repo"

    @pytest.mark.unit
    def test_default_repo_name(self):
        assert default_repo_name("Stage") == "config-stage-repo"
        assert default_repo_name("Stage", "acme") == "acme/config-stage-repo"
