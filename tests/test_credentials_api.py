"""
API tests for the credentials endpoint.
"""
import pytest
from fastapi.testclient import TestClient

from config_promoter.core.exceptions import AuthRejectedError


class TestCredentialsAPI:
    """Tests for /api/v1/credentials."""

    @pytest.mark.api
    def test_status_never_returns_token(self, client: TestClient):
        response = client.get("/api/v1/credentials/")

        assert response.status_code == 200
        assert response.json() == {"configured": True, "login": None}
        assert "ghp_test_token" not in response.text

    @pytest.mark.api
    def test_verify_reports_login(self, client: TestClient, mock_host):
        response = client.get("/api/v1/credentials/", params={"verify": True})

        assert response.status_code == 200
        assert response.json()["login"] == "acme"
        mock_host.get_authenticated_login.assert_awaited_once()

    @pytest.mark.api
    def test_verify_rejected_token(self, client: TestClient, mock_host):
        mock_host.get_authenticated_login.side_effect = AuthRejectedError()

        response = client.get("/api/v1/credentials/", params={"verify": True})

        assert response.status_code == 401
        assert response.json()["detail"] == "GitHub token is invalid or expired"

    @pytest.mark.api
    def test_set_token(self, client: TestClient, credentials):
        response = client.put("/api/v1/credentials/", json={"token": "  ghp_new  "})

        assert response.status_code == 200
        assert credentials.load() == "ghp_new"

    @pytest.mark.api
    def test_set_blank_token_rejected(self, client: TestClient, credentials):
        response = client.put("/api/v1/credentials/", json={"token": "   "})

        assert response.status_code == 400
        assert credentials.load() == "ghp_test_token"

    @pytest.mark.api
    def test_clear_token(self, client: TestClient, credentials):
        response = client.delete("/api/v1/credentials/")

        assert response.status_code == 204
        assert credentials.load() is None
        assert client.get("/api/v1/credentials/").json()["configured"] is False

    @pytest.mark.api
    def test_health_reports_credential_state(self, client: TestClient, credentials):
        assert client.get("/health").json()["github_configured"] is True
        credentials.clear()
        data = client.get("/health").json()
        assert data["github_configured"] is False
        assert data["environments"] == ["Dev", "QA", "Stage", "Prod"]
