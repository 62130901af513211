from fastapi import status
from fastapi.testclient import TestClient

from app.core.config import settings


class TestHealthCheckAPI:
    """Test cases for the /health endpoint"""

    def test_get_health_success(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "oke"}
        assert "application/json" in response.headers.get("content-type", "")

    def test_get_health_is_public_and_unlimited(self, client: TestClient, monkeypatch):
        """Health checks are not rate limited and need no bearer token"""
        monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
        for _ in range(15):
            assert client.get("/health").status_code == status.HTTP_200_OK


class TestDocsAPI:
    """Test cases for the password-protected API docs"""

    def test_docs_hidden_without_password(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "DOC_PASSWORD", None)
        response = client.get("/openapi.json", auth=("admin", "anything"))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_docs_wrong_password(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "DOC_PASSWORD", "s3cret")
        response = client.get("/openapi.json", auth=("admin", "wrong"))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_openapi_lists_auth_routes(self, client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "DOC_PASSWORD", "s3cret")
        response = client.get("/openapi.json", auth=("admin", "s3cret"))

        assert response.status_code == status.HTTP_200_OK
        paths = response.json()["paths"]
        for path in ("/auth/aptos/nonce", "/auth/aptos/verify", "/auth/aptos/refresh", "/auth/aptos/logout"):
            assert path in paths
