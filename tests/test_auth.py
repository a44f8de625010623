"""
Tests for bearer auth, rate limiting, the error envelope and /v1/account.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from jose import jwt

from conftest import make_token
from tela.core import dependencies


class TestBearerAuth:
    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, anon_client: AsyncClient):
        resp = await anon_client.get("/v1/tasks")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        assert resp.json() == {"success": False, "message": "Access token required"}

    @pytest.mark.asyncio
    async def test_wrong_scheme_is_401(self, anon_client: AsyncClient):
        resp = await anon_client.get("/v1/tasks", headers={"Authorization": f"Token {make_token()}"})
        assert resp.status_code == 401
        assert "Bearer" in resp.json()["message"]

    @pytest.mark.asyncio
    async def test_expired_token_is_401(self, anon_client: AsyncClient):
        token = make_token(expires_in=timedelta(minutes=-1))
        resp = await anon_client.get("/v1/tasks", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert "expired" in resp.json()["message"]

    @pytest.mark.asyncio
    async def test_bad_signature_is_401(self, anon_client: AsyncClient):
        token = jwt.encode({"sub": "user-1"}, "not-the-secret", algorithm="HS256")
        resp = await anon_client.get("/v1/tasks", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["message"].startswith("Invalid token")

    @pytest.mark.asyncio
    async def test_token_without_subject_is_401(self, anon_client: AsyncClient):
        token = make_token(user_id="")
        resp = await anon_client.get("/v1/tasks", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_health_needs_no_token(self, anon_client: AsyncClient):
        resp = await anon_client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["auth_enabled"] is True


class TestEnvelope:
    @pytest.mark.asyncio
    async def test_unknown_route_uses_error_envelope(self, client: AsyncClient):
        resp = await client.get("/v1/nowhere")
        assert resp.status_code == 404
        assert resp.json()["success"] is False

    @pytest.mark.asyncio
    async def test_rate_limited_is_429(self, client: AsyncClient, monkeypatch):
        async def always_over(bucket, limit, window_seconds):
            return True

        monkeypatch.setattr(dependencies, "hit_rate_limit", always_over)
        resp = await client.get("/v1/tasks")
        assert resp.status_code == 429
        assert resp.json()["success"] is False


class TestAccount:
    @pytest.mark.asyncio
    async def test_first_request_creates_free_account(self, client: AsyncClient):
        data = (await client.get("/v1/account")).json()["data"]
        assert data["user_id"] == "user-1"
        assert data["plan"] == "free"
        assert data["credits"] == 1000
        assert data["limits"]["max_conversations"] == 10

    @pytest.mark.asyncio
    async def test_update_profile(self, client: AsyncClient):
        resp = await client.patch("/v1/account", json={"email": "new@example.com", "name": " Ada "})
        data = resp.json()["data"]
        assert data["email"] == "new@example.com"
        assert data["name"] == "Ada"

    @pytest.mark.asyncio
    async def test_invalid_email_is_400(self, client: AsyncClient):
        resp = await client.patch("/v1/account", json={"email": "not-an-email"})
        assert resp.status_code == 400
        assert resp.json()["errors"][0].startswith("email")
