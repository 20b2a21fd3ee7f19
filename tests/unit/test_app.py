"""
Unit tests for the auth API endpoints.
"""
from datetime import datetime, timedelta

import pytest

from src.interfaces.auth_api.app import create_app
from src.utils.rbac.jwt_parser import VerifiedToken, verify_token


@pytest.fixture
def api(auth):
    app = create_app(auth=auth)
    app.config["TESTING"] = True
    return app.test_client()


def test_health(api):
    assert api.get("/api/health").get_json() == {"status": "OK"}


class TestSession:

    def test_anonymous(self, api):
        assert api.get("/api/auth/session").get_json() == {"success": True, "logged_in": False}

    def test_bad_token_is_anonymous(self, api):
        resp = api.get("/api/auth/session", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 200
        assert resp.get_json()["logged_in"] is False

    def test_logged_in(self, api, bearer):
        body = api.get("/api/auth/session", headers=bearer("u-sales")).get_json()
        assert body["logged_in"] is True
        assert body["user"]["id"] == "u-sales"


class TestMe:

    def test_requires_token(self, api):
        resp = api.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Access denied. No token provided."

    def test_profile_has_effective_permissions(self, api, bearer):
        body = api.get("/api/auth/me", headers=bearer("u-override")).get_json()

        assert body["success"] is True
        assert body["user"]["role"] == "sales"
        assert body["user"]["permissions"] == [
            {"module": "orders", "actions": ["delete"]},
            {"module": "customers", "actions": ["create", "read", "update"]},
            {"module": "reports", "actions": ["read"]},
        ]
        assert "password" not in str(body)


class TestRefresh:

    def test_issues_verifiable_token(self, api, auth, bearer):
        resp = api.post("/api/auth/refresh", headers=bearer("u-sales"))

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["message"] == "Token refreshed successfully"
        assert set(body["data"]) == {"token", "user", "expiresAt", "expiresIn"}
        assert body["data"]["expiresIn"] == 3600
        assert body["data"]["user"]["id"] == "u-sales"

        result = verify_token(body["data"]["token"], auth.settings.jwt_secret)
        assert isinstance(result, VerifiedToken)
        assert result.user_id == "u-sales"
        expires_at = datetime.fromisoformat(body["data"]["expiresAt"])
        assert abs(expires_at - result.expires_at) < timedelta(seconds=1)

    def test_not_throttled(self, api, bearer):
        headers = bearer("u-sales")
        codes = [api.post("/api/auth/refresh", headers=headers).status_code for _ in range(5)]
        assert codes == [200] * 5

    def test_requires_token(self, api):
        assert api.post("/api/auth/refresh").status_code == 401


class TestPermissionQuery:

    @pytest.mark.parametrize("user_id,path,allowed", [
        ("u-sales", "orders/update", True),
        ("u-sales", "orders/delete", False),
        ("u-override", "orders/delete", True),
        ("u-override", "orders/read", False),
        ("u-admin", "settings/delete", True),
    ])
    def test_allowed(self, api, bearer, user_id, path, allowed):
        body = api.get(f"/api/auth/permissions/{path}", headers=bearer(user_id)).get_json()
        assert body["allowed"] is allowed

    def test_unknown_permission(self, api, bearer):
        resp = api.get("/api/auth/permissions/payroll/read", headers=bearer("u-sales"))
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "UNKNOWN_PERMISSION"


class TestIntegrationPing:

    def test_with_key(self, api):
        resp = api.get("/api/integrations/ping", headers={"X-API-Key": "test-api-key"})
        assert resp.get_json() == {"success": True, "message": "pong"}

    def test_without_key(self, api):
        resp = api.get("/api/integrations/ping")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "API key is required."
