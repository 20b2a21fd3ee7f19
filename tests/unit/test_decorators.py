"""
Unit tests for the Flask route decorators.

Tests cover:
- protect: token failures, account checks, permission resolution
- optional_auth
- authorize / check_permission / check_ownership
- sensitive_operation
- audit_log
- validate_api_key
"""
import json
import logging
from datetime import datetime, timedelta, timezone

import pytest


def _expired(bearer, user_id):
    issued = datetime.now(timezone.utc) - timedelta(hours=3)
    return bearer(user_id, expires_in=timedelta(hours=1), now=issued)


# =============================================================================
# protect
# =============================================================================

class TestProtect:

    def test_valid_token_attaches_user(self, client, bearer):
        resp = client.get("/protected", headers=bearer("u-sales"))

        assert resp.status_code == 200
        assert resp.get_json()["user"] == "u-sales"

    def test_missing_header(self, client):
        resp = client.get("/protected")
        body = resp.get_json()

        assert resp.status_code == 401
        assert body == {
            "success": False,
            "message": "Access denied. No token provided.",
            "code": "NO_TOKEN",
        }

    def test_non_bearer_scheme(self, client):
        resp = client.get("/protected", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "NO_TOKEN"

    def test_expired_token(self, client, bearer):
        resp = client.get("/protected", headers=_expired(bearer, "u-sales"))

        assert resp.status_code == 401
        assert resp.get_json()["code"] == "TOKEN_EXPIRED"
        assert resp.get_json()["message"] == "Session expired. Please login again."

    def test_malformed_token(self, client):
        resp = client.get("/protected", headers={"Authorization": "Bearer not.a.token"})
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "INVALID_TOKEN"

    @pytest.mark.parametrize("user_id,code", [
        ("u-ghost", "USER_NOT_FOUND"),
        ("u-inactive", "ACCOUNT_DEACTIVATED"),
        ("u-locked", "ACCOUNT_LOCKED"),
    ])
    def test_account_checks(self, client, bearer, user_id, code):
        resp = client.get("/protected", headers=bearer(user_id))
        assert resp.status_code == 401
        assert resp.get_json()["code"] == code

    def test_deactivated_reported_before_locked(self, client, bearer):
        resp = client.get("/protected", headers=bearer("u-both"))
        assert resp.get_json()["code"] == "ACCOUNT_DEACTIVATED"

    def test_expired_lock_is_ignored(self, client, bearer):
        resp = client.get("/protected", headers=bearer("u-was-locked"))
        assert resp.status_code == 200

    def test_token_failure_skips_user_lookup(self, client, auth):
        client.get("/protected", headers={"Authorization": "Bearer junk"})
        assert auth.user_store.calls == 0

    def test_effective_permissions_attached(self, client, bearer):
        resp = client.get("/protected", headers=bearer("u-override"))

        assert resp.get_json()["permissions"] == [
            {"module": "orders", "actions": ["delete"]},
            {"module": "customers", "actions": ["create", "read", "update"]},
            {"module": "reports", "actions": ["read"]},
        ]

    def test_inactive_role_leaves_user_entries(self, client, bearer):
        resp = client.get("/protected", headers=bearer("u-retired-role"))

        assert resp.status_code == 200
        assert resp.get_json()["permissions"] == [{"module": "products", "actions": ["read"]}]

    def test_store_failure_is_server_error(self, client, bearer, auth):
        def _boom(user_id):
            raise RuntimeError("connection refused")
        auth.user_store.get_user_by_id = _boom

        resp = client.get("/protected", headers=bearer("u-sales"))

        assert resp.status_code == 500
        assert resp.get_json()["message"] == "Server error during authentication."
        assert "connection refused" not in resp.get_data(as_text=True)


# =============================================================================
# optional_auth
# =============================================================================

class TestOptionalAuth:

    def test_valid_token(self, client, bearer):
        resp = client.get("/optional", headers=bearer("u-sales"))
        assert resp.get_json()["user"] == "u-sales"

    @pytest.mark.parametrize("headers", [
        {},
        {"Authorization": "Bearer junk"},
        {"Authorization": "Basic abc"},
    ])
    def test_bad_or_missing_token_proceeds_anonymously(self, client, headers):
        resp = client.get("/optional", headers=headers)

        assert resp.status_code == 200
        assert resp.get_json() == {"success": True, "user": None}

    def test_expired_token_proceeds_anonymously(self, client, bearer):
        resp = client.get("/optional", headers=_expired(bearer, "u-sales"))
        assert resp.status_code == 200
        assert resp.get_json()["user"] is None

    @pytest.mark.parametrize("user_id", ["u-ghost", "u-inactive", "u-locked"])
    def test_unusable_account_proceeds_anonymously(self, client, bearer, user_id):
        resp = client.get("/optional", headers=bearer(user_id))
        assert resp.status_code == 200
        assert resp.get_json()["user"] is None

    def test_store_failure_proceeds_anonymously(self, client, bearer, auth):
        def _boom(user_id):
            raise RuntimeError("connection refused")
        auth.user_store.get_user_by_id = _boom

        resp = client.get("/optional", headers=bearer("u-sales"))
        assert resp.status_code == 200
        assert resp.get_json()["user"] is None


# =============================================================================
# authorize / check_permission
# =============================================================================

class TestAuthorize:

    def test_allowed_role(self, client, bearer):
        assert client.get("/managers", headers=bearer("u-admin")).status_code == 200

    def test_other_role(self, client, bearer):
        resp = client.get("/managers", headers=bearer("u-sales"))
        body = resp.get_json()

        assert resp.status_code == 403
        assert body["message"] == "Access denied. Role 'sales' is not authorized to access this resource."
        assert body["code"] == "ROLE_NOT_AUTHORIZED"

    def test_requires_login(self, client):
        resp = client.get("/no-login-role")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Access denied. Please login first."


class TestCheckPermission:

    def test_role_permission(self, client, bearer):
        assert client.get("/orders/update", headers=bearer("u-sales")).status_code == 200

    def test_override_replaces_role_actions(self, client, bearer):
        # role grants orders:update, the user's own orders entry only has delete
        resp = client.get("/orders/update", headers=bearer("u-override"))

        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Access denied. You don't have permission to update orders."
        assert resp.get_json()["code"] == "PERMISSION_DENIED"

    def test_override_grants(self, client, bearer):
        assert client.get("/orders/delete", headers=bearer("u-override")).status_code == 200

    def test_missing_permission(self, client, bearer):
        assert client.get("/orders/delete", headers=bearer("u-sales")).status_code == 403

    def test_admin_bypass(self, client, bearer):
        # the admin role fixture carries no permission entries at all
        assert client.get("/orders/delete", headers=bearer("u-admin")).status_code == 200

    def test_requires_login(self, client):
        assert client.get("/no-login-permission").status_code == 401


# =============================================================================
# check_ownership
# =============================================================================

class TestCheckOwnership:

    @pytest.mark.parametrize("order_id", ["o-created", "o-assigned", "o-rep"])
    def test_linked_user(self, client, bearer, order_id):
        resp = client.get(f"/orders/{order_id}", headers=bearer("u-sales"))
        assert resp.status_code == 200
        assert resp.get_json()["order"] == order_id

    def test_unlinked_user(self, client, bearer):
        resp = client.get("/orders/o-other", headers=bearer("u-sales"))

        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Access denied. You can only access your own resources."

    def test_admin_bypass(self, client, bearer):
        assert client.get("/orders/o-other", headers=bearer("u-admin")).status_code == 200

    @pytest.mark.parametrize("user_id", ["u-sales", "u-admin"])
    def test_missing_resource_is_not_found_for_everyone(self, client, bearer, user_id):
        resp = client.get("/orders/o-missing", headers=bearer(user_id))

        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Resource not found."

    def test_lookup_failure(self, client, bearer, resources):
        resources.fail = True
        resp = client.get("/orders/o-created", headers=bearer("u-sales"))

        assert resp.status_code == 500
        assert resp.get_json()["message"] == "Server error during ownership check."


# =============================================================================
# sensitive_operation
# =============================================================================

class TestSensitiveOperation:

    def test_fourth_attempt_in_window_is_throttled(self, client, bearer, clock):
        headers = bearer("u-sales")
        for _ in range(3):
            assert client.post("/sensitive", headers=headers).status_code == 200
            clock.advance(60)

        resp = client.post("/sensitive", headers=headers)
        assert resp.status_code == 429
        assert resp.get_json()["message"] == "Too many sensitive operations. Please try again later."

    def test_window_reopens(self, client, bearer, clock):
        headers = bearer("u-sales")
        for _ in range(3):
            client.post("/sensitive", headers=headers)
            clock.advance(60)

        clock.advance(180)
        assert client.post("/sensitive", headers=headers).status_code == 200

    def test_limits_are_per_user(self, client, bearer):
        for _ in range(3):
            client.post("/sensitive", headers=bearer("u-sales"))

        assert client.post("/sensitive", headers=bearer("u-sales")).status_code == 429
        assert client.post("/sensitive", headers=bearer("u-admin")).status_code == 200

    def test_rejected_authentication_does_not_consume_attempts(self, client, bearer):
        for _ in range(5):
            client.post("/sensitive", headers={"Authorization": "Bearer junk"})

        assert client.post("/sensitive", headers=bearer("u-sales")).status_code == 200


# =============================================================================
# audit_log
# =============================================================================

def _audit_records(caplog):
    records = []
    for rec in caplog.records:
        message = rec.getMessage()
        if rec.name == "rbac.audit" and message.startswith("AUDIT: "):
            records.append(json.loads(message[len("AUDIT: "):]))
    return records


class TestAuditLog:

    def test_record_fields(self, client, bearer, caplog):
        caplog.set_level(logging.INFO, logger="rbac.audit")
        headers = {**bearer("u-sales"), "User-Agent": "pytest-agent"}

        resp = client.put("/audited/o-9?force=1", headers=headers)
        assert resp.status_code == 409

        [record] = _audit_records(caplog)
        assert record["user"] == "u-sales"
        assert record["userEmail"] == "sales@shop.test"
        assert record["action"] == "update_order"
        assert record["resource"] == "order"
        assert record["method"] == "PUT"
        assert record["url"] == "/audited/o-9?force=1"
        assert record["ip"] == "127.0.0.1"
        assert record["userAgent"] == "pytest-agent"
        assert record["success"] is False
        assert record["message"] == "Order is closed"
        assert record["resourceId"] == "o-9"
        assert datetime.fromisoformat(record["timestamp"]).tzinfo is not None

    def test_success_defaults_to_true(self, client, caplog):
        caplog.set_level(logging.INFO, logger="rbac.audit")

        client.get("/audited-public")

        [record] = _audit_records(caplog)
        assert record["success"] is True
        assert record["user"] is None
        assert record["userEmail"] is None
        assert record["resourceId"] is None
        assert record["message"] == "Catalog"

    def test_failed_authentication_is_not_audited(self, client, caplog):
        caplog.set_level(logging.INFO, logger="rbac.audit")
        client.put("/audited/o-9")
        assert _audit_records(caplog) == []


# =============================================================================
# validate_api_key
# =============================================================================

class TestValidateApiKey:

    def test_valid_key(self, client):
        assert client.get("/integration", headers={"x-api-key": "test-api-key"}).status_code == 200

    def test_missing_key(self, client):
        resp = client.get("/integration")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "API key is required."

    def test_wrong_key(self, client):
        resp = client.get("/integration", headers={"x-api-key": "guess"})
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid API key."

    def test_unconfigured_key_rejects_everything(self, client, auth):
        auth.settings.api_key = ""
        resp = client.get("/integration", headers={"x-api-key": "anything"})
        assert resp.status_code == 401

    def test_bearer_token_is_not_an_api_key(self, client, bearer):
        assert client.get("/integration", headers=bearer("u-admin")).status_code == 401
