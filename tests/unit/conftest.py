"""
Shared fixtures: in-memory record stores, a wired AuthService and a Flask
app exposing one route per decorator combination.
"""
from datetime import datetime, timedelta, timezone

import pytest
from flask import Flask, g, jsonify

from src.utils.config_service import AuthSettings
from src.utils.rbac.auth_service import AuthService
from src.utils.rbac.decorators import (
    audit_log,
    authorize,
    check_ownership,
    check_permission,
    get_current_user,
    optional_auth,
    protect,
    sensitive_operation,
    validate_api_key,
)
from src.utils.rbac.jwt_parser import create_access_token
from src.utils.rbac.models import OwnedResource, PermissionEntry, Role, User
from src.utils.rbac.permission_enum import Action, Module, ResourceType
from src.utils.rbac.rate_limiter import SlidingWindowRateLimiter

JWT_SECRET = "test-jwt-secret-0123456789abcdef0123456789abcdef0123456789abcdef"
API_KEY = "test-api-key"


class FakeUserStore:
    def __init__(self, users):
        self.users = {u.id: u for u in users}
        self.calls = 0

    def get_user_by_id(self, user_id):
        self.calls += 1
        return self.users.get(user_id)


class FakeRoleStore:
    def __init__(self, roles):
        self.roles = {r.name: r for r in roles}

    def get_active_role(self, name):
        role = self.roles.get(name)
        if role is None or not role.is_active:
            return None
        return role


class FakeResourceStore:
    def __init__(self, resources=None):
        self.resources = dict(resources or {})
        self.fail = False

    def get_resource(self, resource_type, resource_id):
        if self.fail:
            raise RuntimeError("database unavailable")
        return self.resources.get((ResourceType(resource_type), resource_id))


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings():
    return AuthSettings(jwt_secret=JWT_SECRET, api_key=API_KEY)


@pytest.fixture
def users():
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    future = datetime.now(timezone.utc) + timedelta(hours=2)
    return [
        User(id="u-admin", email="admin@shop.test", username="admin", role="admin"),
        User(id="u-sales", email="sales@shop.test", username="sales", role="sales"),
        User(
            id="u-override",
            email="override@shop.test",
            username="override",
            role="sales",
            permissions=[
                PermissionEntry("orders", ["delete"]),
                PermissionEntry("reports", ["read"]),
            ],
        ),
        User(id="u-inactive", email="inactive@shop.test", username="inactive", role="sales", is_active=False),
        User(id="u-locked", email="locked@shop.test", username="locked", role="sales", lock_until=future),
        User(id="u-was-locked", email="was@shop.test", username="was", role="sales", lock_until=past),
        User(
            id="u-both",
            email="both@shop.test",
            username="both",
            role="sales",
            is_active=False,
            lock_until=future,
        ),
        User(
            id="u-retired-role",
            email="retired@shop.test",
            username="retired",
            role="retired",
            permissions=[PermissionEntry("products", ["read"])],
        ),
    ]


@pytest.fixture
def roles():
    return [
        Role(name="admin", permissions=[]),
        Role(
            name="sales",
            permissions=[
                PermissionEntry("orders", ["create", "read", "update"]),
                PermissionEntry("customers", ["create", "read", "update"]),
            ],
        ),
        Role(
            name="retired",
            permissions=[PermissionEntry("orders", ["read"])],
            is_active=False,
        ),
    ]


@pytest.fixture
def resources():
    return FakeResourceStore({
        (ResourceType.ORDER, "o-created"): OwnedResource(id="o-created", created_by="u-sales"),
        (ResourceType.ORDER, "o-assigned"): OwnedResource(id="o-assigned", assigned_to="u-sales"),
        (ResourceType.ORDER, "o-rep"): OwnedResource(id="o-rep", assigned_sales_rep="u-sales"),
        (ResourceType.ORDER, "o-other"): OwnedResource(
            id="o-other", created_by="u-x", assigned_to="u-y", assigned_sales_rep="u-z"
        ),
    })


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def auth(settings, users, roles, resources, clock):
    limiter = SlidingWindowRateLimiter(window_seconds=300, max_attempts=3, clock=clock)
    return AuthService(
        settings,
        user_store=FakeUserStore(users),
        role_store=FakeRoleStore(roles),
        resource_store=resources,
        rate_limiter=limiter,
    )


@pytest.fixture
def token_for():
    def _token_for(user_id, **kwargs):
        return create_access_token(user_id, JWT_SECRET, **kwargs)
    return _token_for


@pytest.fixture
def bearer(token_for):
    def _bearer(user_id, **kwargs):
        return {"Authorization": f"Bearer {token_for(user_id, **kwargs)}"}
    return _bearer


def _user_payload():
    user = get_current_user()
    return {"success": True, "user": user.id if user else None}


@pytest.fixture
def app(auth):
    app = Flask(__name__)
    app.config["TESTING"] = True
    auth.init_app(app)

    @app.route("/protected")
    @protect
    def protected():
        return jsonify({
            "success": True,
            "user": g.user.id,
            "permissions": [p.to_dict() for p in g.user.permissions],
        })

    @app.route("/optional")
    @optional_auth
    def optional():
        return jsonify(_user_payload())

    @app.route("/managers")
    @protect
    @authorize("admin", "manager")
    def managers():
        return jsonify(_user_payload())

    @app.route("/no-login-role")
    @authorize("admin")
    def no_login_role():
        return jsonify(_user_payload())

    @app.route("/orders/update")
    @protect
    @check_permission(Module.ORDERS, Action.UPDATE)
    def orders_update():
        return jsonify(_user_payload())

    @app.route("/orders/delete")
    @protect
    @check_permission("orders", "delete")
    def orders_delete():
        return jsonify(_user_payload())

    @app.route("/no-login-permission")
    @check_permission("orders", "read")
    def no_login_permission():
        return jsonify(_user_payload())

    @app.route("/orders/<id>")
    @protect
    @check_ownership(ResourceType.ORDER)
    def order_detail(id):
        return jsonify({"success": True, "order": g.resource.id})

    @app.route("/sensitive", methods=["POST"])
    @protect
    @sensitive_operation
    def sensitive():
        return jsonify({"success": True})

    @app.route("/audited/<id>", methods=["PUT"])
    @protect
    @audit_log("update_order", "order")
    def audited(id):
        return jsonify({"success": False, "message": "Order is closed"}), 409

    @app.route("/audited-public")
    @audit_log("view_catalog", "product")
    def audited_public():
        return jsonify({"message": "Catalog"})

    @app.route("/integration")
    @validate_api_key
    def integration():
        return jsonify({"success": True})

    return app


@pytest.fixture
def client(app):
    return app.test_client()
