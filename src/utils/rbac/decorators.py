"""
RBAC Decorators - Route protection decorators for Flask endpoints

This module provides decorators to protect Flask routes: bearer-token
authentication, role / permission / ownership checks, throttling of
sensitive operations, audit logging and API-key validation.

Every failure is answered with JSON ``{success: false, message, code}`` and
the wrapped view is not called.

Usage:
    @app.route('/api/orders/<id>', methods=['PUT'])
    @protect
    @check_permission(Module.ORDERS, Action.UPDATE)
    @check_ownership(ResourceType.ORDER)
    @audit_log('update_order', 'order')
    def update_order(id):
        ...

Decorators apply top to bottom, so ``protect`` must sit above the checks
that need a user.
"""

from functools import wraps
from typing import Callable, Optional, Union

from flask import g, jsonify, make_response, request

from src.utils.logging import get_logger
from src.utils.rbac.audit import build_request_record, log_permission_check, log_request
from src.utils.rbac.auth_service import AuthError, get_auth_service
from src.utils.rbac.models import User
from src.utils.rbac.permission_enum import ResourceType
from src.utils.rbac.permissions import has_permission, has_role, is_owner

logger = get_logger(__name__)

NOT_AUTHENTICATED = AuthError(401, 'Access denied. Please login first.', 'NOT_AUTHENTICATED')


def _server_error(message: str):
    return jsonify({'success': False, 'message': message, 'code': 'SERVER_ERROR'}), 500


def get_current_user() -> Optional[User]:
    """
    Get the user attached to the current request.

    Returns:
        User with effective permissions, or None if not authenticated
    """
    return g.get('user')


def protect(f: Callable) -> Callable:
    """
    Decorator that requires a valid bearer token for an active, unlocked user.

    On success the user, with effective permissions resolved, is available
    as ``g.user``.

    Usage:
        @app.route('/api/auth/me')
        @protect
        def me():
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth = get_auth_service()
        try:
            user = auth.authenticate(request.headers.get('Authorization'))
        except AuthError as e:
            return e.to_response()
        except Exception:
            logger.exception("Unexpected error during authentication")
            return _server_error('Server error during authentication.')

        g.user = user
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f: Callable) -> Callable:
    """
    Decorator that attaches the user when a usable token is present.

    Never rejects a request: missing, malformed or expired tokens, and
    unknown, deactivated or locked users all leave ``g.user`` as None.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.user = get_auth_service().try_authenticate(request.headers.get('Authorization'))
        return f(*args, **kwargs)

    return decorated_function


def authorize(*roles: str) -> Callable:
    """
    Decorator that restricts a route to the given roles.

    Usage:
        @app.route('/api/users')
        @protect
        @authorize('admin', 'manager')
        def list_users():
            ...
    """
    allowed = [str(r) for r in roles]

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                log_permission_check('anonymous', f"role({','.join(allowed)})", False,
                                     request.endpoint, None, NOT_AUTHENTICATED.code)
                return NOT_AUTHENTICATED.to_response()

            decision = has_role(user, allowed)
            log_permission_check(user.id, f"role({','.join(allowed)})", decision.allowed,
                                 request.endpoint, user.role, decision.code)
            if not decision:
                return AuthError(
                    403,
                    f"Access denied. Role '{user.role}' is not authorized to access this resource.",
                    decision.code,
                ).to_response()

            return f(*args, **kwargs)

        return decorated_function

    return decorator


def check_permission(module: str, action: str) -> Callable:
    """
    Decorator that requires ``action`` on ``module`` in the user's effective
    permissions. Admins always pass.

    Usage:
        @app.route('/api/orders', methods=['POST'])
        @protect
        @check_permission(Module.ORDERS, Action.CREATE)
        def create_order():
            ...
    """
    module = getattr(module, 'value', module)
    action = getattr(action, 'value', action)

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                log_permission_check('anonymous', f"{module}:{action}", False,
                                     request.endpoint, None, NOT_AUTHENTICATED.code)
                return NOT_AUTHENTICATED.to_response()

            decision = has_permission(user, module, action)
            log_permission_check(user.id, f"{module}:{action}", decision.allowed,
                                 request.endpoint, user.role, decision.code)
            if not decision:
                return AuthError(
                    403,
                    f"Access denied. You don't have permission to {action} {module}.",
                    decision.code,
                ).to_response()

            return f(*args, **kwargs)

        return decorated_function

    return decorator


def check_ownership(resource_type: Union[ResourceType, str], resource_id_param: str = 'id') -> Callable:
    """
    Decorator that limits a record to the users linked to it.

    The record named by the ``resource_id_param`` view argument is loaded
    first: a missing record is a 404 for everyone. Admins then pass; other
    users must be its creator, assignee or sales rep. The loaded record is
    available as ``g.resource``.

    Usage:
        @app.route('/api/customers/<id>')
        @protect
        @check_ownership(ResourceType.CUSTOMER)
        def get_customer(id):
            ...
    """
    resource_type = ResourceType(resource_type)

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            auth = get_auth_service()
            user = get_current_user()
            if user is None:
                return NOT_AUTHENTICATED.to_response()

            resource_id = kwargs.get(resource_id_param)
            try:
                resource = None
                if resource_id is not None:
                    resource = auth.load_resource(resource_type, str(resource_id))
            except Exception:
                logger.exception(f"Ownership lookup failed for {resource_type.value} {resource_id}")
                return _server_error('Server error during ownership check.')

            if resource is None:
                return AuthError(404, 'Resource not found.', 'RESOURCE_NOT_FOUND').to_response()

            decision = is_owner(user, resource)
            log_permission_check(user.id, f"owner({resource_type.value}:{resource_id})",
                                 decision.allowed, request.endpoint, user.role, decision.code)
            if not decision:
                return AuthError(
                    403,
                    'Access denied. You can only access your own resources.',
                    decision.code,
                ).to_response()

            g.resource = resource
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def sensitive_operation(f: Callable) -> Callable:
    """
    Decorator that throttles a route per user with the sliding-window limiter.

    Denied attempts do not count against the window.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if user is None:
            return NOT_AUTHENTICATED.to_response()

        limiter = get_auth_service().rate_limiter
        if not limiter.hit(f"sensitive_{user.id}"):
            return AuthError(
                429,
                'Too many sensitive operations. Please try again later.',
                'RATE_LIMITED',
            ).to_response()

        return f(*args, **kwargs)

    return decorated_function


def audit_log(action: str, resource: str) -> Callable:
    """
    Decorator that records the outcome of a request after the view returns.

    Usage:
        @app.route('/api/auth/me')
        @protect
        @audit_log('get_profile', 'user')
        def me():
            ...
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            response = make_response(f(*args, **kwargs))

            user = get_current_user()
            url = request.path
            if request.query_string:
                url += '?' + request.query_string.decode('utf-8', 'replace')
            resource_id = (request.view_args or {}).get('id')

            record = build_request_record(
                user_id=user.id if user else None,
                user_email=user.email if user else None,
                action=action,
                resource=resource,
                method=request.method,
                url=url,
                ip=request.remote_addr,
                user_agent=request.headers.get('User-Agent'),
                payload=response.get_json(silent=True),
                resource_id=str(resource_id) if resource_id is not None else None,
                status_code=response.status_code,
            )
            log_request(record)

            return response

        return decorated_function

    return decorator


def validate_api_key(f: Callable) -> Callable:
    """
    Decorator for machine-to-machine endpoints authenticated by ``x-api-key``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth = get_auth_service()
        try:
            auth.check_api_key(request.headers.get('x-api-key'))
        except AuthError as e:
            return e.to_response()
        except Exception:
            logger.exception("Unexpected error during API key validation")
            return _server_error('Server error during API key validation.')

        return f(*args, **kwargs)

    return decorated_function
