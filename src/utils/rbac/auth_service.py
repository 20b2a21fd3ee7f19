"""
AuthService - Request authentication pipeline

Token verification, principal loading and permission resolution, bundled
with the stores and the rate limiter they need. One instance is created at
startup and registered on the Flask app; the decorators look it up through
get_auth_service().
"""

import dataclasses
import hmac
from typing import Any, Dict, Optional

from flask import Flask, current_app, jsonify

from src.utils.config_service import AuthSettings
from src.utils.logging import get_logger
from src.utils.rbac.audit import log_authentication_event
from src.utils.rbac.jwt_parser import TokenFailure, extract_bearer_token, verify_token
from src.utils.rbac.models import OwnedResource, User
from src.utils.rbac.permissions import merge_permissions
from src.utils.rbac.rate_limiter import SlidingWindowRateLimiter

logger = get_logger(__name__)

EXTENSION_KEY = 'shopkeeper_auth'


class ConfigNotReadyError(RuntimeError):
    pass


class AuthError(Exception):
    """
    A failed authentication or authorization step.

    Attributes:
        status: HTTP status to answer with
        message: End-user message
        code: Machine-readable code for client-side branching
    """

    def __init__(self, status: int, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {'success': False, 'message': self.message}
        if self.code:
            body['code'] = self.code
        return body

    def to_response(self):
        return jsonify(self.to_dict()), self.status


class AuthService:
    """
    Authentication pipeline and its collaborators.

    Stores are duck-typed:
        user_store.get_user_by_id(user_id) -> Optional[User]
        role_store.get_active_role(name) -> Optional[Role]
        resource_store.get_resource(resource_type, resource_id) -> Optional[OwnedResource]

    Example:
        >>> auth = AuthService(settings, factory.user_service, factory.role_service,
        ...                    factory.resource_service)
        >>> auth.init_app(app)
    """

    def __init__(
        self,
        settings: AuthSettings,
        user_store,
        role_store,
        resource_store=None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ):
        self.settings = settings
        self.user_store = user_store
        self.role_store = role_store
        self.resource_store = resource_store
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            window_seconds=settings.sensitive_window_seconds,
            max_attempts=settings.sensitive_max_attempts,
        )

    def init_app(self, app: Flask) -> None:
        app.extensions[EXTENSION_KEY] = self

    # -- pipeline ---------------------------------------------------------

    def authenticate(self, authorization: Optional[str]) -> User:
        """
        Run the full pipeline for an Authorization header value.

        Returns:
            The user with effective permissions attached

        Raises:
            AuthError: 401 with NO_TOKEN, INVALID_TOKEN, TOKEN_EXPIRED,
                       TOKEN_ERROR, USER_NOT_FOUND, ACCOUNT_DEACTIVATED
                       or ACCOUNT_LOCKED
        """
        token = extract_bearer_token(authorization)
        result = verify_token(token, self.settings.jwt_secret, self.settings.jwt_algorithm)
        if isinstance(result, TokenFailure):
            log_authentication_event('unknown', 'token', False, result.code.value)
            raise AuthError(401, result.message, result.code.value)

        user = self.load_user(result.user_id)
        log_authentication_event(user.id, 'token', True)
        return self.resolve_permissions(user)

    def load_user(self, user_id: Optional[str]) -> User:
        """
        Load the principal and check it may sign in. First failing check wins.

        Raises:
            AuthError: USER_NOT_FOUND, ACCOUNT_DEACTIVATED or ACCOUNT_LOCKED
        """
        # a signed token without an id claim names nobody
        user = self.user_store.get_user_by_id(user_id) if user_id else None

        if user is None:
            log_authentication_event(user_id, 'token', False, 'USER_NOT_FOUND')
            raise AuthError(401, 'Invalid token. User not found.', 'USER_NOT_FOUND')

        if not user.is_active:
            log_authentication_event(user_id, 'token', False, 'ACCOUNT_DEACTIVATED')
            raise AuthError(
                401,
                'Account is deactivated. Please contact administrator.',
                'ACCOUNT_DEACTIVATED',
            )

        if user.is_locked():
            log_authentication_event(user_id, 'token', False, 'ACCOUNT_LOCKED')
            raise AuthError(
                401,
                'Account is temporarily locked due to multiple failed login attempts.',
                'ACCOUNT_LOCKED',
            )

        return user

    def resolve_permissions(self, user: User) -> User:
        """
        Attach the effective permission set to a copy of the user.

        A missing or inactive role contributes nothing; the user's own
        entries still apply.
        """
        role = self.role_store.get_active_role(user.role)
        if role is None or not role.is_active:
            logger.debug(f"Role '{user.role}' of user {user.id} is missing or inactive")
            base = []
        else:
            base = role.permissions

        return dataclasses.replace(user, permissions=merge_permissions(base, user.permissions))

    def try_authenticate(self, authorization: Optional[str]) -> Optional[User]:
        """
        Best-effort variant of authenticate for public endpoints.

        Returns:
            The resolved user, or None on any failure
        """
        if extract_bearer_token(authorization) is None:
            return None

        try:
            return self.authenticate(authorization)
        except AuthError as e:
            logger.debug(f"Continuing without user context: {e.code}")
            return None
        except Exception:
            logger.exception("Optional authentication failed; continuing without user context")
            return None

    # -- other checks -----------------------------------------------------

    def load_resource(self, resource_type, resource_id: str) -> Optional[OwnedResource]:
        if self.resource_store is None:
            raise ConfigNotReadyError("No resource store configured for ownership checks")
        return self.resource_store.get_resource(resource_type, resource_id)

    def check_api_key(self, api_key: Optional[str]) -> None:
        """
        Compare an x-api-key header value with the configured key.

        Raises:
            AuthError: API_KEY_REQUIRED or INVALID_API_KEY (401)
        """
        if not api_key:
            log_authentication_event('integration', 'api_key', False, 'API_KEY_REQUIRED')
            raise AuthError(401, 'API key is required.', 'API_KEY_REQUIRED')

        expected = self.settings.api_key
        if not expected or not hmac.compare_digest(api_key.encode(), expected.encode()):
            log_authentication_event('integration', 'api_key', False, 'INVALID_API_KEY')
            raise AuthError(401, 'Invalid API key.', 'INVALID_API_KEY')

        log_authentication_event('integration', 'api_key', True)


def get_auth_service() -> AuthService:
    """
    Get the AuthService registered on the current Flask app.

    Raises:
        ConfigNotReadyError: If init_app was never called
    """
    service = current_app.extensions.get(EXTENSION_KEY)
    if service is None:
        raise ConfigNotReadyError("AuthService not initialized. Call AuthService.init_app(app) first.")
    return service
