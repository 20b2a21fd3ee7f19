"""
RBAC (Role-Based Access Control) Module for ShopKeeper

This module provides authentication and authorization functionality including:
- JWT access token issuing and verification
- Principal loading and effective permission resolution
- Route protection decorators (role, permission, ownership, API key)
- Sliding-window throttling of sensitive operations
- Audit logging for security events

Usage:
    from src.utils.rbac import protect, check_permission, Module, Action

    @app.route('/api/orders', methods=['POST'])
    @protect
    @check_permission(Module.ORDERS, Action.CREATE)
    def create_order():
        ...
"""

from src.utils.rbac.permission_enum import Action, Module, ResourceType, ADMIN_ROLE
from src.utils.rbac.models import OwnedResource, PermissionEntry, Role, User
from src.utils.rbac.registry import (
    RBACConfigError,
    RBACRegistry,
    get_registry,
    load_rbac_config,
)
from src.utils.rbac.jwt_parser import (
    TokenErrorCode,
    TokenFailure,
    VerifiedToken,
    create_access_token,
    verify_token,
)
from src.utils.rbac.permissions import (
    Decision,
    has_permission,
    is_owner,
    merge_permissions,
)
from src.utils.rbac.rate_limiter import SlidingWindowRateLimiter
from src.utils.rbac.auth_service import AuthError, AuthService, get_auth_service
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

__all__ = [
    # Vocabulary and models
    'Action',
    'Module',
    'ResourceType',
    'ADMIN_ROLE',
    'OwnedResource',
    'PermissionEntry',
    'Role',
    'User',
    # Registry
    'RBACConfigError',
    'RBACRegistry',
    'get_registry',
    'load_rbac_config',
    # Tokens
    'TokenErrorCode',
    'TokenFailure',
    'VerifiedToken',
    'create_access_token',
    'verify_token',
    # Permissions
    'Decision',
    'has_permission',
    'is_owner',
    'merge_permissions',
    # Services
    'SlidingWindowRateLimiter',
    'AuthError',
    'AuthService',
    'get_auth_service',
    # Decorators
    'audit_log',
    'authorize',
    'check_ownership',
    'check_permission',
    'get_current_user',
    'optional_auth',
    'protect',
    'sensitive_operation',
    'validate_api_key',
]
