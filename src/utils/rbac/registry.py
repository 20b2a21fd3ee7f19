"""
RBAC Registry - Role definitions shipped with the application

This module holds the system role definitions (admin, manager, sales, ...)
and validates any role configuration against the closed module/action
vocabulary. Definitions are loaded from the ``roles`` section of the auth
configuration, or from the built-in defaults when none is configured.

The registry only describes roles; at request time the role store is the
source of truth (see src/utils/role_service.py). ``shopkeeper-auth seed-roles``
copies the registry into the store.
"""

import os
from typing import Any, Dict, List, Optional

import yaml

from src.utils.logging import get_logger
from src.utils.rbac.models import PermissionEntry, Role, parse_permissions
from src.utils.rbac.permission_enum import Action, Module

logger = get_logger(__name__)

# Global registry instance (singleton pattern)
_registry: Optional['RBACRegistry'] = None

_CRUD = ['create', 'read', 'update', 'delete']

DEFAULT_ROLES: Dict[str, Dict[str, Any]] = {
    'admin': {
        'display_name': 'Administrator',
        'description': 'Full system access with all permissions',
        'permissions': [{'module': m.value, 'actions': list(_CRUD)} for m in Module],
    },
    'manager': {
        'display_name': 'Manager',
        'description': 'Management access to operations and reporting',
        'permissions': [
            {'module': 'orders', 'actions': list(_CRUD)},
            {'module': 'inventory', 'actions': list(_CRUD)},
            {'module': 'customers', 'actions': list(_CRUD)},
            {'module': 'suppliers', 'actions': list(_CRUD)},
            {'module': 'products', 'actions': list(_CRUD)},
            {'module': 'reports', 'actions': ['read']},
            {'module': 'users', 'actions': ['read', 'update']},
        ],
    },
    'sales': {
        'display_name': 'Sales Representative',
        'description': 'Access to orders and customer management',
        'permissions': [
            {'module': 'orders', 'actions': ['create', 'read', 'update']},
            {'module': 'customers', 'actions': ['create', 'read', 'update']},
            {'module': 'products', 'actions': ['read']},
            {'module': 'inventory', 'actions': ['read']},
        ],
    },
    'inventory': {
        'display_name': 'Inventory Manager',
        'description': 'Full inventory and supplier management access',
        'permissions': [
            {'module': 'inventory', 'actions': list(_CRUD)},
            {'module': 'products', 'actions': list(_CRUD)},
            {'module': 'orders', 'actions': ['read', 'update']},
            {'module': 'suppliers', 'actions': list(_CRUD)},
        ],
    },
    'accountant': {
        'display_name': 'Accountant',
        'description': 'Access to accounting and financial reports',
        'permissions': [
            {'module': 'accounting', 'actions': list(_CRUD)},
            {'module': 'reports', 'actions': ['read']},
            {'module': 'orders', 'actions': ['read']},
        ],
    },
    'customer_service': {
        'display_name': 'Customer Service',
        'description': 'Customer support and order management',
        'permissions': [
            {'module': 'orders', 'actions': ['read', 'update']},
            {'module': 'customers', 'actions': ['read', 'update']},
        ],
    },
}


class RBACConfigError(Exception):
    """Raised when RBAC configuration is invalid."""
    pass


def validate_permissions(entries: List[PermissionEntry], owner: str = 'permissions') -> None:
    """
    Check a permission list against the module/action vocabulary.

    Args:
        entries: Permission entries to check
        owner: Name used in error messages (role or user)

    Raises:
        RBACConfigError: On an unknown module or action, or a repeated module
    """
    valid_modules = {m.value for m in Module}
    valid_actions = {a.value for a in Action}
    seen = set()

    for entry in entries:
        if entry.module not in valid_modules:
            raise RBACConfigError(f"{owner}: unknown module '{entry.module}'")
        if entry.module in seen:
            raise RBACConfigError(f"{owner}: module '{entry.module}' listed more than once")
        seen.add(entry.module)

        unknown = [a for a in entry.actions if a not in valid_actions]
        if unknown:
            raise RBACConfigError(
                f"{owner}: unknown action(s) {unknown} for module '{entry.module}'"
            )


class RBACRegistry:
    """
    Validated set of role definitions.

    Example:
        >>> registry = RBACRegistry({'roles': {'viewer': {'permissions': [...]}}})
        >>> registry.get_role('viewer').permissions
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the registry from configuration.

        Args:
            config: Dictionary with a ``roles`` mapping of role name to
                    display_name / description / permissions
        """
        roles_config: Dict[str, Dict] = config.get('roles') or {}
        if not roles_config:
            raise RBACConfigError("No roles defined in configuration")

        self._roles: Dict[str, Role] = {}
        for name, role_config in roles_config.items():
            role_name = str(name).lower()
            role_config = role_config or {}
            permissions = parse_permissions(role_config.get('permissions'))
            validate_permissions(permissions, owner=f"role '{role_name}'")

            self._roles[role_name] = Role(
                name=role_name,
                display_name=role_config.get('display_name', role_name),
                description=role_config.get('description', ''),
                permissions=permissions,
                is_system=True,
                is_active=role_config.get('is_active', True),
            )

        logger.info(f"RBAC Registry initialized: {len(self._roles)} roles")

    @property
    def role_names(self) -> List[str]:
        return list(self._roles)

    @property
    def roles(self) -> List[Role]:
        return list(self._roles.values())

    def get_role(self, role_name: str) -> Optional[Role]:
        """
        Get the definition of a role.

        Args:
            role_name: Name of the role (case-insensitive)

        Returns:
            Role or None if not defined
        """
        return self._roles.get(role_name.lower())

    def is_valid_role(self, role_name: str) -> bool:
        return role_name.lower() in self._roles


def load_rbac_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load role definitions from the auth YAML file.

    Priority order:
    1. Explicit config_path if provided
    2. $SHOPKEEPER_AUTH_CONFIG
    3. configs/auth.yaml under the working directory
    4. Built-in defaults

    Returns:
        Configuration dictionary with a ``roles`` key
    """
    search_paths = [
        config_path,
        os.environ.get('SHOPKEEPER_AUTH_CONFIG'),
        os.path.join(os.getcwd(), 'configs', 'auth.yaml'),
    ]

    for path in search_paths:
        if path and os.path.isfile(path):
            with open(path, 'r') as f:
                config = yaml.safe_load(f) or {}
            roles = (config.get('auth') or {}).get('roles')
            if roles:
                logger.info(f"Loading role definitions from: {path}")
                return {'roles': roles}
            logger.debug(f"No roles section in {path}, using defaults")
            break

    return {'roles': DEFAULT_ROLES}


def get_registry(config_path: Optional[str] = None, force_reload: bool = False) -> RBACRegistry:
    """
    Get the global RBAC registry instance (singleton).

    Args:
        config_path: Optional path to configuration file
        force_reload: If True, reload configuration even if already loaded
    """
    global _registry

    if _registry is None or force_reload:
        _registry = RBACRegistry(load_rbac_config(config_path))

    return _registry


def reset_registry() -> None:
    """
    Reset the global registry (for testing purposes).
    """
    global _registry
    _registry = None
