"""
RBAC Permissions - Permission resolution and decision helpers

This module holds the framework-independent decision logic used by the
Flask decorators: merging a role's permissions with user overrides, and the
permission / role / ownership tests.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from src.utils.logging import get_logger
from src.utils.rbac.models import OwnedResource, PermissionEntry, User
from src.utils.rbac.permission_enum import ADMIN_ROLE

logger = get_logger(__name__)


@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check. ``code`` is set only on denial."""
    allowed: bool
    code: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def merge_permissions(
    role_permissions: Iterable[PermissionEntry],
    user_permissions: Iterable[PermissionEntry],
) -> List[PermissionEntry]:
    """
    Combine a role's permissions with a user's overrides.

    An override for a module the role already covers replaces that entry
    outright: actions are not unioned. Overrides for other modules are
    appended in order.

    Args:
        role_permissions: Ordered entries of the user's role
        user_permissions: Ordered user-specific entries

    Returns:
        New list of effective entries, module names unique
    """
    effective = list(role_permissions)

    for override in user_permissions:
        for index, entry in enumerate(effective):
            if entry.module == override.module:
                effective[index] = override
                break
        else:
            effective.append(override)

    return effective


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == ADMIN_ROLE


def has_role(user: User, roles: Iterable[str]) -> Decision:
    if user.role in roles:
        return ALLOW
    return Decision(False, 'ROLE_NOT_AUTHORIZED')


def has_permission(user: User, module: str, action: str) -> Decision:
    """
    Check if a user's effective permissions allow an action on a module.

    Admins pass unconditionally.

    Args:
        user: Principal with resolved permissions
        module: Module name (e.g. 'orders')
        action: Action name (e.g. 'update')
    """
    if is_admin(user):
        return ALLOW

    for entry in user.permissions:
        if entry.module == module and action in entry.actions:
            return ALLOW

    return Decision(False, 'PERMISSION_DENIED')


def owner_ids(resource: OwnedResource) -> List[str]:
    """Ids of the users the resource is created by, assigned to, or handled by as sales rep."""
    refs = [resource.created_by, resource.assigned_to, resource.assigned_sales_rep]
    return [str(ref) for ref in refs if ref is not None]


def is_owner(user: User, resource: OwnedResource) -> Decision:
    """
    Check whether a user may access a resource they are linked to.

    Admins pass unconditionally. Anyone else must match the creator,
    assignee or sales rep reference of the resource.
    """
    if is_admin(user):
        return ALLOW

    if str(user.id) in owner_ids(resource):
        return ALLOW

    return Decision(False, 'NOT_RESOURCE_OWNER')


def get_user_permissions(user: Optional[User]) -> List[PermissionEntry]:
    if user is None:
        return []
    return list(user.permissions)
