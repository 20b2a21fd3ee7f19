"""
RBAC data models.

Data classes for users, roles, permission entries and ownable resources as
they are read from the record stores.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class PermissionEntry:
    """
    Actions granted on one module.

    Attributes:
        module: Domain area (e.g. "orders", "customers")
        actions: Allowed actions on that module (e.g. ["read", "update"])
    """
    module: str
    actions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PermissionEntry':
        return cls(
            module=str(data['module']),
            actions=[str(a) for a in data.get('actions') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'module': self.module, 'actions': list(self.actions)}


def parse_permissions(raw: Optional[List[Dict[str, Any]]]) -> List[PermissionEntry]:
    """Convert a JSON/YAML permission list into entries, preserving order."""
    return [PermissionEntry.from_dict(item) for item in raw or []]


@dataclass
class User:
    """
    A principal as loaded for authentication. Never carries the password hash.

    Attributes:
        id: User identifier
        email: Contact address, recorded in audit entries
        username: Login name
        role: Role name
        is_active: Whether the account is enabled
        lock_until: Account is locked while this lies in the future
        permissions: User-specific overrides, or the effective set once resolved
    """
    id: str
    email: Optional[str]
    username: Optional[str]
    role: str
    is_active: bool = True
    lock_until: Optional[datetime] = None
    permissions: List[PermissionEntry] = field(default_factory=list)

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        if self.lock_until is None:
            return False
        now = now or datetime.now(timezone.utc)
        lock_until = self.lock_until
        if lock_until.tzinfo is None:
            lock_until = lock_until.replace(tzinfo=timezone.utc)
        return lock_until > now

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'username': self.username,
            'role': self.role,
            'isActive': self.is_active,
            'permissions': [p.to_dict() for p in self.permissions],
        }


@dataclass
class Role:
    """
    Named bundle of permission entries.

    Attributes:
        name: Unique lowercase role name (e.g. "sales")
        display_name: Human-readable name
        description: What the role is for
        permissions: Ordered permission entries, one per module
        is_system: Shipped with the application rather than user-defined
        is_active: Inactive roles grant nothing
    """
    name: str
    display_name: str = ""
    description: str = ""
    permissions: List[PermissionEntry] = field(default_factory=list)
    is_system: bool = False
    is_active: bool = True


@dataclass
class OwnedResource:
    """A record reduced to the reference fields that confer access on a user."""
    id: str
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_sales_rep: Optional[str] = None
