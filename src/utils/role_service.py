"""
RoleService - Role records in PostgreSQL.

Roles are administered elsewhere; authentication only needs the active role
by name. Seeding copies the registry's system roles into the table.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional

import psycopg2
import psycopg2.extras

from src.utils.logging import get_logger
from src.utils.rbac.models import Role, parse_permissions

logger = get_logger(__name__)

ROLES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS roles (
    name VARCHAR(50) PRIMARY KEY,
    display_name VARCHAR(100) NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    permissions JSONB NOT NULL DEFAULT '[]'::jsonb,
    is_system BOOLEAN NOT NULL DEFAULT FALSE,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_roles_active ON roles (is_active);
"""


def _row_to_role(row: Dict[str, Any]) -> Role:
    permissions = row.get('permissions') or []
    if isinstance(permissions, str):
        permissions = json.loads(permissions)

    return Role(
        name=row['name'],
        display_name=row.get('display_name') or row['name'],
        description=row.get('description') or '',
        permissions=parse_permissions(permissions),
        is_system=bool(row.get('is_system', False)),
        is_active=bool(row.get('is_active', True)),
    )


class RoleService:
    """
    Service for reading and seeding roles.

    Example:
        >>> service = RoleService(connection_pool=pool)
        >>> role = service.get_active_role("sales")
    """

    def __init__(self, pg_config: Optional[Dict[str, Any]] = None, *, connection_pool=None):
        self._pool = connection_pool
        self._pg_config = pg_config

    def _get_connection(self) -> psycopg2.extensions.connection:
        if self._pool:
            return self._pool.get_connection_direct()
        elif self._pg_config:
            return psycopg2.connect(**self._pg_config)
        else:
            raise ValueError("No connection pool or pg_config provided")

    def _release_connection(self, conn) -> None:
        if self._pool:
            self._pool.release_connection(conn)
        else:
            conn.close()

    def ensure_schema(self) -> None:
        """Create the roles table if it does not exist."""
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(ROLES_TABLE_SQL)
            conn.commit()
        finally:
            self._release_connection(conn)

    def get_active_role(self, name: str) -> Optional[Role]:
        """
        Load a role by name, only if it is active.

        Returns:
            Role, or None when the role is missing or deactivated
        """
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(
                    """
                    SELECT name, display_name, description, permissions, is_system, is_active
                    FROM roles
                    WHERE name = %s AND is_active = TRUE
                    """,
                    (name.lower(),),
                )
                row = cursor.fetchone()
        finally:
            self._release_connection(conn)

        return _row_to_role(row) if row else None

    def upsert_roles(self, roles: Iterable[Role]) -> int:
        """
        Insert or update role definitions.

        Existing rows keep their is_active flag so seeding never re-enables
        a role an administrator switched off.

        Returns:
            Number of roles written
        """
        count = 0
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                for role in roles:
                    cursor.execute(
                        """
                        INSERT INTO roles (name, display_name, description, permissions, is_system, is_active)
                        VALUES (%s, %s, %s, %s, %s, %s)
                        ON CONFLICT (name) DO UPDATE SET
                            display_name = EXCLUDED.display_name,
                            description = EXCLUDED.description,
                            permissions = EXCLUDED.permissions,
                            is_system = EXCLUDED.is_system,
                            updated_at = NOW()
                        """,
                        (
                            role.name,
                            role.display_name,
                            role.description,
                            psycopg2.extras.Json([p.to_dict() for p in role.permissions]),
                            role.is_system,
                            role.is_active,
                        ),
                    )
                    count += 1
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._release_connection(conn)

        logger.info(f"Upserted {count} roles")
        return count
