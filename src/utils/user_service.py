"""
UserService - Read access to user accounts in PostgreSQL for authentication.

Accounts are created and modified by the user-management subsystem; this
service only loads them, and never selects the password hash.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import psycopg2
import psycopg2.extras

from src.utils.logging import get_logger
from src.utils.rbac.models import User, parse_permissions

logger = get_logger(__name__)

USERS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(64) PRIMARY KEY,
    username VARCHAR(30) UNIQUE NOT NULL,
    email VARCHAR(255) UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    role VARCHAR(50) NOT NULL,
    permissions JSONB NOT NULL DEFAULT '[]'::jsonb,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    login_attempts INTEGER NOT NULL DEFAULT 0,
    lock_until TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_users_role ON users (role);
"""

# password_hash is deliberately absent
USER_COLUMNS = "id, email, username, role, is_active, lock_until, permissions"


def _row_to_user(row: Dict[str, Any]) -> User:
    permissions = row.get('permissions') or []
    if isinstance(permissions, str):
        permissions = json.loads(permissions)

    return User(
        id=str(row['id']),
        email=row.get('email'),
        username=row.get('username'),
        role=row['role'],
        is_active=bool(row.get('is_active', True)),
        lock_until=row.get('lock_until'),
        permissions=parse_permissions(permissions),
    )


class UserService:
    """
    Loads user records for the authentication pipeline.

    Example:
        >>> service = UserService(connection_pool=pool)
        >>> user = service.get_user_by_id("64f0...")
    """

    def __init__(self, pg_config: Optional[Dict[str, Any]] = None, *, connection_pool=None):
        """
        Args:
            pg_config: PostgreSQL connection parameters (fallback)
            connection_pool: ConnectionPool instance (preferred)
        """
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
        """Create the users table if it does not exist."""
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(USERS_TABLE_SQL)
            conn.commit()
        finally:
            self._release_connection(conn)

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """
        Load a user without credentials.

        Args:
            user_id: User identifier from the token

        Returns:
            User or None if no such account
        """
        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(
                    f"SELECT {USER_COLUMNS} FROM users WHERE id = %s",
                    (str(user_id),),
                )
                row = cursor.fetchone()
        finally:
            self._release_connection(conn)

        if row is None:
            logger.debug(f"No user with id {user_id}")
            return None
        return _row_to_user(row)
