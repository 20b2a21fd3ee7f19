"""
ConnectionPool - Shared psycopg2 connection pool.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import psycopg2
import psycopg2.extensions
import psycopg2.pool

from src.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectionPoolError(Exception):
    """Raised when the pool cannot hand out a connection."""
    pass


class ConnectionPool:
    """
    Thread-safe PostgreSQL connection pool.

    Example:
        >>> pool = ConnectionPool(connection_params={'host': 'localhost', ...})
        >>> with pool.get_connection() as conn:
        ...     with conn.cursor() as cursor:
        ...         cursor.execute("SELECT 1")
    """

    _instance: Optional['ConnectionPool'] = None

    def __init__(
        self,
        pg_config: Optional[Dict[str, Any]] = None,
        *,
        connection_params: Optional[Dict[str, Any]] = None,
        min_conn: int = 1,
        max_conn: int = 10,
    ):
        params = connection_params or pg_config
        if not params:
            raise ValueError("Either pg_config or connection_params must be provided")

        self._params = params
        self._pool = psycopg2.pool.ThreadedConnectionPool(min_conn, max_conn, **params)
        logger.info(
            f"Connection pool created for {params.get('host', 'localhost')}/"
            f"{params.get('database', '')} ({min_conn}-{max_conn} connections)"
        )

    @classmethod
    def get_instance(cls, **kwargs) -> 'ConnectionPool':
        """Return the process-wide pool, creating it on first use."""
        if cls._instance is None:
            cls._instance = cls(**kwargs)
        return cls._instance

    def get_connection_direct(self) -> psycopg2.extensions.connection:
        """Borrow a connection. The caller must hand it back with release_connection."""
        if self._pool is None:
            raise ConnectionPoolError("Connection pool is closed")
        try:
            return self._pool.getconn()
        except psycopg2.pool.PoolError as e:
            raise ConnectionPoolError(str(e)) from e

    def release_connection(self, conn) -> None:
        if self._pool is not None:
            self._pool.putconn(conn)

    @contextmanager
    def get_connection(self) -> Iterator[psycopg2.extensions.connection]:
        """Borrow a connection for the duration of a with-block."""
        conn = self.get_connection_direct()
        try:
            yield conn
        finally:
            self.release_connection(conn)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
        if ConnectionPool._instance is self:
            ConnectionPool._instance = None
