"""
PostgreSQL Service Factory - Unified access to the auth record stores.

Provides a single entry point for initializing the user, role and resource
services with shared connection pooling.
"""
from typing import Any, Dict, Optional
import os

from src.utils.connection_pool import ConnectionPool
from src.utils.env import read_secret
from src.utils.resource_service import ResourceService
from src.utils.role_service import RoleService
from src.utils.user_service import UserService


class PostgresServiceFactory:
    """
    Factory for creating PostgreSQL-backed services with shared connection pooling.

    Usage:
        factory = PostgresServiceFactory.from_config({
            'host': 'localhost',
            'port': 5432,
            'database': 'shopkeeper',
            'user': 'postgres',
            'password': 'secret',
        })

        users = factory.user_service
        roles = factory.role_service
        resources = factory.resource_service

        # Or create from existing pool
        factory = PostgresServiceFactory(connection_pool=existing_pool)
    """

    _instance: Optional['PostgresServiceFactory'] = None

    def __init__(
        self,
        connection_pool: Optional[ConnectionPool] = None,
        connection_params: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the service factory.

        Args:
            connection_pool: Existing ConnectionPool instance
            connection_params: Database connection parameters (if no pool provided)
        """
        self._pool = connection_pool
        self._conn_params = connection_params

        # Lazy-initialized services
        self._user_service: Optional[UserService] = None
        self._role_service: Optional[RoleService] = None
        self._resource_service: Optional[ResourceService] = None

    @classmethod
    def from_config(
        cls,
        connection_params: Dict[str, Any],
        pool_min_conn: int = 2,
        pool_max_conn: int = 20,
    ) -> 'PostgresServiceFactory':
        """
        Create factory from connection parameters.

        Args:
            connection_params: Dict with host, port, database, user, password
            pool_min_conn: Minimum pool connections
            pool_max_conn: Maximum pool connections
        """
        pool = ConnectionPool(
            connection_params=connection_params,
            min_conn=pool_min_conn,
            max_conn=pool_max_conn,
        )
        return cls(connection_pool=pool, connection_params=connection_params)

    @classmethod
    def from_env(
        cls,
        *,
        password_override: Optional[str] = None,
        pool_min_conn: int = 2,
        pool_max_conn: int = 20,
    ) -> 'PostgresServiceFactory':
        """
        Create factory from environment variables (PGHOST, PGPORT, PGDATABASE, PGUSER, PG_PASSWORD).
        """
        host = os.environ.get('PGHOST', os.environ.get('POSTGRES_HOST', 'localhost'))
        port = int(os.environ.get('PGPORT', os.environ.get('POSTGRES_PORT', 5432)))
        database = os.environ.get('PGDATABASE', os.environ.get('POSTGRES_DB', 'shopkeeper'))
        user = os.environ.get('PGUSER', os.environ.get('POSTGRES_USER', 'shopkeeper'))
        password = password_override or read_secret('PG_PASSWORD') or os.environ.get('POSTGRES_PASSWORD', '')

        connection_params = {
            'host': host,
            'port': port,
            'database': database,
            'user': user,
            'password': password,
        }
        return cls.from_config(
            connection_params=connection_params,
            pool_min_conn=pool_min_conn,
            pool_max_conn=pool_max_conn,
        )

    @classmethod
    def get_instance(cls) -> Optional['PostgresServiceFactory']:
        """Get the singleton instance if initialized."""
        return cls._instance

    @classmethod
    def set_instance(cls, factory: 'PostgresServiceFactory') -> None:
        """Set the singleton instance."""
        cls._instance = factory

    @property
    def connection_pool(self) -> ConnectionPool:
        """Get the connection pool."""
        if self._pool is None:
            if self._conn_params:
                self._pool = ConnectionPool(connection_params=self._conn_params)
            else:
                raise ValueError("No connection pool or params available")
        return self._pool

    @property
    def user_service(self) -> UserService:
        """Get UserService (lazy-initialized)."""
        if self._user_service is None:
            self._user_service = UserService(connection_pool=self.connection_pool)
        return self._user_service

    @property
    def role_service(self) -> RoleService:
        """Get RoleService (lazy-initialized)."""
        if self._role_service is None:
            self._role_service = RoleService(connection_pool=self.connection_pool)
        return self._role_service

    @property
    def resource_service(self) -> ResourceService:
        """Get ResourceService (lazy-initialized)."""
        if self._resource_service is None:
            self._resource_service = ResourceService(connection_pool=self.connection_pool)
        return self._resource_service

    def close(self) -> None:
        """Close connection pool and cleanup resources."""
        if self._pool:
            self._pool.close()
            self._pool = None

        self._user_service = None
        self._role_service = None
        self._resource_service = None

    def __enter__(self) -> 'PostgresServiceFactory':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
