"""
ResourceService - Owner-reference lookups for ownership checks.

Each ResourceType maps to one table and to the columns holding its
owner-like references. Record kinds without a given reference map it to
None. The mapping is static; table and column names never come from the
request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import psycopg2
import psycopg2.extras
from psycopg2 import sql

from src.utils.logging import get_logger
from src.utils.rbac.models import OwnedResource
from src.utils.rbac.permission_enum import ResourceType

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResourceTable:
    table: str
    id_column: str = "id"
    # ids that do not convert name no record in the table
    id_type: Callable[[str], Any] = str
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_sales_rep: Optional[str] = None


RESOURCE_TABLES: Dict[ResourceType, ResourceTable] = {
    ResourceType.ORDER: ResourceTable(
        table="orders",
        created_by="created_by",
        assigned_to="assigned_to",
        assigned_sales_rep="assigned_sales_rep",
    ),
    ResourceType.CUSTOMER: ResourceTable(
        table="customers",
        created_by="created_by",
        assigned_sales_rep="assigned_sales_rep",
    ),
    ResourceType.SALE: ResourceTable(table="sales", created_by="created_by"),
    ResourceType.JOURNAL_ENTRY: ResourceTable(table="journal_entries", created_by="created_by"),
}


def _select_for(spec: ResourceTable) -> sql.Composed:
    columns = [sql.SQL("{} AS id").format(sql.Identifier(spec.id_column))]
    for field_name in ("created_by", "assigned_to", "assigned_sales_rep"):
        column = getattr(spec, field_name)
        if column is None:
            columns.append(sql.SQL("NULL AS {}").format(sql.Identifier(field_name)))
        else:
            columns.append(sql.SQL("{} AS {}").format(sql.Identifier(column), sql.Identifier(field_name)))

    return sql.SQL("SELECT {columns} FROM {table} WHERE {id_column} = %s").format(
        columns=sql.SQL(", ").join(columns),
        table=sql.Identifier(spec.table),
        id_column=sql.Identifier(spec.id_column),
    )


def _ref(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class ResourceService:
    """
    Loads the owner references of a record.

    Example:
        >>> service = ResourceService(connection_pool=pool)
        >>> service.get_resource(ResourceType.ORDER, "1042")
        OwnedResource(id='1042', created_by='7', assigned_to=None, assigned_sales_rep='12')
    """

    def __init__(
        self,
        pg_config: Optional[Dict[str, Any]] = None,
        *,
        connection_pool=None,
        tables: Optional[Dict[ResourceType, ResourceTable]] = None,
    ):
        self._pool = connection_pool
        self._pg_config = pg_config
        self._tables = tables or RESOURCE_TABLES

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

    def get_resource(
        self,
        resource_type: Union[ResourceType, str],
        resource_id: str,
    ) -> Optional[OwnedResource]:
        """
        Load a record's owner references.

        Args:
            resource_type: Kind of record
            resource_id: Record identifier

        Returns:
            OwnedResource, or None if the record does not exist

        Raises:
            KeyError: If the resource type has no table mapping
        """
        spec = self._tables[ResourceType(resource_type)]
        try:
            key = spec.id_type(resource_id)
        except (TypeError, ValueError):
            logger.debug(f"Id {resource_id!r} does not fit {spec.table}.{spec.id_column}")
            return None

        conn = self._get_connection()
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(_select_for(spec), (key,))
                row = cursor.fetchone()
        finally:
            self._release_connection(conn)

        if row is None:
            return None

        return OwnedResource(
            id=str(row['id']),
            created_by=_ref(row.get('created_by')),
            assigned_to=_ref(row.get('assigned_to')),
            assigned_sales_rep=_ref(row.get('assigned_sales_rep')),
        )
