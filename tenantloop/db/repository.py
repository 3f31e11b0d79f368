"""
TenantLoop Repository - Base class for tenant-owned table access.

Each domain creates a subclass that defines:
- TABLE_NAME: the table it owns (unqualified; the lane adds the schema)
- Domain-specific query methods taking ``tenant_id`` first

All helpers go through the sandboxed lane, so the tenant predicate is added
by the gateway. Subclasses never write ``tenant_id = $n`` themselves.

Usage:
    class FeeRepository(Repository):
        TABLE_NAME = "fees"

        async def list_active(self, tenant_id: str, conversation_id: str) -> list[dict]:
            return await self._fetch_many(
                tenant_id,
                where="conversation_id = $1 AND is_active",
                args=(conversation_id,),
                order_by="due_day, fee_type",
            )
"""

import logging
from typing import Any, Dict, List, Optional

from .gateway import DataGateway, SandboxLane

logger = logging.getLogger(__name__)


class Repository:
    """
    Base class for tenant-scoped data access.

    Subclasses define TABLE_NAME and domain methods.
    """

    TABLE_NAME: str = ""
    SCHEMA: str = "public"

    def __init__(self, gateway: DataGateway):
        self._gateway = gateway

    @property
    def gateway(self) -> DataGateway:
        return self._gateway

    def lane(self, tenant_id: str) -> SandboxLane:
        return self._gateway.sandboxed(tenant_id, schema=self.SCHEMA)

    # -- Generic CRUD helpers (subclasses can use or ignore) --

    async def _insert(
        self,
        tenant_id: str,
        data: Dict[str, Any],
        returning: str = "*",
    ) -> Optional[Dict[str, Any]]:
        """Insert a row owned by ``tenant_id`` and return it."""
        columns = list(data.keys())
        placeholders = [f"${i + 1}" for i in range(len(columns))]
        query = (
            f"INSERT INTO {self.TABLE_NAME} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)}) "
            f"RETURNING {returning}"
        )
        return await self.lane(tenant_id).fetchrow(query, *data.values())

    async def _update(
        self,
        tenant_id: str,
        where: Dict[str, Any],
        data: Dict[str, Any],
        returning: str = "*",
    ) -> List[Dict[str, Any]]:
        """Update matching rows of ``tenant_id`` and return them."""
        values: List[Any] = []
        set_clauses = []
        for col, val in data.items():
            values.append(val)
            set_clauses.append(f"{col} = ${len(values)}")
        where_clauses = []
        for col, val in where.items():
            values.append(val)
            where_clauses.append(f"{col} = ${len(values)}")

        query = f"UPDATE {self.TABLE_NAME} SET {', '.join(set_clauses)}"
        if where_clauses:
            query += f" WHERE {' AND '.join(where_clauses)}"
        query += f" RETURNING {returning}"
        return await self.lane(tenant_id).fetch(query, *values)

    async def _delete(self, tenant_id: str, where: Dict[str, Any]) -> int:
        """Delete matching rows of ``tenant_id``. Returns the number deleted."""
        clauses = [f"{col} = ${i}" for i, col in enumerate(where.keys(), 1)]
        query = f"DELETE FROM {self.TABLE_NAME}"
        if clauses:
            query += f" WHERE {' AND '.join(clauses)}"
        status = await self.lane(tenant_id).execute(query, *where.values())
        return int(status.split()[-1]) if status else 0

    async def _fetch_many(
        self,
        tenant_id: str,
        where: str = "",
        args: tuple = (),
        order_by: str = "",
        limit: Optional[int] = None,
        columns: str = "*",
    ) -> List[Dict[str, Any]]:
        """Fetch rows of ``tenant_id`` with optional WHERE, ORDER BY, LIMIT."""
        query = f"SELECT {columns} FROM {self.TABLE_NAME}"
        if where:
            query += f" WHERE {where}"
        if order_by:
            query += f" ORDER BY {order_by}"
        if limit:
            query += f" LIMIT {int(limit)}"
        return await self.lane(tenant_id).fetch(query, *args)
