"""
Access-scoped data gateway.

Two lanes over one Database, picked explicitly at each call site:

- SandboxLane: bound to one resolved tenant. Every statement is rewritten
  by ``scope_statement`` so the tenant id is a bound parameter of its
  predicate, and every returned row carrying a tenant column is re-checked.
  Lanes on the sandbox schema also run as a restricted database role.
- PrivilegedLane: no automatic filtering. Only the audited call sites in
  ``PRIVILEGED_CALL_SITES`` may use it, and they pass tenant ids as data.

A lane object never switches mode, so one call cannot mix the two.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from ..constants import SANDBOX_ROLE, SANDBOX_SCHEMA, TENANT_COLUMN
from ..errors import CrossTenantViolation, PrivilegedLaneError
from .database import Database
from .scoping import ScopedStatement, scope_statement

logger = logging.getLogger(__name__)

PRIVILEGED_CALL_SITES = frozenset({
    "scheduler.register",
    "scheduler.cancel",
    "scheduler.lookup",
    "scheduler.load",
    "scheduler.timer",
    "tenants.bootstrap",
})


def require_tenant_id(tenant_id: Optional[str]) -> str:
    """Return the canonical form of ``tenant_id`` or refuse to build a lane."""
    if not tenant_id:
        raise CrossTenantViolation("Sandboxed lane requires a resolved tenant id")
    try:
        return str(uuid.UUID(str(tenant_id)))
    except ValueError:
        raise CrossTenantViolation(f"Sandboxed lane given a non-tenant id: {tenant_id!r}")


class SandboxLane:
    """Tenant-bound access path. Obtain through ``DataGateway.sandboxed``.

    With a ``role`` each statement runs in its own transaction under
    ``SET LOCAL ROLE``, which ends with the transaction. A lane yielded by
    ``transaction()`` reuses that one connection for every statement.
    """

    def __init__(
        self,
        db: Database,
        tenant_id: str,
        schema: str,
        role: Optional[str] = None,
        conn: Any = None,
    ):
        self._db = db
        self._tenant_id = tenant_id
        self._schema = schema
        self._role = role
        self._conn = conn

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def schema(self) -> str:
        return self._schema

    @property
    def role(self) -> Optional[str]:
        return self._role

    def prepare(
        self,
        sql: str,
        args: Sequence[Any] = (),
        tenant_column: str = TENANT_COLUMN,
    ) -> ScopedStatement:
        """Scope a statement to this lane's tenant and log its kind."""
        scoped = scope_statement(sql, args, self._tenant_id, self._schema, tenant_column)
        logger.info(f"[Sandbox] tenant={self._tenant_id} op={scoped.kind}")
        return scoped

    async def _run(self, method: str, scoped: ScopedStatement) -> Any:
        if self._conn is not None:
            return await getattr(self._conn, method)(scoped.sql, *scoped.args)
        if self._role is None:
            return await getattr(self._db, method)(scoped.sql, *scoped.args)
        async with self._db.transaction() as conn:
            await conn.execute(f"SET LOCAL ROLE {self._role}")
            return await getattr(conn, method)(scoped.sql, *scoped.args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SandboxLane"]:
        """Yield a lane whose statements commit or roll back together.

        Usage:
            async with lane.transaction() as tx:
                await tx.execute("UPDATE notes SET done = TRUE WHERE id = $1", 1)
                await tx.execute("INSERT INTO notes (topic) VALUES ($1)", "next")
        """
        if self._conn is not None:
            yield self
            return
        async with self._db.transaction() as conn:
            if self._role is not None:
                await conn.execute(f"SET LOCAL ROLE {self._role}")
            yield SandboxLane(self._db, self._tenant_id, self._schema, self._role, conn)

    def _check_rows(self, rows: List[Any], tenant_column: str) -> List[Dict[str, Any]]:
        checked = []
        for row in rows:
            data = dict(row)
            owner = data.get(tenant_column)
            if owner is not None and str(owner).lower() != self._tenant_id:
                logger.critical(
                    f"[Sandbox] Cross-tenant row detected: tenant={self._tenant_id} "
                    f"column={tenant_column}"
                )
                raise CrossTenantViolation("Query returned a row owned by another tenant")
            checked.append(data)
        return checked

    async def fetch(
        self,
        sql: str,
        *args: Any,
        tenant_column: str = TENANT_COLUMN,
    ) -> List[Dict[str, Any]]:
        scoped = self.prepare(sql, args, tenant_column)
        rows = await self._run("fetch", scoped)
        return self._check_rows(rows, tenant_column)

    async def fetchrow(
        self,
        sql: str,
        *args: Any,
        tenant_column: str = TENANT_COLUMN,
    ) -> Optional[Dict[str, Any]]:
        rows = await self.fetch(sql, *args, tenant_column=tenant_column)
        return rows[0] if rows else None

    async def fetchval(self, sql: str, *args: Any) -> Any:
        row = await self.fetchrow(sql, *args)
        if not row:
            return None
        return next(iter(row.values()))

    async def execute(self, sql: str, *args: Any) -> str:
        """Run a scoped statement without rows; returns the status tag."""
        scoped = self.prepare(sql, args)
        return await self._run("execute", scoped)


class PrivilegedLane:
    """Unfiltered access path for inherently cross-tenant operations."""

    def __init__(self, db: Database):
        self._db = db

    def _audit(self, call_site: str) -> None:
        if call_site not in PRIVILEGED_CALL_SITES:
            logger.critical(f"[Privileged] Refused unaudited call site: {call_site}")
            raise PrivilegedLaneError(f"Call site '{call_site}' may not use the privileged lane")
        logger.info(f"[Privileged] call_site={call_site}")

    async def execute(self, call_site: str, sql: str, *args: Any) -> str:
        self._audit(call_site)
        return await self._db.execute(sql, *args)

    async def fetch(self, call_site: str, sql: str, *args: Any) -> List[Dict[str, Any]]:
        self._audit(call_site)
        return [dict(r) for r in await self._db.fetch(sql, *args)]

    async def fetchrow(self, call_site: str, sql: str, *args: Any) -> Optional[Dict[str, Any]]:
        self._audit(call_site)
        row = await self._db.fetchrow(sql, *args)
        return dict(row) if row else None

    @asynccontextmanager
    async def transaction(self, call_site: str) -> AsyncIterator[Any]:
        """Yield a raw connection inside one transaction."""
        self._audit(call_site)
        async with self._db.transaction() as conn:
            yield conn


class DataGateway:
    """Entry point for all persistence. Hands out lanes, never raw connections.

    Lanes on ``SANDBOX_SCHEMA`` run as ``sandbox_role``, a role with no table
    rights outside that schema.
    """

    def __init__(self, db: Database, sandbox_role: Optional[str] = SANDBOX_ROLE):
        self._db = db
        self._sandbox_role = sandbox_role
        self._privileged = PrivilegedLane(db)

    @property
    def database(self) -> Database:
        return self._db

    def sandboxed(self, tenant_id: str, schema: str = "public") -> SandboxLane:
        role = self._sandbox_role if schema == SANDBOX_SCHEMA else None
        return SandboxLane(self._db, require_tenant_id(tenant_id), schema, role)

    @property
    def privileged(self) -> PrivilegedLane:
        return self._privileged
