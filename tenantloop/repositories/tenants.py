"""Tenant and membership rows.

Bootstrap is cross-tenant by nature and runs on the privileged lane;
members reading their own tenant go through the sandboxed lane.
"""

import logging
from typing import Any, Dict, List, Optional

import asyncpg

from ..db.repository import Repository
from ..errors import TenantExists
from ..models import MembershipRole

logger = logging.getLogger(__name__)


class TenantRepository(Repository):
    TABLE_NAME = "tenants"

    async def bootstrap(
        self,
        display_name: str,
        owner_principal_id: str,
        tenant_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a tenant and its owner membership in one transaction.

        Raises:
            TenantExists: ``tenant_id`` is already taken.
        """
        try:
            async with self.gateway.privileged.transaction("tenants.bootstrap") as conn:
                if tenant_id:
                    row = await conn.fetchrow(
                        "INSERT INTO tenants (id, display_name) VALUES ($1, $2) "
                        "RETURNING id, display_name, created_at",
                        tenant_id, display_name,
                    )
                else:
                    row = await conn.fetchrow(
                        "INSERT INTO tenants (display_name) VALUES ($1) "
                        "RETURNING id, display_name, created_at",
                        display_name,
                    )
                await conn.execute(
                    "INSERT INTO tenant_memberships (tenant_id, principal_id, role) "
                    "VALUES ($1, $2, $3)",
                    row["id"], owner_principal_id, MembershipRole.OWNER.value,
                )
        except asyncpg.UniqueViolationError:
            raise TenantExists(f"Tenant {tenant_id} already exists")
        tenant = dict(row)
        logger.info(f"Bootstrapped tenant {tenant['id']}")
        return tenant

    async def get(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        return await self.lane(tenant_id).fetchrow(
            "SELECT id, display_name, created_at FROM tenants",
            tenant_column="id",
        )

    async def memberships(
        self, tenant_id: str, principal_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        sql = "SELECT tenant_id, principal_id, role, created_at FROM tenant_memberships"
        if principal_id is None:
            return await self.lane(tenant_id).fetch(sql + " ORDER BY created_at")
        return await self.lane(tenant_id).fetch(
            sql + " WHERE principal_id = $1 ORDER BY created_at", principal_id,
        )
