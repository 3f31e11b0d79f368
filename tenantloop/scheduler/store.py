"""Bookkeeping rows for recurring triggers.

Registration, cancellation and fire-time lookup are cross-tenant by nature
(``job_name`` is globally unique) and run on the privileged lane with the
tenant id passed as data. Listing a tenant's own triggers is an ordinary
tenant read and goes through the sandboxed lane.
"""

import logging
from typing import List, Optional, Tuple

import asyncpg

from ..db.gateway import DataGateway
from ..errors import NameCollision
from .models import RecurringTrigger, TriggerPayload

logger = logging.getLogger(__name__)


class TriggerStore:
    def __init__(self, gateway: DataGateway):
        self._gateway = gateway

    async def get_by_job_name(self, job_name: str) -> Optional[RecurringTrigger]:
        row = await self._gateway.privileged.fetchrow(
            "scheduler.lookup",
            "SELECT * FROM recurring_triggers WHERE job_name = $1",
            job_name,
        )
        return RecurringTrigger.from_row(row) if row else None

    async def upsert(
        self,
        tenant_id: str,
        owning_entity_id: str,
        schedule_expr: str,
        timezone: Optional[str],
        job_name: str,
        payload: TriggerPayload,
    ) -> Tuple[RecurringTrigger, bool]:
        """Insert or replace the row for (tenant, entity). Returns (row, inserted)."""
        try:
            row = await self._gateway.privileged.fetchrow(
                "scheduler.register",
                "INSERT INTO recurring_triggers "
                "(tenant_id, owning_entity_id, schedule_expr, timezone, job_name, payload) "
                "VALUES ($1::uuid, $2, $3, $4, $5, $6) "
                "ON CONFLICT (tenant_id, owning_entity_id) DO UPDATE SET "
                "schedule_expr = EXCLUDED.schedule_expr, "
                "timezone = EXCLUDED.timezone, "
                "payload = EXCLUDED.payload, "
                "updated_at = NOW() "
                "RETURNING *, (xmax = 0) AS inserted",
                tenant_id, owning_entity_id, schedule_expr, timezone, job_name,
                payload.to_dict(),
            )
        except asyncpg.UniqueViolationError:
            raise NameCollision(f"Job name {job_name} is owned by another trigger")
        return RecurringTrigger.from_row(row), bool(row["inserted"])

    async def delete(self, job_name: str, tenant_id: str) -> bool:
        status = await self._gateway.privileged.execute(
            "scheduler.cancel",
            "DELETE FROM recurring_triggers WHERE job_name = $1 AND tenant_id = $2::uuid",
            job_name, tenant_id,
        )
        return status.endswith(" 1")

    async def list_all(self) -> List[RecurringTrigger]:
        """Every trigger of every tenant, for timer reload at start-up."""
        rows = await self._gateway.privileged.fetch(
            "scheduler.load",
            "SELECT * FROM recurring_triggers ORDER BY created_at",
        )
        triggers = []
        for row in rows:
            try:
                triggers.append(RecurringTrigger.from_row(row))
            except (KeyError, ValueError) as e:
                logger.warning(f"[Scheduler] Skipping unreadable trigger {row.get('job_name')}: {e}")
        return triggers

    async def list_for_tenant(self, tenant_id: str) -> List[RecurringTrigger]:
        rows = await self._gateway.sandboxed(tenant_id).fetch(
            "SELECT * FROM recurring_triggers ORDER BY created_at"
        )
        return [RecurringTrigger.from_row(r) for r in rows]
