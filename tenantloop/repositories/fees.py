"""Recurring fees and the calendar events created for them."""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..db.repository import Repository


class FeeRepository(Repository):
    TABLE_NAME = "fees"

    async def create(
        self,
        tenant_id: str,
        conversation_id: str,
        fee_type: str,
        due_day: int,
        amount: Optional[float] = None,
        currency: str = "USD",
        note: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._insert(tenant_id, {
            "conversation_id": conversation_id,
            "fee_type": fee_type,
            "due_day": due_day,
            "amount": Decimal(str(amount)) if amount is not None else None,
            "currency": currency,
            "note": note,
        })

    async def get(self, tenant_id: str, conversation_id: str, fee_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._fetch_many(
            tenant_id,
            where="conversation_id = $1 AND id = $2::uuid",
            args=(conversation_id, fee_id),
            limit=1,
        )
        return rows[0] if rows else None

    async def list_active(self, tenant_id: str, conversation_id: str) -> List[Dict[str, Any]]:
        return await self._fetch_many(
            tenant_id,
            where="conversation_id = $1 AND is_active",
            args=(conversation_id,),
            order_by="due_day, fee_type",
        )

    async def find_active(
        self,
        tenant_id: str,
        conversation_id: str,
        fee_type: str,
        due_day: int,
    ) -> List[Dict[str, Any]]:
        return await self._fetch_many(
            tenant_id,
            where="conversation_id = $1 AND fee_type = $2 AND due_day = $3 AND is_active",
            args=(conversation_id, fee_type, due_day),
        )

    async def deactivate(self, tenant_id: str, fee_id: str) -> None:
        await self._update(
            tenant_id,
            where={"id": fee_id},
            data={"is_active": False},
            returning="id, tenant_id",
        )


class FeeCalendarRepository(Repository):
    TABLE_NAME = "fee_calendar_events"

    async def record(
        self,
        tenant_id: str,
        conversation_id: str,
        fee_id: str,
        external_event_id: str,
        provider: Optional[str] = None,
    ) -> None:
        await self.lane(tenant_id).execute(
            "INSERT INTO fee_calendar_events "
            "(conversation_id, fee_id, provider, external_event_id) "
            "VALUES ($1, $2, $3, $4) "
            "ON CONFLICT (tenant_id, fee_id) DO UPDATE SET "
            "external_event_id = EXCLUDED.external_event_id, provider = EXCLUDED.provider",
            conversation_id, fee_id, provider, external_event_id,
        )

    async def get(self, tenant_id: str, fee_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._fetch_many(
            tenant_id, where="fee_id = $1::uuid", args=(fee_id,), limit=1,
        )
        return rows[0] if rows else None

    async def remove(self, tenant_id: str, fee_id: str) -> int:
        return await self._delete(tenant_id, {"fee_id": fee_id})
