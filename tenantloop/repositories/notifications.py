"""Per-conversation notification preferences."""

from typing import Any, Dict, Optional

from ..db.repository import Repository


class NotificationSettingsRepository(Repository):
    TABLE_NAME = "notification_settings"

    async def upsert(
        self,
        tenant_id: str,
        conversation_id: str,
        email: str,
        email_enabled: bool = True,
        calendar_provider: Optional[str] = None,
        default_reminder_minutes: int = 60,
    ) -> Dict[str, Any]:
        return await self.lane(tenant_id).fetchrow(
            "INSERT INTO notification_settings "
            "(conversation_id, email, email_enabled, calendar_provider, default_reminder_minutes) "
            "VALUES ($1, $2, $3, $4, $5) "
            "ON CONFLICT (tenant_id, conversation_id) DO UPDATE SET "
            "email = EXCLUDED.email, "
            "email_enabled = EXCLUDED.email_enabled, "
            "calendar_provider = EXCLUDED.calendar_provider, "
            "default_reminder_minutes = EXCLUDED.default_reminder_minutes, "
            "updated_at = NOW() "
            "RETURNING *",
            conversation_id, email, email_enabled, calendar_provider, default_reminder_minutes,
        )

    async def get(self, tenant_id: str, conversation_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._fetch_many(
            tenant_id, where="conversation_id = $1", args=(conversation_id,), limit=1,
        )
        return rows[0] if rows else None
