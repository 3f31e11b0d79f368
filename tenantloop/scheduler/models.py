"""Recurring trigger data models.

The payload stored with each trigger outlives any single deployment, so
``TriggerPayload.from_dict`` keeps reading every shape ever written.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

PAYLOAD_VERSION = 2


@dataclass
class TriggerPayload:
    """What a fired trigger asks the Orchestration Loop to do.

    ``tenant_id`` is mandatory: no caller session exists when a timer fires,
    so the payload is the only source of tenant context.
    """
    tenant_id: str
    conversation_id: str
    instruction: str
    owning_entity_id: Optional[str] = None
    reply_target: Optional[str] = None
    timezone: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    version: int = PAYLOAD_VERSION

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "version": self.version,
            "tenantId": self.tenant_id,
            "conversationId": self.conversation_id,
            "owningEntityId": self.owning_entity_id,
            "instruction": self.instruction,
            "replyTarget": self.reply_target,
            "metadata": self.metadata,
        }
        if self.timezone:
            d["timezone"] = self.timezone
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TriggerPayload":
        """Read a stored payload, current or legacy.

        Version 1 payloads used ``userPrompt`` for the instruction, ``id``
        for the chat id and ``callbackUrl`` for the reply target.
        """
        tenant_id = d.get("tenantId") or d.get("tenant_id")
        if not tenant_id:
            raise ValueError("Trigger payload has no tenant id")
        conversation_id = d.get("conversationId", d.get("id"))
        if conversation_id is None:
            raise ValueError("Trigger payload has no conversation id")
        instruction = d.get("instruction") or d.get("userPrompt") or ""
        metadata = dict(d.get("metadata") or {})
        owning_entity_id = d.get("owningEntityId") or metadata.get("feeId")
        return cls(
            tenant_id=str(tenant_id),
            conversation_id=str(conversation_id),
            instruction=instruction,
            owning_entity_id=str(owning_entity_id) if owning_entity_id else None,
            reply_target=d.get("replyTarget") or d.get("callbackUrl"),
            timezone=d.get("timezone"),
            metadata=metadata,
            version=int(d.get("version", 1)),
        )


@dataclass
class RecurringTrigger:
    """Bookkeeping row for one registered trigger."""
    id: str
    tenant_id: str
    owning_entity_id: str
    schedule_expr: str
    job_name: str
    payload: TriggerPayload
    timezone: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RecurringTrigger":
        return cls(
            id=str(row["id"]),
            tenant_id=str(row["tenant_id"]),
            owning_entity_id=row["owning_entity_id"],
            schedule_expr=row["schedule_expr"],
            job_name=row["job_name"],
            payload=TriggerPayload.from_dict(row["payload"]),
            timezone=row.get("timezone"),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_name": self.job_name,
            "owning_entity_id": self.owning_entity_id,
            "schedule": self.schedule_expr,
            "timezone": self.timezone,
            "instruction": self.payload.instruction,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
