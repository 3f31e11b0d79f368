"""
TenantLoop Models - Request, message and reply types shared across components.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Author role of a persisted message."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    SYSTEM_TASK = "system_task"


class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


SYSTEM_PRINCIPAL = "system"


@dataclass
class InboundRequest:
    """One message entering the Orchestration Loop.

    Built either by the HTTP surface from the messaging gateway's payload or
    by the Scheduler when a recurring trigger fires.

    Attributes:
        text: Message content to respond to.
        external_chat_id: Conversation identifier, unique only within a tenant.
        external_user_id: Author principal as known to the gateway.
        tenant_context: Tenant id attached by a trusted upstream caller.
        identity_token: Signed identity token carrying a tenant claim.
        reply_target: Callback URL the reply is delivered to.
        actor_role: USER for gateway traffic, SYSTEM_TASK for scheduled re-entry.
        timezone: IANA timezone of the caller, used in the default prompt.
        metadata: Opaque correlation data echoed back on delivery.
    """
    text: str
    external_chat_id: str
    external_user_id: str
    tenant_context: Optional[str] = None
    identity_token: Optional[str] = None
    reply_target: Optional[str] = None
    actor_role: MessageRole = MessageRole.USER
    timezone: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    received_at: datetime = field(default_factory=utcnow)


@dataclass
class StoredMessage:
    """A message row as read back from the store."""
    id: str
    tenant_id: str
    conversation_id: str
    author_principal_id: str
    role: MessageRole
    content: str
    created_at: datetime
    embedding: Optional[List[float]] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "StoredMessage":
        embedding = row.get("embedding")
        return cls(
            id=str(row["id"]),
            tenant_id=str(row["tenant_id"]),
            conversation_id=row["conversation_id"],
            author_principal_id=row["author_principal_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            created_at=row["created_at"],
            embedding=list(embedding) if embedding is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "conversation_id": self.conversation_id,
            "author_principal_id": self.author_principal_id,
            "role": self.role.value,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class NewMessage:
    """A message about to be appended."""
    author_principal_id: str
    role: MessageRole
    content: str
    embedding: Optional[List[float]] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class OutboundReply:
    """Reply handed to the outbound delivery collaborator."""
    rendered_reply: str
    recipient: Dict[str, Any]
    correlation: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "renderedReply": self.rendered_reply,
            "recipientDescriptor": self.recipient,
            "correlationMetadata": self.correlation,
        }
