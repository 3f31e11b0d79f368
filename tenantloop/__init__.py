"""
TenantLoop - a multi-tenant conversational backend.

Every inbound chat message is resolved to exactly one tenant, runs through a
bounded tool-calling loop over that tenant's data only, and is answered
through an outbound delivery call. Recurring triggers re-enter the same loop
as system-authored messages under their owning tenant.

Quick Start:
    from tenantloop import TenantLoop, InboundRequest

    app = TenantLoop("config.yaml")
    await app.handle_inbound(InboundRequest(
        text="Remind me about the water bill on the 5th",
        external_chat_id="chat-1",
        external_user_id="user-1",
        tenant_context="00000000-0000-0000-0000-000000000001",
    ))
"""

from .app import TenantLoop
from .errors import (
    CollaboratorUnavailable,
    CrossTenantViolation,
    InvalidSchedule,
    MalformedTenant,
    NameCollision,
    NotFound,
    PrivilegedLaneError,
    SchedulerError,
    TenantExists,
    TenantLoopError,
    TenantResolutionError,
    ToolExecutionError,
    Unauthenticated,
    UnscopableStatement,
)
from .models import InboundRequest, MessageRole, OutboundReply, StoredMessage
from .tools.decorator import tool

__version__ = "0.1.0"

__all__ = [
    "TenantLoop",
    "InboundRequest",
    "MessageRole",
    "OutboundReply",
    "StoredMessage",
    "tool",
    "TenantLoopError",
    "TenantResolutionError",
    "Unauthenticated",
    "MalformedTenant",
    "TenantExists",
    "CrossTenantViolation",
    "UnscopableStatement",
    "PrivilegedLaneError",
    "ToolExecutionError",
    "CollaboratorUnavailable",
    "SchedulerError",
    "InvalidSchedule",
    "NameCollision",
    "NotFound",
]
