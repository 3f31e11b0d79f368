"""Pydantic request/response models for the TenantLoop API."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import InboundRequest


class InboundBody(BaseModel):
    """Messaging gateway payload."""

    model_config = ConfigDict(populate_by_name=True)

    text: str
    external_chat_id: str = Field(alias="externalChatId", min_length=1)
    external_user_id: str = Field(alias="externalUserId", min_length=1)
    tenant_context: Optional[str] = Field(default=None, alias="tenantContext")
    reply_target: Optional[str] = Field(default=None, alias="replyTarget")
    timezone: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_request(self, identity_token: Optional[str] = None) -> InboundRequest:
        return InboundRequest(
            text=self.text,
            external_chat_id=self.external_chat_id,
            external_user_id=self.external_user_id,
            tenant_context=self.tenant_context,
            identity_token=identity_token,
            reply_target=self.reply_target,
            timezone=self.timezone,
            metadata=dict(self.metadata or {}),
        )


class ScheduledBody(BaseModel):
    """Re-entry from an external timer registry.

    ``payload`` is informational; the stored bookkeeping row is the source of
    truth for what runs and under which tenant.
    """

    model_config = ConfigDict(populate_by_name=True)

    job_name: str = Field(alias="jobName", min_length=1)
    payload: Optional[Dict[str, Any]] = None


class TenantCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(alias="displayName", min_length=1)
    owner_principal_id: str = Field(alias="ownerPrincipalId", min_length=1)
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")
