"""Tenant-owned table access built on the sandboxed lane."""

from .conversations import ConversationRepository, MessageRepository, PromptRepository
from .documents import DocumentRepository
from .fees import FeeCalendarRepository, FeeRepository
from .notifications import NotificationSettingsRepository
from .tenants import TenantRepository

__all__ = [
    "ConversationRepository",
    "MessageRepository",
    "PromptRepository",
    "DocumentRepository",
    "FeeRepository",
    "FeeCalendarRepository",
    "NotificationSettingsRepository",
    "TenantRepository",
]
