"""Conversation, message and active-prompt access, scoped per tenant."""

import logging
from typing import List, Optional, Sequence

from ..db.repository import Repository
from ..models import NewMessage, StoredMessage

logger = logging.getLogger(__name__)

_MESSAGE_COLUMNS = (
    "id, tenant_id, conversation_id, author_principal_id, role, content, "
    "embedding, created_at"
)


class ConversationRepository(Repository):
    TABLE_NAME = "conversations"

    async def ensure(
        self,
        tenant_id: str,
        conversation_id: str,
        principal_id: str,
        title: Optional[str] = None,
    ) -> None:
        """Create the conversation and membership rows if missing."""
        lane = self.lane(tenant_id)
        await lane.execute(
            "INSERT INTO conversations (id, owner_principal_id, title) "
            "VALUES ($1, $2, $3) ON CONFLICT (tenant_id, id) DO NOTHING",
            conversation_id, principal_id, title,
        )
        await lane.execute(
            "INSERT INTO conversation_members (conversation_id, principal_id) "
            "VALUES ($1, $2) ON CONFLICT (tenant_id, conversation_id, principal_id) DO NOTHING",
            conversation_id, principal_id,
        )


class MessageRepository(Repository):
    """Append-only message log. Reads always order by ``created_at``."""

    TABLE_NAME = "messages"

    async def append(
        self,
        tenant_id: str,
        conversation_id: str,
        messages: Sequence[NewMessage],
    ) -> List[str]:
        """Insert all messages in one statement; returns their ids."""
        if not messages:
            return []
        args: list = []
        rows = []
        for message in messages:
            base = len(args)
            args.extend([
                conversation_id,
                message.author_principal_id,
                message.role.value,
                message.content,
                message.embedding,
                message.created_at,
            ])
            rows.append("(" + ", ".join(f"${base + i}" for i in range(1, 7)) + ")")
        inserted = await self.lane(tenant_id).fetch(
            "INSERT INTO messages "
            "(conversation_id, author_principal_id, role, content, embedding, created_at) "
            f"VALUES {', '.join(rows)} RETURNING id, tenant_id",
            *args,
        )
        return [str(r["id"]) for r in inserted]

    async def recent(
        self,
        tenant_id: str,
        conversation_id: str,
        limit: int,
    ) -> List[StoredMessage]:
        """The newest ``limit`` messages, returned oldest-first."""
        rows = await self._fetch_many(
            tenant_id,
            where="conversation_id = $1",
            args=(conversation_id,),
            order_by="created_at DESC, id DESC",
            limit=limit,
            columns=_MESSAGE_COLUMNS,
        )
        return [StoredMessage.from_row(r) for r in reversed(rows)]

    async def candidates(
        self,
        tenant_id: str,
        conversation_id: str,
        exclude_ids: Sequence[str],
        limit: int,
    ) -> List[StoredMessage]:
        """Embedded messages eligible for relevance ranking, newest first."""
        rows = await self._fetch_many(
            tenant_id,
            where=(
                "conversation_id = $1 AND embedding IS NOT NULL "
                "AND NOT (id::text = ANY($2))"
            ),
            args=(conversation_id, list(exclude_ids)),
            order_by="created_at DESC",
            limit=limit,
            columns=_MESSAGE_COLUMNS,
        )
        return [StoredMessage.from_row(r) for r in rows]

    async def count(self, tenant_id: str, conversation_id: str) -> int:
        value = await self.lane(tenant_id).fetchval(
            "SELECT COUNT(*) AS n FROM messages WHERE conversation_id = $1",
            conversation_id,
        )
        return int(value or 0)


class PromptRepository(Repository):
    TABLE_NAME = "active_prompts"

    async def get_active(self, tenant_id: str, conversation_id: str) -> Optional[str]:
        rows = await self._fetch_many(
            tenant_id,
            where="conversation_id = $1 AND is_active",
            args=(conversation_id,),
            order_by="version DESC",
            limit=1,
            columns="tenant_id, content, version",
        )
        return rows[0]["content"] if rows else None

    async def set_active(
        self,
        tenant_id: str,
        conversation_id: str,
        content: str,
        description: Optional[str] = None,
    ) -> int:
        """Retire the current prompt and activate a new version. Returns it.

        Runs in one transaction; if the new row cannot be written the
        previous prompt stays active.
        """
        async with self.lane(tenant_id).transaction() as lane:
            current = await lane.fetchval(
                "SELECT COALESCE(MAX(version), 0) AS v FROM active_prompts "
                "WHERE conversation_id = $1",
                conversation_id,
            )
            await lane.execute(
                "UPDATE active_prompts SET is_active = FALSE "
                "WHERE conversation_id = $1 AND is_active",
                conversation_id,
            )
            version = int(current or 0) + 1
            await lane.fetchrow(
                "INSERT INTO active_prompts (conversation_id, content, version, description) "
                "VALUES ($1, $2, $3, $4) RETURNING tenant_id, version",
                conversation_id, content, version, description,
            )
        logger.info(f"Activated prompt v{version} for conversation in tenant {tenant_id}")
        return version
