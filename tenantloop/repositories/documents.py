"""Stored documents (contracts, invoices) and their parsed summaries."""

from typing import Any, Dict, Optional

from ..db.repository import Repository


class DocumentRepository(Repository):
    TABLE_NAME = "documents"

    async def store(
        self,
        tenant_id: str,
        conversation_id: str,
        doc_type: str,
        source_kind: str,
        source_value: str,
    ) -> Dict[str, Any]:
        return await self._insert(
            tenant_id,
            {
                "conversation_id": conversation_id,
                "doc_type": doc_type,
                "source_kind": source_kind,
                "source_value": source_value,
            },
            returning="id, tenant_id, doc_type, source_kind, created_at",
        )

    async def get(self, tenant_id: str, conversation_id: str, document_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._fetch_many(
            tenant_id,
            where="conversation_id = $1 AND id = $2::uuid",
            args=(conversation_id, document_id),
            limit=1,
        )
        return rows[0] if rows else None

    async def set_parsed(self, tenant_id: str, document_id: str, parsed: Dict[str, Any]) -> None:
        await self._update(
            tenant_id,
            where={"id": document_id},
            data={"parsed": parsed},
            returning="id, tenant_id",
        )
