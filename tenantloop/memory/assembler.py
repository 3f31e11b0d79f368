"""
TenantLoop Memory Assembler - Bounded conversational context per request.

Two windows over the same (tenant, conversation):

- chronological: the newest ``recency_limit`` messages, oldest-first.
- relevant: up to ``relevance_limit`` older messages ranked by cosine
  similarity to the current text, skipping anything already in the
  chronological window. Ties go to the more recent message.

Both reads go through the sandboxed lane via MessageRepository. Ranking is
done in process over a bounded candidate pool, so no vector extension is
required in the database.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..constants import (
    DEFAULT_CANDIDATE_POOL,
    DEFAULT_RECENCY_LIMIT,
    DEFAULT_RELEVANCE_LIMIT,
)
from ..models import StoredMessage
from ..protocols import EmbedderProtocol
from ..repositories.conversations import MessageRepository

logger = logging.getLogger(__name__)


@dataclass
class ConversationContext:
    """Result of ``MemoryAssembler.assemble``."""
    chronological: List[StoredMessage] = field(default_factory=list)
    relevant: List[StoredMessage] = field(default_factory=list)
    query_embedding: Optional[List[float]] = None


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 for empty or mismatched input."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def rank_relevant(
    query: Sequence[float],
    candidates: Sequence[StoredMessage],
    limit: int,
) -> List[StoredMessage]:
    """Order candidates by similarity descending, then created_at descending."""
    scored = [
        (cosine_similarity(query, m.embedding or []), m.created_at, m)
        for m in candidates
        if m.embedding
    ]
    scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [m for _, _, m in scored[:limit]]


class MemoryAssembler:
    """
    Builds the per-request context window.

    Args:
        messages: Message repository (sandboxed lane).
        embedder: Embedding collaborator. When None, relevance recall is off.
        candidate_pool: How many embedded historical messages are ranked.
    """

    def __init__(
        self,
        messages: MessageRepository,
        embedder: Optional[EmbedderProtocol] = None,
        candidate_pool: int = DEFAULT_CANDIDATE_POOL,
    ):
        self._messages = messages
        self._embedder = embedder
        self._candidate_pool = candidate_pool

    async def embed(self, text: str) -> Optional[List[float]]:
        """Embedding for ``text``, or None when unavailable."""
        if self._embedder is None or not text:
            return None
        try:
            return list(await self._embedder.embed(text))
        except Exception as e:
            logger.warning(f"[Memory] Embedding failed, relevance recall skipped: {e}")
            return None

    async def assemble(
        self,
        tenant_id: str,
        conversation_id: str,
        current_text: str,
        recency_limit: int = DEFAULT_RECENCY_LIMIT,
        relevance_limit: int = DEFAULT_RELEVANCE_LIMIT,
    ) -> ConversationContext:
        chronological = await self._messages.recent(tenant_id, conversation_id, recency_limit)
        context = ConversationContext(chronological=chronological)

        if relevance_limit <= 0:
            return context

        context.query_embedding = await self.embed(current_text)
        if context.query_embedding is None:
            return context

        exclude = [m.id for m in chronological]
        candidates = await self._messages.candidates(
            tenant_id, conversation_id, exclude, self._candidate_pool,
        )
        context.relevant = rank_relevant(context.query_embedding, candidates, relevance_limit)
        logger.info(
            f"[Memory] tenant={tenant_id} chronological={len(chronological)} "
            f"relevant={len(context.relevant)}"
        )
        return context
