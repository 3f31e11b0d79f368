"""
Tests for the Memory Assembler.

Tests cover:
- cosine similarity and ranking order
- chronological window passthrough
- relevance recall excluding the chronological window
- degraded operation without embeddings
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from tenantloop.memory.assembler import MemoryAssembler, cosine_similarity, rank_relevant
from tenantloop.models import MessageRole, StoredMessage

TENANT = "11111111-1111-1111-1111-111111111111"
BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _msg(msg_id, content="x", embedding=None, minutes=0, role=MessageRole.USER):
    return StoredMessage(
        id=msg_id,
        tenant_id=TENANT,
        conversation_id="chat-1",
        author_principal_id="user-1",
        role=role,
        content=content,
        created_at=BASE + timedelta(minutes=minutes),
        embedding=embedding,
    )


def _messages_repo(recent=None, candidates=None):
    repo = MagicMock()
    repo.recent = AsyncMock(return_value=recent or [])
    repo.candidates = AsyncMock(return_value=candidates or [])
    return repo


class TestCosineSimilarity:

    def test_identical(self):
        assert cosine_similarity([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_degenerate_inputs(self):
        assert cosine_similarity([], [1.0]) == 0.0
        assert cosine_similarity([1.0], [1.0, 2.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


class TestRankRelevant:

    def test_orders_by_similarity(self):
        close = _msg("a", embedding=[1.0, 0.1])
        far = _msg("b", embedding=[0.0, 1.0])
        assert rank_relevant([1.0, 0.0], [far, close], limit=5) == [close, far]

    def test_ties_prefer_recent(self):
        older = _msg("a", embedding=[1.0, 0.0], minutes=1)
        newer = _msg("b", embedding=[1.0, 0.0], minutes=2)
        assert rank_relevant([1.0, 0.0], [older, newer], limit=1) == [newer]

    def test_skips_unembedded(self):
        assert rank_relevant([1.0], [_msg("a")], limit=5) == []


class TestAssemble:
    """Tests for MemoryAssembler.assemble"""

    @pytest.mark.asyncio
    async def test_relevant_excludes_chronological_window(self):
        recent = [_msg("r1", minutes=10), _msg("r2", minutes=11)]
        older = [_msg("o1", embedding=[1.0, 0.0]), _msg("o2", embedding=[0.0, 1.0])]
        repo = _messages_repo(recent=recent, candidates=older)
        embedder = MagicMock()
        embedder.embed = AsyncMock(return_value=[1.0, 0.0])
        assembler = MemoryAssembler(repo, embedder, candidate_pool=50)

        context = await assembler.assemble(TENANT, "chat-1", "rent", recency_limit=2, relevance_limit=1)

        assert context.chronological == recent
        assert [m.id for m in context.relevant] == ["o1"]
        assert context.query_embedding == [1.0, 0.0]
        repo.recent.assert_awaited_once_with(TENANT, "chat-1", 2)
        repo.candidates.assert_awaited_once_with(TENANT, "chat-1", ["r1", "r2"], 50)

    @pytest.mark.asyncio
    async def test_no_embedder_means_no_relevance(self):
        repo = _messages_repo(recent=[_msg("r1")])
        assembler = MemoryAssembler(repo)

        context = await assembler.assemble(TENANT, "chat-1", "rent")

        assert [m.id for m in context.chronological] == ["r1"]
        assert context.relevant == []
        assert context.query_embedding is None
        repo.candidates.assert_not_called()

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades(self):
        repo = _messages_repo()
        embedder = MagicMock()
        embedder.embed = AsyncMock(side_effect=RuntimeError("provider down"))
        assembler = MemoryAssembler(repo, embedder)

        context = await assembler.assemble(TENANT, "chat-1", "rent")

        assert context.relevant == []
        repo.candidates.assert_not_called()

    @pytest.mark.asyncio
    async def test_zero_relevance_limit_skips_embedding(self):
        repo = _messages_repo()
        embedder = MagicMock()
        embedder.embed = AsyncMock(return_value=[1.0])
        assembler = MemoryAssembler(repo, embedder)

        await assembler.assemble(TENANT, "chat-1", "rent", relevance_limit=0)

        embedder.embed.assert_not_called()
