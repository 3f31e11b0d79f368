"""Conversational context assembly."""

from .assembler import ConversationContext, MemoryAssembler, cosine_similarity, rank_relevant

__all__ = ["ConversationContext", "MemoryAssembler", "cosine_similarity", "rank_relevant"]
