"""
Fragment & Candidate Schemas
=============================

Defines the evidence unit stored by the (external) ingestion side and
the per-query wrapper the retrieval core ranks:

- Provenance: where a fragment came from (chat message, doc, ...)
- Fragment:   immutable stored unit with visibility flags
- Candidate:  a Fragment scored for one query, in one channel or fused

Design Decisions:
    - Fragment and Candidate are frozen; "overwriting" a candidate's
      score (as fusion does) builds a new Candidate
    - Per-channel scores and ranks are preserved in RetrievalScores so
      the fused score can always be traced back to its inputs
    - Candidate identity for de-duplication is fragment.id

Data Flow:
    EvidenceStore → (Fragment, score) → Candidate → Fusion → Evidence Set
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Provenance(BaseModel):
    """
    Origin metadata for a fragment. Never mutated after creation.

    ``thread_id`` is the chat-thread anchor (e.g. a Slack ``thread_ts``).
    """
    model_config = ConfigDict(frozen=True)

    source_type: str = Field(description="Kind of source, e.g. 'slack', 'doc'")
    source_id: str = Field(description="Identifier of the source item")
    channel_id: Optional[str] = Field(default=None, description="Originating channel")
    thread_id: Optional[str] = Field(default=None, description="Originating thread")
    author: Optional[str] = Field(default=None)
    timestamp: Optional[datetime] = Field(default=None)
    permalink: Optional[str] = Field(default=None)
    metadata: dict[str, Any] = Field(default_factory=dict, description="Free-form extra origin data")


class Fragment(BaseModel):
    """
    An immutable stored unit of retrievable knowledge.

    ``is_customer_safe`` is the single access-control bit the core
    respects; ``is_source_of_truth`` marks a final/authoritative
    statement rather than a question or discussion. Both are set once
    at ingestion.
    """
    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Storage identity")
    content: str = Field(description="Text body")
    embedding: Optional[list[float]] = Field(
        default=None,
        description="Fixed-length vector, present iff the fragment has been embedded",
    )
    provenance: Provenance
    is_source_of_truth: bool = Field(default=False)
    is_customer_safe: bool = Field(default=False)

    @property
    def source_id(self) -> str:
        return self.provenance.source_id

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None


class RetrievalScores(BaseModel):
    """
    Per-channel scores and positions for one candidate.

    ``semantic`` is a cosine similarity, ``lexical`` a lexical rank
    score; ranks are 0-based positions within each channel's list.
    ``rrf`` is the fused score before max-normalization.
    """
    model_config = ConfigDict(frozen=True)

    semantic: Optional[float] = Field(default=None)
    lexical: Optional[float] = Field(default=None)
    semantic_rank: Optional[int] = Field(default=None, ge=0)
    lexical_rank: Optional[int] = Field(default=None, ge=0)
    rrf: Optional[float] = Field(default=None)


class Candidate(BaseModel):
    """
    A Fragment scored against a specific query.

    ``relevance_score`` is channel-native when produced by a channel
    (cosine similarity or lexical rank score) and the normalized fused
    score in (0, 1] after fusion.
    """
    model_config = ConfigDict(frozen=True)

    fragment: Fragment
    relevance_score: float
    scores: RetrievalScores = Field(default_factory=RetrievalScores)

    @property
    def id(self) -> int:
        return self.fragment.id

    @property
    def is_customer_safe(self) -> bool:
        return self.fragment.is_customer_safe

    def to_search_result(self) -> dict[str, Any]:
        """Row shape exposed by search(): flattened fragment + similarity."""
        prov = self.fragment.provenance
        return {
            "id": self.fragment.id,
            "source_id": prov.source_id,
            "content": self.fragment.content,
            "similarity": self.relevance_score,
            "author": prov.author,
            "timestamp": prov.timestamp,
            "permalink": prov.permalink,
            "is_customer_safe": self.fragment.is_customer_safe,
            "is_source_of_truth": self.fragment.is_source_of_truth,
        }
