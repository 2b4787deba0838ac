"""
Evidence Store Interface
=========================

Abstraction over a persisted collection of Fragments, searchable by
vector similarity and by lexical match, and filterable by visibility
flag, source-of-truth flag, and provenance channel.

Contract (both channels):
    - Filters are applied BEFORE ranking and truncation
    - Results are ordered best-first and truncated to ``limit``
    - Read-only; safe for concurrent calls from many requests
    - Backend failures raise StoreError
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from citewise.schemas.fragment import Fragment


class SearchFilters(BaseModel):
    """Filters pushed down into both retrieval channels identically."""
    model_config = ConfigDict(frozen=True)

    customer_safe_only: bool = Field(default=False)
    source_of_truth_only: bool = Field(default=False)
    channel_id: Optional[str] = Field(default=None)

    def matches(self, fragment: Fragment) -> bool:
        """In-process predicate equivalent of the SQL WHERE clause."""
        if self.customer_safe_only and not fragment.is_customer_safe:
            return False
        if self.source_of_truth_only and not fragment.is_source_of_truth:
            return False
        if self.channel_id is not None and fragment.provenance.channel_id != self.channel_id:
            return False
        return True


ScoredFragment = tuple[Fragment, float]


@runtime_checkable
class EvidenceStore(Protocol):
    """Read-side interface the retrieval core consumes."""

    def semantic_search(
        self,
        embedding: Sequence[float],
        limit: int,
        filters: SearchFilters,
    ) -> list[ScoredFragment]:
        """
        Nearest fragments by cosine distance.

        Returns (fragment, cosine_similarity) pairs, ascending by
        distance. Fragments without an embedding never match.
        """
        ...

    def lexical_search(
        self,
        query: str,
        limit: int,
        filters: SearchFilters,
    ) -> list[ScoredFragment]:
        """
        Full-text matches for the query.

        Returns (fragment, rank_score) pairs, best-first. Only fragments
        matching the query terms are returned.
        """
        ...
