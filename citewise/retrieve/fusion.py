"""
Rank Fusion Engine
===================

Merges the semantic and lexical candidate lists with Reciprocal Rank
Fusion (RRF), then max-normalizes the fused scores.

RRF is rank-based, not score-based: cosine similarities and lexical
rank scores live on unrelated scales, so only list positions are used.

    contribution(item at 0-based position i) = 1 / (k + i + 1)

A fragment present in both lists accumulates both contributions. The
result is sorted by accumulated score (stable: semantic order first,
then lexical-only items in lexical order) and divided by the maximum,
so the top candidate scores exactly 1.0 and a similarity threshold
means the same thing regardless of k or list lengths.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from citewise.schemas.fragment import Candidate, Fragment

DEFAULT_RRF_K = 60


def rrf_contribution(position: int, k: int = DEFAULT_RRF_K) -> float:
    """Score contributed by the item at 0-based ``position``."""
    return 1.0 / (k + position + 1)


@dataclass
class _Accumulator:
    fragment: Fragment
    rrf: float = 0.0
    semantic: Optional[float] = None
    lexical: Optional[float] = None
    semantic_rank: Optional[int] = None
    lexical_rank: Optional[int] = None


@dataclass
class FusionResult:
    """Fused candidates plus the divisor used to normalize them."""
    candidates: list[Candidate] = field(default_factory=list)
    max_score: float = 1.0


def fuse(
    semantic: Sequence[Candidate],
    lexical: Sequence[Candidate],
    k: int = DEFAULT_RRF_K,
) -> FusionResult:
    """
    Reciprocal Rank Fusion of two ranked candidate lists.

    Args:
        semantic: Semantic-channel candidates, best-first.
        lexical: Lexical-channel candidates, best-first.
        k: RRF constant. Larger k flattens the advantage of top ranks.

    Returns:
        FusionResult with de-duplicated candidates sorted by fused score,
        each carrying the normalized score as ``relevance_score`` and the
        raw RRF score in ``scores.rrf``.
    """
    if k < 0:
        raise ValueError(f"RRF k must be >= 0, got {k}")

    # Pass 1: fold both lists into an id → accumulator map. Dict insertion
    # order is the tie-break order: semantic first, then lexical-only.
    merged: dict[int, _Accumulator] = {}
    for rank, cand in enumerate(semantic):
        acc = merged.get(cand.id)
        if acc is None:
            acc = merged[cand.id] = _Accumulator(fragment=cand.fragment)
        elif acc.semantic_rank is not None:
            # Repeated within one list: the best (first) position wins
            continue
        acc.rrf += rrf_contribution(rank, k)
        acc.semantic = cand.relevance_score
        acc.semantic_rank = rank

    for rank, cand in enumerate(lexical):
        acc = merged.get(cand.id)
        if acc is None:
            acc = merged[cand.id] = _Accumulator(fragment=cand.fragment)
        elif acc.lexical_rank is not None:
            continue
        acc.rrf += rrf_contribution(rank, k)
        acc.lexical = cand.relevance_score
        acc.lexical_rank = rank

    # Pass 2: stable sort, then normalize by the max (1.0 if empty)
    ordered = sorted(merged.values(), key=lambda a: a.rrf, reverse=True)
    max_score = ordered[0].rrf if ordered else 1.0

    candidates = []
    for acc in ordered:
        # Exact 1.0 for the leader, no float drift from the division
        normalized = 1.0 if acc.rrf == max_score else acc.rrf / max_score
        candidates.append(
            Candidate(
                fragment=acc.fragment,
                relevance_score=normalized,
                scores={
                    "semantic": acc.semantic,
                    "lexical": acc.lexical,
                    "semantic_rank": acc.semantic_rank,
                    "lexical_rank": acc.lexical_rank,
                    "rrf": acc.rrf,
                },
            )
        )
    return FusionResult(candidates=candidates, max_score=max_score)


def reciprocal_rank_fusion(
    semantic: Sequence[Candidate],
    lexical: Sequence[Candidate],
    k: int = DEFAULT_RRF_K,
) -> list[Candidate]:
    """Fused, normalized candidate list. See ``fuse``."""
    return fuse(semantic, lexical, k=k).candidates
