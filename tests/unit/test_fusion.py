"""
Rank Fusion Tests
==================

Reciprocal Rank Fusion ordering, de-duplication, normalization, and
tie-breaking.
"""

from __future__ import annotations

import pytest

from citewise.retrieve.fusion import (
    DEFAULT_RRF_K,
    fuse,
    reciprocal_rank_fusion,
    rrf_contribution,
)
from tests.conftest import make_candidate


@pytest.fixture
def f1():
    return make_candidate(fragment_id=1, score=0.9)


@pytest.fixture
def f2():
    return make_candidate(fragment_id=2, score=0.8)


@pytest.fixture
def f3():
    return make_candidate(fragment_id=3, score=0.4)


class TestContribution:

    def test_first_position_uses_k_plus_one(self):
        assert rrf_contribution(0) == pytest.approx(1 / 61)
        assert rrf_contribution(1, k=60) == pytest.approx(1 / 62)

    def test_default_k(self):
        assert DEFAULT_RRF_K == 60

    def test_negative_k_rejected(self, f1):
        with pytest.raises(ValueError):
            fuse([f1], [], k=-1)


class TestFusionOrdering:

    def test_item_in_both_lists_wins(self, f1, f2, f3):
        """semantic [F1, F2], lexical [F2, F3] fuses to F2, F1, F3."""
        semantic = [f1, f2]
        lexical = [
            make_candidate(fragment_id=2, score=0.5),
            make_candidate(fragment_id=3, score=0.4),
        ]
        fused = reciprocal_rank_fusion(semantic, lexical, k=60)

        assert [c.id for c in fused] == [2, 1, 3]
        assert fused[0].scores.rrf == pytest.approx(1 / 62 + 1 / 61)
        assert fused[1].scores.rrf == pytest.approx(1 / 61)
        assert fused[2].scores.rrf == pytest.approx(1 / 62)

    def test_disjoint_lists_yield_union(self):
        semantic = [make_candidate(fragment_id=i) for i in (1, 2, 3)]
        lexical = [make_candidate(fragment_id=i) for i in (10, 11)]
        fused = reciprocal_rank_fusion(semantic, lexical)
        assert len(fused) == 5
        assert len({c.id for c in fused}) == 5

    def test_equal_scores_keep_semantic_first(self):
        """Ties are broken by first appearance: semantic order, then lexical-only."""
        semantic = [make_candidate(fragment_id=1)]
        lexical = [make_candidate(fragment_id=2)]
        fused = reciprocal_rank_fusion(semantic, lexical)
        assert [c.id for c in fused] == [1, 2]
        assert fused[0].relevance_score == fused[1].relevance_score == 1.0

    def test_duplicate_within_one_list_counts_once(self):
        semantic = [
            make_candidate(fragment_id=1),
            make_candidate(fragment_id=1),
            make_candidate(fragment_id=2),
        ]
        result = fuse(semantic, [])
        assert [c.id for c in result.candidates] == [1, 2]
        assert result.candidates[0].scores.rrf == pytest.approx(1 / 61)
        assert result.candidates[0].scores.semantic_rank == 0

    def test_larger_k_flattens_scores(self, f1, f2):
        tight = reciprocal_rank_fusion([f1, f2], [], k=0)
        flat = reciprocal_rank_fusion([f1, f2], [], k=1000)
        assert tight[1].relevance_score < flat[1].relevance_score


class TestNormalization:

    def test_top_score_is_exactly_one(self, f1, f2, f3):
        fused = reciprocal_rank_fusion([f1, f2, f3], [f3])
        assert fused[0].relevance_score == 1.0
        assert all(0.0 < c.relevance_score <= 1.0 for c in fused)

    def test_scores_are_divided_by_max(self, f1, f2):
        result = fuse([f1, f2], [])
        assert result.max_score == pytest.approx(1 / 61)
        assert result.candidates[1].relevance_score == pytest.approx(61 / 62)

    def test_empty_inputs(self):
        result = fuse([], [])
        assert result.candidates == []
        assert result.max_score == 1.0

    def test_single_channel_still_normalized(self, f3):
        fused = reciprocal_rank_fusion([], [f3])
        assert [c.id for c in fused] == [3]
        assert fused[0].relevance_score == 1.0


class TestProvenanceOfScores:

    def test_channel_scores_carried_through(self, f1):
        lexical = [make_candidate(fragment_id=1, score=7.5)]
        fused = reciprocal_rank_fusion([f1], lexical)
        scores = fused[0].scores
        assert scores.semantic == pytest.approx(0.9)
        assert scores.lexical == pytest.approx(7.5)
        assert scores.semantic_rank == 0
        assert scores.lexical_rank == 0

    def test_lexical_only_has_no_semantic_score(self, f1, f3):
        fused = reciprocal_rank_fusion([f1], [f3])
        lex_only = next(c for c in fused if c.id == 3)
        assert lex_only.scores.semantic is None
        assert lex_only.scores.semantic_rank is None
        assert lex_only.scores.lexical_rank == 0

    def test_inputs_are_not_mutated(self, f1, f2):
        semantic = [f1, f2]
        reciprocal_rank_fusion(semantic, [f2])
        assert f1.relevance_score == 0.9
        assert f2.relevance_score == 0.8
