"""
Dual-Channel Retriever Tests
=============================

Concurrent channel execution, over-fetch, shared filters, threshold and
limit handling, and the fail-closed / degrade policies.
"""

from __future__ import annotations

import threading

import pytest

from citewise.config import RetrievalConfig
from citewise.errors import RetrievalUnavailable, StoreError
from citewise.retrieve.hybrid import DualChannelRetriever, RetrievalOptions
from citewise.store.base import SearchFilters
from tests.conftest import FakeEmbedder, make_fragment


class ScriptedStore:
    """Evidence store returning canned rows and recording every call."""

    def __init__(
        self,
        semantic=None,
        lexical=None,
        semantic_error=None,
        lexical_error=None,
        lexical_gate=None,
    ):
        self.semantic = semantic or []
        self.lexical = lexical or []
        self.semantic_error = semantic_error
        self.lexical_error = lexical_error
        self.lexical_gate = lexical_gate
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, channel, limit, filters):
        with self._lock:
            self.calls.append((channel, limit, filters))

    def semantic_search(self, embedding, limit, filters):
        self._record("semantic", limit, filters)
        if self.semantic_error:
            raise self.semantic_error
        return self.semantic[:limit]

    def lexical_search(self, query, limit, filters):
        self._record("lexical", limit, filters)
        if self.lexical_gate is not None:
            self.lexical_gate.wait(timeout=5)
        if self.lexical_error:
            raise self.lexical_error
        return self.lexical[:limit]


@pytest.fixture
def rows():
    frags = [make_fragment(f"fragment {i}", fragment_id=i) for i in range(1, 5)]
    return {
        "semantic": [(frags[0], 0.9), (frags[1], 0.8)],
        "lexical": [(frags[1], 4.0), (frags[2], 2.5)],
    }


def _retriever(store, config=None, embedder=None):
    return DualChannelRetriever(
        store, embedder or FakeEmbedder(), config or RetrievalConfig(channel_timeout_s=5.0)
    )


class TestHybridSearch:

    def test_fused_order(self, rows):
        store = ScriptedStore(semantic=rows["semantic"], lexical=rows["lexical"])
        with _retriever(store) as retriever:
            hits = retriever.search("q", RetrievalOptions(limit=5, min_score=0.0))
        assert [h.id for h in hits] == [2, 1, 3]
        assert hits[0].relevance_score == 1.0

    def test_overfetch_and_identical_filters(self, rows):
        store = ScriptedStore(semantic=rows["semantic"], lexical=rows["lexical"])
        filters = SearchFilters(customer_safe_only=True, channel_id="C-eng")
        config = RetrievalConfig(overfetch_factor=3, channel_timeout_s=5.0)
        with _retriever(store, config) as retriever:
            retriever.search("q", RetrievalOptions(limit=4, filters=filters))

        assert sorted(c[0] for c in store.calls) == ["lexical", "semantic"]
        assert {c[1] for c in store.calls} == {12}
        assert all(c[2] == filters for c in store.calls)

    def test_threshold_then_limit(self, rows):
        store = ScriptedStore(semantic=rows["semantic"], lexical=rows["lexical"])
        with _retriever(store) as retriever:
            # Normalized scores: F2 = 1.0, F1 ~ 0.50, F3 ~ 0.49
            assert [h.id for h in retriever.search("q", RetrievalOptions(limit=5, min_score=0.5))] == [2, 1]
            assert [h.id for h in retriever.search("q", RetrievalOptions(limit=1, min_score=0.0))] == [2]

    def test_tied_leaders_pass_full_threshold(self, rows):
        store = ScriptedStore(semantic=rows["semantic"][:1], lexical=rows["lexical"][1:])
        with _retriever(store) as retriever:
            hits = retriever.search("q", RetrievalOptions(limit=5, min_score=1.0))
        # Both leaders tie at exactly 1.0
        assert [h.id for h in hits] == [1, 3]

    def test_empty_store_gives_empty_result(self):
        with _retriever(ScriptedStore()) as retriever:
            assert retriever.search("q", RetrievalOptions()) == []

    def test_against_memory_store(self, store, embedder):
        with DualChannelRetriever(store, embedder, RetrievalConfig()) as retriever:
            hits = retriever.search("How do we roll back?", RetrievalOptions(limit=3))
        assert hits[0].id == 1
        assert hits[0].scores.semantic_rank == 0
        assert hits[0].scores.lexical_rank == 0


class TestSemanticOnly:

    def test_cosine_threshold_and_limit(self, rows):
        store = ScriptedStore(semantic=rows["semantic"])
        with _retriever(store) as retriever:
            hits = retriever.semantic_only("q", RetrievalOptions(limit=5, min_score=0.85))
        assert [(h.id, h.relevance_score) for h in hits] == [(1, 0.9)]
        assert [c[0] for c in store.calls] == ["semantic"]
        assert store.calls[0][1] == 10

    def test_store_error_fails_closed(self):
        store = ScriptedStore(semantic_error=StoreError("db down"))
        with _retriever(store) as retriever:
            with pytest.raises(RetrievalUnavailable):
                retriever.semantic_only("q", RetrievalOptions())


class TestFailClosed:

    def test_embedding_failure_always_raises(self, rows):
        store = ScriptedStore(semantic=rows["semantic"], lexical=rows["lexical"])
        config = RetrievalConfig(partial_channel_policy="degrade", channel_timeout_s=5.0)
        with _retriever(store, config, FakeEmbedder(fail=True)) as retriever:
            with pytest.raises(RetrievalUnavailable, match="embedding"):
                retriever.search("q", RetrievalOptions())

    def test_embedding_failure_in_vector_mode(self):
        with _retriever(ScriptedStore(), embedder=FakeEmbedder(fail=True)) as retriever:
            with pytest.raises(RetrievalUnavailable):
                retriever.semantic_only("q", RetrievalOptions())

    def test_one_channel_failure_raises_by_default(self, rows):
        store = ScriptedStore(semantic=rows["semantic"], lexical_error=StoreError("tsquery broke"))
        with _retriever(store) as retriever:
            with pytest.raises(RetrievalUnavailable, match="lexical"):
                retriever.search("q", RetrievalOptions())

    def test_degrade_policy_uses_surviving_channel(self, rows):
        store = ScriptedStore(semantic=rows["semantic"], lexical_error=StoreError("tsquery broke"))
        config = RetrievalConfig(partial_channel_policy="degrade", channel_timeout_s=5.0)
        with _retriever(store, config) as retriever:
            channels = retriever.retrieve("q", RetrievalOptions())
            hits = retriever.search("q", RetrievalOptions(min_score=0.0))
        assert channels.degraded == "lexical"
        assert channels.lexical == []
        assert [h.id for h in hits] == [1, 2]

    def test_both_channels_failing_raises_even_when_degrading(self):
        store = ScriptedStore(
            semantic_error=StoreError("down"), lexical_error=StoreError("down")
        )
        config = RetrievalConfig(partial_channel_policy="degrade", channel_timeout_s=5.0)
        with _retriever(store, config) as retriever:
            with pytest.raises(RetrievalUnavailable):
                retriever.search("q", RetrievalOptions())

    def test_deadline_exceeded(self, rows):
        gate = threading.Event()
        store = ScriptedStore(
            semantic=rows["semantic"], lexical=rows["lexical"], lexical_gate=gate
        )
        config = RetrievalConfig(channel_timeout_s=0.2)
        retriever = _retriever(store, config)
        try:
            with pytest.raises(RetrievalUnavailable, match="deadline"):
                retriever.search("q", RetrievalOptions())
        finally:
            gate.set()
            retriever.close()

    def test_unavailable_chains_the_cause(self):
        store = ScriptedStore(semantic_error=StoreError("down"))
        with _retriever(store) as retriever:
            with pytest.raises(RetrievalUnavailable) as info:
                retriever.search("q", RetrievalOptions())
        assert isinstance(info.value.__cause__, StoreError)
