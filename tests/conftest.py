"""
Citewise Test Configuration
=============================

Shared fixtures, factories, and test doubles for the entire test suite.
"""

from __future__ import annotations

import itertools
import os
from datetime import datetime, timezone
from typing import Callable, Optional, Union

import pytest

# ── Ensure test mode ────────────────────────────────────────────
os.environ.setdefault("CITEWISE_MODE", "lite")
os.environ.setdefault("CITEWISE_OPENAI_API_KEY", "sk-test-key-for-testing")

from citewise.config import CitewiseConfig, GenerationConfig, RetrievalConfig
from citewise.errors import EmbeddingError, GenerationFailure
from citewise.schemas.fragment import Candidate, Fragment, Provenance
from citewise.store.memory import InMemoryEvidenceStore

_ids = itertools.count(1000)


# ── Markers ─────────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line("markers", "integration: multi-component tests")


# ── Factories ───────────────────────────────────────────────────

def make_fragment(
    content: str = "Default fragment text.",
    fragment_id: Optional[int] = None,
    embedding: Optional[list[float]] = None,
    customer_safe: bool = False,
    source_of_truth: bool = False,
    channel_id: Optional[str] = "C-general",
    source_id: Optional[str] = None,
    author: Optional[str] = "alice",
) -> Fragment:
    """Factory for creating test fragments."""
    if fragment_id is None:
        fragment_id = next(_ids)
    return Fragment(
        id=fragment_id,
        content=content,
        embedding=embedding,
        provenance=Provenance(
            source_type="slack",
            source_id=source_id or f"msg-{fragment_id}",
            channel_id=channel_id,
            thread_id="1700000000.000100",
            author=author,
            timestamp=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
            permalink=f"https://example.slack.com/archives/{channel_id}/p{fragment_id}",
        ),
        is_source_of_truth=source_of_truth,
        is_customer_safe=customer_safe,
    )


def make_candidate(
    fragment_id: Optional[int] = None,
    score: float = 0.5,
    content: Optional[str] = None,
    customer_safe: bool = False,
) -> Candidate:
    """Factory for creating a scored candidate around a fresh fragment."""
    if fragment_id is None:
        fragment_id = next(_ids)
    fragment = make_fragment(
        content=content or f"Fragment {fragment_id} content.",
        fragment_id=fragment_id,
        customer_safe=customer_safe,
    )
    return Candidate(fragment=fragment, relevance_score=score)


# ── Test Doubles ────────────────────────────────────────────────

class FakeEmbedder:
    """
    Deterministic embedder.

    Maps a query to the vector of the first keyword it contains, or to
    ``default``. ``fail`` makes every call raise EmbeddingError.
    """

    def __init__(
        self,
        vectors: Optional[dict[str, list[float]]] = None,
        default: Optional[list[float]] = None,
        fail: bool = False,
    ):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.fail = fail
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("embedding provider down")
        lowered = text.lower()
        for keyword, vector in self.vectors.items():
            if keyword in lowered:
                return vector
        return self.default


Reply = Union[str, Exception]


class FakeLLM:
    """
    Scripted generation service.

    ``judge`` answers calls without a system prompt (the relevance
    gate); ``answer`` answers calls with one (the generator). Either may
    be a string, an exception to raise, or a callable of the user prompt.
    """

    def __init__(
        self,
        judge: Union[Reply, Callable[[str], str]] = "YES",
        answer: Union[Reply, Callable[[str], str]] = "See the runbook [1].",
    ):
        self.judge = judge
        self.answer = answer
        self.calls: list[dict] = []

    def generate(self, user_prompt, system_prompt=None, temperature=0.0):
        self.calls.append(
            {"user": user_prompt, "system": system_prompt, "temperature": temperature}
        )
        reply = self.judge if system_prompt is None else self.answer
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(user_prompt)
        return reply

    @property
    def judge_calls(self) -> list[dict]:
        return [c for c in self.calls if c["system"] is None]

    @property
    def answer_calls(self) -> list[dict]:
        return [c for c in self.calls if c["system"] is not None]


def failing_llm() -> FakeLLM:
    """An LLM whose every call fails."""
    err = GenerationFailure("provider unavailable")
    return FakeLLM(judge=err, answer=err)


# ── Fixtures ────────────────────────────────────────────────────

@pytest.fixture
def config() -> CitewiseConfig:
    """Default test config (lite mode, memory store)."""
    return CitewiseConfig()


@pytest.fixture
def retrieval_config() -> RetrievalConfig:
    return RetrievalConfig(channel_timeout_s=5.0)


@pytest.fixture
def generation_config() -> GenerationConfig:
    return GenerationConfig()


@pytest.fixture
def corpus() -> list[Fragment]:
    """Small mixed-visibility corpus with 3-d embeddings."""
    return [
        make_fragment(
            "To roll back a deploy, run the rollback job in the deploy pipeline.",
            fragment_id=1,
            embedding=[1.0, 0.0, 0.0],
            customer_safe=True,
            source_of_truth=True,
            channel_id="C-eng",
        ),
        make_fragment(
            "Rollback credentials live in the internal vault under deploy-bot.",
            fragment_id=2,
            embedding=[0.9, 0.1, 0.0],
            customer_safe=False,
            channel_id="C-eng",
        ),
        make_fragment(
            "Refunds are issued to the original payment method within 5 business days.",
            fragment_id=3,
            embedding=[0.0, 1.0, 0.0],
            customer_safe=True,
            source_of_truth=True,
            channel_id="C-support",
        ),
        make_fragment(
            "Is anyone else seeing refund delays for EU customers?",
            fragment_id=4,
            embedding=[0.1, 0.9, 0.0],
            customer_safe=False,
            channel_id="C-support",
        ),
        make_fragment(
            "Office plants are watered on Fridays.",
            fragment_id=5,
            embedding=[0.0, 0.0, 1.0],
            customer_safe=True,
            channel_id="C-random",
        ),
    ]


@pytest.fixture
def store(corpus) -> InMemoryEvidenceStore:
    return InMemoryEvidenceStore(corpus)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder(
        vectors={
            "roll": [1.0, 0.0, 0.0],
            "refund": [0.0, 1.0, 0.0],
            "plant": [0.0, 0.0, 1.0],
        }
    )
