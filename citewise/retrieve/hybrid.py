"""
Dual-Channel Retriever
=======================

Issues a semantic (embedding similarity) query and a lexical
(full-text) query against the evidence store, each producing an
independently ranked candidate list, then fuses them.

Architecture:
    Query ─┬─ embed → semantic_search ─┐
           └─ lexical_search ──────────┴→ RRF Fusion → threshold → top-k

Key Design Decisions:
    - Both channels run concurrently on a small thread pool and are
      joined before fusion; the lexical query does not wait for the
      embedding call
    - Each channel over-fetches ``overfetch_factor * limit`` candidates
      so fusion has material beyond the final cut
    - The same SearchFilters go to both channels and are applied by the
      store before ranking
    - Fail-closed: an embedding failure always raises
      RetrievalUnavailable; a store failure in one channel raises too
      unless ``partial_channel_policy == "degrade"``
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, Field

from citewise.config import CitewiseConfig, RetrievalConfig
from citewise.errors import EmbeddingError, RetrievalUnavailable, StoreError
from citewise.ingest.embedder import EmbeddingService
from citewise.retrieve.fusion import reciprocal_rank_fusion
from citewise.schemas.fragment import Candidate, RetrievalScores
from citewise.store.base import EvidenceStore, ScoredFragment, SearchFilters
from citewise.utils import preview

logger = logging.getLogger("citewise.retrieve.hybrid")


class RetrievalOptions(BaseModel):
    """Per-call retrieval parameters."""
    limit: int = Field(default=10, ge=1)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    min_score: float = Field(default=0.2, ge=0.0, le=1.0)


@dataclass
class ChannelResults:
    """The two independently ranked lists, before fusion."""
    semantic: list[Candidate] = field(default_factory=list)
    lexical: list[Candidate] = field(default_factory=list)
    degraded: Optional[str] = None  # name of the failed channel, if degraded


def _semantic_candidates(rows: list[ScoredFragment]) -> list[Candidate]:
    return [
        Candidate(
            fragment=frag,
            relevance_score=score,
            scores=RetrievalScores(semantic=score, semantic_rank=rank),
        )
        for rank, (frag, score) in enumerate(rows)
    ]


def _lexical_candidates(rows: list[ScoredFragment]) -> list[Candidate]:
    return [
        Candidate(
            fragment=frag,
            relevance_score=score,
            scores=RetrievalScores(lexical=score, lexical_rank=rank),
        )
        for rank, (frag, score) in enumerate(rows)
    ]


class DualChannelRetriever:
    """
    Semantic + lexical retrieval with reciprocal rank fusion.

    Usage:
        retriever = DualChannelRetriever(store, embedder, config.retrieval)
        hits = retriever.search("how do we roll back?", RetrievalOptions(limit=5))

    Args:
        store: Evidence store to query.
        embedder: Embedding service for the query vector.
        config: Retrieval configuration (k, over-fetch, timeout, policy).
    """

    def __init__(
        self,
        store: EvidenceStore,
        embedder: EmbeddingService,
        config: Optional[RetrievalConfig] = None,
    ):
        self.store = store
        self.embedder = embedder
        self.config = config or RetrievalConfig()
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="citewise-channel")

    @classmethod
    def from_config(
        cls, config: CitewiseConfig, store: EvidenceStore, embedder: EmbeddingService
    ) -> "DualChannelRetriever":
        return cls(store, embedder, config.retrieval)

    # ── Channels ───────────────────────────────────────────────────

    def _embed(self, query: str) -> list[float]:
        try:
            return self.embedder.embed(query)
        except EmbeddingError as e:
            raise RetrievalUnavailable(f"Query embedding failed: {e}") from e

    def _run_semantic(self, query: str, fetch: int, filters: SearchFilters) -> list[Candidate]:
        embedding = self._embed(query)
        return _semantic_candidates(self.store.semantic_search(embedding, fetch, filters))

    def _run_lexical(self, query: str, fetch: int, filters: SearchFilters) -> list[Candidate]:
        return _lexical_candidates(self.store.lexical_search(query, fetch, filters))

    def retrieve(self, query: str, options: RetrievalOptions) -> ChannelResults:
        """
        Run both channels concurrently and join them.

        Returns:
            ChannelResults with each list of length <= overfetch * limit.

        Raises:
            RetrievalUnavailable: Embedding failure, deadline exceeded, or a
                store failure under the 'fail' policy.
        """
        fetch = options.limit * self.config.overfetch_factor
        deadline = time.monotonic() + self.config.channel_timeout_s
        futures: dict[str, Future] = {
            "semantic": self._executor.submit(self._run_semantic, query, fetch, options.filters),
            "lexical": self._executor.submit(self._run_lexical, query, fetch, options.filters),
        }

        done, pending = wait(
            futures.values(),
            timeout=self.config.channel_timeout_s,
            return_when=FIRST_EXCEPTION,
        )
        failed = {name: f for name, f in futures.items() if f in done and f.exception() is not None}

        if failed:
            # Fail fast on anything that isn't a recoverable store error
            for name, f in failed.items():
                if not isinstance(f.exception(), StoreError):
                    self._cancel(futures)
                    raise self._as_unavailable(name, f.exception())
            # Join the other channel before deciding on the policy
            done, pending = wait(futures.values(), timeout=max(0.0, deadline - time.monotonic()))
            failed = {name: f for name, f in futures.items() if f in done and f.exception() is not None}

        if pending:
            self._cancel(futures)
            raise RetrievalUnavailable(
                f"Retrieval channels exceeded {self.config.channel_timeout_s}s deadline"
            )

        for name, f in failed.items():
            if not isinstance(f.exception(), StoreError):
                raise self._as_unavailable(name, f.exception())

        if len(failed) == 2 or (failed and self.config.partial_channel_policy == "fail"):
            name, f = next(iter(failed.items()))
            raise self._as_unavailable(name, f.exception())

        results = ChannelResults()
        for name, f in futures.items():
            if name in failed:
                results.degraded = name
                logger.warning(
                    f"{name} channel failed ({f.exception()}); "
                    f"degrading to single-channel fusion"
                )
            else:
                setattr(results, name, f.result())

        logger.debug(
            f"Channels returned semantic={len(results.semantic)} "
            f"lexical={len(results.lexical)}"
        )
        return results

    @staticmethod
    def _cancel(futures: dict[str, Future]) -> None:
        for f in futures.values():
            f.cancel()

    @staticmethod
    def _as_unavailable(channel: str, error: BaseException) -> RetrievalUnavailable:
        if isinstance(error, RetrievalUnavailable):
            return error
        err = RetrievalUnavailable(f"{channel} channel failed: {error}")
        err.__cause__ = error
        return err

    # ── Public search modes ────────────────────────────────────────

    def search(self, query: str, options: RetrievalOptions) -> list[Candidate]:
        """
        Hybrid search: retrieve → fuse → threshold → limit.

        The threshold applies to the normalized fused score.
        """
        logger.info(f"Hybrid search for '{preview(query)}' (limit={options.limit})")
        channels = self.retrieve(query, options)
        fused = reciprocal_rank_fusion(channels.semantic, channels.lexical, k=self.config.rrf_k)
        kept = [c for c in fused if c.relevance_score >= options.min_score][: options.limit]
        logger.info(
            f"Fused {len(fused)} unique candidates, {len(kept)} kept "
            f"(min_score={options.min_score})"
        )
        return kept

    def semantic_only(self, query: str, options: RetrievalOptions) -> list[Candidate]:
        """
        Vector-only search: cosine similarity is the score.

        Fetches ``overfetch * limit`` rows so the threshold has material,
        then applies the threshold and the limit.
        """
        logger.info(f"Vector search for '{preview(query)}' (limit={options.limit})")
        fetch = options.limit * self.config.overfetch_factor
        embedding = self._embed(query)
        try:
            rows = self.store.semantic_search(embedding, fetch, options.filters)
        except StoreError as e:
            raise RetrievalUnavailable(f"semantic channel failed: {e}") from e
        candidates = _semantic_candidates(rows)
        return [c for c in candidates if c.relevance_score >= options.min_score][: options.limit]

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "DualChannelRetriever":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
