"""
Citewise Pipeline
==================

The surface the core exposes to callers (CLI, an HTTP layer, ...):

    search(query, SearchOptions) -> list[Candidate]
    answer(query, AnswerOptions) -> AnswerResult

Both calls are read-only against the evidence store and idempotent
(given a deterministic generation service).

Usage:
    from citewise.pipeline import KnowledgePipeline

    pipeline = KnowledgePipeline.from_config(config)
    hits = pipeline.search("rollback procedure")
    result = pipeline.answer("How do we roll back?", AnswerOptions(mode="customer"))
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from pydantic import BaseModel, Field

from citewise.answer.engine import AnswerEngine
from citewise.answer.llm import GenerationService, build_generation_service
from citewise.config import CitewiseConfig, get_config
from citewise.ingest.embedder import Embedder, EmbeddingService
from citewise.retrieve.hybrid import DualChannelRetriever, RetrievalOptions
from citewise.schemas.answer import AnswerMode, AnswerResult
from citewise.schemas.fragment import Candidate
from citewise.store.base import EvidenceStore, SearchFilters
from citewise.store.memory import InMemoryEvidenceStore

logger = logging.getLogger("citewise.pipeline")


class SearchOptions(BaseModel):
    """Options for search(). ``None`` falls back to the configured default."""
    limit: Optional[int] = Field(default=None, ge=1)
    visibility_only: bool = Field(default=False, description="Customer-safe fragments only")
    source_of_truth_only: bool = Field(default=False)
    channel_id: Optional[str] = Field(default=None)
    min_similarity: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    use_hybrid: Optional[bool] = Field(default=None)


class AnswerOptions(BaseModel):
    """Options for answer(). ``None`` falls back to the configured default."""
    mode: AnswerMode = Field(default=AnswerMode.INTERNAL)
    limit: Optional[int] = Field(default=None, ge=1)
    min_similarity: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    use_hybrid: Optional[bool] = Field(default=None)


def build_store(config: CitewiseConfig) -> EvidenceStore:
    """Instantiate the configured evidence store backend."""
    sc = config.store
    if sc.backend == "postgres":
        if not sc.database_url:
            raise ValueError("store.database_url is required for the postgres backend")
        from citewise.store.postgres import PostgresEvidenceStore
        return PostgresEvidenceStore.from_url(
            sc.database_url,
            pool_size=sc.pool_size,
            text_search_config=sc.text_search_config,
        )
    if sc.fragments_path:
        return InMemoryEvidenceStore.from_jsonl(sc.fragments_path)
    logger.warning("Memory backend without fragments_path: store is empty")
    return InMemoryEvidenceStore()


class KnowledgePipeline:
    """
    Retrieval + answering entry point.

    Args:
        config: Citewise configuration.
        store: Evidence store.
        embedder: Embedding service for queries.
        llm: Generation service for the relevance gate and answers.
    """

    def __init__(
        self,
        config: CitewiseConfig,
        store: EvidenceStore,
        embedder: EmbeddingService,
        llm: GenerationService,
    ):
        self.config = config
        self.store = store
        self.retriever = DualChannelRetriever(store, embedder, config.retrieval)
        self.engine = AnswerEngine.from_llm(llm, config.generation)

    @classmethod
    def from_config(
        cls,
        config: Optional[CitewiseConfig] = None,
        store: Optional[EvidenceStore] = None,
    ) -> "KnowledgePipeline":
        """Build every collaborator from config (store may be injected)."""
        config = config or get_config()
        return cls(
            config=config,
            store=store if store is not None else build_store(config),
            embedder=Embedder.from_config(config),
            llm=build_generation_service(config),
        )

    def _retrieve(
        self, query: str, limit: int, filters: SearchFilters, min_score: float, use_hybrid: bool
    ) -> list[Candidate]:
        if not query or not query.strip():
            raise ValueError("Query must be a non-empty string")
        options = RetrievalOptions(limit=limit, filters=filters, min_score=min_score)
        if use_hybrid:
            return self.retriever.search(query, options)
        return self.retriever.semantic_only(query, options)

    def search(self, query: str, options: Optional[SearchOptions] = None) -> list[Candidate]:
        """
        Ranked candidates for a query.

        Raises:
            ValueError: On an empty query.
            RetrievalUnavailable: If retrieval fails.
        """
        options = options or SearchOptions()
        rc = self.config.retrieval
        filters = SearchFilters(
            customer_safe_only=options.visibility_only,
            source_of_truth_only=options.source_of_truth_only,
            channel_id=options.channel_id,
        )
        return self._retrieve(
            query,
            limit=options.limit or rc.search_limit,
            filters=filters,
            min_score=rc.min_similarity if options.min_similarity is None else options.min_similarity,
            use_hybrid=rc.use_hybrid if options.use_hybrid is None else options.use_hybrid,
        )

    def answer(self, query: str, options: Optional[AnswerOptions] = None) -> AnswerResult:
        """
        Retrieve, filter by visibility, gate, generate, reconcile citations.

        The first retrieval is unfiltered: the answer engine needs it to
        tell a policy block apart from missing evidence. In customer mode,
        when that list holds internal-only fragments, a second retrieval
        restricted to customer-safe fragments refills the evidence so that
        safe matches ranked below the limit are not lost. If it finds
        nothing, the unfiltered list is kept and the engine reports the
        policy block.

        Raises:
            ValueError: On an empty query.
            RetrievalUnavailable: If retrieval fails.
            GenerationFailure: If generation fails.
        """
        options = options or AnswerOptions()
        rc = self.config.retrieval
        mode = AnswerMode(options.mode)
        limit = options.limit or rc.answer_limit
        min_score = rc.min_similarity if options.min_similarity is None else options.min_similarity
        use_hybrid = rc.use_hybrid if options.use_hybrid is None else options.use_hybrid
        t0 = time.time()

        candidates = self._retrieve(query, limit, SearchFilters(), min_score, use_hybrid)
        if mode == AnswerMode.CUSTOMER and not all(c.is_customer_safe for c in candidates):
            safe = self._retrieve(
                query, limit, SearchFilters(customer_safe_only=True), min_score, use_hybrid
            )
            if safe:
                logger.info(
                    f"Customer mode: {len(safe)} safe candidates replace "
                    f"{len(candidates)} mixed-visibility candidates"
                )
                candidates = safe

        result = self.engine.answer(query, candidates, mode)

        logger.info(
            f"Answer complete: outcome={result.outcome.value} "
            f"citations={len(result.citations)} | {(time.time() - t0) * 1000:.0f}ms"
        )
        return result

    def close(self) -> None:
        self.retriever.close()
        close_store = getattr(self.store, "close", None)
        if close_store is not None:
            close_store()
