"""
Answer Engine
==============

Post-retrieval answering pipeline over an already fused, thresholded
candidate list. Stages run strictly in order and each produces a named
intermediate result:

    candidates ──(empty?)──────────────→ INSUFFICIENT_EVIDENCE
        │
    VisibilityFilter → VisibilityDecision ──(blocked?)──→ POLICY_BLOCKED
        │
    RelevanceGate → RelevanceJudgment ──(not relevant?)──→ INSUFFICIENT_EVIDENCE
        │
    CitationConstrainedGenerator → GeneratedAnswer ──→ ANSWERED

Precedence is fixed: visibility runs on the whole list before the
relevance gate sees what remains, so an empty customer-safe set is
always reported as policy, never as irrelevance.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from citewise.answer.generator import CitationConstrainedGenerator
from citewise.answer.llm import GenerationService
from citewise.answer.relevance import RelevanceGate
from citewise.answer.visibility import VisibilityFilter
from citewise.config import GenerationConfig
from citewise.schemas.answer import AnswerMode, AnswerOutcome, AnswerResult
from citewise.schemas.fragment import Candidate
from citewise.utils import preview

logger = logging.getLogger("citewise.answer.engine")


NO_EVIDENCE_MESSAGE = (
    "I don't have enough information in the knowledge base to answer this question. "
    "Please try rephrasing your question or check if the information has been added "
    "to the system."
)
IRRELEVANT_EVIDENCE_MESSAGE = (
    "I don't have enough information in the knowledge base to answer this question."
)
INTERNAL_ONLY_MESSAGE = (
    "I found some information, but it's marked as internal-only and cannot be shared "
    "with customers. Please consider creating an approved knowledge article or contact "
    "the internal team for this information."
)


class AnswerEngine:
    """
    Visibility → relevance → citation-constrained generation.

    Usage:
        engine = AnswerEngine.from_llm(llm, config.generation)
        result = engine.answer("How do refunds work?", candidates, AnswerMode.CUSTOMER)

    Args:
        visibility: Visibility filter.
        gate: Relevance gate.
        generator: Citation-constrained generator.
    """

    def __init__(
        self,
        visibility: VisibilityFilter,
        gate: RelevanceGate,
        generator: CitationConstrainedGenerator,
    ):
        self.visibility = visibility
        self.gate = gate
        self.generator = generator

    @classmethod
    def from_llm(
        cls, llm: GenerationService, config: Optional[GenerationConfig] = None
    ) -> "AnswerEngine":
        """Wire all stages to one generation service."""
        config = config or GenerationConfig()
        return cls(
            visibility=VisibilityFilter(),
            gate=RelevanceGate(llm, config),
            generator=CitationConstrainedGenerator(llm, config),
        )

    @staticmethod
    def _fixed(
        message: str, mode: AnswerMode, outcome: AnswerOutcome, can_cite: bool = False
    ) -> AnswerResult:
        return AnswerResult(
            answer_text=message,
            citations=[],
            mode=mode,
            can_cite_for_customer=can_cite,
            outcome=outcome,
        )

    def answer(
        self,
        query: str,
        candidates: Sequence[Candidate],
        mode: AnswerMode = AnswerMode.INTERNAL,
    ) -> AnswerResult:
        """
        Answer ``query`` from ``candidates`` under ``mode``.

        Raises:
            GenerationFailure: If generation fails, or the relevance
                judgment fails under the "raise" fallback.
        """
        mode = AnswerMode(mode)

        # ── Stage 0: nothing retrieved ─────────────────────────────
        if not candidates:
            logger.info(f"No evidence for '{preview(query)}'")
            return self._fixed(NO_EVIDENCE_MESSAGE, mode, AnswerOutcome.INSUFFICIENT_EVIDENCE)

        # ── Stage 1: visibility ────────────────────────────────────
        decision = self.visibility.apply(candidates, mode)
        if decision.blocked:
            logger.info(
                f"Policy blocked '{preview(query)}': all {decision.withheld} "
                f"candidate(s) are internal-only"
            )
            return self._fixed(INTERNAL_ONLY_MESSAGE, mode, AnswerOutcome.POLICY_BLOCKED)

        # ── Stage 2: relevance ─────────────────────────────────────
        judgment = self.gate.judge(query, decision.evidence)
        if not self.gate.resolve(judgment):
            logger.info(f"Relevance gate rejected evidence for '{preview(query)}'")
            return self._fixed(
                IRRELEVANT_EVIDENCE_MESSAGE,
                mode,
                AnswerOutcome.INSUFFICIENT_EVIDENCE,
                can_cite=decision.can_cite_for_customer,
            )

        # ── Stage 3: generation + citation reconciliation ──────────
        generated = self.generator.generate(query, decision.evidence, mode)
        return AnswerResult(
            answer_text=generated.answer_text,
            citations=generated.citations,
            mode=mode,
            can_cite_for_customer=decision.can_cite_for_customer,
            outcome=AnswerOutcome.ANSWERED,
        )
