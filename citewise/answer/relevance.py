"""
Relevance Gate
===============

A cheap pre-generation check that the surviving evidence could answer
the question at all. It guards against wholesale topic mismatch (the
fused list always has a top candidate scoring 1.0, relevant or not),
and skips the expensive, hallucination-prone generation call when the
answer is "no".

The judgment is one generation call at temperature 0 over the top
snippets, answered with YES or NO.

Failure handling is explicit: ``judge()`` never raises on a provider
error. It returns a RelevanceJudgment whose ``error`` is set, and
``resolve()`` applies the configured fallback:

    - "irrelevant" (default): treat as NO. Worst case is the same
      conservative "not enough information" answer as empty evidence.
    - "relevant": treat as YES and let generation decide.
    - "raise": propagate as GenerationFailure.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from citewise.answer.llm import GenerationService
from citewise.config import GenerationConfig
from citewise.errors import GenerationFailure
from citewise.schemas.fragment import Candidate
from citewise.utils import truncate_chars

logger = logging.getLogger("citewise.answer.relevance")


RELEVANCE_PROMPT = """Question: {query}

Available context snippets:
{snippets}

Task: Determine if ANY of these context snippets contain information that could help answer the question.

Respond with ONLY "YES" or "NO".

YES = At least one snippet contains relevant information to answer this specific question
NO = None of the snippets are relevant to answering this specific question

Answer:"""

_FIRST_WORD_RE = re.compile(r"\W*(\w+)")


class Verdict(str, Enum):
    RELEVANT = "relevant"
    IRRELEVANT = "irrelevant"


@dataclass(frozen=True)
class RelevanceJudgment:
    """
    Either a verdict from the judge or the error that prevented one.

    Exactly one of ``verdict`` / ``error`` is set.
    """
    verdict: Optional[Verdict] = None
    error: Optional[str] = None
    raw_reply: Optional[str] = None

    def __post_init__(self):
        if (self.verdict is None) == (self.error is None):
            raise ValueError("RelevanceJudgment needs exactly one of verdict or error")

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_verdict(reply: str) -> Verdict:
    """
    Read a YES/NO reply. Anything without a leading YES counts as NO.

    A reply like "NO - none of these say YES" must not pass, so only the
    first word is inspected.
    """
    match = _FIRST_WORD_RE.match(reply)
    return Verdict.RELEVANT if match and match.group(1).upper() == "YES" else Verdict.IRRELEVANT


class RelevanceGate:
    """
    Binary topical-relevance check over an evidence set.

    Usage:
        gate = RelevanceGate(llm, config.generation)
        if not gate.is_relevant(query, evidence):
            return insufficient_answer(...)

    Args:
        llm: Generation service used for the YES/NO judgment.
        config: Generation config (snippet limits, temperature, fallback).
    """

    def __init__(self, llm: GenerationService, config: Optional[GenerationConfig] = None):
        self.llm = llm
        self.config = config or GenerationConfig()

    def build_prompt(self, query: str, evidence: Sequence[Candidate]) -> str:
        cfg = self.config
        snippets = "\n\n".join(
            f"[{i + 1}] {truncate_chars(c.fragment.content, cfg.relevance_snippet_chars)}"
            for i, c in enumerate(evidence[: cfg.relevance_max_snippets])
        )
        return RELEVANCE_PROMPT.format(query=query, snippets=snippets)

    def judge(self, query: str, evidence: Sequence[Candidate]) -> RelevanceJudgment:
        """Ask the judge. Provider failures are returned, not raised."""
        if not evidence:
            return RelevanceJudgment(verdict=Verdict.IRRELEVANT)

        prompt = self.build_prompt(query, evidence)
        try:
            reply = self.llm.generate(prompt, temperature=self.config.judge_temperature)
        except GenerationFailure as e:
            logger.warning(f"Relevance judgment unavailable: {e}")
            return RelevanceJudgment(error=str(e))

        verdict = parse_verdict(reply)
        logger.debug(f"Relevance judgment: {verdict.value} (reply={reply.strip()[:20]!r})")
        return RelevanceJudgment(verdict=verdict, raw_reply=reply)

    def resolve(self, judgment: RelevanceJudgment) -> bool:
        """Turn a judgment into pass/fail using the configured fallback."""
        if judgment.ok:
            return judgment.verdict == Verdict.RELEVANT

        fallback = self.config.judgment_fallback
        if fallback == "raise":
            raise GenerationFailure(f"Relevance judgment failed: {judgment.error}")
        logger.info(f"Relevance judgment errored; applying fallback '{fallback}'")
        return fallback == "relevant"

    def is_relevant(self, query: str, evidence: Sequence[Candidate]) -> bool:
        return self.resolve(self.judge(query, evidence))
