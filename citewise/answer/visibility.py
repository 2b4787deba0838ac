"""
Visibility Filter
==================

Enforces the internal/customer contract on the fused, thresholded
candidate list before anything is shown to generation.

Modes:
    - INTERNAL: no filtering; can_cite_for_customer is always True
    - CUSTOMER: keep is_customer_safe fragments only;
                can_cite_for_customer = "the pre-filter list held at
                least one customer-safe fragment"

A CUSTOMER request whose non-empty candidate list filters down to
nothing is BLOCKED: the caller returns the fixed internal-only answer.
An empty input list is never blocked; that case is "no evidence".

Pure, deterministic logic. No LLM calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from citewise.schemas.answer import AnswerMode
from citewise.schemas.fragment import Candidate

logger = logging.getLogger("citewise.answer.visibility")


@dataclass(frozen=True)
class VisibilityDecision:
    """
    Outcome of the visibility stage.

    Attributes:
        mode: The mode the decision was made for.
        evidence: Candidates allowed through, in input order.
        can_cite_for_customer: Policy feasibility flag for the result.
        blocked: True iff filtering removed every (non-zero) candidate.
        withheld: Number of candidates removed by the filter.
    """
    mode: AnswerMode
    evidence: list[Candidate] = field(default_factory=list)
    can_cite_for_customer: bool = False
    blocked: bool = False
    withheld: int = 0


class VisibilityFilter:
    """Applies the visibility policy for a given answer mode."""

    def apply(self, candidates: Sequence[Candidate], mode: AnswerMode) -> VisibilityDecision:
        if mode == AnswerMode.INTERNAL:
            return VisibilityDecision(
                mode=mode,
                evidence=list(candidates),
                can_cite_for_customer=True,
            )

        safe = [c for c in candidates if c.is_customer_safe]
        withheld = len(candidates) - len(safe)
        blocked = bool(candidates) and not safe
        if withheld:
            logger.info(
                f"Customer mode: withheld {withheld} internal-only candidate(s), "
                f"{len(safe)} remain"
            )
        return VisibilityDecision(
            mode=mode,
            evidence=safe,
            can_cite_for_customer=bool(safe),
            blocked=blocked,
            withheld=withheld,
        )
