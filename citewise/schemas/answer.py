"""
Answer Schemas
===============

Output contracts of the answering engine:

- AnswerMode:    internal (cite anything) / customer (customer-safe only)
- AnswerOutcome: answered / insufficient_evidence / policy_blocked
- Citation:      one Evidence Set entry the answer text actually cites
- AnswerResult:  answer text + ordered citations + policy flags

Invariants:
    - Every Citation.number appears literally as ``[n]`` in answer_text
    - Citations are unique per number and sorted by number
    - outcome != ANSWERED ⟹ citations == []
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from citewise.schemas.fragment import Candidate


class AnswerMode(str, Enum):
    """Audience of an answer; selects the visibility policy."""
    INTERNAL = "internal"
    CUSTOMER = "customer"


class AnswerOutcome(str, Enum):
    """
    How an answer request ended.

    Only ANSWERED involves generation. The other two are successful,
    deterministic "I can't tell you" results, not failures.
    """
    ANSWERED = "answered"
    INSUFFICIENT_EVIDENCE = "insufficient_evidence"
    POLICY_BLOCKED = "policy_blocked"


class Citation(BaseModel):
    """A cited evidence entry. ``number`` is its 1-based Evidence Set position."""
    number: int = Field(ge=1, description="Citation number as it appears in the answer text")
    source_id: str
    content: str
    author: Optional[str] = None
    timestamp: Optional[datetime] = None
    permalink: Optional[str] = None
    is_customer_safe: bool

    @classmethod
    def from_candidate(cls, number: int, candidate: Candidate) -> "Citation":
        prov = candidate.fragment.provenance
        return cls(
            number=number,
            source_id=prov.source_id,
            content=candidate.fragment.content,
            author=prov.author,
            timestamp=prov.timestamp,
            permalink=prov.permalink,
            is_customer_safe=candidate.fragment.is_customer_safe,
        )


class AnswerResult(BaseModel):
    """
    Final answer returned to callers.

    ``can_cite_for_customer`` reports whether any customer-safe evidence
    existed for the query (policy feasibility), not whether this answer
    used it.
    """
    answer_text: str
    citations: list[Citation] = Field(default_factory=list)
    mode: AnswerMode
    can_cite_for_customer: bool
    outcome: AnswerOutcome = AnswerOutcome.ANSWERED

    @model_validator(mode="after")
    def validate_citations(self) -> "AnswerResult":
        """Citations are unique, ordered, and absent for non-answers."""
        numbers = [c.number for c in self.citations]
        if numbers != sorted(set(numbers)):
            raise ValueError(f"Citation numbers must be unique and ascending, got {numbers}")
        if self.outcome != AnswerOutcome.ANSWERED and self.citations:
            raise ValueError(f"{self.outcome.value} results carry no citations")
        return self

    def to_response(self) -> dict[str, Any]:
        """JSON-ready payload for an API layer."""
        return {
            "answer": self.answer_text,
            "mode": self.mode.value,
            "outcome": self.outcome.value,
            "can_cite_for_customer": self.can_cite_for_customer,
            "citations": [c.model_dump(mode="json") for c in self.citations],
        }
