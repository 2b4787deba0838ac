"""
Citewise Data Schemas
======================

Pydantic v2 models for the data contracts of the retrieval and
answering core:

1. Fragment / Provenance  : immutable stored evidence units
2. Candidate              : a fragment scored for one query
3. Citation / AnswerResult : validated answer output
"""

from citewise.schemas.fragment import (
    Candidate,
    Fragment,
    Provenance,
    RetrievalScores,
)
from citewise.schemas.answer import (
    AnswerMode,
    AnswerOutcome,
    AnswerResult,
    Citation,
)

__all__ = [
    # Evidence
    "Candidate",
    "Fragment",
    "Provenance",
    "RetrievalScores",
    # Answer
    "AnswerMode",
    "AnswerOutcome",
    "AnswerResult",
    "Citation",
]
