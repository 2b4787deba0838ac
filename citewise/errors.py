"""
Citewise Error Taxonomy
========================

Genuine failures are exceptions and propagate to the caller unchanged.
Domain outcomes (no evidence, policy-blocked evidence, irrelevant
evidence) are NOT exceptions: they are well-formed AnswerResults with
``outcome`` set accordingly (see citewise.schemas.answer).

Hierarchy:
    CitewiseError
    ├── EmbeddingError        embedding provider failed
    ├── StoreError            evidence store query failed
    ├── RetrievalUnavailable  retrieval as a whole failed (fail-closed)
    └── GenerationFailure     language-generation call failed
"""

from __future__ import annotations


class CitewiseError(Exception):
    """Base class for all Citewise failures."""


class EmbeddingError(CitewiseError):
    """The embedding service could not produce a vector."""


class StoreError(CitewiseError):
    """The evidence store could not answer a query."""


class RetrievalUnavailable(CitewiseError):
    """
    Retrieval failed and no partial result is returned.

    Raised when the query embedding cannot be computed, when a channel's
    store query fails under the 'fail' partial-channel policy, or when
    the channels miss their deadline.
    """


class GenerationFailure(CitewiseError):
    """
    The generation service failed or returned an unusable response.

    No answer is synthesized from raw evidence as a fallback, since such
    an answer would bypass citation reconciliation.
    """
