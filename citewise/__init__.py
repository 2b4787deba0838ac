"""
Citewise: Hybrid Retrieval with Citation-Constrained Answers
==============================================================

Citewise retrieves knowledge fragments from a mixed-provenance corpus
(chat threads, docs, support articles) and answers questions citing
only the sources it actually used, while honoring a binary visibility
policy: internal answers may cite anything, customer answers may cite
customer-safe fragments only.

Architecture Overview:
    Query → [Semantic, Lexical] → RRF Fusion → Visibility → Relevance Gate
          → Citation-Constrained Generation → AnswerResult

Modules:
    - schemas:   Fragment, Candidate, Citation, AnswerResult
    - store:     Evidence store interface (in-memory, Postgres/pgvector)
    - ingest:    Query/document embedding service
    - retrieve:  Dual-channel retrieval + reciprocal rank fusion
    - answer:    Visibility filter, relevance gate, citation reconciliation
    - pipeline:  search() / answer() entry points
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
