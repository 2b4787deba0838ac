"""
Evidence store backends. The Postgres backend is imported lazily
(``citewise.store.postgres``) so SQLAlchemy stays optional.
"""

from citewise.store.base import EvidenceStore, ScoredFragment, SearchFilters
from citewise.store.memory import InMemoryEvidenceStore

__all__ = [
    "EvidenceStore",
    "InMemoryEvidenceStore",
    "ScoredFragment",
    "SearchFilters",
]
