"""
In-Memory Evidence Store
=========================

Evidence store for development, tests, and small corpora loaded from a
JSONL export of the ingestion side.

- Semantic channel: numpy brute-force cosine similarity
- Lexical channel: BM25 via rank_bm25, over a token index built once
  at load time (stored content is never re-tokenized per query)

Both channels mask by SearchFilters before sorting, so filtering
happens ahead of ranking and truncation exactly as a SQL WHERE would.

Data Flow:
    JSONL / Fragments → add_many() → token index + vector matrix → queries
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import numpy as np

from citewise.errors import StoreError
from citewise.schemas.fragment import Fragment, Provenance
from citewise.store.base import ScoredFragment, SearchFilters
from citewise.utils import iter_jsonl

logger = logging.getLogger("citewise.store.memory")

_TOKEN_RE = re.compile(r"[a-z0-9]+")

# Small English stop list so that function words don't make every
# fragment a lexical match.
STOPWORDS = frozenset(
    "a an and are as at be by can do does for from how i in is it its of on or "
    "our that the this to was we what when where which who why will with you your".split()
)


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric tokens with stopwords removed."""
    return [t for t in _TOKEN_RE.findall(text.lower()) if t not in STOPWORDS]


def fragment_from_record(record: dict[str, Any]) -> Fragment:
    """
    Build a Fragment from a flat export row.

    Accepts the column names of the ``knowledge_chunks`` table
    (``thread_ts`` maps to ``thread_id``) or an already nested
    ``provenance`` object.
    """
    if "provenance" in record:
        return Fragment.model_validate(record)
    return Fragment(
        id=record["id"],
        content=record["content"],
        embedding=record.get("embedding"),
        provenance=Provenance(
            source_type=record.get("source_type", "unknown"),
            source_id=record["source_id"],
            channel_id=record.get("channel_id"),
            thread_id=record.get("thread_id", record.get("thread_ts")),
            author=record.get("author"),
            timestamp=record.get("timestamp"),
            permalink=record.get("permalink"),
            metadata=record.get("metadata") or {},
        ),
        is_source_of_truth=record.get("is_source_of_truth", False),
        is_customer_safe=record.get("is_customer_safe", False),
    )


def _build_vectors(fragments: list[Fragment]) -> tuple[list[int], Optional[np.ndarray]]:
    """Row positions of embedded fragments and their L2-normalized matrix."""
    rows = [i for i, f in enumerate(fragments) if f.has_embedding]
    if not rows:
        return [], None
    dims = {len(fragments[i].embedding) for i in rows}
    if len(dims) != 1:
        raise ValueError(f"Fragments have mixed embedding dimensions: {sorted(dims)}")
    matrix = np.array([fragments[i].embedding for i in rows], dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    return rows, matrix / np.maximum(norms, 1e-12)


class InMemoryEvidenceStore:
    """
    Evidence store backed by Python lists and a numpy matrix.

    Usage:
        store = InMemoryEvidenceStore()
        store.add_many(fragments)
        store.semantic_search(query_vec, limit=10, filters=SearchFilters())
        store.lexical_search("deploy rollback", limit=10, filters=SearchFilters())
    """

    def __init__(self, fragments: Optional[Iterable[Fragment]] = None):
        self._lock = threading.RLock()
        self._fragments: list[Fragment] = []
        self._ids: set[int] = set()
        self._tokens: list[list[str]] = []
        self._token_sets: list[frozenset[str]] = []
        self._bm25 = None
        self._vector_rows: list[int] = []
        self._vectors: Optional[np.ndarray] = None
        if fragments:
            self.add_many(fragments)

    @classmethod
    def from_jsonl(cls, path: str | Path) -> "InMemoryEvidenceStore":
        """Load fragments from a JSONL export."""
        store = cls(fragment_from_record(r) for r in iter_jsonl(path))
        logger.info(f"Loaded {store.size} fragments from {path}")
        return store

    @property
    def size(self) -> int:
        return len(self._fragments)

    def get(self, fragment_id: int) -> Optional[Fragment]:
        for fragment in self._fragments:
            if fragment.id == fragment_id:
                return fragment
        return None

    def add_many(self, fragments: Iterable[Fragment]) -> None:
        """
        Add fragments and rebuild both indices.

        Raises:
            ValueError: On a duplicate id or mismatched embedding dimension.
        """
        from rank_bm25 import BM25Okapi

        with self._lock:
            # Build on copies, swap in at the end: readers keep a consistent
            # snapshot and a failed load leaves the store unchanged
            all_fragments = list(self._fragments)
            ids = set(self._ids)
            tokens = list(self._tokens)
            for fragment in fragments:
                if fragment.id in ids:
                    raise ValueError(f"Duplicate fragment id {fragment.id}")
                ids.add(fragment.id)
                all_fragments.append(fragment)
                tokens.append(tokenize(fragment.content))

            vector_rows, vectors = _build_vectors(all_fragments)
            # BM25Okapi averages idf over the vocabulary; no tokens means no index
            bm25 = BM25Okapi(tokens) if any(tokens) else None

            self._fragments = all_fragments
            self._ids = ids
            self._tokens = tokens
            self._token_sets = [frozenset(t) for t in tokens]
            self._bm25 = bm25
            self._vector_rows, self._vectors = vector_rows, vectors

        logger.debug(f"Indexed {self.size} fragments ({len(self._vector_rows)} embedded)")

    def semantic_search(
        self,
        embedding: Sequence[float],
        limit: int,
        filters: SearchFilters,
    ) -> list[ScoredFragment]:
        with self._lock:
            vectors, rows, fragments = self._vectors, self._vector_rows, self._fragments
        if vectors is None or limit <= 0:
            return []

        query = np.asarray(embedding, dtype=np.float32).reshape(-1)
        if query.shape[0] != vectors.shape[1]:
            raise StoreError(
                f"Query embedding has dimension {query.shape[0]}, "
                f"store holds dimension {vectors.shape[1]}"
            )
        query = query / max(float(np.linalg.norm(query)), 1e-12)

        similarities = vectors @ query
        allowed = [j for j, row in enumerate(rows) if filters.matches(fragments[row])]
        # Stable sort keeps insertion order among equal similarities
        allowed.sort(key=lambda j: -similarities[j])
        return [(fragments[rows[j]], float(similarities[j])) for j in allowed[:limit]]

    def lexical_search(
        self,
        query: str,
        limit: int,
        filters: SearchFilters,
    ) -> list[ScoredFragment]:
        with self._lock:
            bm25, fragments, token_sets = self._bm25, self._fragments, self._token_sets
        query_tokens = tokenize(query)
        if bm25 is None or not query_tokens or limit <= 0:
            return []

        wanted = set(query_tokens)
        scores = bm25.get_scores(query_tokens)
        matched = [
            i for i, fragment in enumerate(fragments)
            if token_sets[i] & wanted and filters.matches(fragment)
        ]
        matched.sort(key=lambda i: -scores[i])
        return [(fragments[i], float(scores[i])) for i in matched[:limit]]
