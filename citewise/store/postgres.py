"""
Postgres Evidence Store
========================

Evidence store over the ``knowledge_chunks`` table (see schema.sql):

- Semantic channel: pgvector cosine distance (``embedding <=> :query``)
- Lexical channel: ``ts_rank`` over the generated ``content_tsv`` column
  matched with ``plainto_tsquery``

Filters are compiled into the WHERE clause of both queries, so they
apply before ORDER BY / LIMIT. Every query checks a connection out of
the SQLAlchemy pool and returns it; no session or transaction spans
more than one query.

Usage:
    store = PostgresEvidenceStore.from_url("postgresql+psycopg://...")
    rows = store.lexical_search("rollback policy", limit=10, filters=SearchFilters())
"""

from __future__ import annotations

import logging
from importlib import resources
from typing import Any, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from citewise.errors import StoreError
from citewise.schemas.fragment import Fragment, Provenance
from citewise.store.base import ScoredFragment, SearchFilters

logger = logging.getLogger("citewise.store.postgres")

_COLUMNS = """
    id, content, source_type, source_id, channel_id, thread_ts, author,
    timestamp, permalink, is_source_of_truth, is_customer_safe, metadata
"""


def load_schema_sql() -> str:
    """DDL for the knowledge_chunks table and its indexes."""
    return resources.files("citewise.store").joinpath("schema.sql").read_text(encoding="utf-8")


def vector_literal(embedding: Sequence[float]) -> str:
    """Text form pgvector accepts for ``CAST(... AS vector)``."""
    return "[" + ",".join(f"{float(v):.8f}" for v in embedding) + "]"


def filter_clauses(filters: SearchFilters) -> tuple[list[str], dict[str, Any]]:
    """Compile SearchFilters into AND-ed SQL predicates and bind params."""
    clauses: list[str] = []
    params: dict[str, Any] = {}
    if filters.customer_safe_only:
        clauses.append("is_customer_safe = true")
    if filters.source_of_truth_only:
        clauses.append("is_source_of_truth = true")
    if filters.channel_id is not None:
        clauses.append("channel_id = :channel_id")
        params["channel_id"] = filters.channel_id
    return clauses, params


def row_to_fragment(row: Any) -> Fragment:
    """Map a result row (mapping) onto a Fragment. Vectors are not hydrated."""
    return Fragment(
        id=row["id"],
        content=row["content"],
        provenance=Provenance(
            source_type=row["source_type"],
            source_id=row["source_id"],
            channel_id=row["channel_id"],
            thread_id=row["thread_ts"],
            author=row["author"],
            timestamp=row["timestamp"],
            permalink=row["permalink"],
            metadata=row["metadata"] or {},
        ),
        is_source_of_truth=bool(row["is_source_of_truth"]),
        is_customer_safe=bool(row["is_customer_safe"]),
    )


class PostgresEvidenceStore:
    """
    Read-only evidence store on PostgreSQL with pgvector.

    Args:
        engine: SQLAlchemy engine (owns the connection pool).
        text_search_config: Postgres text search configuration; must match
            the one used by the generated ``content_tsv`` column.
    """

    def __init__(self, engine: Engine, text_search_config: str = "english"):
        self.engine = engine
        self.text_search_config = text_search_config

    @classmethod
    def from_url(
        cls,
        database_url: str,
        pool_size: int = 5,
        text_search_config: str = "english",
    ) -> "PostgresEvidenceStore":
        engine = create_engine(database_url, pool_size=pool_size, pool_pre_ping=True)
        return cls(engine, text_search_config=text_search_config)

    def _fetch(self, sql: str, params: dict[str, Any], channel: str) -> list[ScoredFragment]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(text(sql), params).mappings().all()
        except SQLAlchemyError as e:
            raise StoreError(f"{channel} query failed: {e}") from e
        return [(row_to_fragment(row), float(row["score"] or 0.0)) for row in rows]

    def semantic_search(
        self,
        embedding: Sequence[float],
        limit: int,
        filters: SearchFilters,
    ) -> list[ScoredFragment]:
        clauses, params = filter_clauses(filters)
        where = " AND ".join(["embedding IS NOT NULL", *clauses])
        sql = f"""
            SELECT {_COLUMNS},
                   1 - (embedding <=> CAST(:query_embedding AS vector)) AS score
            FROM knowledge_chunks
            WHERE {where}
            ORDER BY embedding <=> CAST(:query_embedding AS vector)
            LIMIT :limit
        """
        params.update(query_embedding=vector_literal(embedding), limit=limit)
        results = self._fetch(sql, params, "semantic")
        logger.debug(f"Semantic query returned {len(results)} rows")
        return results

    def lexical_search(
        self,
        query: str,
        limit: int,
        filters: SearchFilters,
    ) -> list[ScoredFragment]:
        clauses, params = filter_clauses(filters)
        where = " AND ".join(
            ["content_tsv @@ plainto_tsquery(CAST(:ts_config AS regconfig), :query)", *clauses]
        )
        sql = f"""
            SELECT {_COLUMNS},
                   ts_rank(content_tsv, plainto_tsquery(CAST(:ts_config AS regconfig), :query)) AS score
            FROM knowledge_chunks
            WHERE {where}
            ORDER BY score DESC, id
            LIMIT :limit
        """
        params.update(query=query, ts_config=self.text_search_config, limit=limit)
        results = self._fetch(sql, params, "lexical")
        logger.debug(f"Lexical query returned {len(results)} rows")
        return results

    def close(self) -> None:
        """Dispose of the connection pool."""
        self.engine.dispose()
