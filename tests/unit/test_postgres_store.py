"""
Postgres Evidence Store Tests
==============================

SQL construction and row mapping against a mocked SQLAlchemy engine.
No database is required.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

pytest.importorskip("sqlalchemy")

from sqlalchemy.exc import OperationalError

from citewise.errors import StoreError
from citewise.store.base import SearchFilters
from citewise.store.postgres import (
    PostgresEvidenceStore,
    filter_clauses,
    load_schema_sql,
    row_to_fragment,
    vector_literal,
)


def _row(fragment_id: int, score: float, **overrides) -> dict:
    row = {
        "id": fragment_id,
        "content": f"row {fragment_id}",
        "source_type": "slack",
        "source_id": f"msg-{fragment_id}",
        "channel_id": "C-eng",
        "thread_ts": "1700000000.000100",
        "author": "bob",
        "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "permalink": None,
        "is_source_of_truth": False,
        "is_customer_safe": True,
        "metadata": None,
        "score": score,
    }
    row.update(overrides)
    return row


def _mock_engine(rows: list[dict]):
    engine = MagicMock()
    conn = engine.connect.return_value.__enter__.return_value
    conn.execute.return_value.mappings.return_value.all.return_value = rows
    return engine, conn


def _executed(conn) -> tuple[str, dict]:
    clause, params = conn.execute.call_args[0]
    return str(clause), params


class TestHelpers:

    def test_vector_literal(self):
        assert vector_literal([1, 0.5]) == "[1.00000000,0.50000000]"

    def test_no_filters(self):
        assert filter_clauses(SearchFilters()) == ([], {})

    def test_all_filters(self):
        clauses, params = filter_clauses(
            SearchFilters(customer_safe_only=True, source_of_truth_only=True, channel_id="C1")
        )
        assert clauses == [
            "is_customer_safe = true",
            "is_source_of_truth = true",
            "channel_id = :channel_id",
        ]
        assert params == {"channel_id": "C1"}

    def test_row_to_fragment(self):
        fragment = row_to_fragment(_row(5, 0.3, permalink="https://x/p5"))
        assert fragment.id == 5
        assert fragment.provenance.thread_id == "1700000000.000100"
        assert fragment.provenance.metadata == {}
        assert fragment.embedding is None
        assert fragment.is_customer_safe is True

    def test_schema_sql_bundled(self):
        ddl = load_schema_sql()
        assert "knowledge_chunks" in ddl
        assert "content_tsv" in ddl
        assert "vector(" in ddl


class TestSemanticQuery:

    def test_sql_and_params(self):
        engine, conn = _mock_engine([_row(1, 0.91), _row(2, 0.52)])
        store = PostgresEvidenceStore(engine)
        results = store.semantic_search(
            [0.1, 0.2], limit=4, filters=SearchFilters(customer_safe_only=True)
        )

        sql, params = _executed(conn)
        assert "embedding <=> CAST(:query_embedding AS vector)" in sql
        assert "embedding IS NOT NULL AND is_customer_safe = true" in sql
        assert "LIMIT :limit" in sql
        assert params["limit"] == 4
        assert params["query_embedding"].startswith("[0.10000000,")
        assert [(f.id, s) for f, s in results] == [(1, 0.91), (2, 0.52)]


class TestLexicalQuery:

    def test_sql_and_params(self):
        engine, conn = _mock_engine([_row(3, 0.07)])
        store = PostgresEvidenceStore(engine, text_search_config="simple")
        results = store.lexical_search(
            "rollback policy", limit=6, filters=SearchFilters(channel_id="C-eng")
        )

        sql, params = _executed(conn)
        assert "content_tsv @@ plainto_tsquery" in sql
        assert "channel_id = :channel_id" in sql
        assert "ORDER BY score DESC, id" in sql
        assert params == {
            "channel_id": "C-eng",
            "query": "rollback policy",
            "ts_config": "simple",
            "limit": 6,
        }
        assert results[0][0].id == 3

    def test_null_score_reads_as_zero(self):
        engine, _ = _mock_engine([_row(3, None)])
        results = PostgresEvidenceStore(engine).lexical_search("x", 1, SearchFilters())
        assert results[0][1] == 0.0


class TestFailures:

    def test_driver_error_becomes_store_error(self):
        engine = MagicMock()
        engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
        store = PostgresEvidenceStore(engine)
        with pytest.raises(StoreError, match="semantic"):
            store.semantic_search([1.0], 3, SearchFilters())

    def test_close_disposes_pool(self):
        engine = MagicMock()
        PostgresEvidenceStore(engine).close()
        engine.dispose.assert_called_once()
