"""
Citewise CLI
=============

Command-line interface for searching the knowledge base and asking
citation-constrained questions.

Usage:
    python -m citewise --fragments data/fragments.jsonl search "rollback policy"
    python -m citewise --fragments data/fragments.jsonl ask "How do we roll back?" --answer-mode customer
    python -m citewise schema > schema.sql
"""

from __future__ import annotations

import argparse
import sys

from citewise.config import ExecutionMode, get_config
from citewise.errors import CitewiseError
from citewise.utils import save_json, setup_logging


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="citewise",
        description="Citewise: hybrid retrieval with citation-constrained answers",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config YAML")
    parser.add_argument("--mode", choices=["lite", "full"], default=None, help="Embedding backend")
    parser.add_argument("--fragments", type=str, default=None, help="JSONL fragments (memory backend)")
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ── search ──────────────────────────────────────────────────
    search_parser = subparsers.add_parser("search", help="Search the knowledge base")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--limit", type=int, default=None)
    search_parser.add_argument("--visibility-only", action="store_true", help="Customer-safe only")
    search_parser.add_argument("--source-of-truth-only", action="store_true")
    search_parser.add_argument("--channel", type=str, default=None, help="Restrict to a channel id")
    search_parser.add_argument("--min-similarity", type=float, default=None)
    search_parser.add_argument("--vector-only", action="store_true", help="Disable hybrid fusion")

    # ── ask ─────────────────────────────────────────────────────
    ask_parser = subparsers.add_parser("ask", help="Answer a question with citations")
    ask_parser.add_argument("question", help="Question to answer")
    ask_parser.add_argument("--answer-mode", choices=["internal", "customer"], default="internal")
    ask_parser.add_argument("--limit", type=int, default=None)
    ask_parser.add_argument("--min-similarity", type=float, default=None)
    ask_parser.add_argument("--vector-only", action="store_true", help="Disable hybrid fusion")
    ask_parser.add_argument("--output", type=str, default=None, help="Output JSON path")

    # ── schema ──────────────────────────────────────────────────
    subparsers.add_parser("schema", help="Print the Postgres schema DDL")

    args = parser.parse_args(argv)

    config = get_config(args.config)
    setup_logging(level="DEBUG" if args.verbose else config.log_level, format_style=config.log_format)

    if args.mode:
        config.mode = ExecutionMode(args.mode)
    if args.fragments:
        config.store.backend = "memory"
        config.store.fragments_path = args.fragments

    try:
        if args.command == "search":
            cmd_search(args, config)
        elif args.command == "ask":
            cmd_ask(args, config)
        elif args.command == "schema":
            cmd_schema()
        else:
            parser.print_help()
            sys.exit(1)
    # ValueError covers bad input: an empty query, a malformed fragments file
    except (CitewiseError, ValueError) as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(2)


def cmd_search(args, config):
    """Run search() and print ranked hits."""
    from citewise.pipeline import KnowledgePipeline, SearchOptions

    pipeline = KnowledgePipeline.from_config(config)
    try:
        hits = pipeline.search(
            args.query,
            SearchOptions(
                limit=args.limit,
                visibility_only=args.visibility_only,
                source_of_truth_only=args.source_of_truth_only,
                channel_id=args.channel,
                min_similarity=args.min_similarity,
                use_hybrid=False if args.vector_only else None,
            ),
        )
    finally:
        pipeline.close()

    print(f"\nQuery: {args.query}")
    print(f"Results: {len(hits)}\n")
    for rank, hit in enumerate(hits, start=1):
        row = hit.to_search_result()
        flags = "customer-safe" if row["is_customer_safe"] else "internal"
        if row["is_source_of_truth"]:
            flags += ", source-of-truth"
        print(f"  {rank:>2}. [{row['similarity']:.3f}] {row['source_id']} ({flags})")
        print(f"      {row['content'][:120]}")


def cmd_ask(args, config):
    """Run answer() and print the answer with its citations."""
    from citewise.pipeline import AnswerOptions, KnowledgePipeline

    pipeline = KnowledgePipeline.from_config(config)
    try:
        result = pipeline.answer(
            args.question,
            AnswerOptions(
                mode=args.answer_mode,
                limit=args.limit,
                min_similarity=args.min_similarity,
                use_hybrid=False if args.vector_only else None,
            ),
        )
    finally:
        pipeline.close()

    print(f"\nQuestion: {args.question}")
    print(f"Mode: {result.mode.value} | Outcome: {result.outcome.value}")
    print(f"Can cite for customer: {result.can_cite_for_customer}\n")
    print(result.answer_text)

    if result.citations:
        print("\nSources:")
        for cite in result.citations:
            where = cite.permalink or cite.source_id
            by = f" by {cite.author}" if cite.author else ""
            print(f"  [{cite.number}] {where}{by}")

    if args.output:
        payload = {"question": args.question, **result.to_response()}
        path = save_json(payload, args.output)
        print(f"\n  Results saved to {path}")


def cmd_schema():
    """Print the evidence store DDL."""
    from importlib import resources

    print(resources.files("citewise.store").joinpath("schema.sql").read_text(encoding="utf-8"))


if __name__ == "__main__":
    main()
