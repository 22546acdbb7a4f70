"""
Command-line tools for inspecting queries, explanations and feedback.

Usage:
    python -m chunk_ranker parse '"exact phrase" author:kim -draft'
    python -m chunk_ranker explain "first chunk text" "second chunk text" --score 0.2
    python -m chunk_ranker feedback stats --db-path ./ragdb
    python -m chunk_ranker feedback prune --db-path ./ragdb --rebuild
"""

import argparse
import json
import sys
from typing import Optional, Sequence

from loguru import logger

from .config import Config, load_settings
from .errors import RankerError
from .explainability import explain_chunk_similarity
from .flywheel import FeedbackStore
from .query import parse_query, to_fts_query, to_semantic_query


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_parse(args: argparse.Namespace) -> int:
    parsed = parse_query(args.query)
    data = parsed.to_dict()
    data["semantic_query"] = to_semantic_query(parsed)
    data["fts_query"] = to_fts_query(parsed)
    _print_json(data)
    return 0


def cmd_explain(args: argparse.Namespace) -> int:
    explanation = explain_chunk_similarity(
        args.source_text,
        args.target_text,
        is_same_document=args.same_doc,
        similarity_score=args.score,
    )
    _print_json(explanation.to_dict())
    return 0


def _load_store(args: argparse.Namespace) -> FeedbackStore:
    settings = load_settings(args.config)
    db_path = args.db_path or settings.db_path
    store = FeedbackStore(settings.flywheel)
    store.load_from_disk(db_path)
    args.db_path = db_path
    return store


def cmd_feedback_stats(args: argparse.Namespace) -> int:
    store = _load_store(args)
    _print_json(store.get_stats())
    return 0


def cmd_feedback_prune(args: argparse.Namespace) -> int:
    store = _load_store(args)
    removed = store.prune_old_events(rebuild=args.rebuild)
    if removed:
        store.save_to_disk(args.db_path)
    _print_json({"removed": removed, **store.get_stats()})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chunk_ranker",
        description="Inspect query parsing, chunk explanations and stored feedback",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Show how a query is parsed")
    parse_cmd.add_argument("query", help="Raw query string")
    parse_cmd.set_defaults(func=cmd_parse)

    explain_cmd = subparsers.add_parser("explain", help="Explain why two chunks are related")
    explain_cmd.add_argument("source_text")
    explain_cmd.add_argument("target_text")
    explain_cmd.add_argument(
        "--same-doc", action="store_true", help="Treat both chunks as from the same document"
    )
    explain_cmd.add_argument(
        "--score", type=float, default=1.0, help="Similarity distance, lower is closer (default: 1.0)"
    )
    explain_cmd.set_defaults(func=cmd_explain)

    feedback_cmd = subparsers.add_parser("feedback", help="Inspect or maintain stored feedback")
    feedback_sub = feedback_cmd.add_subparsers(dest="feedback_command", required=True)

    for name, func, help_text in (
        ("stats", cmd_feedback_stats, "Show event and pair counts"),
        ("prune", cmd_feedback_prune, "Drop events older than the retention window"),
    ):
        sub = feedback_sub.add_parser(name, help=help_text)
        sub.add_argument(
            "--db-path", default=None, help=f"Database directory (default: {Config.DB_PATH})"
        )
        sub.add_argument("--config", default=None, help="YAML settings file")
        sub.set_defaults(func=func)

    feedback_sub.choices["prune"].add_argument(
        "--rebuild", action="store_true", help="Rebuild pin indices after pruning"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except RankerError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
