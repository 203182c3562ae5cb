"""
Command-line interface for a tiered memory store.

Usage:
    tiered-memory stats
    tiered-memory insert "User prefers morning meetings" --category core --importance 0.9
    tiered-memory search "When does the user like meetings?" --strategy hierarchical
    tiered-memory consolidate
    tiered-memory cleanup --days 30
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .config import MemorySettings, get_settings
from .errors import StorageError
from .formatting import compile_context
from .manager import TierManager
from .schemas import MemoryCategory, OperationResult, SearchParams, SearchStrategy

logger = logging.getLogger(__name__)


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def similarity(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}")
    if not -1.0 <= number <= 1.0:
        raise argparse.ArgumentTypeError(f"must be between -1 and 1, got {number}")
    return number


def non_negative_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}")
    if not number >= 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {number}")
    return number


def _result_payload(result: OperationResult) -> dict:
    payload = {
        "success": result.success,
        "message": result.message,
    }
    if result.error is not None:
        payload["error"] = result.error.value
    return payload


async def _run(args: argparse.Namespace, settings: MemorySettings) -> int:
    manager = TierManager.from_settings(settings)
    try:
        await manager.load_from_store()

        if args.command == "stats":
            stats = await manager.stats()
            if args.json:
                print(json.dumps({**stats.model_dump(), "total": stats.total}, indent=2))
            else:
                print(compile_context(manager))
            return 0

        if args.command == "insert":
            result = await manager.insert(
                args.content,
                args.category,
                importance=args.importance,
            )
            payload = _result_payload(result)
            if result.data and result.data.get("record") is not None:
                payload["id"] = result.data["record"].id
            print(json.dumps(payload, indent=2) if args.json else result.message)
            return 0 if result.success else 1

        if args.command == "search":
            params = SearchParams(
                query=args.query,
                category=MemoryCategory(args.category) if args.category else None,
                limit=args.limit,
                strategy=SearchStrategy(args.strategy),
                min_similarity=args.min_similarity,
            )
            result = await manager.search(params)
            if args.json:
                payload = _result_payload(result)
                payload["results"] = [
                    {
                        "id": hit.item.id,
                        "category": hit.item.category.value,
                        "score": round(hit.score, 4),
                        "content": hit.item.content,
                    }
                    for hit in result.data
                ]
                print(json.dumps(payload, indent=2))
            else:
                print(result.message)
                for hit in result.data:
                    print(f"  {hit.score:.3f} [{hit.item.category.value}] {hit.item.content}")
            return 0 if result.success else 1

        if args.command == "consolidate":
            if not args.force and not manager.should_consolidate():
                print("Working memory does not need consolidation")
                return 0
            result = await manager.consolidate()
            print(json.dumps(_result_payload(result), indent=2) if args.json else result.message)
            return 0 if result.success else 1

        if args.command == "cleanup":
            result = await manager.cleanup_archival(
                threshold_days=args.days,
                keep_importance_above=args.keep_above,
            )
            payload = _result_payload(result)
            if result.data:
                payload.update(result.data)
            print(json.dumps(payload, indent=2) if args.json else result.message)
            return 0 if result.success else 1

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        manager.repository.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tiered-memory",
        description="Inspect and maintain a tiered memory store",
    )
    parser.add_argument("--db", help="SQLite database path (overrides MEMORY_DB_PATH)")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("stats", help="Show tier occupancy and a memory overview")

    insert = commands.add_parser("insert", help="Store a new memory")
    insert.add_argument("content", help="Memory text")
    insert.add_argument(
        "--category",
        "-c",
        default=MemoryCategory.WORKING.value,
        choices=[c.value for c in MemoryCategory],
        help="Target tier (default: working)",
    )
    insert.add_argument("--importance", "-i", type=float, default=0.5, help="Importance in [0, 1]")

    search = commands.add_parser("search", help="Similarity search over stored memories")
    search.add_argument("query", help="Search text")
    search.add_argument(
        "--category",
        "-c",
        choices=[c.value for c in MemoryCategory],
        help="Restrict a single-category search to one tier",
    )
    search.add_argument("--limit", "-k", type=positive_int, default=5, help="Maximum results")
    search.add_argument(
        "--strategy",
        default=SearchStrategy.SINGLE_CATEGORY.value,
        choices=[s.value for s in SearchStrategy],
        help="Search one tier or walk core, working, archival in order",
    )
    search.add_argument("--min-similarity", type=similarity, help="Similarity floor")

    consolidate = commands.add_parser("consolidate", help="Compress working memory")
    consolidate.add_argument(
        "--force",
        action="store_true",
        help="Consolidate even when the capacity threshold is not reached",
    )

    cleanup = commands.add_parser("cleanup", help="Delete old, unimportant archival memories")
    cleanup.add_argument(
        "--days",
        type=non_negative_float,
        default=30,
        help="Minimum age in days (default: 30)",
    )
    cleanup.add_argument(
        "--keep-above",
        type=float,
        default=0.7,
        help="Keep memories more important than this (default: 0.7)",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.db:
        settings = settings.model_copy(update={"db_path": args.db})

    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        logger.info("Cancelled")
        return 2
    except StorageError as e:
        logger.error(f"Memory store unavailable: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
