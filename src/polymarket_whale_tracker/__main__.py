"""Command-line entry point.

Usage:
    python -m polymarket_whale_tracker run
    python -m polymarket_whale_tracker --log-level DEBUG --dry-run run
    python -m polymarket_whale_tracker init-db
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from polymarket_whale_tracker.config import Settings, get_settings
from polymarket_whale_tracker.pipeline import Pipeline
from polymarket_whale_tracker.storage.database import DatabaseManager

logger = logging.getLogger("polymarket_whale_tracker")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket-whale-tracker",
        description="Detect whale trades on Polymarket in real time.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override LOG_LEVEL",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Classify and log whales without persisting or broadcasting them",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Run the tracking pipeline until interrupted")
    sub.add_parser("init-db", help="Create the database schema")
    return parser


async def _run(settings: Settings, *, dry_run: bool) -> None:
    pipeline = Pipeline(settings, dry_run=dry_run or None)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, pipeline.request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support.
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(pipeline.request_stop))

    await pipeline.run()
    stats = pipeline.stats
    logger.info(
        "Processed %d trades (%d duplicates, %d whales emitted, %d errors)",
        stats.trades_processed,
        stats.duplicates,
        stats.alerts_emitted,
        stats.errors,
    )


async def _init_db(settings: Settings) -> None:
    if not settings.database.enabled:
        raise SystemExit("DATABASE_URL is not set")
    db = DatabaseManager(settings.database.url)
    try:
        await db.init_schema_async()
    finally:
        await db.dispose_async()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    level = getattr(logging, args.log_level) if args.log_level else settings.get_logging_level()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger.debug("Settings: %s", settings.redacted_summary())

    if args.command == "init-db":
        asyncio.run(_init_db(settings))
        return 0

    asyncio.run(_run(settings, dry_run=args.dry_run))
    return 0


if __name__ == "__main__":
    sys.exit(main())
