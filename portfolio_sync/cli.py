"""CLI entry point: sync, scheduler, status."""

from __future__ import annotations

import argparse
import logging
import os
import sys

from portfolio_sync.config import load_config
from portfolio_sync.db import Database
from portfolio_sync.errors import SyncError
from portfolio_sync.logging_config import configure_logging
from portfolio_sync.orchestrator import run_sync
from portfolio_sync.sources import SOURCE_CHOICES, build_sources

logger = logging.getLogger("portfolio_sync.cli")


def cmd_sync(args: argparse.Namespace) -> int:
    """Run a single pass for all sources, or just one."""
    config = load_config()
    only = None if args.source == "all" else args.source
    sources = build_sources(config, only=only)
    if sources.is_empty():
        logger.warning("No sync sources configured, nothing to do")
        return 0

    try:
        db = Database(config.database)
    except SyncError as exc:
        logger.error("Database unavailable: %s", exc)
        return 1

    try:
        results = run_sync(
            db, sources, reconcile_stale=args.reconcile or config.sync.reconcile_stale
        )
    except SyncError as exc:
        logger.error("Sync pass failed: %s", exc, extra={"source": exc.source})
        return 1
    finally:
        db.close()

    logger.info("Sync results: %s", results)
    return 0


def cmd_scheduler(args: argparse.Namespace) -> int:
    """Run a pass now, then one every SYNC_INTERVAL_SECS, until interrupted."""
    from portfolio_sync.scheduler import start_scheduler

    config = load_config()
    sources = build_sources(config)
    if not config.sync.enabled or sources.is_empty():
        # Nothing to schedule; avoid opening a connection pool
        start_scheduler(config.sync, None, sources)
        return 0

    try:
        db = Database(config.database)
    except SyncError as exc:
        logger.error("Database unavailable: %s", exc)
        return 1
    try:
        start_scheduler(config.sync, db, sources)
    finally:
        db.close()
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show recent sync runs."""
    config = load_config()
    try:
        db = Database(config.database)
    except SyncError as exc:
        logger.error("Database unavailable: %s", exc)
        return 1

    try:
        runs = db.get_recent_runs(
            source=args.source if args.source != "all" else None,
            limit=args.limit,
        )
        if not runs:
            print("No sync runs found.")
            return 0

        fmt = "{:<36}  {:<14}  {:<8}  {:<20}  {:<20}  {:>8}  {:>7}  {}"
        print(fmt.format(
            "RUN ID", "SOURCE", "STATUS", "STARTED", "FINISHED",
            "UPSERTED", "DELETED", "ERROR",
        ))
        print("-" * 140)
        for r in runs:
            started = str(r["started_at"])[:19] if r["started_at"] else ""
            finished = str(r["finished_at"])[:19] if r["finished_at"] else ""
            error = (r.get("error_message") or "")[:40]
            print(fmt.format(
                str(r["id"])[:36],
                r["source"],
                r["status"],
                started,
                finished,
                r.get("records_upserted") or 0,
                r.get("records_deleted") or 0,
                error,
            ))
    finally:
        db.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portfolio-sync",
        description="Sync repositories, packages and contributions into PostgreSQL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    choices = ["all", *SOURCE_CHOICES]

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Run one sync pass")
    sync_parser.add_argument(
        "--source", "-s",
        choices=choices,
        default="all",
        help="Source to sync (default: all)",
    )
    sync_parser.add_argument(
        "--reconcile",
        action="store_true",
        help="Delete stored repositories a forge no longer lists",
    )
    sync_parser.set_defaults(func=cmd_sync)

    # scheduler command
    sched_parser = subparsers.add_parser("scheduler", help="Start the recurring sync loop")
    sched_parser.set_defaults(func=cmd_scheduler)

    # status command
    status_parser = subparsers.add_parser("status", help="Show recent sync runs")
    status_parser.add_argument(
        "--source", "-s",
        choices=choices,
        default="all",
        help="Filter by source",
    )
    status_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=10,
        help="Number of runs to show (default: 10)",
    )
    status_parser.set_defaults(func=cmd_status)
    return parser


def main() -> None:
    """Main CLI entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    args = build_parser().parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
