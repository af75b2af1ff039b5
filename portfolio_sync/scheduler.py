"""APScheduler-based recurring sync passes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler

from portfolio_sync.config import SyncConfig
from portfolio_sync.db import Database
from portfolio_sync.orchestrator import SyncSources, run_sync

logger = logging.getLogger("portfolio_sync.scheduler")

JOB_ID = "sync_pass"


def run_scheduled_pass(
    db: Database,
    sources: SyncSources,
    reconcile_stale: bool = False,
) -> Optional[dict[str, int]]:
    """Run one pass; a failure is logged and the schedule carries on."""
    try:
        return run_sync(db, sources, reconcile_stale=reconcile_stale)
    except Exception as exc:
        logger.error(
            "Sync pass failed, retrying at next interval: %s",
            exc,
            extra={"source": getattr(exc, "source", None)},
        )
        return None


def _on_job_event(event) -> None:
    if event.code == EVENT_JOB_MAX_INSTANCES:
        logger.warning("Previous pass still running, skipped a tick")
    elif event.exception is not None:
        logger.error("Job %s raised an exception: %s", event.job_id, event.exception)


def build_scheduler(
    config: SyncConfig,
    db: Database,
    sources: SyncSources,
    scheduler_cls: type[BaseScheduler] = BlockingScheduler,
) -> Optional[BaseScheduler]:
    """Create the scheduler, or return None when there is nothing to schedule.

    The single interval job fires immediately, then every interval_secs.
    max_instances=1 plus coalesce means a tick that arrives while a pass is
    still running is skipped (logged), never run in parallel; the next pass
    starts at the following tick.
    """
    if not config.enabled:
        logger.info("Sync disabled, no scheduler started")
        return None
    if sources.is_empty():
        logger.info("No sync sources configured, no scheduler started")
        return None

    scheduler = scheduler_cls(timezone=timezone.utc)
    scheduler.add_listener(_on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES)
    scheduler.add_job(
        run_scheduled_pass,
        "interval",
        seconds=config.interval_secs,
        args=[db, sources, config.reconcile_stale],
        id=JOB_ID,
        next_run_time=datetime.now(timezone.utc),
        max_instances=1,
        coalesce=True,
        misfire_grace_time=None,
    )
    return scheduler


def start_scheduler(config: SyncConfig, db: Database, sources: SyncSources) -> bool:
    """Build and run the blocking scheduler. Returns False if nothing was started."""
    scheduler = build_scheduler(config, db, sources)
    if scheduler is None:
        return False

    logger.info(
        "Starting scheduler, interval %ds, sources %s",
        config.interval_secs,
        [s.name for s in sources.all()],
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
        if scheduler.running:
            scheduler.shutdown(wait=False)
    return True
