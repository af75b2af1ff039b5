"""One synchronization pass across every configured source.

Phases run in a fixed order (forges, registries, contributions), one source at
a time. The first failure stops the pass and is re-raised; whatever earlier
sources already upserted stays committed.
"""

from __future__ import annotations

import logging
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from portfolio_sync.base_source import BaseSource
from portfolio_sync.db import Database
from portfolio_sync.errors import SyncError
from portfolio_sync.models import FetchedPackage

logger = logging.getLogger("portfolio_sync.orchestrator")


@dataclass
class SyncSources:
    """All configured sources, grouped by phase."""

    forges: list[BaseSource] = field(default_factory=list)
    registries: list[BaseSource] = field(default_factory=list)
    contributions: Optional[BaseSource] = None

    def is_empty(self) -> bool:
        return not self.forges and not self.registries and self.contributions is None

    def all(self) -> list[BaseSource]:
        ordered = [*self.forges, *self.registries]
        if self.contributions is not None:
            ordered.append(self.contributions)
        return ordered


class _Progress:
    """Counts what a phase has written so failures can report it."""

    def __init__(self) -> None:
        self.upserted = 0
        self.deleted = 0


def run_sync(
    db: Database,
    sources: SyncSources,
    reconcile_stale: bool = False,
) -> dict[str, int]:
    """Run one pass. Returns {source_name: records_upserted}."""
    results: dict[str, int] = {}
    started = time.monotonic()

    for forge in sources.forges:
        results[forge.name] = _sync_with_tracking(
            db, forge, lambda p, s=forge: _sync_forge(db, s, p, reconcile_stale)
        )

    for registry in sources.registries:
        results[registry.name] = _sync_with_tracking(
            db, registry, lambda p, s=registry: _sync_registry(db, s, p)
        )

    if sources.contributions is not None:
        contributions = sources.contributions
        results[contributions.name] = _sync_with_tracking(
            db, contributions, lambda p: _sync_contributions(db, contributions, p)
        )

    logger.info(
        "Sync pass complete: %s",
        results,
        extra={
            "records": sum(results.values()),
            "duration_s": round(time.monotonic() - started, 3),
        },
    )
    return results


def _sync_with_tracking(
    db: Database,
    source: BaseSource,
    phase: Callable[[_Progress], None],
) -> int:
    """Wrap a phase with sync_runs tracking and failure logging."""
    run_id = db.record_run_start(source.name)
    progress = _Progress()
    started = time.monotonic()
    logger.info("Starting sync", extra={"source": source.name, "run_id": run_id})
    try:
        phase(progress)
    except Exception as exc:
        if isinstance(exc, SyncError) and exc.source is None:
            exc.source = source.name
        logger.error(
            "Sync failed after %d records: %s",
            progress.upserted,
            exc,
            extra={
                "source": source.name,
                "records": progress.upserted,
                "run_id": run_id,
            },
        )
        try:
            db.record_run_end(
                run_id=run_id,
                status="FAILED",
                records_upserted=progress.upserted,
                records_deleted=progress.deleted,
                error_message=str(exc)[:1000],
                error_detail={
                    "type": type(exc).__name__,
                    "retry_after_seconds": getattr(exc, "retry_after_seconds", None),
                    "traceback": traceback.format_exc(),
                },
            )
        except SyncError as record_exc:
            # The source's own failure stays the one reported for the pass
            logger.error(
                "Could not record failed run: %s",
                record_exc,
                extra={"source": source.name, "run_id": run_id},
            )
        raise exc

    db.record_run_end(
        run_id=run_id,
        status="SUCCESS",
        records_upserted=progress.upserted,
        records_deleted=progress.deleted,
    )
    logger.info(
        "Sync complete",
        extra={
            "source": source.name,
            "records": progress.upserted,
            "run_id": run_id,
            "duration_s": round(time.monotonic() - started, 3),
        },
    )
    return progress.upserted


def _sync_forge(
    db: Database,
    source: BaseSource,
    progress: _Progress,
    reconcile_stale: bool,
) -> None:
    repositories = source.fetch()
    synced_ids: list[Any] = []
    for repo in repositories:
        synced_ids.append(db.upsert_repository(repo))
        progress.upserted += 1
        logger.debug("Upserted repository %s", repo.forge_id, extra={"source": source.name})

    if not reconcile_stale:
        return
    if not synced_ids:
        # Never wipe a forge on an empty listing
        logger.warning(
            "Forge returned no repositories, skipping stale cleanup",
            extra={"source": source.name},
        )
        return
    stale = db.list_stale_repository_ids(source.name, synced_ids)
    progress.deleted = db.delete_repositories(stale)
    if progress.deleted:
        logger.info(
            "Deleted %d stale repositories",
            progress.deleted,
            extra={"source": source.name, "entity_type": "repository"},
        )


def _sync_registry(db: Database, source: BaseSource, progress: _Progress) -> None:
    packages: list[FetchedPackage] = source.fetch()

    # One batch lookup for every candidate URL instead of one per package
    repo_ids = db.lookup_repository_ids_by_urls(
        [p.repository_url for p in packages if p.repository_url]
    )

    for package in packages:
        repository_id = repo_ids.get(package.repository_url) if package.repository_url else None
        db.upsert_package(package, repository_id)
        progress.upserted += 1
        logger.debug(
            "Upserted package %s (linked=%s)",
            package.name,
            repository_id is not None,
            extra={"source": source.name},
        )


def _sync_contributions(db: Database, source: BaseSource, progress: _Progress) -> None:
    for contribution in source.fetch():
        db.upsert_contribution(contribution)
        progress.upserted += 1
        logger.debug("Upserted contribution %s", contribution.url, extra={"source": source.name})
