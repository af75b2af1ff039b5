"""Database helpers: connection pool, idempotent upserts, run tracking."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Generator, Iterable, Optional, Sequence

import psycopg2
import psycopg2.extras
import psycopg2.pool

from portfolio_sync.config import DatabaseConfig
from portfolio_sync.errors import PersistenceFailure
from portfolio_sync.models import FetchedContribution, FetchedPackage, FetchedRepository

logger = logging.getLogger("portfolio_sync.db")

psycopg2.extras.register_uuid()

REPOSITORY_COLUMNS = [
    "forge", "forge_id", "name", "description", "url",
    "language", "stars", "topics", "updated_at",
]
CRATE_COLUMNS = [
    "name", "description", "repository_id", "crates_io_url",
    "documentation_url", "downloads", "version", "keywords", "categories",
]
NPM_COLUMNS = [
    "name", "scope", "description", "repository_id", "npm_url",
    "downloads_weekly", "version", "keywords",
]
CONTRIBUTION_COLUMNS = [
    "forge", "repo_owner", "repo_name", "repo_url",
    "contribution_type", "title", "url", "merged_at",
]


def build_upsert_sql(
    table: str,
    columns: Sequence[str],
    conflict_columns: Sequence[str],
) -> str:
    """INSERT ... ON CONFLICT DO UPDATE ... RETURNING id for a single row.

    Every non-key column is overwritten; synced_at is always refreshed.
    """
    col_list = ", ".join(columns)
    placeholders = ", ".join(["%s"] * len(columns))
    conflict_list = ", ".join(conflict_columns)
    set_clauses = ", ".join(
        f"{c} = EXCLUDED.{c}" for c in columns if c not in conflict_columns
    )
    set_clauses += ", synced_at = NOW()"
    return (
        f"INSERT INTO {table} ({col_list}, synced_at) VALUES ({placeholders}, NOW()) "
        f"ON CONFLICT ({conflict_list}) DO UPDATE SET {set_clauses} "
        f"RETURNING id"
    )


class Database:
    """Thin wrapper around a ThreadedConnectionPool with upsert helpers."""

    def __init__(self, config: DatabaseConfig) -> None:
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=config.min_connections,
                maxconn=config.max_connections,
                dsn=config.url,
            )
        except psycopg2.Error as exc:
            raise PersistenceFailure(f"cannot connect to database: {exc}") from exc

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def connection(self) -> Generator:
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Generator:
        """Yield a cursor inside a commit/rollback transaction.

        psycopg2 errors leave as PersistenceFailure.
        """
        with self.connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
            except psycopg2.Error as exc:
                conn.rollback()
                raise PersistenceFailure(str(exc).strip()) from exc
            except Exception:
                conn.rollback()
                raise

    def _upsert(
        self,
        table: str,
        columns: Sequence[str],
        row: Sequence[Any],
        conflict_columns: Sequence[str],
    ) -> Any:
        sql = build_upsert_sql(table, columns, conflict_columns)
        with self.transaction() as cur:
            cur.execute(sql, tuple(row))
            return cur.fetchone()[0]

    # ------------------------------------------------------------------
    # Entity upserts (conflict-tolerant, return the durable id)
    # ------------------------------------------------------------------

    def upsert_repository(self, repo: FetchedRepository) -> Any:
        return self._upsert(
            "repositories",
            REPOSITORY_COLUMNS,
            (
                repo.forge,
                repo.forge_id,
                repo.name,
                repo.description,
                repo.url,
                repo.language,
                repo.stars,
                list(repo.topics),
                repo.updated_at,
            ),
            ["forge", "forge_id"],
        )

    def upsert_package(self, package: FetchedPackage, repository_id: Any = None) -> Any:
        if package.registry == "crates_io":
            return self.upsert_crate(package, repository_id)
        if package.registry == "npm":
            return self.upsert_npm_package(package, repository_id)
        raise PersistenceFailure(f"no table for registry {package.registry!r}")

    def upsert_crate(self, package: FetchedPackage, repository_id: Any = None) -> Any:
        return self._upsert(
            "crates",
            CRATE_COLUMNS,
            (
                package.name,
                package.description,
                repository_id,
                package.registry_url,
                package.documentation_url,
                package.downloads,
                package.version,
                list(package.keywords),
                list(package.categories),
            ),
            ["name"],
        )

    def upsert_npm_package(self, package: FetchedPackage, repository_id: Any = None) -> Any:
        return self._upsert(
            "npm_packages",
            NPM_COLUMNS,
            (
                package.name,
                package.scope,
                package.description,
                repository_id,
                package.registry_url,
                package.downloads,
                package.version,
                list(package.keywords),
            ),
            ["name"],
        )

    def upsert_contribution(self, contribution: FetchedContribution) -> Any:
        return self._upsert(
            "contributions",
            CONTRIBUTION_COLUMNS,
            (
                contribution.forge,
                contribution.repo_owner,
                contribution.repo_name,
                contribution.repo_url,
                contribution.contribution_type.value,
                contribution.title,
                contribution.url,
                contribution.merged_at,
            ),
            ["forge", "repo_owner", "repo_name", "url"],
        )

    # ------------------------------------------------------------------
    # Lookups and reconciliation
    # ------------------------------------------------------------------

    def lookup_repository_ids_by_urls(self, urls: Iterable[str]) -> dict[str, Any]:
        """Map each stored repository URL in `urls` to its id (exact match)."""
        unique = sorted({u for u in urls if u})
        if not unique:
            return {}
        with self.transaction() as cur:
            cur.execute("SELECT url, id FROM repositories WHERE url = ANY(%s)", (unique,))
            return {url: repo_id for url, repo_id in cur.fetchall()}

    def list_stale_repository_ids(self, forge: str, exclude_ids: Iterable[Any]) -> list[Any]:
        """Ids of a forge's repositories that the current pass did not produce."""
        with self.transaction() as cur:
            cur.execute(
                "SELECT id FROM repositories WHERE forge = %s AND NOT (id = ANY(%s))",
                (forge, list(exclude_ids)),
            )
            return [row[0] for row in cur.fetchall()]

    def delete_repositories(self, ids: Iterable[Any]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        with self.transaction() as cur:
            cur.execute("DELETE FROM repositories WHERE id = ANY(%s)", (ids,))
            return cur.rowcount

    # ------------------------------------------------------------------
    # Sync run tracking
    # ------------------------------------------------------------------

    def record_run_start(self, source: str) -> str:
        """Insert a sync_runs row with status RUNNING. Returns the run id."""
        run_id = str(uuid.uuid4())
        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO sync_runs (id, source, status, started_at)
                   VALUES (%s, %s, 'RUNNING', NOW())""",
                (run_id, source),
            )
        return run_id

    def record_run_end(
        self,
        run_id: str,
        status: str,
        records_upserted: int = 0,
        records_deleted: int = 0,
        error_message: Optional[str] = None,
        error_detail: Optional[dict] = None,
    ) -> None:
        """Finalise a sync_runs row."""
        with self.transaction() as cur:
            cur.execute(
                """UPDATE sync_runs
                   SET status = %s,
                       finished_at = NOW(),
                       records_upserted = %s,
                       records_deleted = %s,
                       error_message = %s,
                       error_detail = %s
                   WHERE id = %s""",
                (
                    status,
                    records_upserted,
                    records_deleted,
                    error_message,
                    psycopg2.extras.Json(error_detail) if error_detail else None,
                    run_id,
                ),
            )

    def get_recent_runs(
        self,
        source: Optional[str] = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Fetch recent sync runs for status display."""
        with self.transaction() as cur:
            if source:
                cur.execute(
                    """SELECT id, source, status, started_at, finished_at,
                              records_upserted, records_deleted, error_message
                       FROM sync_runs
                       WHERE source = %s
                       ORDER BY started_at DESC LIMIT %s""",
                    (source, limit),
                )
            else:
                cur.execute(
                    """SELECT id, source, status, started_at, finished_at,
                              records_upserted, records_deleted, error_message
                       FROM sync_runs
                       ORDER BY started_at DESC LIMIT %s""",
                    (limit,),
                )
            cols = [d[0] for d in cur.description]
            return [dict(zip(cols, row)) for row in cur.fetchall()]
