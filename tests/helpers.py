"""Test doubles: a recording HTTP session and an in-memory persistence gateway."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from requests.structures import CaseInsensitiveDict

from portfolio_sync.errors import PersistenceFailure
from portfolio_sync.models import FetchedContribution, FetchedPackage, FetchedRepository

INVALID_JSON = object()


class FakeResponse:
    def __init__(
        self,
        payload: Any = None,
        status_code: int = 200,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self._payload = payload

    @property
    def text(self) -> str:
        return "" if self._payload is INVALID_JSON else str(self._payload)

    def json(self) -> Any:
        if self._payload is INVALID_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


@dataclass
class Call:
    url: str
    params: dict[str, Any]
    headers: dict[str, str]
    timeout: Optional[float]


class FakeSession:
    """Stands in for requests.Session; `handler(url, params)` returns a response or raises."""

    def __init__(self, handler: Callable[[str, dict[str, Any]], Any]) -> None:
        self.handler = handler
        self.calls: list[Call] = []
        self.headers: dict[str, str] = {}

    def get(self, url, params=None, headers=None, timeout=None):
        params = dict(params or {})
        self.calls.append(Call(url, params, dict(headers or {}), timeout))
        result = self.handler(url, params)
        if isinstance(result, BaseException):
            raise result
        return result

    def calls_to(self, fragment: str) -> list[Call]:
        return [c for c in self.calls if fragment in c.url]


def paged(sizes: list[int], make_item: Callable[[int], dict[str, Any]]):
    """Handler returning a JSON list per page; page N has sizes[N-1] items (or 0)."""

    def handler(url: str, params: dict[str, Any]) -> FakeResponse:
        page = int(params.get("page", 1))
        count = sizes[page - 1] if page <= len(sizes) else 0
        offset = sum(sizes[: page - 1])
        return FakeResponse([make_item(offset + i) for i in range(count)])

    return handler


def always_full(make_item: Callable[[int], dict[str, Any]], size: int = 100):
    """Handler for a platform that never signals the last page."""

    def handler(url: str, params: dict[str, Any]) -> FakeResponse:
        page = int(params.get("page", 1))
        return FakeResponse([make_item((page - 1) * size + i) for i in range(size)])

    return handler


@dataclass
class InMemoryGateway:
    """Upsert-by-natural-identity store with the Database method surface."""

    repositories: dict[tuple, dict[str, Any]] = field(default_factory=dict)
    packages: dict[tuple, dict[str, Any]] = field(default_factory=dict)
    contributions: dict[tuple, dict[str, Any]] = field(default_factory=dict)
    runs: dict[str, dict[str, Any]] = field(default_factory=dict)
    lookups: list[list[str]] = field(default_factory=list)
    fail_on_contribution: bool = False

    def _store(self, table: dict, key: tuple, values: dict[str, Any]) -> str:
        existing = table.get(key)
        row_id = existing["id"] if existing else str(uuid.uuid4())
        table[key] = {**values, "id": row_id}
        return row_id

    def upsert_repository(self, repo: FetchedRepository) -> str:
        return self._store(
            self.repositories, (repo.forge, repo.forge_id), dict(vars(repo))
        )

    def upsert_package(self, package: FetchedPackage, repository_id: Any = None) -> str:
        return self._store(
            self.packages,
            (package.registry, package.name),
            {**vars(package), "repository_id": repository_id},
        )

    def upsert_contribution(self, contribution: FetchedContribution) -> str:
        if self.fail_on_contribution:
            raise PersistenceFailure("contributions table is locked")
        key = (
            contribution.forge,
            contribution.repo_owner,
            contribution.repo_name,
            contribution.url,
        )
        return self._store(self.contributions, key, dict(vars(contribution)))

    def lookup_repository_ids_by_urls(self, urls) -> dict[str, str]:
        urls = list(urls)
        self.lookups.append(urls)
        by_url = {row["url"]: row["id"] for row in self.repositories.values()}
        return {u: by_url[u] for u in urls if u in by_url}

    def list_stale_repository_ids(self, forge: str, exclude_ids) -> list[str]:
        keep = set(exclude_ids)
        return [
            row["id"]
            for (row_forge, _), row in self.repositories.items()
            if row_forge == forge and row["id"] not in keep
        ]

    def delete_repositories(self, ids) -> int:
        ids = set(ids)
        doomed = [k for k, row in self.repositories.items() if row["id"] in ids]
        for key in doomed:
            del self.repositories[key]
        return len(doomed)

    def record_run_start(self, source: str) -> str:
        run_id = str(uuid.uuid4())
        self.runs[run_id] = {"source": source, "status": "RUNNING"}
        return run_id

    def record_run_end(self, run_id: str, status: str, **fields: Any) -> None:
        self.runs[run_id].update(status=status, **fields)

    def runs_for(self, source: str) -> list[dict[str, Any]]:
        return [r for r in self.runs.values() if r["source"] == source]
