"""GitHub forge source: repositories owned by a user."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from portfolio_sync.base_source import BaseSource
from portfolio_sync.config import GitHubConfig
from portfolio_sync.models import FetchedRepository, parse_timestamp

logger = logging.getLogger("portfolio_sync.github")


class GitHubForgeSource(BaseSource):
    SOURCE_NAME = "github"

    def __init__(
        self, config: GitHubConfig, session: requests.Session, timeout: float = 30.0
    ) -> None:
        super().__init__(session, timeout)
        self._user = config.user
        self._token = config.token
        self._base = config.api_base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Accept"] = "application/vnd.github+json"
        headers["X-GitHub-Api-Version"] = "2022-11-28"
        headers.update(self._bearer(self._token))
        return headers

    def _fetch_page(self, page: int) -> tuple[list[dict[str, Any]], bool]:
        data = self._get_json(
            f"{self._base}/users/{self._user}/repos",
            params={
                "type": "owner",
                "sort": "updated",
                "per_page": self.PAGE_SIZE,
                "page": page,
            },
        )
        items = data if isinstance(data, list) else []
        return items, True

    def fetch(self) -> list[FetchedRepository]:
        raw = self._paginate(self._fetch_page, label=f"github repos for {self._user}")
        repos: list[FetchedRepository] = []
        for r in raw:
            # Forks and archived repos are not part of the footprint
            if r.get("fork") or r.get("archived"):
                continue
            repo = self._normalize(r)
            if repo is not None:
                repos.append(repo)
        logger.info(
            "Fetched %d GitHub repositories for %s",
            len(repos),
            self._user,
            extra={"source": self.SOURCE_NAME, "records": len(repos)},
        )
        return repos

    def _normalize(self, r: dict[str, Any]) -> Optional[FetchedRepository]:
        full_name = r.get("full_name")
        url = r.get("html_url")
        if not full_name or not url:
            logger.warning("Skipping GitHub repo without full_name/html_url: %r", r.get("id"))
            return None
        return FetchedRepository(
            forge=self.SOURCE_NAME,
            forge_id=full_name,
            name=r.get("name") or full_name.split("/")[-1],
            description=r.get("description"),
            url=url,
            language=r.get("language"),
            stars=r.get("stargazers_count", 0),
            topics=r.get("topics") or [],
            updated_at=parse_timestamp(r.get("updated_at")),
        )
