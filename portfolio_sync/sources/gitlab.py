"""GitLab forge source: public projects of a user on gitlab.com or a self-hosted instance."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from portfolio_sync.base_source import BaseSource
from portfolio_sync.config import GitLabConfig
from portfolio_sync.models import FetchedRepository, parse_timestamp

logger = logging.getLogger("portfolio_sync.gitlab")


class GitLabForgeSource(BaseSource):
    SOURCE_NAME = "gitlab"

    def __init__(
        self, config: GitLabConfig, session: requests.Session, timeout: float = 30.0
    ) -> None:
        super().__init__(session, timeout)
        self._user = config.user
        self._host = config.host
        self._token = config.token
        self._base = config.api_base_url

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers.update(self._bearer(self._token))
        return headers

    def _fetch_page(self, page: int) -> tuple[list[dict[str, Any]], bool]:
        data = self._get_json(
            f"{self._base}/users/{self._user}/projects",
            params={
                "order_by": "updated_at",
                "visibility": "public",
                "per_page": self.PAGE_SIZE,
                "page": page,
            },
        )
        items = data if isinstance(data, list) else []
        return items, True

    def fetch(self) -> list[FetchedRepository]:
        raw = self._paginate(
            self._fetch_page, label=f"gitlab projects for {self._user}@{self._host}"
        )
        repos: list[FetchedRepository] = []
        for p in raw:
            if p.get("archived") or p.get("forked_from_project"):
                continue
            repo = self._normalize(p)
            if repo is not None:
                repos.append(repo)
        logger.info(
            "Fetched %d GitLab projects for %s@%s",
            len(repos),
            self._user,
            self._host,
            extra={"source": self.SOURCE_NAME, "records": len(repos)},
        )
        return repos

    def _normalize(self, p: dict[str, Any]) -> Optional[FetchedRepository]:
        project_id = p.get("id")
        url = p.get("web_url")
        if project_id is None or not url:
            logger.warning("Skipping GitLab project without id/web_url: %r", p.get("path"))
            return None
        return FetchedRepository(
            forge=self.SOURCE_NAME,
            forge_id=str(project_id),
            name=p.get("name") or p.get("path") or str(project_id),
            description=p.get("description"),
            url=url,
            # /users/:id/projects does not report a primary language
            language=None,
            stars=p.get("star_count", 0),
            topics=p.get("topics") or p.get("tag_list") or [],
            updated_at=parse_timestamp(p.get("last_activity_at")),
        )
