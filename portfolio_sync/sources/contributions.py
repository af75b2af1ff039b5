"""Contribution source: merged pull/merge requests to other people's projects.

GitHub's issue search is the primary sub-source and its failure fails the
whole fetch. Each configured GitLab account adds a secondary sub-source whose
failure is logged and left out of the result.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional
from urllib.parse import urlsplit

import requests

from portfolio_sync.base_source import BaseSource
from portfolio_sync.config import ContributionsConfig, GitLabConfig
from portfolio_sync.errors import SyncError
from portfolio_sync.models import ContributionType, FetchedContribution, parse_timestamp

logger = logging.getLogger("portfolio_sync.contributions")


def owner_and_name_from_api_url(repository_url: Optional[str]) -> Optional[tuple[str, str]]:
    """".../repos/{owner}/{name}" -> (owner, name)."""
    if not repository_url:
        return None
    parts = [p for p in urlsplit(repository_url).path.split("/") if p]
    if len(parts) < 2:
        return None
    return parts[-2], parts[-1]


def project_from_merge_request_url(web_url: Optional[str]) -> Optional[tuple[str, str, str]]:
    """"https://host/owner/group/repo/-/merge_requests/7" -> (owner, repo, project url)."""
    if not web_url or "/-/merge_requests" not in web_url:
        return None
    project_url = web_url.split("/-/merge_requests", 1)[0]
    parts = [p for p in urlsplit(project_url).path.split("/") if p]
    if len(parts) < 2:
        return None
    return parts[0], parts[-1], project_url


class GitLabMergeRequestSource(BaseSource):
    """Merged merge requests authored by one GitLab account."""

    SOURCE_NAME = "gitlab_contributions"

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
            f"{self._base}/merge_requests",
            params={
                "author_username": self._user,
                "state": "merged",
                "scope": "all",
                "per_page": self.PAGE_SIZE,
                "page": page,
            },
        )
        return (data if isinstance(data, list) else []), True

    def fetch(self) -> list[FetchedContribution]:
        raw = self._paginate(
            self._fetch_page, label=f"gitlab merge requests for {self._user}@{self._host}"
        )
        results: list[FetchedContribution] = []
        for mr in raw:
            project = project_from_merge_request_url(mr.get("web_url"))
            if project is None:
                continue
            owner, repo, project_url = project
            # MRs into the user's own namespace are not contributions
            if owner.lower() == self._user.lower():
                continue
            results.append(
                FetchedContribution(
                    forge="gitlab",
                    repo_owner=owner,
                    repo_name=repo,
                    repo_url=project_url,
                    contribution_type=ContributionType.MERGE_REQUEST,
                    title=mr.get("title"),
                    url=mr["web_url"],
                    merged_at=parse_timestamp(mr.get("merged_at")),
                )
            )
        return results


class ContributionsSource(BaseSource):
    SOURCE_NAME = "contributions"

    def __init__(
        self,
        config: ContributionsConfig,
        session: requests.Session,
        timeout: float = 30.0,
        secondaries: Optional[Iterable[BaseSource]] = None,
    ) -> None:
        super().__init__(session, timeout)
        self._user = config.user
        self._token = config.token
        self._exclude_owner = config.exclude_owner or config.user
        self._base = config.api_base_url.rstrip("/")
        if secondaries is None:
            secondaries = [
                GitLabMergeRequestSource(account, session, timeout)
                for account in config.gitlab_accounts
            ]
        self._secondaries = list(secondaries)

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Accept"] = "application/vnd.github+json"
        headers.update(self._bearer(self._token))
        return headers

    def fetch(self) -> list[FetchedContribution]:
        contributions = self._fetch_github()

        for secondary in self._secondaries:
            try:
                found = secondary.fetch()
            except SyncError as exc:
                logger.warning(
                    "Secondary contribution source %s failed, skipping: %s",
                    secondary.name,
                    exc,
                    extra={"source": self.SOURCE_NAME},
                )
                continue
            contributions.extend(found)

        logger.info(
            "Fetched %d contributions for %s",
            len(contributions),
            self._user,
            extra={"source": self.SOURCE_NAME, "records": len(contributions)},
        )
        return contributions

    # ------------------------------------------------------------------
    # GitHub search (primary)
    # ------------------------------------------------------------------

    def _fetch_github_page(self, page: int) -> tuple[list[dict[str, Any]], bool]:
        query = f"type:pr author:{self._user} is:merged -user:{self._exclude_owner}"
        data = self._get_json(
            f"{self._base}/search/issues",
            params={
                "q": query,
                "sort": "updated",
                "order": "desc",
                "per_page": self.PAGE_SIZE,
                "page": page,
            },
        )
        items = (data.get("items") if isinstance(data, dict) else None) or []
        return items, True

    def _fetch_github(self) -> list[FetchedContribution]:
        raw = self._paginate(
            self._fetch_github_page, label=f"github pull requests for {self._user}"
        )
        own = {self._user.lower(), self._exclude_owner.lower()}
        results: list[FetchedContribution] = []
        for item in raw:
            parsed = owner_and_name_from_api_url(item.get("repository_url"))
            html_url = item.get("html_url")
            if parsed is None or not html_url:
                continue
            owner, name = parsed
            # -user: in the query is best effort; the owner check is authoritative
            if owner.lower() in own:
                continue
            merged_at = (item.get("pull_request") or {}).get("merged_at") or item.get(
                "closed_at"
            )
            results.append(
                FetchedContribution(
                    forge="github",
                    repo_owner=owner,
                    repo_name=name,
                    repo_url=html_url.split("/pull/", 1)[0],
                    contribution_type=ContributionType.PULL_REQUEST,
                    title=item.get("title"),
                    url=html_url,
                    merged_at=parse_timestamp(merged_at),
                )
            )
        return results
