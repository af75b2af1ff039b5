"""npm registry source: packages maintained by a user, with weekly downloads."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from portfolio_sync.base_source import BaseSource
from portfolio_sync.config import NpmConfig
from portfolio_sync.errors import SyncError
from portfolio_sync.models import FetchedPackage

logger = logging.getLogger("portfolio_sync.npm")

NPM_WEB = "https://www.npmjs.com/package"
_FORGE_HOSTS = ("github.com", "gitlab.com")


def split_scope(name: str) -> tuple[Optional[str], str]:
    """Split "@scope/name" into ("scope", "name"); unscoped names get None."""
    if name.startswith("@") and "/" in name:
        scope, _, bare = name.partition("/")
        return scope[1:] or None, bare
    return None, name


def repository_link(links: Optional[dict[str, Any]]) -> Optional[str]:
    """Prefer links.repository, else a homepage that points at a forge."""
    if not links:
        return None
    if links.get("repository"):
        return links["repository"]
    homepage = links.get("homepage") or ""
    if any(host in homepage for host in _FORGE_HOSTS):
        return homepage
    return None


class NpmSource(BaseSource):
    SOURCE_NAME = "npm"

    def __init__(
        self, config: NpmConfig, session: requests.Session, timeout: float = 30.0
    ) -> None:
        super().__init__(session, timeout)
        self._user = config.user
        self._registry = config.registry_url.rstrip("/")
        self._downloads_api = config.downloads_api_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Accept"] = "application/json"
        return headers

    def fetch(self) -> list[FetchedPackage]:
        # npm has no numeric account id; the maintainer search term plays
        # that role for the listing walk.
        query = f"maintainer:{self._user}"

        def fetch_page(page: int) -> tuple[list[dict[str, Any]], bool]:
            offset = (page - 1) * self.PAGE_SIZE
            data = self._get_json(
                f"{self._registry}/-/v1/search",
                params={"text": query, "size": self.PAGE_SIZE, "from": offset},
            )
            data = data if isinstance(data, dict) else {}
            objects = data.get("objects") or []
            total = data.get("total")
            more = total is None or offset + len(objects) < int(total)
            return objects, more

        raw = self._paginate(fetch_page, label=f"npm packages for {self._user}")

        packages: list[FetchedPackage] = []
        for obj in raw:
            pkg = self._normalize(obj.get("package") or {})
            if pkg is not None:
                packages.append(pkg)
        logger.info(
            "Fetched %d npm packages for %s",
            len(packages),
            self._user,
            extra={"source": self.SOURCE_NAME, "records": len(packages)},
        )
        return packages

    def _normalize(self, pkg: dict[str, Any]) -> Optional[FetchedPackage]:
        name = pkg.get("name")
        if not name:
            logger.warning("Skipping npm search result without a package name")
            return None
        scope, _ = split_scope(name)
        return FetchedPackage(
            registry=self.SOURCE_NAME,
            name=name,
            scope=scope,
            registry_url=f"{NPM_WEB}/{name}",
            description=pkg.get("description"),
            repository_url=repository_link(pkg.get("links")),
            downloads=self.fetch_weekly_downloads(name),
            version=pkg.get("version"),
            keywords=pkg.get("keywords") or [],
        )

    def fetch_weekly_downloads(self, name: str) -> int:
        """Trailing-week download count; any failure counts as 0."""
        try:
            data = self._get_json(f"{self._downloads_api}/{name}")
        except SyncError as exc:
            logger.warning(
                "Could not fetch weekly downloads for %s: %s",
                name,
                exc,
                extra={"source": self.SOURCE_NAME},
            )
            return 0
        if not isinstance(data, dict):
            return 0
        return data.get("downloads") or 0
