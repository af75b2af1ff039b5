"""crates.io registry source: crates owned by a user."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from portfolio_sync.base_source import BaseSource
from portfolio_sync.config import CratesIoConfig
from portfolio_sync.errors import TransferFailure
from portfolio_sync.models import FetchedPackage

logger = logging.getLogger("portfolio_sync.crates_io")

CRATES_IO_WEB = "https://crates.io/crates"


class CratesIoSource(BaseSource):
    SOURCE_NAME = "crates_io"

    def __init__(
        self, config: CratesIoConfig, session: requests.Session, timeout: float = 30.0
    ) -> None:
        super().__init__(session, timeout)
        self._user = config.user
        self._base = config.api_base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Accept"] = "application/json"
        return headers

    def _resolve_user_id(self) -> int:
        """crates.io lists crates by numeric user id, not login."""
        data = self._get_json(f"{self._base}/users/{self._user}")
        try:
            return int(data["user"]["id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TransferFailure(
                f"crates.io user {self._user!r} response has no numeric id",
                self.SOURCE_NAME,
            ) from exc

    def fetch(self) -> list[FetchedPackage]:
        user_id = self._resolve_user_id()
        logger.debug(
            "Resolved crates.io user %s to id %d",
            self._user,
            user_id,
            extra={"source": self.SOURCE_NAME},
        )

        def fetch_page(page: int) -> tuple[list[dict[str, Any]], bool]:
            data = self._get_json(
                f"{self._base}/crates",
                params={"user_id": user_id, "per_page": self.PAGE_SIZE, "page": page},
            )
            data = data if isinstance(data, dict) else {}
            crates = data.get("crates") or []
            more = bool((data.get("meta") or {}).get("next_page"))
            return crates, more

        raw = self._paginate(fetch_page, label=f"crates for {self._user}")
        packages = [pkg for pkg in (self._normalize(c) for c in raw) if pkg is not None]
        logger.info(
            "Fetched %d crates for %s",
            len(packages),
            self._user,
            extra={"source": self.SOURCE_NAME, "records": len(packages)},
        )
        return packages

    def _normalize(self, c: dict[str, Any]) -> Optional[FetchedPackage]:
        name = c.get("name") or c.get("id")
        if not name:
            logger.warning("Skipping crate without a name")
            return None
        return FetchedPackage(
            registry=self.SOURCE_NAME,
            name=name,
            registry_url=f"{CRATES_IO_WEB}/{name}",
            description=c.get("description"),
            repository_url=c.get("repository"),
            documentation_url=c.get("documentation"),
            downloads=c.get("downloads", 0),
            version=c.get("newest_version") or c.get("max_version"),
            keywords=c.get("keywords") or [],
            categories=c.get("categories") or [],
        )
