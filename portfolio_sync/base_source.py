"""Abstract base class for all sync sources, plus the shared HTTP policy."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Mapping, Optional

import requests

from portfolio_sync.errors import RateLimited, TransferFailure

logger = logging.getLogger("portfolio_sync.source")

USER_AGENT = "portfolio-sync/1.0"

# 429 without any usable header still means "come back later".
DEFAULT_RETRY_AFTER_SECONDS = 60

# A page yields (raw items, platform says more pages may follow)
PageFetcher = Callable[[int], tuple[list[dict[str, Any]], bool]]


def create_session() -> requests.Session:
    """Session shared by every source in the process (connection pooling only)."""
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def rate_limit_wait(
    status_code: int,
    headers: Mapping[str, str],
    now: Optional[float] = None,
) -> Optional[int]:
    """Return seconds to wait if a 403/429 response is a rate-limit signal.

    Retry-After (relative seconds or HTTP date) wins over the epoch-second
    X-RateLimit-Reset / RateLimit-Reset headers. Waits are floored at 0.
    Returns None when the response is not a rate-limit refusal.
    """
    if status_code not in (403, 429):
        return None
    now = time.time() if now is None else now

    retry_after = headers.get("Retry-After")
    if retry_after:
        retry_after = retry_after.strip()
        if retry_after.isdigit():
            return int(retry_after)
        try:
            return max(int(parsedate_to_datetime(retry_after).timestamp() - now), 0)
        except (TypeError, ValueError):
            pass

    # GitHub sends X-RateLimit-Reset on every response; a 403 is only a rate
    # limit when the remaining budget is exhausted.
    remaining = headers.get("X-RateLimit-Remaining") or headers.get("RateLimit-Remaining")
    reset = headers.get("X-RateLimit-Reset") or headers.get("RateLimit-Reset")
    if reset and (status_code == 429 or remaining is None or remaining.strip() == "0"):
        try:
            return max(int(float(reset)) - int(now), 0)
        except ValueError:
            pass

    if status_code == 429:
        return DEFAULT_RETRY_AFTER_SECONDS
    return None


class BaseSource(ABC):
    """Each source overrides fetch() and declares SOURCE_NAME."""

    SOURCE_NAME: str = ""
    PAGE_SIZE: int = 100
    MAX_PAGES: int = 5

    def __init__(self, session: requests.Session, timeout: float = 30.0) -> None:
        self._session = session
        self._timeout = timeout

    @property
    def name(self) -> str:
        return self.SOURCE_NAME

    @abstractmethod
    def fetch(self) -> list[Any]:
        """Fetch and normalize every entity this source currently exposes."""

    def _headers(self) -> dict[str, str]:
        """Per-request headers. Sources add Accept/Authorization as needed."""
        return {"User-Agent": USER_AGENT}

    # ------------------------------------------------------------------
    # HTTP / pagination helpers
    # ------------------------------------------------------------------

    def _get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET a JSON document, mapping failures onto the SyncError taxonomy."""
        try:
            resp = self._session.get(
                url, params=params, headers=self._headers(), timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise TransferFailure(f"GET {url} failed: {exc}", self.name) from exc

        wait = rate_limit_wait(resp.status_code, resp.headers)
        if wait is not None:
            logger.warning(
                "Rate limited by %s, retry after %ds",
                url,
                wait,
                extra={"source": self.name, "retry_after_s": wait},
            )
            raise RateLimited(wait, self.name)

        if not 200 <= resp.status_code < 300:
            raise TransferFailure(
                f"GET {url} returned HTTP {resp.status_code}",
                self.name,
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise TransferFailure(f"GET {url} returned invalid JSON", self.name) from exc

    def _paginate(self, fetch_page: PageFetcher, label: str = "") -> list[dict[str, Any]]:
        """Walk pages until a short page, a platform "last page", or MAX_PAGES.

        Page size is judged on raw items, before any filtering.
        """
        results: list[dict[str, Any]] = []
        label = label or self.name
        for page in range(1, self.MAX_PAGES + 1):
            items, more = fetch_page(page)
            results.extend(items)
            logger.debug(
                "Fetched %s page %d (%d items)",
                label,
                page,
                len(items),
                extra={"source": self.name, "page": page, "records": len(items)},
            )
            if len(items) < self.PAGE_SIZE or not more:
                return results

        logger.warning(
            "Stopped %s after %d pages (page cap)",
            label,
            self.MAX_PAGES,
            extra={"source": self.name, "records": len(results)},
        )
        return results

    @staticmethod
    def _bearer(token: Optional[str]) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"} if token else {}
