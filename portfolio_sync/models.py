"""Normalized entities produced by source adapters.

Every adapter maps its platform's JSON into one of these value objects. They
live for a single pass only; the database assigns durable ids on upsert.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional


class ContributionType(str, enum.Enum):
    PULL_REQUEST = "pull_request"
    MERGE_REQUEST = "merge_request"


def _require(entity: str, **fields: Any) -> None:
    """Raise ValueError if any natural-identity field is empty."""
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise ValueError(f"{entity} missing identity field(s): {', '.join(missing)}")


def _count(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _string_list(values: Optional[Iterable[Any]], unique: bool = False) -> list[str]:
    items = [str(v) for v in (values or []) if v]
    if unique:
        # dict preserves insertion order
        items = list(dict.fromkeys(items))
    return items


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 API timestamp into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class FetchedRepository:
    forge: str
    forge_id: str
    name: str
    url: str
    description: Optional[str] = None
    language: Optional[str] = None
    stars: int = 0
    topics: list[str] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        _require("repository", forge=self.forge, forge_id=self.forge_id)
        object.__setattr__(self, "stars", _count(self.stars))
        object.__setattr__(self, "topics", _string_list(self.topics, unique=True))


@dataclass(frozen=True)
class FetchedPackage:
    """A crate or npm package. `registry` picks the target table."""

    registry: str
    name: str
    registry_url: str
    scope: Optional[str] = None
    description: Optional[str] = None
    repository_url: Optional[str] = None
    documentation_url: Optional[str] = None
    downloads: int = 0
    version: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        _require("package", registry=self.registry, name=self.name)
        object.__setattr__(self, "downloads", _count(self.downloads))
        object.__setattr__(self, "keywords", _string_list(self.keywords))
        object.__setattr__(self, "categories", _string_list(self.categories))


@dataclass(frozen=True)
class FetchedContribution:
    forge: str
    repo_owner: str
    repo_name: str
    repo_url: str
    contribution_type: ContributionType
    url: str
    title: Optional[str] = None
    merged_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        _require(
            "contribution",
            forge=self.forge,
            repo_owner=self.repo_owner,
            repo_name=self.repo_name,
            url=self.url,
        )
        object.__setattr__(
            self, "contribution_type", ContributionType(self.contribution_type)
        )
