"""Source adapters and their construction from configuration."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from portfolio_sync.base_source import create_session
from portfolio_sync.config import AppConfig
from portfolio_sync.orchestrator import SyncSources
from portfolio_sync.sources.contributions import ContributionsSource, GitLabMergeRequestSource
from portfolio_sync.sources.crates_io import CratesIoSource
from portfolio_sync.sources.github import GitHubForgeSource
from portfolio_sync.sources.gitlab import GitLabForgeSource
from portfolio_sync.sources.npm import NpmSource

logger = logging.getLogger("portfolio_sync.sources")

SOURCE_CHOICES = ["github", "gitlab", "crates_io", "npm", "contributions"]

__all__ = [
    "SOURCE_CHOICES",
    "ContributionsSource",
    "CratesIoSource",
    "GitHubForgeSource",
    "GitLabForgeSource",
    "GitLabMergeRequestSource",
    "NpmSource",
    "build_sources",
]


def build_sources(
    config: AppConfig,
    session: Optional[requests.Session] = None,
    only: Optional[str] = None,
) -> SyncSources:
    """Instantiate every configured source, sharing one HTTP session.

    `only` restricts the result to a single source name; an unconfigured
    source is skipped with a warning rather than treated as an error.
    """
    session = session or create_session()
    timeout = config.sync.http_timeout_secs
    sources = SyncSources()

    def wanted(name: str, section: object) -> bool:
        if only and only != name:
            return False
        if section is None:
            if only == name:
                logger.warning("%s not configured, skipping", name)
            return False
        return True

    if wanted("github", config.github):
        sources.forges.append(GitHubForgeSource(config.github, session, timeout))
    if wanted("gitlab", config.gitlab):
        sources.forges.append(GitLabForgeSource(config.gitlab, session, timeout))
    if wanted("crates_io", config.crates_io):
        sources.registries.append(CratesIoSource(config.crates_io, session, timeout))
    if wanted("npm", config.npm):
        sources.registries.append(NpmSource(config.npm, session, timeout))
    if wanted("contributions", config.contributions):
        sources.contributions = ContributionsSource(config.contributions, session, timeout)

    logger.info(
        "Configured sources: %s",
        [s.name for s in sources.all()],
    )
    return sources
