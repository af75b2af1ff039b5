"""Shared fixtures."""

from __future__ import annotations

import pytest

from portfolio_sync.config import (
    ContributionsConfig,
    CratesIoConfig,
    GitHubConfig,
    GitLabConfig,
    NpmConfig,
)
from tests.helpers import InMemoryGateway

_ENV_VARS = (
    "DATABASE_URL", "PG_HOST", "PG_PORT", "PG_USER", "PG_PASSWORD", "PG_DATABASE",
    "DB_MIN_CONNECTIONS", "DB_MAX_CONNECTIONS",
    "SYNC_ENABLED", "SYNC_INTERVAL_SECS", "SYNC_RECONCILE_STALE", "HTTP_TIMEOUT_SECS",
    "GITHUB_USER", "GITHUB_TOKEN", "GITHUB_API_BASE_URL", "GITHUB_SYNC_ENABLED",
    "GITLAB_USER", "GITLAB_HOST", "GITLAB_TOKEN", "GITLAB_SYNC_ENABLED",
    "CRATES_IO_USER", "CRATES_IO_SYNC_ENABLED",
    "NPM_USER", "NPM_SYNC_ENABLED",
    "CONTRIBUTIONS_USER", "CONTRIBUTIONS_EXCLUDE_OWNER",
    "CONTRIBUTIONS_GITLAB_ACCOUNTS", "CONTRIBUTIONS_SYNC_ENABLED",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Strip sync-related variables and stop .env files leaking into tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("portfolio_sync.config.load_dotenv", lambda: None)
    return monkeypatch


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def github_config() -> GitHubConfig:
    return GitHubConfig(user="octo", token="ghp_test")


@pytest.fixture
def gitlab_config() -> GitLabConfig:
    return GitLabConfig(user="tanuki")


@pytest.fixture
def crates_config() -> CratesIoConfig:
    return CratesIoConfig(user="ferris")


@pytest.fixture
def npm_config() -> NpmConfig:
    return NpmConfig(user="npmer")


@pytest.fixture
def contributions_config() -> ContributionsConfig:
    return ContributionsConfig(user="octo", token="ghp_test")
