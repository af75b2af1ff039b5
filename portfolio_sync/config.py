"""Configuration via environment variables with cloud-native secret support.

Supports:
  - Environment variables (local dev) and .env files
  - AWS Secrets Manager / GCP Secret Manager references for tokens and the
    database URL (see secrets.py)

A source whose required variables are missing, or whose *_SYNC_ENABLED flag
is false, is left as None and simply not synced.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from portfolio_sync.secrets import resolve_database_url, resolve_secret

DEFAULT_GITHUB_API = "https://api.github.com"
DEFAULT_GITLAB_HOST = "gitlab.com"
DEFAULT_CRATES_IO_API = "https://crates.io/api/v1"
DEFAULT_NPM_REGISTRY = "https://registry.npmjs.org"
DEFAULT_NPM_DOWNLOADS_API = "https://api.npmjs.org/downloads/point/last-week"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    min_connections: int = 2
    max_connections: int = 10


@dataclass(frozen=True)
class GitHubConfig:
    user: str
    token: Optional[str] = None  # None = unauthenticated rate limits
    api_base_url: str = DEFAULT_GITHUB_API


@dataclass(frozen=True)
class GitLabConfig:
    user: str
    host: str = DEFAULT_GITLAB_HOST
    token: Optional[str] = None

    @property
    def api_base_url(self) -> str:
        return f"https://{self.host}/api/v4"


@dataclass(frozen=True)
class CratesIoConfig:
    user: str
    api_base_url: str = DEFAULT_CRATES_IO_API


@dataclass(frozen=True)
class NpmConfig:
    user: str
    registry_url: str = DEFAULT_NPM_REGISTRY
    downloads_api_url: str = DEFAULT_NPM_DOWNLOADS_API


@dataclass(frozen=True)
class ContributionsConfig:
    user: str
    token: Optional[str] = None
    exclude_owner: Optional[str] = None  # None = exclude the user's own namespace
    api_base_url: str = DEFAULT_GITHUB_API
    gitlab_accounts: list[GitLabConfig] = field(default_factory=list)


@dataclass(frozen=True)
class SyncConfig:
    enabled: bool = True
    interval_secs: int = 3600
    reconcile_stale: bool = False
    http_timeout_secs: float = 30.0


@dataclass(frozen=True)
class AppConfig:
    database: DatabaseConfig
    sync: SyncConfig = field(default_factory=SyncConfig)
    github: Optional[GitHubConfig] = None
    gitlab: Optional[GitLabConfig] = None
    crates_io: Optional[CratesIoConfig] = None
    npm: Optional[NpmConfig] = None
    contributions: Optional[ContributionsConfig] = None


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_str(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


def _env_secret(name: str) -> Optional[str]:
    value = _env_str(name)
    return resolve_secret(value) if value else None


def parse_gitlab_accounts(raw: str) -> list[GitLabConfig]:
    """Parse "user@host,user2" into GitLab accounts (host defaults to gitlab.com)."""
    accounts: list[GitLabConfig] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        user, _, host = entry.partition("@")
        if not user:
            continue
        accounts.append(GitLabConfig(user=user, host=host or DEFAULT_GITLAB_HOST))
    return accounts


def load_config() -> AppConfig:
    """Load configuration from environment variables. Unconfigured sources are skipped."""
    load_dotenv()

    database = DatabaseConfig(
        url=resolve_database_url(),
        min_connections=int(os.environ.get("DB_MIN_CONNECTIONS", "2")),
        max_connections=int(os.environ.get("DB_MAX_CONNECTIONS", "10")),
    )

    sync = SyncConfig(
        enabled=_env_flag("SYNC_ENABLED", True),
        interval_secs=int(os.environ.get("SYNC_INTERVAL_SECS", "3600")),
        reconcile_stale=_env_flag("SYNC_RECONCILE_STALE", False),
        http_timeout_secs=float(os.environ.get("HTTP_TIMEOUT_SECS", "30")),
    )

    github_token = _env_secret("GITHUB_TOKEN")
    github_api = _env_str("GITHUB_API_BASE_URL") or DEFAULT_GITHUB_API
    github_user = _env_str("GITHUB_USER")

    # GitHub forge (optional)
    github = None
    if github_user and _env_flag("GITHUB_SYNC_ENABLED", True):
        github = GitHubConfig(user=github_user, token=github_token, api_base_url=github_api)

    # GitLab forge (optional), self-hosted instances via GITLAB_HOST
    gitlab = None
    gitlab_user = _env_str("GITLAB_USER")
    if gitlab_user and _env_flag("GITLAB_SYNC_ENABLED", True):
        gitlab = GitLabConfig(
            user=gitlab_user,
            host=_env_str("GITLAB_HOST") or DEFAULT_GITLAB_HOST,
            token=_env_secret("GITLAB_TOKEN"),
        )

    # crates.io (optional)
    crates_io = None
    crates_user = _env_str("CRATES_IO_USER")
    if crates_user and _env_flag("CRATES_IO_SYNC_ENABLED", True):
        crates_io = CratesIoConfig(user=crates_user)

    # npm (optional)
    npm = None
    npm_user = _env_str("NPM_USER")
    if npm_user and _env_flag("NPM_SYNC_ENABLED", True):
        npm = NpmConfig(user=npm_user)

    # Contributions (optional). GitHub search is the primary sub-source; GitLab
    # accounts are secondaries, defaulting to the GitLab forge account.
    contributions = None
    contrib_user = _env_str("CONTRIBUTIONS_USER")
    if contrib_user and _env_flag("CONTRIBUTIONS_SYNC_ENABLED", True):
        raw_accounts = os.environ.get("CONTRIBUTIONS_GITLAB_ACCOUNTS")
        if raw_accounts is not None:
            gitlab_accounts = parse_gitlab_accounts(raw_accounts)
        else:
            gitlab_accounts = [gitlab] if gitlab else []
        contributions = ContributionsConfig(
            user=contrib_user,
            token=github_token,
            exclude_owner=_env_str("CONTRIBUTIONS_EXCLUDE_OWNER") or github_user,
            api_base_url=github_api,
            gitlab_accounts=gitlab_accounts,
        )

    return AppConfig(
        database=database,
        sync=sync,
        github=github,
        gitlab=gitlab,
        crates_io=crates_io,
        npm=npm,
        contributions=contributions,
    )
