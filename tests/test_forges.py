"""GitHub and GitLab forge sources."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from portfolio_sync.config import GitHubConfig, GitLabConfig
from portfolio_sync.errors import RateLimited
from portfolio_sync.sources.github import GitHubForgeSource
from portfolio_sync.sources.gitlab import GitLabForgeSource
from tests.helpers import FakeResponse, FakeSession, paged


def github_repo(i: int, **overrides) -> dict:
    repo = {
        "id": i,
        "name": f"repo{i}",
        "full_name": f"octo/repo{i}",
        "html_url": f"https://github.com/octo/repo{i}",
        "description": None,
        "language": "Rust",
        "stargazers_count": i,
        "fork": False,
        "archived": False,
        "topics": ["cli"],
        "updated_at": "2024-03-01T00:00:00Z",
        "pushed_at": "2024-02-20T00:00:00Z",
    }
    repo.update(overrides)
    return repo


def gitlab_project(i: int, **overrides) -> dict:
    project = {
        "id": 1000 + i,
        "path_with_namespace": f"tanuki/project{i}",
        "name": f"project{i}",
        "description": "A test project",
        "web_url": f"https://gitlab.com/tanuki/project{i}",
        "star_count": 42,
        "archived": False,
        "forked_from_project": None,
        "topics": ["rust", "testing"],
        "last_activity_at": "2024-01-15T10:30:00Z",
    }
    project.update(overrides)
    return project


class TestGitHubForge:
    def test_excludes_forks_and_archived(self, github_config):
        page = [
            github_repo(1, fork=True, name="forked"),
            github_repo(2, name="owned"),
            github_repo(3, archived=True, name="old"),
        ]
        session = FakeSession(lambda url, params: FakeResponse(page))

        repos = GitHubForgeSource(github_config, session).fetch()

        assert [r.name for r in repos] == ["owned"]

    def test_maps_repository_fields(self, github_config):
        page = [github_repo(7, description="Widgets", topics=["cli", "tui"])]
        session = FakeSession(lambda url, params: FakeResponse(page))

        (repo,) = GitHubForgeSource(github_config, session).fetch()

        assert repo.forge == "github"
        assert repo.forge_id == "octo/repo7"
        assert repo.url == "https://github.com/octo/repo7"
        assert repo.description == "Widgets"
        assert repo.language == "Rust"
        assert repo.stars == 7
        assert repo.topics == ["cli", "tui"]
        assert repo.updated_at == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_updated_at_comes_from_updated_at_not_pushed_at(self, github_config):
        page = [github_repo(1, updated_at="2024-04-02T08:00:00Z", pushed_at="2023-12-31T00:00:00Z")]
        session = FakeSession(lambda url, params: FakeResponse(page))

        (repo,) = GitHubForgeSource(github_config, session).fetch()

        assert repo.updated_at == datetime(2024, 4, 2, 8, tzinfo=timezone.utc)

    def test_request_shape(self, github_config):
        session = FakeSession(lambda url, params: FakeResponse([]))

        GitHubForgeSource(github_config, session).fetch()

        call = session.calls[0]
        assert call.url == "https://api.github.com/users/octo/repos"
        assert call.params == {"type": "owner", "sort": "updated", "per_page": 100, "page": 1}
        assert call.headers["Authorization"] == "Bearer ghp_test"
        assert call.headers["Accept"] == "application/vnd.github+json"
        assert call.headers["User-Agent"] == "portfolio-sync/1.0"

    def test_token_is_optional(self):
        session = FakeSession(lambda url, params: FakeResponse([]))

        GitHubForgeSource(GitHubConfig(user="octo"), session).fetch()

        assert "Authorization" not in session.calls[0].headers

    def test_walks_pages(self, github_config):
        session = FakeSession(paged([100, 100, 40], github_repo))

        repos = GitHubForgeSource(github_config, session).fetch()

        assert len(repos) == 240
        assert len(session.calls) == 3

    def test_filtered_items_still_count_towards_page_size(self, github_config):
        session = FakeSession(paged([100, 10], lambda i: github_repo(i, fork=i % 2 == 0)))

        repos = GitHubForgeSource(github_config, session).fetch()

        assert len(session.calls) == 2
        assert len(repos) == 55

    def test_rate_limit_propagates(self, github_config, monkeypatch):
        monkeypatch.setattr("portfolio_sync.base_source.time.time", lambda: 1_700_000_000.0)
        session = FakeSession(
            lambda url, params: FakeResponse(
                {"message": "API rate limit exceeded"},
                status_code=403,
                headers={
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(1_700_000_000 + 900),
                },
            )
        )

        with pytest.raises(RateLimited) as excinfo:
            GitHubForgeSource(github_config, session).fetch()

        assert excinfo.value.retry_after_seconds == 900

    def test_enterprise_base_url(self):
        config = GitHubConfig(user="octo", api_base_url="https://ghe.example.com/api/v3/")
        session = FakeSession(lambda url, params: FakeResponse([]))

        GitHubForgeSource(config, session).fetch()

        assert session.calls[0].url == "https://ghe.example.com/api/v3/users/octo/repos"


class TestGitLabForge:
    def test_excludes_archived_and_forked(self, gitlab_config):
        page = [
            gitlab_project(1, name="active"),
            gitlab_project(2, name="archived", archived=True),
            gitlab_project(3, name="forked", forked_from_project={"id": 9}),
        ]
        session = FakeSession(lambda url, params: FakeResponse(page))

        repos = GitLabForgeSource(gitlab_config, session).fetch()

        assert [r.name for r in repos] == ["active"]

    def test_maps_project_fields(self, gitlab_config):
        session = FakeSession(lambda url, params: FakeResponse([gitlab_project(0)]))

        (repo,) = GitLabForgeSource(gitlab_config, session).fetch()

        assert repo.forge == "gitlab"
        assert repo.forge_id == "1000"
        assert repo.name == "project0"
        assert repo.url == "https://gitlab.com/tanuki/project0"
        assert repo.language is None
        assert repo.stars == 42
        assert repo.topics == ["rust", "testing"]
        assert repo.updated_at == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_custom_host_and_token(self):
        config = GitLabConfig(user="tanuki", host="gitlab.example.com", token="glpat")
        session = FakeSession(lambda url, params: FakeResponse([]))

        GitLabForgeSource(config, session).fetch()

        call = session.calls[0]
        assert call.url == "https://gitlab.example.com/api/v4/users/tanuki/projects"
        assert call.params["visibility"] == "public"
        assert call.params["order_by"] == "updated_at"
        assert call.headers["Authorization"] == "Bearer glpat"

    def test_unauthenticated_by_default(self, gitlab_config):
        session = FakeSession(lambda url, params: FakeResponse([]))

        GitLabForgeSource(gitlab_config, session).fetch()

        assert "Authorization" not in session.calls[0].headers

    def test_429_retry_after(self, gitlab_config):
        session = FakeSession(
            lambda url, params: FakeResponse(status_code=429, headers={"Retry-After": "42"})
        )

        with pytest.raises(RateLimited) as excinfo:
            GitLabForgeSource(gitlab_config, session).fetch()

        assert excinfo.value.retry_after_seconds == 42
        assert excinfo.value.source == "gitlab"
