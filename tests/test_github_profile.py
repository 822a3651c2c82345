from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

from conftest import make_settings
from myedge.errors import ProfileNotFound, RateLimited, UpstreamError
from myedge.github_profile import GitHubProfileSource


def _source(tmp_path: Path, handler, **settings) -> GitHubProfileSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GitHubProfileSource(make_settings(tmp_path, **settings), client=client)


def test_profile_includes_user_and_repos(tmp_path: Path) -> None:
    seen_headers = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_headers.append(request.headers)
        if request.url.path.endswith("/repos"):
            assert request.url.params["per_page"] == "10"
            return httpx.Response(200, json=[{"name": "hello-world", "fork": False}, {"name": "fork", "fork": True}])
        return httpx.Response(200, json={"login": "octocat", "name": "The Octocat"})

    profile = asyncio.run(_source(tmp_path, handler, GITHUB_TOKEN="secret").get_profile("octocat"))
    assert profile.login == "octocat"
    assert [repo["name"] for repo in profile.own_repos()] == ["hello-world"]
    assert all(headers["Authorization"] == "token secret" for headers in seen_headers)
    assert all(headers["Accept"] == "application/vnd.github.v3+json" for headers in seen_headers)


def test_missing_user_raises_profile_not_found(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    with pytest.raises(ProfileNotFound):
        asyncio.run(_source(tmp_path, handler).get_profile("ghost"))


def test_rate_limit_carries_reset_time(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1772370000"})

    with pytest.raises(RateLimited) as excinfo:
        asyncio.run(_source(tmp_path, handler).get_profile("octocat"))
    assert excinfo.value.reset_at == datetime.fromtimestamp(1772370000, tz=timezone.utc)


def test_server_errors_raise_upstream_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    with pytest.raises(UpstreamError):
        asyncio.run(_source(tmp_path, handler).get_profile("octocat"))


def test_transport_errors_raise_upstream_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(UpstreamError):
        asyncio.run(_source(tmp_path, handler).get_profile("octocat"))
