"""GitHub profile source."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .errors import ProfileNotFound, RateLimited, UpstreamError

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
USER_AGENT = "MyEdge-Portfolio"
REPOS_PER_PAGE = 10


class GitHubProfile(BaseModel):
    """Raw GitHub user and repository payloads, kept as returned by the API."""

    user: Dict[str, Any]
    repos: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def login(self) -> str:
        return str(self.user.get("login") or "")

    @property
    def display_name(self) -> str:
        return str(self.user.get("name") or self.user.get("login") or "")

    @property
    def avatar_url(self) -> Optional[str]:
        return self.user.get("avatar_url")

    def own_repos(self) -> List[Dict[str, Any]]:
        return [repo for repo in self.repos if not repo.get("fork")]


def _reset_at(response: httpx.Response) -> Optional[datetime]:
    raw = response.headers.get("X-RateLimit-Reset")
    if not raw:
        return None
    try:
        return datetime.fromtimestamp(int(raw), tz=timezone.utc)
    except ValueError:
        return None


class GitHubProfileSource:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        resolved = settings or get_settings()
        self._token = resolved.github_token
        self._timeout = resolved.upstream_timeout_seconds
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/vnd.github.v3+json"}
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    async def get_profile(self, username: str) -> GitHubProfile:
        """Fetch the user and their repositories.

        Raises ``RateLimited`` when the quota is exhausted, ``ProfileNotFound``
        for unknown users and ``UpstreamError`` for anything else unexpected.
        """
        local_client = self._client or httpx.AsyncClient(timeout=self._timeout)
        close_client = self._client is None
        headers = self._headers()
        try:
            user_response, repos_response = await asyncio.gather(
                local_client.get(f"{GITHUB_API}/users/{username}", headers=headers),
                local_client.get(
                    f"{GITHUB_API}/users/{username}/repos",
                    params={"sort": "updated", "per_page": REPOS_PER_PAGE},
                    headers=headers,
                ),
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"GitHub API request failed: {exc}") from exc
        finally:
            if close_client:
                await local_client.aclose()

        if user_response.status_code in (403, 429):
            reset_at = _reset_at(user_response)
            raise RateLimited(
                "GitHub API rate limit exceeded; configure GITHUB_TOKEN for a higher quota.",
                reset_at=reset_at,
            )
        if user_response.status_code == 404:
            raise ProfileNotFound(username)
        if user_response.is_error:
            raise UpstreamError(f"GitHub API error: {user_response.status_code}")

        try:
            user = user_response.json()
        except ValueError as exc:
            raise UpstreamError(f"GitHub API returned invalid payload: {exc}") from exc

        repos: List[Dict[str, Any]] = []
        if repos_response.is_success:
            try:
                payload = repos_response.json()
                repos = [repo for repo in payload if isinstance(repo, dict)] if isinstance(payload, list) else []
            except ValueError:
                logger.warning("GitHub repos payload for %s was not JSON", username)
        else:
            logger.warning("GitHub repos request for %s failed with %s", username, repos_response.status_code)

        logger.debug(
            "GitHub quota remaining after %s: %s",
            username,
            user_response.headers.get("X-RateLimit-Remaining"),
        )
        return GitHubProfile(user=user, repos=repos)


__all__ = ["GitHubProfile", "GitHubProfileSource"]
