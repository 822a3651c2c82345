"""Error taxonomy shared by the store, the fetchers and the orchestrator."""

from __future__ import annotations

from datetime import datetime
from typing import Optional


class RecordNotFound(LookupError):
    """No user record exists for the requested identity."""

    def __init__(self, identity: str) -> None:
        super().__init__(f"User record for '{identity}' was not found.")
        self.identity = identity


class RecordAlreadyExists(RuntimeError):
    """Advisory conflict raised by ``create``; callers should switch to ``update``."""

    def __init__(self, identity: str) -> None:
        super().__init__(f"User record for '{identity}' already exists.")
        self.identity = identity


class GenerationUnavailable(RuntimeError):
    """The generative backend is unreachable, misconfigured or failed a required item."""


class UpstreamError(RuntimeError):
    """An upstream answered with an unexpected status or payload."""


class ProfileNotFound(LookupError):
    def __init__(self, username: str) -> None:
        super().__init__(f"GitHub user '{username}' does not exist.")
        self.username = username


class RateLimited(RuntimeError):
    """The profile source quota is exhausted."""

    def __init__(self, message: str, *, reset_at: Optional[datetime] = None) -> None:
        super().__init__(message)
        self.reset_at = reset_at

    def retry_after_seconds(self, now: datetime) -> Optional[int]:
        if self.reset_at is None:
            return None
        return max(int((self.reset_at - now).total_seconds()), 0)


__all__ = [
    "GenerationUnavailable",
    "ProfileNotFound",
    "RateLimited",
    "RecordAlreadyExists",
    "RecordNotFound",
    "UpstreamError",
]
