from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

os.environ.setdefault("MYEDGE_DATABASE_URL", "sqlite://")
os.environ.setdefault("MYEDGE_PERSISTENCE_MODE", "json")
os.environ.setdefault("MYEDGE_DATA_DIR", tempfile.mkdtemp(prefix="myedge-tests-"))
os.environ.setdefault("MYEDGE_DB_TELEMETRY_INTERVAL", "0")

from myedge.blob_store import MemoryBlobStore  # noqa: E402
from myedge.config import Settings  # noqa: E402
from myedge.content_generation import ContentGenerator  # noqa: E402
from myedge.errors import GenerationUnavailable  # noqa: E402
from myedge.fallback import FALLBACK_SOURCE, FetchOutcome  # noqa: E402
from myedge.github_profile import GitHubProfile  # noqa: E402
from myedge.orchestrator import PortfolioOrchestrator  # noqa: E402
from myedge.user_record import NewsItem, UserRecordStore, WeatherSnapshot  # noqa: E402
from myedge.weather import default_weather  # noqa: E402

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        from datetime import timedelta

        self.now = self.now + timedelta(**delta)


class FakeBackend:
    def __init__(self) -> None:
        self.text_calls: List[int] = []
        self.image_calls: List[tuple[int, int]] = []
        self.fail_text = False
        self.fail_images = False

    async def generate_text(self, prompt: str, max_tokens: int) -> str:
        self.text_calls.append(max_tokens)
        if self.fail_text:
            raise GenerationUnavailable("backend offline")
        if max_tokens == 150:
            return '"Ship small, ship often." — Field Notes'
        if max_tokens == 100:
            return "🚀 A focused tool that does one thing well."
        return "I build developer tools and care about fast feedback loops."

    async def generate_image(self, prompt: str, width: int, height: int) -> bytes:
        self.image_calls.append((width, height))
        if self.fail_images:
            raise GenerationUnavailable("images offline")
        return b"\x89PNG fake"


def octocat_profile() -> GitHubProfile:
    return GitHubProfile(
        user={
            "login": "octocat",
            "name": "The Octocat",
            "avatar_url": "https://avatars.example/octocat.png",
            "followers": 42,
        },
        repos=[
            {"name": "hello-world", "language": "Python", "fork": False, "description": "First repo"},
            {"name": "spoon-knife", "language": "JavaScript", "fork": True, "description": None},
            {"name": "linguist", "language": "Python", "fork": False, "description": None},
        ],
    )


class FakeProfileSource:
    def __init__(self, profile: Optional[GitHubProfile] = None, error: Optional[Exception] = None) -> None:
        self.profile = profile or octocat_profile()
        self.error = error
        self.calls: List[str] = []

    async def get_profile(self, username: str) -> GitHubProfile:
        self.calls.append(username)
        if self.error is not None:
            raise self.error
        return self.profile


class FakeWeather:
    def __init__(self, temp: int = 18) -> None:
        self.temp = temp
        self.calls: List[str] = []
        self.degraded = False

    async def fetch(self, city: str) -> FetchOutcome[WeatherSnapshot]:
        self.calls.append(city)
        if self.degraded:
            return FetchOutcome(value=default_weather(city), source=FALLBACK_SOURCE, degraded=True)
        snapshot = WeatherSnapshot(
            city=city, temp=self.temp, feels=self.temp, humidity=40, wind=5, desc="Sunny", icon="☀️", source="wttr.in"
        )
        return FetchOutcome(value=snapshot, source="wttr.in", degraded=False)


class FakeNews:
    def __init__(self, titles: Sequence[str] = ("Launch day",)) -> None:
        self.titles = list(titles)
        self.calls: List[List[str]] = []

    async def fetch(self, interests: Sequence[str]) -> FetchOutcome[List[NewsItem]]:
        self.calls.append(list(interests))
        items = [
            NewsItem(title=title, url=f"https://news.example/{index}", source="Hacker News", category="Tech")
            for index, title in enumerate(self.titles)
        ]
        return FetchOutcome(value=items, source="aggregate", degraded=False)


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "MYEDGE_PERSISTENCE_MODE": "json",
        "MYEDGE_DATA_DIR": str(tmp_path),
        "MYEDGE_DEFAULT_CITY": "Los Angeles",
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


class Harness:
    def __init__(self, tmp_path: Path) -> None:
        self.settings = make_settings(tmp_path)
        self.clock = FakeClock()
        self.backend = FakeBackend()
        self.blobs = MemoryBlobStore()
        self.profiles = FakeProfileSource()
        self.weather = FakeWeather()
        self.news = FakeNews()
        self.store = UserRecordStore(self.settings, mode="json", clock=self.clock)
        self.orchestrator = PortfolioOrchestrator(
            self.store,
            profile_source=self.profiles,  # type: ignore[arg-type]
            content=ContentGenerator(self.backend, blob_store=self.blobs, clock=self.clock),
            weather=self.weather,  # type: ignore[arg-type]
            news=self.news,  # type: ignore[arg-type]
            settings=self.settings,
            clock=self.clock,
        )


@pytest.fixture()
def harness(tmp_path: Path) -> Harness:
    return Harness(tmp_path)
