"""Interest-tagged news aggregation across public feeds."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence

import httpx

from .config import Settings, get_settings
from .fallback import FALLBACK_SOURCE, FallbackChain, FetchOutcome
from .freshness import Clock, utc_now
from .user_record import NewsItem

logger = logging.getLogger(__name__)

MAX_NEWS_ITEMS = 8
DEDUP_PREFIX_LENGTH = 50
DEFAULT_INTERESTS = ("Tech",)
USER_AGENT = "MyEdge-Portfolio"

HACKER_NEWS_API = "https://hacker-news.firebaseio.com/v0"
DEV_TO_API = "https://dev.to/api/articles"
GITHUB_SEARCH_API = "https://api.github.com/search/repositories"
RSS2JSON_API = "https://api.rss2json.com/v1/api.json"
YAHOO_FINANCE_RSS = "https://feeds.finance.yahoo.com/rss/2.0/headline?s=^GSPC&region=US&lang=en-US"

DEV_TO_TAGS: Dict[str, tuple[str, ...]] = {
    "AI": ("ai", "machinelearning", "chatgpt"),
    "Tech": ("programming", "webdev", "javascript"),
    "Design": ("design", "ux", "css"),
    "Startup": ("startup", "entrepreneurship", "business"),
}


def time_ago(published: Optional[datetime], now: datetime) -> str:
    if published is None:
        return ""
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    delta = now - published
    minutes = max(int(delta.total_seconds() // 60), 0)
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 24 * 60:
        return f"{minutes // 60}h ago"
    if delta.days < 7:
        return f"{delta.days}d ago"
    return published.date().isoformat()


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError):
        logger.debug("Unparseable news timestamp %r", value)
        return None


def dedupe_news(items: Iterable[NewsItem]) -> List[NewsItem]:
    """Drop items whose case-folded title prefix was already seen; first wins."""
    seen: set[str] = set()
    unique: List[NewsItem] = []
    for item in items:
        key = item.title.casefold()[:DEDUP_PREFIX_LENGTH]
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


FetchItems = Callable[[Sequence[str]], Awaitable[List[NewsItem]]]


@dataclass(frozen=True)
class NewsSource:
    name: str
    tags: FrozenSet[str]
    fetch: FetchItems

    def matches(self, interests: Iterable[str]) -> bool:
        return any(interest in self.tags for interest in interests)


class NewsAggregator:
    """Runs the sources matching a reader's interests and merges their items.

    Sources keep their declared order in the merged list regardless of which
    finishes first.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        sources: Optional[Sequence[NewsSource]] = None,
        clock: Clock = utc_now,
    ) -> None:
        resolved = settings or get_settings()
        self._timeout = resolved.upstream_timeout_seconds
        self._client = client
        self._clock = clock
        self._sources = list(sources) if sources is not None else self.default_sources()

    def default_sources(self) -> List[NewsSource]:
        return [
            NewsSource("Hacker News", frozenset({"Tech", "AI", "Startup"}), self.hacker_news),
            NewsSource("Dev.to", frozenset({"Tech", "Design", "AI"}), self.dev_to),
            NewsSource("GitHub Trending", frozenset({"Tech"}), self.github_trending),
            NewsSource("Yahoo Finance", frozenset({"Finance"}), self.finance),
        ]

    @property
    def sources(self) -> List[NewsSource]:
        return list(self._sources)

    async def _get_json(self, url: str, **params: Any) -> Any:
        local_client = self._client or httpx.AsyncClient(timeout=self._timeout)
        close_client = self._client is None
        try:
            response = await local_client.get(url, params=params or None, headers={"User-Agent": USER_AGENT})
            response.raise_for_status()
            return response.json()
        finally:
            if close_client:
                await local_client.aclose()

    async def hacker_news(self, interests: Sequence[str]) -> List[NewsItem]:
        story_ids = await self._get_json(f"{HACKER_NEWS_API}/topstories.json")
        stories = await asyncio.gather(
            *(self._get_json(f"{HACKER_NEWS_API}/item/{story_id}.json") for story_id in list(story_ids)[:5])
        )
        now = self._clock()
        items: List[NewsItem] = []
        for story in stories:
            if not story or not story.get("title"):
                continue
            published = _parse_datetime(story.get("time"))
            items.append(
                NewsItem(
                    title=story["title"],
                    url=story.get("url") or f"https://news.ycombinator.com/item?id={story.get('id')}",
                    source="Hacker News",
                    category="Tech",
                    published_at=published,
                    time_ago=time_ago(published, now),
                    score=story.get("score"),
                )
            )
        return items

    async def dev_to(self, interests: Sequence[str]) -> List[NewsItem]:
        tag = next((DEV_TO_TAGS[interest][0] for interest in interests if interest in DEV_TO_TAGS), "programming")
        articles = await self._get_json(DEV_TO_API, tag=tag, per_page=4, top=1)
        now = self._clock()
        items: List[NewsItem] = []
        for article in articles or []:
            published = _parse_datetime(article.get("published_at"))
            user = article.get("user") or {}
            items.append(
                NewsItem(
                    title=article["title"],
                    url=article["url"],
                    source="Dev.to",
                    category="Tech",
                    published_at=published,
                    time_ago=time_ago(published, now),
                    author=user.get("name") or user.get("username"),
                    reactions=article.get("public_reactions_count"),
                )
            )
        return items

    async def github_trending(self, interests: Sequence[str]) -> List[NewsItem]:
        now = self._clock()
        since = (now - timedelta(days=7)).date().isoformat()
        data = await self._get_json(
            GITHUB_SEARCH_API,
            q=f"created:>{since}",
            sort="stars",
            order="desc",
            per_page=3,
        )
        items: List[NewsItem] = []
        for repo in (data or {}).get("items") or []:
            description = (repo.get("description") or "")[:60] or "Trending repository"
            published = _parse_datetime(repo.get("created_at"))
            items.append(
                NewsItem(
                    title=f"🔥 {repo['full_name']} - {description}",
                    url=repo["html_url"],
                    source="GitHub Trending",
                    category="Tech",
                    published_at=published,
                    time_ago=time_ago(published, now),
                    stars=repo.get("stargazers_count"),
                )
            )
        return items

    async def finance(self, interests: Sequence[str]) -> List[NewsItem]:
        data = await self._get_json(RSS2JSON_API, rss_url=YAHOO_FINANCE_RSS)
        if not data or data.get("status") != "ok":
            return []
        now = self._clock()
        items: List[NewsItem] = []
        for entry in (data.get("items") or [])[:3]:
            published = _parse_datetime(entry.get("pubDate"))
            items.append(
                NewsItem(
                    title=entry["title"],
                    url=entry["link"],
                    source="Yahoo Finance",
                    category="Finance",
                    published_at=published,
                    time_ago=time_ago(published, now),
                )
            )
        return items

    def _chain(self, source: NewsSource) -> FallbackChain[Sequence[str], List[NewsItem]]:
        return FallbackChain(
            f"news:{source.name}",
            [(source.name, source.fetch)],
            lambda _interests: [],
            timeout_seconds=self._timeout,
        )

    async def fetch(self, interests: Iterable[str]) -> FetchOutcome[List[NewsItem]]:
        """Aggregate news; degraded when every matching source failed."""
        wanted = [interest.strip() for interest in interests if interest and interest.strip()]
        if not wanted:
            wanted = list(DEFAULT_INTERESTS)
        selected = [source for source in self._sources if source.matches(wanted)]
        if not selected:
            return FetchOutcome(value=[], source="none", degraded=False)

        outcomes = await asyncio.gather(*(self._chain(source).fetch(wanted) for source in selected))
        merged: List[NewsItem] = []
        errors: List[str] = []
        for outcome in outcomes:
            merged.extend(outcome.value)
            errors.extend(outcome.errors)
        items = dedupe_news(merged)[:MAX_NEWS_ITEMS]
        all_failed = all(outcome.is_default for outcome in outcomes)
        return FetchOutcome(
            value=items,
            source=FALLBACK_SOURCE if all_failed else "aggregate",
            degraded=any(outcome.degraded for outcome in outcomes),
            errors=tuple(errors),
        )


__all__ = ["NewsAggregator", "NewsSource", "dedupe_news", "time_ago"]
