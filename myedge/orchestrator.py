"""Request orchestration for portfolio generation, reads and refreshes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .config import Settings, get_settings
from .content_generation import ContentBundle, ContentGenerator, GeneratedImages
from .errors import GenerationUnavailable, RecordAlreadyExists, RecordNotFound, UpstreamError
from .fallback import FetchOutcome
from .freshness import Category, Clock, stale_categories, utc_now
from .github_profile import GitHubProfile, GitHubProfileSource
from .merge import deep_merge
from .news import NewsAggregator
from .telemetry import emit_event
from .user_record import (
    Bookmark,
    NewsItem,
    UserRecord,
    UserRecordStore,
    WeatherSnapshot,
    default_bookmarks,
    identity_candidates,
    normalize_identity,
)
from .weather import WeatherService

logger = logging.getLogger(__name__)

FEED_CATEGORIES = [Category.WEATHER, Category.NEWS]


@dataclass
class GenerateRequest:
    username: str
    city: Optional[str] = None
    interests: Optional[List[str]] = None
    user_bio: Optional[str] = None
    github_data: Optional[Dict[str, Any]] = None


@dataclass
class GenerateResult:
    is_new: bool
    record: UserRecord

    @property
    def slug(self) -> str:
        return self.record.slug


@dataclass
class RefreshPlan:
    categories: List[Category] = field(default_factory=list)
    force_all: bool = False


def _client_profile(github_data: Optional[Mapping[str, Any]]) -> Optional[GitHubProfile]:
    if not github_data or not github_data.get("user") or github_data.get("repos") is None:
        return None
    return GitHubProfile.model_validate({"user": github_data["user"], "repos": github_data["repos"]})


class PortfolioOrchestrator:
    """Coordinates the store with the profile source, generators and feeds.

    Every collaborator is injected; nothing here reaches for globals besides
    the settings fallback.
    """

    def __init__(
        self,
        store: UserRecordStore,
        *,
        profile_source: GitHubProfileSource,
        content: ContentGenerator,
        weather: WeatherService,
        news: NewsAggregator,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._settings = settings or get_settings()
        self.store = store
        self.profile_source = profile_source
        self.content = content
        self.weather = weather
        self.news = news
        self._clock = clock

    async def _profile(self, identity: str, github_data: Optional[Mapping[str, Any]]) -> GitHubProfile:
        supplied = _client_profile(github_data)
        if supplied is not None:
            return supplied
        return await self.profile_source.get_profile(identity)

    # -- feeds ----------------------------------------------------------

    async def _fetch_weather(self, city: str) -> Optional[FetchOutcome[WeatherSnapshot]]:
        try:
            return await self.weather.fetch(city)
        except Exception:  # noqa: BLE001
            logger.exception("Weather fetch failed for %r", city)
            return None

    async def _fetch_news(self, interests: Sequence[str]) -> Optional[FetchOutcome[List[NewsItem]]]:
        try:
            return await self.news.fetch(interests)
        except Exception:  # noqa: BLE001
            logger.exception("News fetch failed for %s", list(interests))
            return None

    async def _feed_fields(
        self,
        city: str,
        interests: Sequence[str],
        categories: Iterable[Category],
        current: Optional[UserRecord] = None,
    ) -> Dict[str, Any]:
        """Fetch weather and news concurrently and return the fields worth persisting.

        A degraded result never replaces a cached value; its category is left
        unstamped so the next request retries it.
        """
        wanted = set(categories)
        weather_task = self._fetch_weather(city) if Category.WEATHER in wanted else None
        news_task = self._fetch_news(interests) if Category.NEWS in wanted else None
        weather, news = await asyncio.gather(
            weather_task if weather_task is not None else _nothing(),
            news_task if news_task is not None else _nothing(),
        )

        fields: Dict[str, Any] = {}
        identity = current.username if current is not None else None
        if Category.WEATHER in wanted:
            cached = current.cached_weather if current is not None else None
            if weather is None or (weather.is_default and cached is not None):
                logger.info("Keeping cached weather for %s", identity)
            else:
                fields["cachedWeather"] = weather.value.model_dump(mode="json", by_alias=True)
                emit_event("category_refreshed", username=identity, category=Category.WEATHER, source=weather.source)
        if Category.NEWS in wanted:
            cached_news = current.cached_news if current is not None else None
            if news is None or (cached_news and (news.is_default or not news.value)):
                logger.info("Keeping cached news for %s", identity)
            else:
                fields["cachedNews"] = [item.model_dump(mode="json", by_alias=True) for item in news.value]
                emit_event("category_refreshed", username=identity, category=Category.NEWS, source=news.source)
        return fields

    # -- generation -----------------------------------------------------

    @staticmethod
    def _image_fields(images: GeneratedImages, current: Optional[UserRecord]) -> Dict[str, Any]:
        if images.background_url:
            return images.as_fields()
        if current is not None and current.ai_card_image_url:
            return {}
        # Leave the category unstamped so a later refresh tries again.
        return {"aiCardImageUrl": images.card_image_url, "timestamps": {"imageGenerated": None}}

    async def generate(self, request: GenerateRequest) -> GenerateResult:
        identity = normalize_identity(request.username)
        existing = await self.store.get(identity)
        if existing is not None:
            changes: Dict[str, Any] = {}
            if request.city is not None:
                changes["city"] = request.city
            if request.interests is not None:
                changes["interests"] = list(request.interests)
            if request.user_bio is not None:
                changes["userBio"] = request.user_bio
            record = await self.store.update(identity, changes) if changes else existing
            return GenerateResult(is_new=False, record=record)

        profile = await self._profile(identity, request.github_data)
        city = request.city or self._settings.default_city
        interests = list(request.interests or [])
        user_bio = request.user_bio or ""

        bundle, feeds = await asyncio.gather(
            self.content.generate(profile, user_bio=user_bio, interests=interests),
            self._feed_fields(city, interests, FEED_CATEGORIES),
        )
        images = await self.content.generate_images(identity, profile, bundle.skills)

        fields: Dict[str, Any] = {
            "city": city,
            "interests": interests,
            "userBio": user_bio,
            "github": profile.user,
            "repos": profile.repos,
            "bookmarks": [bookmark.model_dump(by_alias=True) for bookmark in default_bookmarks()],
        }
        fields = deep_merge(fields, bundle.as_fields())
        fields = deep_merge(fields, self._image_fields(images, None))
        fields = deep_merge(fields, feeds)

        try:
            record = await self.store.create(identity, fields)
        except RecordAlreadyExists:
            logger.info("Concurrent first generation for %s; merging into existing record", identity)
            fields.pop("bookmarks", None)
            record = await self.store.update(identity, fields)
            return GenerateResult(is_new=False, record=record)

        emit_event("portfolio_generated", username=identity, slug=record.slug, images=bool(images.background_url))
        return GenerateResult(is_new=True, record=record)

    # -- reads ----------------------------------------------------------

    async def resolve(self, slug: str) -> UserRecord:
        """Find the record addressed by a public slug, without refreshing it."""
        wanted = slug.strip().lower()
        for candidate in identity_candidates(wanted):
            record = await self.store.get(candidate)
            if record is not None and (record.slug == wanted or candidate == wanted):
                return record
        raise RecordNotFound(wanted)

    async def load(self, slug: str) -> UserRecord:
        record = await self.resolve(slug)
        stale = stale_categories(record, self._clock(), FEED_CATEGORIES)
        if not stale:
            return record
        fields = await self._feed_fields(record.city or self._settings.default_city, record.interests, stale, record)
        if not fields:
            return record
        return await self.store.update(record.username, fields)

    async def refresh(
        self,
        username: str,
        *,
        force_all: bool = False,
        github_data: Optional[Mapping[str, Any]] = None,
    ) -> UserRecord:
        identity = normalize_identity(username)
        record = await self.store.get(identity)
        if record is None:
            raise RecordNotFound(identity)

        fields: Dict[str, Any] = {}
        try:
            profile = await self._profile(identity, github_data)
        except UpstreamError as exc:
            logger.warning("Refreshing %s from the cached profile: %s", identity, exc)
            profile = GitHubProfile(user=record.github or {}, repos=record.repos)
        else:
            fields.update({"github": profile.user, "repos": profile.repos})
        plan = RefreshPlan(
            categories=list(Category) if force_all else stale_categories(record, self._clock()),
            force_all=force_all,
        )

        bundle: Optional[ContentBundle] = None
        if Category.TEXT in plan.categories:
            try:
                bundle = await self.content.generate(profile, user_bio=record.user_bio, interests=record.interests)
            except GenerationUnavailable as exc:
                logger.warning("Keeping cached text for %s: %s", identity, exc)
            else:
                fields = deep_merge(fields, bundle.as_fields())
                emit_event("category_refreshed", username=identity, category=Category.TEXT, source="generative")

        feed_categories = [category for category in FEED_CATEGORIES if category in plan.categories]
        image_wanted = Category.IMAGE in plan.categories and self.content.images_available
        skills = bundle.skills if bundle is not None else record.skills
        feeds, images = await asyncio.gather(
            self._feed_fields(record.city or self._settings.default_city, record.interests, feed_categories, record),
            self.content.generate_images(identity, profile, skills) if image_wanted else _nothing(),
        )
        fields = deep_merge(fields, feeds)
        if images is not None:
            image_fields = self._image_fields(images, record)
            fields = deep_merge(fields, image_fields)
            if images.background_url:
                emit_event("category_refreshed", username=identity, category=Category.IMAGE, source="generative")

        updated = await self.store.update(identity, fields)
        emit_event(
            "portfolio_refreshed",
            username=identity,
            force_all=force_all,
            categories=[category.value for category in plan.categories],
        )
        return updated

    # -- delegation -----------------------------------------------------

    async def replace_bookmarks(self, username: str, bookmarks: Iterable[Mapping[str, Any]]) -> List[Bookmark]:
        return await self.store.replace_bookmarks(username, bookmarks)

    async def delete(self, username: str) -> bool:
        return await self.store.delete(username)


async def _nothing() -> None:
    return None


__all__ = ["GenerateRequest", "GenerateResult", "PortfolioOrchestrator"]
