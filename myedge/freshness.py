"""Per-category cache freshness windows."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from .user_record import UserRecord

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Category(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    NEWS = "news"
    WEATHER = "weather"


FRESHNESS_WINDOWS: Dict[Category, timedelta] = {
    Category.TEXT: timedelta(hours=24),
    Category.IMAGE: timedelta(days=7),
    Category.NEWS: timedelta(hours=2),
    Category.WEATHER: timedelta(minutes=30),
}

# Timestamp field (camelCase, as persisted) that tracks each category.
TIMESTAMP_FIELDS: Dict[Category, str] = {
    Category.TEXT: "textGenerated",
    Category.IMAGE: "imageGenerated",
    Category.NEWS: "newsUpdated",
    Category.WEATHER: "weatherUpdated",
}


def is_stale(
    last_updated_at: Optional[datetime],
    category: Category | str,
    now: Optional[datetime] = None,
) -> bool:
    """Return True when the category must be refetched.

    A missing timestamp is always stale. An age equal to the window counts as
    stale.
    """
    if last_updated_at is None:
        return True
    window = FRESHNESS_WINDOWS[Category(category)]
    current = now or utc_now()
    if last_updated_at.tzinfo is None:
        last_updated_at = last_updated_at.replace(tzinfo=timezone.utc)
    return current - last_updated_at >= window


def _has_cached_value(record: "UserRecord", category: Category) -> bool:
    if category is Category.TEXT:
        return record.ai_bio is not None
    if category is Category.IMAGE:
        return record.ai_background_url is not None or record.ai_card_image_url is not None
    if category is Category.NEWS:
        return record.cached_news is not None
    return record.cached_weather is not None


def stale_categories(
    record: "UserRecord",
    now: Optional[datetime] = None,
    categories: Optional[List[Category]] = None,
) -> List[Category]:
    """List the categories of ``record`` that are missing or past their window."""
    current = now or utc_now()
    selected = categories or list(Category)
    stale: List[Category] = []
    for category in selected:
        last = record.timestamps.for_category(category)
        if not _has_cached_value(record, category) or is_stale(last, category, current):
            stale.append(category)
    return stale


__all__ = [
    "Category",
    "Clock",
    "FRESHNESS_WINDOWS",
    "TIMESTAMP_FIELDS",
    "is_stale",
    "stale_categories",
    "utc_now",
]
