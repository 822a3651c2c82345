"""User record models, merge rules and persistence backends."""

from __future__ import annotations

import json
import logging
import os
import re
import secrets
import string
import uuid
from datetime import datetime
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Type,
    Union,
    get_args,
    get_origin,
)

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python

from .config import Settings, get_settings
from .db.session import session_scope
from .errors import RecordAlreadyExists, RecordNotFound
from .freshness import TIMESTAMP_FIELDS, Category, Clock, utc_now
from .identity_queue import IdentityQueue
from .merge import deep_merge

logger = logging.getLogger(__name__)

DEFAULT_BOOKMARK_ICON = "🔗"
SLUG_SUFFIX_LENGTH = 6
_SLUG_ALPHABET = string.ascii_lowercase + string.digits
_USERNAME_RE = re.compile(r"^[a-z0-9-]{1,39}$")

# Fields whose writes must stamp the category timestamp in the same update.
CATEGORY_FIELDS: Dict[Category, tuple[str, ...]] = {
    Category.TEXT: ("aiBio", "aiProjectDescriptions", "aiQuote", "skills"),
    Category.IMAGE: ("aiBackgroundUrl", "aiCardImageUrl"),
    Category.NEWS: ("cachedNews",),
    Category.WEATHER: ("cachedWeather",),
}
IMMUTABLE_FIELDS = ("username", "slug")


if TYPE_CHECKING:
    from .repositories.user_records import UserRecordRepository


def _repo() -> "UserRecordRepository":
    from .repositories.user_records import user_records as repository

    return repository


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Bookmark(_Document):
    id: str
    name: str
    url: str
    icon: str = DEFAULT_BOOKMARK_ICON
    order: int = 0


class BookmarkDraft(_Document):
    """Bookmark as submitted by a client; ``id`` and ``order`` are assigned on write."""

    id: Optional[str] = None
    name: str
    url: str
    icon: Optional[str] = None
    order: Optional[int] = None


class Quote(_Document):
    text: str
    author: str


class NewsItem(_Document):
    title: str
    url: str
    source: str
    category: str
    published_at: Optional[datetime] = None
    time_ago: str = ""
    score: Optional[int] = None
    author: Optional[str] = None
    reactions: Optional[int] = None
    stars: Optional[int] = None


class WeatherSnapshot(_Document):
    city: str
    temp: int
    feels: int
    humidity: int
    wind: int
    desc: str
    icon: str
    source: str
    aqi: Optional[Union[int, float, str]] = None
    pm25: Optional[Union[int, float, str]] = None
    pm10: Optional[Union[int, float, str]] = None
    uv_index: Optional[Union[int, float, str]] = None
    pressure: Optional[Union[int, float, str]] = None
    visibility: Optional[Union[int, float, str]] = None
    pub_time: Optional[str] = None


class RecordTimestamps(_Document):
    created: datetime = Field(default_factory=utc_now)
    updated: datetime = Field(default_factory=utc_now)
    text_generated: Optional[datetime] = None
    image_generated: Optional[datetime] = None
    news_updated: Optional[datetime] = None
    weather_updated: Optional[datetime] = None

    def for_category(self, category: Category) -> Optional[datetime]:
        return {
            Category.TEXT: self.text_generated,
            Category.IMAGE: self.image_generated,
            Category.NEWS: self.news_updated,
            Category.WEATHER: self.weather_updated,
        }[category]


class UserRecord(_Document):
    username: str
    slug: str
    city: str = ""
    interests: List[str] = Field(default_factory=list)
    user_bio: str = ""
    github: Optional[Dict[str, Any]] = None
    repos: List[Dict[str, Any]] = Field(default_factory=list)
    ai_bio: Optional[str] = None
    ai_project_descriptions: Dict[str, str] = Field(default_factory=dict)
    ai_quote: Optional[Quote] = None
    ai_background_url: Optional[str] = None
    ai_card_image_url: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    bookmarks: List[Bookmark] = Field(default_factory=list)
    timestamps: RecordTimestamps = Field(default_factory=RecordTimestamps)
    cached_news: Optional[List[NewsItem]] = None
    cached_weather: Optional[WeatherSnapshot] = None

    def to_document(self) -> Dict[str, Any]:
        """Serialise to the persisted JSON document (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)


def default_bookmarks() -> List[Bookmark]:
    return [
        Bookmark(id="1", name="Google", url="https://google.com", icon="🔍", order=0),
        Bookmark(id="2", name="GitHub", url="https://github.com", icon="🐙", order=1),
        Bookmark(id="3", name="Twitter", url="https://twitter.com", icon="🐦", order=2),
        Bookmark(id="4", name="YouTube", url="https://youtube.com", icon="📺", order=3),
    ]


def normalize_identity(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized:
        raise ValueError("Username cannot be empty.")
    if not _USERNAME_RE.match(normalized):
        raise ValueError(f"Invalid GitHub username: {value!r}")
    return normalized


def generate_slug(identity: str) -> str:
    suffix = "".join(secrets.choice(_SLUG_ALPHABET) for _ in range(SLUG_SUFFIX_LENGTH))
    return f"{identity}-{suffix}"


def identity_candidates(slug: str) -> List[str]:
    """Identities a public slug may address, most specific first.

    ``octocat-a1b2c3`` addresses ``octocat``; a bare username (the ``/@name``
    alias) addresses itself.
    """
    candidates: List[str] = []
    trimmed = slug.strip().lower()
    if "-" in trimmed:
        candidates.append(trimmed.rsplit("-", 1)[0])
    candidates.append(trimmed)
    valid: List[str] = []
    for candidate in candidates:
        if _USERNAME_RE.match(candidate) and candidate not in valid:
            valid.append(candidate)
    return valid


def reindex_bookmarks(items: Iterable[Union[BookmarkDraft, Bookmark, Mapping[str, Any]]]) -> List[Bookmark]:
    """Assign ``order`` from position and generate ids for bookmarks that lack one."""
    drafts = [
        item if isinstance(item, BookmarkDraft) else BookmarkDraft.model_validate(
            item.model_dump() if isinstance(item, Bookmark) else item
        )
        for item in items
    ]
    taken: Set[str] = {draft.id for draft in drafts if draft.id}
    bookmarks: List[Bookmark] = []
    for index, draft in enumerate(drafts):
        bookmark_id = draft.id
        if not bookmark_id:
            bookmark_id = uuid.uuid4().hex[:12]
            while bookmark_id in taken:
                bookmark_id = uuid.uuid4().hex[:12]
            taken.add(bookmark_id)
        bookmarks.append(
            Bookmark(
                id=bookmark_id,
                name=draft.name,
                url=draft.url,
                icon=draft.icon or DEFAULT_BOOKMARK_ICON,
                order=index,
            )
        )
    return bookmarks


def _nested_model(annotation: Any) -> Tuple[Optional[Type[BaseModel]], bool]:
    """The document model behind a field annotation, and whether it is a list of them."""
    origin = get_origin(annotation)
    if origin is Union:
        for arg in get_args(annotation):
            if arg is not type(None):
                model, many = _nested_model(arg)
                if model is not None:
                    return model, many
        return None, False
    if origin is list:
        args = get_args(annotation)
        model, _ = _nested_model(args[0]) if args else (None, False)
        return model, model is not None
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation, False
    return None, False


def _canonical_value(value: Any, annotation: Any) -> Any:
    model, many = _nested_model(annotation)
    if model is None:
        return value
    if many and isinstance(value, list):
        return [_canonical_keys(item, model) if isinstance(item, Mapping) else item for item in value]
    if not many and isinstance(value, Mapping):
        return _canonical_keys(value, model)
    return value


def _canonical_keys(payload: Mapping[str, Any], model: Type[BaseModel]) -> Dict[str, Any]:
    fields = model.model_fields
    aliased = {info.alias: info for info in fields.values() if info.alias}
    canonical: Dict[str, Any] = {}
    for key, value in payload.items():
        info = fields.get(key) or aliased.get(key)
        if info is None:
            canonical[key] = value
            continue
        canonical[info.alias or key] = _canonical_value(value, info.annotation)
    return canonical


def canonical_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert a patch to JSON values keyed by the persisted (camelCase) names.

    Sub-documents (weather, quote, news items, bookmarks, timestamps) are
    re-keyed as well, so a snake_case key never lands beside its alias.
    """
    document = to_jsonable_python(dict(patch), by_alias=True)
    document = _canonical_keys(document, UserRecord)
    if "timestamps" in document and not isinstance(document["timestamps"], Mapping):
        document.pop("timestamps")
    return document


def _stamp_categories(document: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    timestamps = dict(document.get("timestamps") or {})
    for category, fields in CATEGORY_FIELDS.items():
        if any(field in document for field in fields):
            timestamps.setdefault(TIMESTAMP_FIELDS[category], now.isoformat())
    if timestamps:
        document["timestamps"] = timestamps
    return document


def _bookmark_documents(items: Iterable[Any]) -> List[Dict[str, Any]]:
    return [bookmark.model_dump(mode="json", by_alias=True) for bookmark in reindex_bookmarks(items)]


def build_record(identity: str, initial_fields: Mapping[str, Any], now: datetime) -> UserRecord:
    """Assemble a new record; the slug is generated unless one is supplied."""
    document = _stamp_categories(canonical_patch(initial_fields), now)
    document["username"] = identity
    document["slug"] = document.get("slug") or generate_slug(identity)
    document["bookmarks"] = _bookmark_documents(document.get("bookmarks") or [])
    timestamps = dict(document.get("timestamps") or {})
    timestamps["created"] = now.isoformat()
    timestamps["updated"] = now.isoformat()
    document["timestamps"] = timestamps
    return UserRecord.model_validate(document)


def apply_update(record: UserRecord, patch: Mapping[str, Any], now: datetime) -> UserRecord:
    """Deep-merge ``patch`` into ``record``.

    Bookmarks are replaced as a whole and reindexed. ``username``, ``slug``
    and ``timestamps.created`` never change; ``timestamps.updated`` is set to
    ``now``.
    """
    incoming = canonical_patch(patch)
    for field in IMMUTABLE_FIELDS:
        if field in incoming:
            if incoming[field] != getattr(record, field):
                logger.warning("Ignoring attempt to change %s of %s", field, record.username)
            incoming.pop(field)
    if isinstance(incoming.get("timestamps"), dict):
        incoming["timestamps"].pop("created", None)
    incoming = _stamp_categories(incoming, now)

    merged = deep_merge(record.to_document(), incoming)
    if "bookmarks" in incoming:
        merged["bookmarks"] = _bookmark_documents(incoming["bookmarks"] or [])
    merged["timestamps"]["updated"] = now.isoformat()
    return UserRecord.model_validate(merged)


class _DatabaseUserRecordStore:
    """SQLAlchemy-backed persistence; each call is one transaction."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get(self, identity: str) -> Optional[UserRecord]:
        with session_scope(commit=False, settings=self._settings) as session:
            return _repo().get(session, identity)

    def insert(self, record: UserRecord) -> UserRecord:
        with session_scope(settings=self._settings) as session:
            return _repo().create(session, record)

    def upsert(self, record: UserRecord) -> UserRecord:
        with session_scope(settings=self._settings) as session:
            return _repo().upsert(session, record)

    def update(self, identity: str, patch: Mapping[str, Any], now: datetime) -> UserRecord:
        with session_scope(settings=self._settings) as session:
            return _repo().update(session, identity, patch, now)

    def delete(self, identity: str) -> bool:
        with session_scope(settings=self._settings) as session:
            return _repo().delete(session, identity)


class _JsonUserRecordStore:
    """One JSON document per identity, used offline and as the hybrid fallback."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    def _path(self, identity: str) -> Path:
        return self._directory / f"{identity}.json"

    def _read(self, identity: str) -> Optional[UserRecord]:
        path = self._path(identity)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                return UserRecord.model_validate(json.load(handle))
        except Exception:  # noqa: BLE001
            logger.exception("Failed to parse stored user record %s", path)
            return None

    def _write(self, record: UserRecord) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path(record.username)
        staging = path.with_suffix(".json.tmp")
        with staging.open("w", encoding="utf-8") as handle:
            json.dump(record.to_document(), handle, indent=2, ensure_ascii=False)
        os.replace(staging, path)

    def get(self, identity: str) -> Optional[UserRecord]:
        return self._read(identity)

    def insert(self, record: UserRecord) -> UserRecord:
        if self._path(record.username).exists():
            raise RecordAlreadyExists(record.username)
        self._write(record)
        return record

    def upsert(self, record: UserRecord) -> UserRecord:
        self._write(record)
        return record

    def update(self, identity: str, patch: Mapping[str, Any], now: datetime) -> UserRecord:
        existing = self._read(identity)
        if existing is None:
            raise RecordNotFound(identity)
        updated = apply_update(existing, patch, now)
        self._write(updated)
        return updated

    def delete(self, identity: str) -> bool:
        try:
            self._path(identity).unlink()
        except FileNotFoundError:
            return False
        return True


class UserRecordStore:
    """Per-identity store facade over the database and JSON backends.

    Every operation for an identity is queued behind the previous one for the
    same identity; operations on different identities run independently.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        data_dir: Optional[Path] = None,
        mode: Optional[str] = None,
        clock: Clock = utc_now,
    ) -> None:
        resolved = settings or get_settings()
        self._mode = mode or resolved.persistence_mode
        self._clock = clock
        self._db_store = _DatabaseUserRecordStore(resolved)
        self._json_store = _JsonUserRecordStore((data_dir or resolved.data_dir) / "users")
        self._pending_resync: Set[str] = set()
        self._queue = IdentityQueue()

    @property
    def mode(self) -> str:
        return self._mode

    def _call(self, method: str, identity: str, *args: Any) -> Any:
        if self._mode == "hybrid":
            self._try_resync(identity)
        if self._mode == "json":
            return getattr(self._json_store, method)(*args)
        try:
            result = getattr(self._db_store, method)(*args)
        except (RecordNotFound, RecordAlreadyExists):
            raise
        except Exception as exc:  # noqa: BLE001
            if self._mode == "hybrid":
                logger.warning(
                    "Database persistence error during %s; falling back to JSON store: %s",
                    method,
                    exc,
                )
                self._pending_resync.add(identity)
                return getattr(self._json_store, method)(*args)
            raise
        if self._mode == "hybrid":
            self._mirror(method, identity, result)
        return result

    def _mirror(self, method: str, identity: str, result: Any) -> None:
        """Keep the JSON copy current so a database outage can fall back to it."""
        try:
            if method == "delete":
                self._json_store.delete(identity)
            elif method != "get" and isinstance(result, UserRecord):
                self._json_store.upsert(result)
        except OSError as exc:
            logger.warning("Failed to mirror %s for %s to JSON store: %s", method, identity, exc)

    def _try_resync(self, identity: str) -> None:
        if identity not in self._pending_resync:
            return
        local = self._json_store.get(identity)
        try:
            if local is None:
                self._db_store.delete(identity)
            else:
                self._db_store.upsert(local)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to resync user record for %s: %s", identity, exc)
            return
        self._pending_resync.discard(identity)
        logger.info("Resynced user record for %s from JSON store", identity)

    async def _run(self, method: str, identity: str, *args: Any) -> Any:
        return await self._queue.run(identity, self._call, method, identity, *args)

    async def get(self, identity: str) -> Optional[UserRecord]:
        normalized = normalize_identity(identity)
        return await self._run("get", normalized, normalized)

    async def create(self, identity: str, initial_fields: Mapping[str, Any]) -> UserRecord:
        """Create the record; raises ``RecordAlreadyExists`` when one is present."""
        normalized = normalize_identity(identity)
        record = build_record(normalized, initial_fields, self._clock())
        return await self._run("insert", normalized, record)

    async def update(self, identity: str, partial_fields: Mapping[str, Any]) -> UserRecord:
        normalized = normalize_identity(identity)
        return await self._run("update", normalized, normalized, dict(partial_fields), self._clock())

    async def replace_bookmarks(
        self,
        identity: str,
        bookmarks: Iterable[Union[BookmarkDraft, Bookmark, Mapping[str, Any]]],
    ) -> List[Bookmark]:
        normalized = normalize_identity(identity)
        drafts = [
            item.model_dump(by_alias=True) if isinstance(item, BaseModel) else dict(item)
            for item in bookmarks
        ]
        record = await self._run("update", normalized, normalized, {"bookmarks": drafts}, self._clock())
        return record.bookmarks

    async def delete(self, identity: str) -> bool:
        normalized = normalize_identity(identity)
        return await self._run("delete", normalized, normalized)


__all__ = [
    "Bookmark",
    "BookmarkDraft",
    "CATEGORY_FIELDS",
    "NewsItem",
    "Quote",
    "RecordTimestamps",
    "UserRecord",
    "UserRecordStore",
    "WeatherSnapshot",
    "apply_update",
    "build_record",
    "canonical_patch",
    "default_bookmarks",
    "generate_slug",
    "identity_candidates",
    "normalize_identity",
    "reindex_bookmarks",
]
