"""Store facade behaviour across the JSON, database and hybrid backends."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import pytest

from conftest import FakeClock, make_settings
from myedge.db.session import dispose_engine, session_scope
from myedge.errors import RecordAlreadyExists, RecordNotFound
from myedge.repositories.user_records import user_records
from myedge.user_record import UserRecord, UserRecordStore, apply_update


def _store(tmp_path: Path, mode: str = "json") -> UserRecordStore:
    return UserRecordStore(make_settings(tmp_path), mode=mode, clock=FakeClock())


def test_json_store_lifecycle(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        created = await store.create("Octocat", {"city": "Paris"})
        assert created.username == "octocat"
        with pytest.raises(RecordAlreadyExists):
            await store.create("octocat", {})
        updated = await store.update("octocat", {"interests": ["AI"]})
        assert updated.city == "Paris"
        assert updated.interests == ["AI"]
        bookmarks = await store.replace_bookmarks("octocat", [{"name": "Docs", "url": "https://docs.example"}])
        assert [bookmark.order for bookmark in bookmarks] == [0]
        assert await store.delete("octocat") is True
        assert await store.get("octocat") is None
        assert await store.delete("octocat") is False
        with pytest.raises(RecordNotFound):
            await store.update("octocat", {"city": "Oslo"})

    asyncio.run(scenario())
    assert not (tmp_path / "users" / "octocat.json").exists()


def test_concurrent_creates_have_one_winner(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def attempt(city: str) -> str:
        try:
            await store.create("octocat", {"city": city})
        except RecordAlreadyExists:
            return "lost"
        return "won"

    async def scenario() -> list[str]:
        return list(await asyncio.gather(attempt("Paris"), attempt("Tokyo")))

    outcomes = asyncio.run(scenario())
    assert sorted(outcomes) == ["lost", "won"]


def test_concurrent_updates_apply_in_order(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> UserRecord:
        await store.create("octocat", {})
        await asyncio.gather(*(store.update("octocat", {"interests": [f"step-{n}"]}) for n in range(5)))
        record = await store.get("octocat")
        assert record is not None
        return record

    assert asyncio.run(scenario()).interests == ["step-4"]


def test_database_store_round_trip(tmp_path: Path) -> None:
    store = _store(tmp_path, mode="database")

    async def scenario() -> None:
        created = await store.create("dbuser", {"city": "Berlin", "aiBio": "hello"})
        fetched = await store.get("dbuser")
        assert fetched == created
        assert fetched.timestamps.text_generated is not None
        with pytest.raises(RecordAlreadyExists):
            await store.create("dbuser", {})
        updated = await store.update("dbuser", {"city": "Munich"})
        assert updated.city == "Munich"
        assert updated.ai_bio == "hello"
        assert await store.delete("dbuser") is True
        assert await store.get("dbuser") is None

    try:
        asyncio.run(scenario())
    finally:
        dispose_engine()


def test_database_updates_are_audited(tmp_path: Path) -> None:
    store = _store(tmp_path, mode="database")

    async def scenario() -> None:
        await store.create("audited", {})
        await store.replace_bookmarks("audited", [{"name": "A", "url": "https://a.example"}])

    try:
        asyncio.run(scenario())
        with session_scope(commit=False) as session:
            events = user_records.recent_audit_events(session, "audited")
            assert {event.event_type for event in events} == {"record_create", "record_bookmarks"}
    finally:
        dispose_engine()


def test_database_store_uses_injected_database_url(tmp_path: Path) -> None:
    database_file = tmp_path / "injected.db"
    settings = make_settings(
        tmp_path,
        MYEDGE_DATABASE_URL=f"sqlite:///{database_file}",
        MYEDGE_PERSISTENCE_MODE="database",
    )
    store = UserRecordStore(settings, clock=FakeClock())

    async def scenario() -> None:
        await store.create("injected", {"city": "Oslo"})

    try:
        asyncio.run(scenario())
        assert database_file.exists()
        with session_scope(commit=False, settings=settings) as session:
            assert user_records.get(session, "injected") is not None
        with session_scope(commit=False) as session:
            assert user_records.get(session, "injected") is None
    finally:
        dispose_engine()


class _FakeDBStore:
    def __init__(self) -> None:
        self.raise_errors = True
        self.storage: Dict[str, UserRecord] = {}

    def _check(self) -> None:
        if self.raise_errors:
            raise RuntimeError("db unavailable")

    def get(self, identity: str) -> Optional[UserRecord]:
        self._check()
        return self.storage.get(identity)

    def insert(self, record: UserRecord) -> UserRecord:
        self._check()
        if record.username in self.storage:
            raise RecordAlreadyExists(record.username)
        self.storage[record.username] = record
        return record

    def upsert(self, record: UserRecord) -> UserRecord:
        self._check()
        self.storage[record.username] = record
        return record

    def update(self, identity: str, patch: Mapping[str, Any], now: datetime) -> UserRecord:
        self._check()
        existing = self.storage.get(identity)
        if existing is None:
            raise RecordNotFound(identity)
        updated = apply_update(existing, patch, now)
        self.storage[identity] = updated
        return updated

    def delete(self, identity: str) -> bool:
        self._check()
        return self.storage.pop(identity, None) is not None


def test_hybrid_resyncs_json_changes_when_database_recovers(tmp_path: Path) -> None:
    store = _store(tmp_path, mode="hybrid")
    fake_db = _FakeDBStore()
    store._db_store = fake_db  # type: ignore[attr-defined]

    async def scenario() -> None:
        await store.create("resync-user", {"city": "Paris"})
        await store.update("resync-user", {"city": "Lisbon"})
        assert fake_db.storage == {}
        assert "resync-user" in store._pending_resync  # type: ignore[attr-defined]

        fake_db.raise_errors = False
        fetched = await store.get("resync-user")
        assert fetched is not None
        assert fetched.city == "Lisbon"
        assert "resync-user" not in store._pending_resync  # type: ignore[attr-defined]
        assert fake_db.storage["resync-user"].city == "Lisbon"

    asyncio.run(scenario())


def test_hybrid_mirrors_database_writes_to_json(tmp_path: Path) -> None:
    store = _store(tmp_path, mode="hybrid")
    fake_db = _FakeDBStore()
    fake_db.raise_errors = False
    store._db_store = fake_db  # type: ignore[attr-defined]

    async def scenario() -> None:
        await store.create("mirror", {"city": "Rome"})
        fake_db.raise_errors = True
        fetched = await store.get("mirror")
        assert fetched is not None
        assert fetched.city == "Rome"

    asyncio.run(scenario())
