"""Engine and session helpers for the database persistence mode."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings
from . import models  # noqa: F401  registers tables on Base.metadata
from .base import Base
from .monitoring import instrument_engine

_engines: Dict[str, Engine] = {}
_session_factories: Dict[str, sessionmaker[Session]] = {}


def _build_engine(settings: Settings) -> Engine:
    database_url = _database_url(settings)

    kwargs: dict[str, object] = {
        "echo": settings.database_echo,
        "future": True,
        "pool_pre_ping": True,
    }

    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # In-memory databases live and die with their single connection.
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow

    return create_engine(database_url, **kwargs)


def _database_url(settings: Settings) -> str:
    database_url = settings.database_url
    if not database_url:
        raise RuntimeError("MYEDGE_DATABASE_URL must be configured before using the database.")
    return database_url


def get_engine(settings: Optional[Settings] = None) -> Engine:
    """Engine for the configured database, built and instrumented once per URL."""
    resolved = settings or get_settings()
    database_url = _database_url(resolved)
    engine = _engines.get(database_url)
    if engine is None:
        engine = _build_engine(resolved)
        instrument_engine(engine)
        Base.metadata.create_all(engine)
        _engines[database_url] = engine
        _session_factories[database_url] = sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
    return engine


def get_session_factory(settings: Optional[Settings] = None) -> sessionmaker[Session]:
    resolved = settings or get_settings()
    database_url = _database_url(resolved)
    if database_url not in _session_factories:
        get_engine(resolved)
    return _session_factories[database_url]


@contextmanager
def session_scope(
    *,
    commit: bool = True,
    settings: Optional[Settings] = None,
) -> Generator[Session, None, None]:
    session = get_session_factory(settings)()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
    _session_factories.clear()


__all__ = [
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
