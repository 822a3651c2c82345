"""Database-backed user record repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.models import PersistenceAuditEventModel, UserRecordModel
from ..errors import RecordAlreadyExists, RecordNotFound
from ..user_record import UserRecord, apply_update


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back out.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserRecordRepository:
    """Maps ``UserRecord`` documents onto the ``user_records`` table."""

    def get(self, session: Session, identity: str) -> UserRecord | None:
        model = self._find(session, identity)
        if model is None:
            return None
        return self._to_domain(model)

    def create(self, session: Session, record: UserRecord) -> UserRecord:
        if self._find(session, record.username) is not None:
            raise RecordAlreadyExists(record.username)
        model = UserRecordModel(username=record.username, slug=record.slug)
        self._apply_record(model, record)
        session.add(model)
        try:
            session.flush()
        except IntegrityError as exc:
            raise RecordAlreadyExists(record.username) from exc
        self._record_audit(session, model.id, "record_create", {"username": record.username})
        return self._to_domain(model)

    def upsert(self, session: Session, record: UserRecord) -> UserRecord:
        model = self._find(session, record.username)
        if model is None:
            model = UserRecordModel(username=record.username, slug=record.slug)
            session.add(model)
        self._apply_record(model, record)
        session.flush()
        self._record_audit(session, model.id, "record_upsert", {"username": record.username})
        return self._to_domain(model)

    def update(
        self,
        session: Session,
        identity: str,
        patch: Mapping[str, Any],
        now: datetime,
    ) -> UserRecord:
        model = self._find(session, identity, for_update=True)
        if model is None:
            raise RecordNotFound(identity)
        updated = apply_update(self._to_domain(model), patch, now)
        self._apply_record(model, updated)
        session.flush()
        event_type = "record_bookmarks" if set(patch) == {"bookmarks"} else "record_update"
        self._record_audit(session, model.id, event_type, {"username": identity, "fields": sorted(patch)})
        return updated

    def delete(self, session: Session, identity: str) -> bool:
        model = self._find(session, identity)
        if model is None:
            return False
        session.delete(model)
        session.flush()
        self._record_audit(session, None, "record_delete", {"username": identity})
        return True

    def recent_audit_events(self, session: Session, identity: str, limit: int = 50) -> List[PersistenceAuditEventModel]:
        model = self._find(session, identity)
        if model is None:
            return []
        stmt = (
            select(PersistenceAuditEventModel)
            .where(PersistenceAuditEventModel.record_id == model.id)
            .order_by(PersistenceAuditEventModel.created_at.desc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find(self, session: Session, identity: str, *, for_update: bool = False) -> UserRecordModel | None:
        stmt = select(UserRecordModel).where(UserRecordModel.username == identity)
        if for_update:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def _apply_record(self, model: UserRecordModel, record: UserRecord) -> None:
        document = record.to_document()
        model.city = record.city
        model.interests = list(record.interests)
        model.user_bio = record.user_bio
        model.github = document["github"]
        model.repos = document["repos"]
        model.ai_bio = record.ai_bio
        model.ai_project_descriptions = dict(record.ai_project_descriptions)
        model.ai_quote = document["aiQuote"]
        model.ai_background_url = record.ai_background_url
        model.ai_card_image_url = record.ai_card_image_url
        model.skills = list(record.skills)
        model.bookmarks = document["bookmarks"]
        model.cached_news = document["cachedNews"]
        model.cached_weather = document["cachedWeather"]
        stamps = record.timestamps
        model.created_at = stamps.created
        model.updated_at = stamps.updated
        model.text_generated_at = stamps.text_generated
        model.image_generated_at = stamps.image_generated
        model.news_updated_at = stamps.news_updated
        model.weather_updated_at = stamps.weather_updated

    def _to_domain(self, model: UserRecordModel) -> UserRecord:
        payload: Dict[str, Any] = {
            "username": model.username,
            "slug": model.slug,
            "city": model.city or "",
            "interests": model.interests or [],
            "userBio": model.user_bio or "",
            "github": model.github,
            "repos": model.repos or [],
            "aiBio": model.ai_bio,
            "aiProjectDescriptions": model.ai_project_descriptions or {},
            "aiQuote": model.ai_quote,
            "aiBackgroundUrl": model.ai_background_url,
            "aiCardImageUrl": model.ai_card_image_url,
            "skills": model.skills or [],
            "bookmarks": model.bookmarks or [],
            "cachedNews": model.cached_news,
            "cachedWeather": model.cached_weather,
            "timestamps": {
                "created": _aware(model.created_at),
                "updated": _aware(model.updated_at),
                "textGenerated": _aware(model.text_generated_at),
                "imageGenerated": _aware(model.image_generated_at),
                "newsUpdated": _aware(model.news_updated_at),
                "weatherUpdated": _aware(model.weather_updated_at),
            },
        }
        return UserRecord.model_validate(payload)

    def _record_audit(
        self,
        session: Session,
        record_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
    ) -> None:
        session.add(
            PersistenceAuditEventModel(
                record_id=record_id,
                event_type=event_type,
                payload=payload,
                actor="system",
            )
        )


user_records = UserRecordRepository()

__all__ = ["UserRecordRepository", "user_records"]
