"""Portfolio REST endpoints: generation, reads, refreshes, bookmarks and deletion."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import (
    GenerationUnavailable,
    ProfileNotFound,
    RateLimited,
    RecordNotFound,
    UpstreamError,
)
from .freshness import utc_now
from .orchestrator import GenerateRequest, PortfolioOrchestrator
from .user_record import BookmarkDraft

router = APIRouter(prefix="/api", tags=["portfolio"])
logger = logging.getLogger(__name__)


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateBody(_Body):
    username: str = Field(..., min_length=1)
    city: Optional[str] = None
    interests: Optional[List[str]] = None
    user_bio: Optional[str] = Field(default=None, max_length=2000)
    github_data: Optional[Dict[str, Any]] = None


class RefreshBody(_Body):
    username: str = Field(..., min_length=1)
    force_all: bool = False
    github_data: Optional[Dict[str, Any]] = None


class BookmarksBody(_Body):
    username: str = Field(..., min_length=1)
    bookmarks: List[BookmarkDraft] = Field(default_factory=list)


def get_orchestrator(request: Request) -> PortfolioOrchestrator:
    return request.app.state.orchestrator


def http_error(exc: Exception) -> HTTPException:
    """Translate a domain error into the matching HTTP response."""
    if isinstance(exc, (RecordNotFound, ProfileNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, RateLimited):
        retry_after = exc.retry_after_seconds(utc_now())
        headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
        return HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc), headers=headers)
    if isinstance(exc, GenerationUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, UpstreamError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


_DOMAIN_ERRORS = (
    RecordNotFound,
    ProfileNotFound,
    RateLimited,
    GenerationUnavailable,
    UpstreamError,
    ValueError,
)


@router.post("/generate", status_code=status.HTTP_200_OK)
async def generate_portfolio(payload: GenerateBody, request: Request) -> Dict[str, Any]:
    orchestrator = get_orchestrator(request)
    try:
        result = await orchestrator.generate(
            GenerateRequest(
                username=payload.username,
                city=payload.city,
                interests=payload.interests,
                user_bio=payload.user_bio,
                github_data=payload.github_data,
            )
        )
    except _DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    logger.info("Generate for %s finished (new=%s)", result.record.username, result.is_new)
    return {"isNew": result.is_new, "slug": result.slug, "data": result.record.to_document()}


@router.get("/user/{slug}")
async def read_portfolio(slug: str, request: Request) -> Dict[str, Any]:
    try:
        record = await get_orchestrator(request).load(slug)
    except _DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"data": record.to_document()}


@router.post("/refresh")
async def refresh_portfolio(payload: RefreshBody, request: Request) -> Dict[str, Any]:
    try:
        record = await get_orchestrator(request).refresh(
            payload.username,
            force_all=payload.force_all,
            github_data=payload.github_data,
        )
    except _DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"success": True, "data": record.to_document()}


@router.post("/bookmarks/update")
async def update_bookmarks(payload: BookmarksBody, request: Request) -> Dict[str, Any]:
    drafts = [bookmark.model_dump(by_alias=True, exclude_none=True) for bookmark in payload.bookmarks]
    try:
        bookmarks = await get_orchestrator(request).replace_bookmarks(payload.username, drafts)
    except _DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"success": True, "bookmarks": [bookmark.model_dump(by_alias=True) for bookmark in bookmarks]}


@router.delete("/user/{username}")
async def delete_portfolio(username: str, request: Request) -> Dict[str, Any]:
    try:
        deleted = await get_orchestrator(request).delete(username)
    except _DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"success": True, "deleted": deleted}


__all__ = ["get_orchestrator", "http_error", "router"]
