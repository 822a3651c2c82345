"""Standalone weather and news endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Query, Request

from .portfolio_routes import get_orchestrator

router = APIRouter(prefix="/api", tags=["feeds"])


@router.get("/weather")
async def weather(request: Request, city: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    orchestrator = get_orchestrator(request)
    target = (city or "").strip() or request.app.state.settings.default_city
    outcome = await orchestrator.weather.fetch(target)
    return outcome.value.model_dump(mode="json", by_alias=True)


@router.get("/news")
async def news(request: Request, interests: Optional[str] = Query(default=None)) -> List[Dict[str, Any]]:
    wanted = [item.strip() for item in (interests or "Tech").split(",") if item.strip()]
    outcome = await get_orchestrator(request).news.fetch(wanted)
    return [item.model_dump(mode="json", by_alias=True) for item in outcome.value]


__all__ = ["router"]
