"""Developer diagnostics, mounted only when MYEDGE_DEBUG_ENDPOINTS is set."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from .portfolio_routes import get_orchestrator

router = APIRouter(prefix="/api", tags=["developer"])


@router.get("/debug")
def debug_bindings(request: Request) -> Dict[str, Any]:
    settings = request.app.state.settings
    orchestrator = get_orchestrator(request)
    return {
        "generative": {
            "configured": orchestrator.content.available,
            "textModel": settings.text_model,
            "imageModel": settings.image_model,
        },
        "images": {
            "configured": orchestrator.content.images_available,
            "blobDir": str(settings.resolved_blob_dir),
        },
        "store": {
            "persistenceMode": orchestrator.store.mode,
            "databaseConfigured": bool(settings.database_url),
        },
        "github": {"tokenConfigured": bool(settings.github_token)},
        "defaultCity": settings.default_city,
    }


__all__ = ["router"]
