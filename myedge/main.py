import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response

from . import developer_routes, feed_routes, portfolio_routes
from .blob_store import BlobStore, FileBlobStore
from .config import Settings, get_settings
from .content_generation import ContentGenerator
from .db.monitoring import get_pool_snapshot
from .db.session import get_engine
from .errors import RecordNotFound
from .generative import OpenAIGenerativeBackend
from .github_profile import GitHubProfileSource
from .logging_config import configure_logging
from .news import NewsAggregator
from .orchestrator import PortfolioOrchestrator
from .social_preview import (
    is_social_bot,
    render_not_found_page,
    render_portfolio_page,
    render_social_preview,
)
from .user_record import UserRecordStore
from .weather import WeatherService

configure_logging()
logger = logging.getLogger(__name__)

ASSET_CACHE_CONTROL = "public, max-age=604800"


def build_orchestrator(settings: Settings, blob_store: Optional[BlobStore] = None) -> PortfolioOrchestrator:
    backend = OpenAIGenerativeBackend(settings) if settings.openai_api_key else None
    return PortfolioOrchestrator(
        UserRecordStore(settings),
        profile_source=GitHubProfileSource(settings),
        content=ContentGenerator(backend, blob_store=blob_store),
        weather=WeatherService(settings),
        news=NewsAggregator(settings),
        settings=settings,
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    orchestrator: Optional[PortfolioOrchestrator] = None,
    blob_store: Optional[BlobStore] = None,
) -> FastAPI:
    resolved = settings or get_settings()
    blobs = blob_store or FileBlobStore(resolved.resolved_blob_dir)

    application = FastAPI(title="MyEdge Portfolio Backend", version="0.1.0")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.state.settings = resolved
    application.state.blob_store = blobs
    application.state.orchestrator = orchestrator or build_orchestrator(resolved, blobs)

    application.include_router(portfolio_routes.router)
    application.include_router(feed_routes.router)
    if resolved.debug_endpoints:
        application.include_router(developer_routes.router)

    application.add_api_route("/healthz", health, methods=["GET"])
    application.add_api_route("/healthz/database", database_health, methods=["GET"])
    application.add_api_route("/assets/{key:path}", serve_asset, methods=["GET"])
    application.add_api_route("/p/{slug}", portfolio_page, methods=["GET"], response_class=HTMLResponse)
    application.add_api_route("/@{slug}", portfolio_page, methods=["GET"], response_class=HTMLResponse)

    logger.info("OpenAI API key configured: %s", bool(resolved.openai_api_key))
    logger.info("Persistence mode: %s", resolved.persistence_mode)
    return application


def health() -> Dict[str, str]:
    return {"status": "ok"}


def database_health(request: Request) -> Dict[str, Any]:
    settings = request.app.state.settings
    try:
        engine = get_engine(settings)
        pool = get_pool_snapshot(engine)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {"status": "ok", "pool": pool, "persistence_mode": settings.persistence_mode}


def serve_asset(key: str, request: Request) -> Response:
    blob = request.app.state.blob_store.get(key)
    if blob is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found.")
    return Response(
        content=blob.data,
        media_type=blob.content_type,
        headers={"Cache-Control": ASSET_CACHE_CONTROL},
    )


def _base_url(request: Request) -> str:
    configured = request.app.state.settings.public_base_url
    return (configured or str(request.base_url)).rstrip("/")


async def portfolio_page(slug: str, request: Request) -> HTMLResponse:
    """Crawlers get stored metadata without a refresh; visitors get the read path."""
    orchestrator: PortfolioOrchestrator = request.app.state.orchestrator
    bot = is_social_bot(request.headers.get("user-agent"))
    try:
        record = await (orchestrator.resolve(slug) if bot else orchestrator.load(slug))
    except (RecordNotFound, ValueError):
        return HTMLResponse(render_not_found_page(), status_code=status.HTTP_404_NOT_FOUND)
    if bot:
        return HTMLResponse(render_social_preview(record, _base_url(request)))
    return HTMLResponse(render_portfolio_page(record, _base_url(request)))


app = create_app()
