from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import Harness
from myedge.errors import RateLimited
from myedge.freshness import utc_now
from myedge.main import create_app

GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
BROWSER = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Safari/605.1.15"


def _client(harness: Harness, **settings_overrides) -> TestClient:
    settings = harness.settings
    if settings_overrides:
        settings = settings.model_copy(update=settings_overrides)
    app = create_app(settings, orchestrator=harness.orchestrator, blob_store=harness.blobs)
    return TestClient(app)


def test_generate_read_refresh_delete(harness: Harness) -> None:
    client = _client(harness)

    response = client.post("/api/generate", json={"username": "octocat", "city": "Paris", "interests": ["AI"]})
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["isNew"] is True
    slug = body["slug"]
    assert body["data"]["slug"] == slug
    assert body["data"]["timestamps"]["textGenerated"]

    response = client.get(f"/api/user/{slug}")
    assert response.status_code == 200
    assert response.json()["data"]["city"] == "Paris"

    response = client.post("/api/refresh", json={"username": "octocat", "forceAll": True})
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = client.delete("/api/user/octocat")
    assert response.json() == {"success": True, "deleted": True}
    assert client.get(f"/api/user/{slug}").status_code == 404


def test_bookmark_update(harness: Harness) -> None:
    client = _client(harness)
    client.post("/api/generate", json={"username": "octocat"})
    response = client.post(
        "/api/bookmarks/update",
        json={"username": "octocat", "bookmarks": [{"name": "Docs", "url": "https://docs.example", "icon": "📚"}]},
    )
    assert response.status_code == 200
    bookmarks = response.json()["bookmarks"]
    assert len(bookmarks) == 1
    assert bookmarks[0]["order"] == 0
    assert bookmarks[0]["icon"] == "📚"
    assert bookmarks[0]["id"]


def test_error_mapping(harness: Harness) -> None:
    client = _client(harness)
    assert client.post("/api/generate", json={"username": "not a user!"}).status_code == 422
    assert client.post("/api/generate", json={"username": ""}).status_code == 422
    assert client.post("/api/refresh", json={"username": "nobody"}).status_code == 404
    assert client.post("/api/bookmarks/update", json={"username": "nobody", "bookmarks": []}).status_code == 404

    harness.backend.fail_text = True
    assert client.post("/api/generate", json={"username": "octocat"}).status_code == 503


def test_rate_limit_sets_retry_after(harness: Harness) -> None:
    from datetime import timedelta

    harness.profiles.error = RateLimited("slow down", reset_at=utc_now() + timedelta(minutes=10))
    response = _client(harness).post("/api/generate", json={"username": "octocat"})
    assert response.status_code == 429
    assert 0 < int(response.headers["Retry-After"]) <= 600


def test_feeds(harness: Harness) -> None:
    client = _client(harness)
    weather = client.get("/api/weather", params={"city": "Tokyo"}).json()
    assert weather["city"] == "Tokyo"
    assert client.get("/api/weather").json()["city"] == "Los Angeles"
    news = client.get("/api/news", params={"interests": "AI,Design"}).json()
    assert news[0]["title"] == "Launch day"
    assert harness.news.calls[-1] == ["AI", "Design"]


def test_assets_are_cacheable(harness: Harness) -> None:
    harness.blobs.put("cards/octocat-card-1.png", b"png", "image/png")
    client = _client(harness)
    response = client.get("/assets/cards/octocat-card-1.png")
    assert response.status_code == 200
    assert response.content == b"png"
    assert response.headers["content-type"] == "image/png"
    assert response.headers["cache-control"] == "public, max-age=604800"
    assert client.get("/assets/cards/missing.png").status_code == 404


def test_pages_for_bots_and_visitors(harness: Harness) -> None:
    client = _client(harness, public_base_url="https://myedge.example")
    slug = client.post("/api/generate", json={"username": "octocat"}).json()["slug"]
    weather_calls = len(harness.weather.calls)
    harness.clock.advance(hours=1)

    preview = client.get(f"/p/{slug}", headers={"User-Agent": GOOGLEBOT})
    assert preview.status_code == 200
    assert 'property="og:image" content="https://myedge.example/assets/cards/octocat-card-' in preview.text
    assert f'content="https://myedge.example/p/{slug}"' in preview.text
    assert len(harness.weather.calls) == weather_calls

    page = client.get("/@octocat", headers={"User-Agent": BROWSER})
    assert page.status_code == 200
    assert f'data-slug="{slug}"' in page.text
    assert len(harness.weather.calls) == weather_calls + 1

    assert client.get("/p/ghost-abcdef", headers={"User-Agent": BROWSER}).status_code == 404


def test_debug_endpoint_is_opt_in(harness: Harness) -> None:
    assert _client(harness).get("/api/debug").status_code == 404
    body = _client(harness, debug_endpoints=True).get("/api/debug").json()
    assert body["store"]["persistenceMode"] == "json"
    assert body["generative"]["configured"] is True
