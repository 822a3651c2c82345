"""Crawler detection and the HTML pages served for portfolio links."""

from __future__ import annotations

from html import escape
from typing import Optional

from .user_record import UserRecord

SITE_NAME = "MyEdge Portfolio"

SOCIAL_BOTS = (
    "twitterbot",
    "facebookexternalhit",
    "linkedinbot",
    "discordbot",
    "slackbot",
    "telegrambot",
    "whatsapp",
    "wechat",
    "micromessenger",
    "googlebot",
    "bingbot",
    "pinterest",
    "tumblr",
    "vkshare",
    "w3c_validator",
    "redditbot",
    "applebot",
    "embedly",
    "quora link preview",
    "showyoubot",
    "outbrain",
    "rogerbot",
    "developers.google.com",
)


def is_social_bot(user_agent: Optional[str]) -> bool:
    agent = (user_agent or "").lower()
    return any(bot in agent for bot in SOCIAL_BOTS)


def _absolute(url: Optional[str], base_url: str) -> str:
    if not url:
        return ""
    if url.startswith(("http://", "https://")):
        return url
    return f"{base_url}{url}"


def _display_name(record: UserRecord) -> str:
    github = record.github or {}
    return str(github.get("name") or record.username)


def preview_image(record: UserRecord, base_url: str) -> str:
    """Card image first, then the page background, then the GitHub avatar."""
    github = record.github or {}
    return (
        _absolute(record.ai_card_image_url, base_url)
        or _absolute(record.ai_background_url, base_url)
        or str(github.get("avatar_url") or "")
    )


def preview_title(record: UserRecord) -> str:
    if record.ai_bio:
        return record.ai_bio[:60] + ("..." if len(record.ai_bio) > 60 else "")
    return f"{_display_name(record)}'s AI portfolio"


def preview_description(record: UserRecord) -> str:
    own = [repo.get("name", "") for repo in record.repos if not repo.get("fork")][:3]
    highlights = f"Featured projects: {', '.join(own)}. " if own else ""
    summary = (record.ai_bio or f"{_display_name(record)}'s personal portfolio")[:150]
    return highlights + summary


def render_social_preview(record: UserRecord, base_url: str) -> str:
    """Metadata-only page for link-preview crawlers."""
    name = escape(_display_name(record))
    title = escape(preview_title(record))
    description = escape(preview_description(record))
    image = escape(preview_image(record, base_url))
    canonical = escape(f"{base_url}/p/{record.slug}")
    github = record.github or {}
    avatar = escape(str(github.get("avatar_url") or ""))
    keywords = escape(", ".join([*record.skills, _display_name(record), "portfolio", "developer"]))
    creator = ""
    if github.get("twitter_username"):
        creator = f'\n  <meta name="twitter:creator" content="@{escape(str(github["twitter_username"]))}">'
    return f"""<!DOCTYPE html>
<html lang="en" prefix="og: https://ogp.me/ns#">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{name} - {SITE_NAME}</title>
  <meta name="description" content="{description}">
  <meta name="author" content="{name}">
  <meta name="keywords" content="{keywords}">
  <link rel="canonical" href="{canonical}">
  <meta property="og:type" content="profile">
  <meta property="og:url" content="{canonical}">
  <meta property="og:title" content="{title}">
  <meta property="og:description" content="{description}">
  <meta property="og:image" content="{image}">
  <meta property="og:image:secure_url" content="{image}">
  <meta property="og:image:width" content="1200">
  <meta property="og:image:height" content="630">
  <meta property="og:image:alt" content="{name}'s portfolio preview">
  <meta property="og:site_name" content="{SITE_NAME}">
  <meta name="twitter:card" content="summary_large_image">
  <meta name="twitter:url" content="{canonical}">
  <meta name="twitter:title" content="{title}">
  <meta name="twitter:description" content="{description}">
  <meta name="twitter:image" content="{image}">{creator}
  <meta itemprop="name" content="{name} - {SITE_NAME}">
  <meta itemprop="description" content="{description}">
  <meta itemprop="image" content="{image}">
  <meta name="theme-color" content="#667eea">
</head>
<body>
  <main>
    <article>
      <h1>{name}</h1>
      <img src="{avatar}" alt="{name}" width="200" height="200">
      <p>{escape(record.ai_bio or '')}</p>
    </article>
  </main>
</body>
</html>
"""


def render_portfolio_page(record: UserRecord, base_url: str) -> str:
    """Minimal page for human visitors; the full data is at ``/api/user/{slug}``."""
    name = escape(_display_name(record))
    quote = ""
    if record.ai_quote is not None:
        quote = f"\n    <blockquote>{escape(record.ai_quote.text)} <cite>{escape(record.ai_quote.author)}</cite></blockquote>"
    weather = ""
    if record.cached_weather is not None:
        snapshot = record.cached_weather
        weather = (
            f"\n    <p class=\"weather\">{escape(snapshot.icon)} {escape(snapshot.city)} "
            f"{snapshot.temp}°C {escape(snapshot.desc)}</p>"
        )
    projects = "".join(
        f"\n      <li><strong>{escape(str(title))}</strong> {escape(text)}</li>"
        for title, text in record.ai_project_descriptions.items()
    )
    news = "".join(
        f'\n      <li><a href="{escape(item.url)}">{escape(item.title)}</a> <small>{escape(item.source)}</small></li>'
        for item in record.cached_news or []
    )
    bookmarks = "".join(
        f'\n      <li><a href="{escape(bookmark.url)}">{escape(bookmark.icon)} {escape(bookmark.name)}</a></li>'
        for bookmark in record.bookmarks
    )
    canonical = escape(f"{base_url}/p/{record.slug}")
    skills = "".join(f"<li>{escape(skill)}</li>" for skill in record.skills)
    background = ""
    if record.ai_background_url:
        background = f' style="background-image: url(\'{escape(_absolute(record.ai_background_url, base_url))}\')"'
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{name} - {SITE_NAME}</title>
  <link rel="canonical" href="{canonical}">
</head>
<body{background}>
  <main data-slug="{escape(record.slug)}">
    <h1>{name}</h1>
    <p>{escape(record.ai_bio or '')}</p>{quote}{weather}
    <ul class="skills">{skills}</ul>
    <ul class="projects">{projects}
    </ul>
    <ul class="news">{news}
    </ul>
    <ul class="bookmarks">{bookmarks}
    </ul>
  </main>
</body>
</html>
"""


def render_not_found_page() -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Not found - {SITE_NAME}</title></head>
<body><main><h1>Portfolio not found</h1><p>This portfolio does not exist or has been removed.</p></main></body>
</html>
"""


__all__ = [
    "SOCIAL_BOTS",
    "is_social_bot",
    "preview_image",
    "render_not_found_page",
    "render_portfolio_page",
    "render_social_preview",
]
