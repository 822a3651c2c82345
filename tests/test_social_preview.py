from __future__ import annotations

from datetime import datetime, timezone

import pytest

from myedge.social_preview import is_social_bot, preview_image, render_social_preview
from myedge.user_record import build_record

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "agent",
    [
        "Twitterbot/1.0",
        "facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)",
        "Mozilla/5.0 (compatible; Discordbot/2.0; +https://discordapp.com)",
        "Slackbot-LinkExpanding 1.0 (+https://api.slack.com/robots)",
        "Mozilla/5.0 MicroMessenger/8.0",
    ],
)
def test_known_crawlers(agent: str) -> None:
    assert is_social_bot(agent)


@pytest.mark.parametrize("agent", [None, "", "Mozilla/5.0 (X11; Linux x86_64) Firefox/130.0"])
def test_browsers_are_not_bots(agent) -> None:
    assert not is_social_bot(agent)


def test_preview_image_precedence() -> None:
    record = build_record("octocat", {"github": {"avatar_url": "https://avatars.example/o.png"}}, NOW)
    assert preview_image(record, "https://x") == "https://avatars.example/o.png"
    record = record.model_copy(update={"ai_background_url": "/assets/backgrounds/b.png"})
    assert preview_image(record, "https://x") == "https://x/assets/backgrounds/b.png"
    record = record.model_copy(update={"ai_card_image_url": "https://cdn.example/card.png"})
    assert preview_image(record, "https://x") == "https://cdn.example/card.png"


def test_preview_escapes_markup() -> None:
    record = build_record("octocat", {"aiBio": '<script>alert("x")</script>', "github": {"name": "O & Co"}}, NOW)
    html = render_social_preview(record, "https://x")
    assert "<script>" not in html
    assert "O &amp; Co" in html
