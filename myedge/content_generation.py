"""Portfolio copy and artwork generation."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .blob_store import BlobStore
from .errors import GenerationUnavailable
from .freshness import Clock, utc_now
from .generative import GenerativeBackend
from .github_profile import GitHubProfile
from .telemetry import emit_event
from .user_record import Quote

logger = logging.getLogger(__name__)

MAX_SKILLS = 6
MAX_DESCRIBED_REPOS = 6
BIO_MAX_TOKENS = 300
DESCRIPTION_MAX_TOKENS = 100
QUOTE_MAX_TOKENS = 150
DEFAULT_PROJECT_DESCRIPTION = "A featured open-source project"
DEFAULT_QUOTE_AUTHOR = "MyEdge"

BACKGROUND_SIZE = (1920, 1080)
CARD_SIZE = (1200, 630)
IMAGE_CONTENT_TYPE = "image/png"
ASSET_PREFIX = "/assets/"

_QUOTED = re.compile(r"[\"“「](.+?)[\"”」].*?[—–-]+\s*(.+)", re.DOTALL)
_DASHES = re.compile(r"\s*[—–]+\s*|\s+-{1,2}\s+")
_QUOTE_MARKS = re.compile(r"[\"“”「」]")


@dataclass(frozen=True)
class ContentBundle:
    bio: str
    project_descriptions: Dict[str, str]
    quote: Quote
    skills: List[str]

    def as_fields(self) -> Dict[str, Any]:
        return {
            "aiBio": self.bio,
            "aiProjectDescriptions": dict(self.project_descriptions),
            "aiQuote": self.quote.model_dump(by_alias=True),
            "skills": list(self.skills),
        }


@dataclass(frozen=True)
class GeneratedImages:
    background_url: Optional[str] = None
    card_image_url: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def as_fields(self) -> Dict[str, Any]:
        return {"aiBackgroundUrl": self.background_url, "aiCardImageUrl": self.card_image_url}


def extract_skills(repos: Sequence[Mapping[str, Any]]) -> List[str]:
    """Most used repository languages; ties keep first-seen order."""
    counts = Counter(repo["language"] for repo in repos if repo.get("language"))
    return [language for language, _ in counts.most_common(MAX_SKILLS)]


def fallback_description(repo: Mapping[str, Any]) -> str:
    return f"⭐ {repo.get('description') or DEFAULT_PROJECT_DESCRIPTION}"


def parse_quote(text: str) -> Quote:
    """Parse ``"text" — author`` with a couple of looser fallbacks."""
    cleaned = text.strip()
    match = _QUOTED.search(cleaned)
    if match:
        return Quote(text=match.group(1).strip(), author=match.group(2).strip())
    parts = [part for part in _DASHES.split(cleaned, maxsplit=1) if part.strip()]
    if len(parts) == 2:
        return Quote(text=_QUOTE_MARKS.sub("", parts[0]).strip(), author=parts[1].strip())
    return Quote(text=_QUOTE_MARKS.sub("", cleaned)[:60].strip(), author=DEFAULT_QUOTE_AUTHOR)


def asset_url(key: str) -> str:
    return f"{ASSET_PREFIX}{key}"


def bio_prompt(profile: GitHubProfile, user_bio: str) -> str:
    own = profile.own_repos()
    languages = ", ".join(extract_skills(own)[:3]) or "full-stack development"
    highlights = ", ".join(repo.get("name", "") for repo in own[:3]) or "open-source projects"
    user = profile.user
    lines = [
        "Write a first-person developer biography of 60 to 90 words. Start with 'I'.",
        "Do not mention the person's username or nickname and do not add any explanation.",
        "",
        f"- Name: {profile.display_name}",
        f"- Affiliation: {user.get('company') or 'Independent developer'}",
        f"- Original repositories: {len(own)}",
        f"- Followers: {user.get('followers', 0)}",
        f"- Stack: {languages}",
        f"- Notable work: {highlights}",
    ]
    if user.get("bio"):
        lines.append(f"- GitHub bio: {user['bio']}")
    if user_bio:
        lines.append(f"- In their own words: {user_bio}")
    return "\n".join(lines)


def description_prompt(repo: Mapping[str, Any]) -> str:
    topics = ", ".join(repo.get("topics") or []) or "none"
    return (
        "Write one specific highlight sentence (15 to 30 words) for this GitHub project. "
        "Stress its technical value; an opening emoji is fine; no quotes.\n\n"
        f"- Name: {repo.get('name')}\n"
        f"- Language: {repo.get('language') or 'multiple'}\n"
        f"- Stars: {repo.get('stargazers_count', 0)}\n"
        f"- Forks: {repo.get('forks_count', 0)}\n"
        f"- Description: {repo.get('description') or 'none'}\n"
        f"- Topics: {topics}"
    )


def quote_prompt(profile: GitHubProfile, interests: Sequence[str], skills: Sequence[str]) -> str:
    context = ", ".join(interests) or ", ".join(skills[:2]) or "technology"
    return (
        f"Write an original, thoughtful motto of 15 to 30 words for {profile.display_name}, "
        f"a developer working in {context}. Avoid cliches.\n"
        'Answer strictly in the format: "motto text" — source\n'
        'Example: "Code is poetry; every line tells the story of what we chose to build." — Engineering Notes'
    )


class ContentGenerator:
    def __init__(
        self,
        backend: Optional[GenerativeBackend],
        *,
        blob_store: Optional[BlobStore] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._backend = backend
        self._blob_store = blob_store
        self._clock = clock

    @property
    def available(self) -> bool:
        return self._backend is not None

    @property
    def images_available(self) -> bool:
        return self._backend is not None and self._blob_store is not None

    def _require_backend(self) -> GenerativeBackend:
        if self._backend is None:
            raise GenerationUnavailable("No generative backend is configured.")
        return self._backend

    async def _describe(self, backend: GenerativeBackend, repo: Mapping[str, Any]) -> str:
        try:
            return (await backend.generate_text(description_prompt(repo), DESCRIPTION_MAX_TOKENS)).strip() or fallback_description(repo)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Project description for %s failed: %s", repo.get("name"), exc)
            return fallback_description(repo)

    async def describe_projects(self, backend: GenerativeBackend, profile: GitHubProfile) -> Dict[str, str]:
        repos = profile.own_repos()[:MAX_DESCRIBED_REPOS]
        descriptions = await asyncio.gather(*(self._describe(backend, repo) for repo in repos))
        return {repo.get("name", ""): text for repo, text in zip(repos, descriptions)}

    async def generate(
        self,
        profile: GitHubProfile,
        *,
        user_bio: str = "",
        interests: Sequence[str] = (),
    ) -> ContentBundle:
        """Generate biography, project descriptions and quote concurrently.

        Raises ``GenerationUnavailable`` when no backend is configured or the
        biography or quote cannot be produced; project descriptions degrade
        per item instead.
        """
        backend = self._require_backend()
        skills = extract_skills(profile.repos)
        try:
            bio, descriptions, quote_text = await asyncio.gather(
                backend.generate_text(bio_prompt(profile, user_bio), BIO_MAX_TOKENS),
                self.describe_projects(backend, profile),
                backend.generate_text(quote_prompt(profile, interests, skills), QUOTE_MAX_TOKENS),
            )
        except GenerationUnavailable as exc:
            emit_event("generation_failed", username=profile.login, stage="text", error=str(exc))
            raise
        except Exception as exc:  # noqa: BLE001
            emit_event("generation_failed", username=profile.login, stage="text", error=str(exc))
            raise GenerationUnavailable(f"Content generation failed: {exc}") from exc
        return ContentBundle(
            bio=bio.strip(),
            project_descriptions=descriptions,
            quote=parse_quote(quote_text),
            skills=skills,
        )

    async def generate_images(
        self,
        identity: str,
        profile: GitHubProfile,
        skills: Sequence[str],
    ) -> GeneratedImages:
        """Render and store the page background and social card.

        Never raises; on failure the card falls back to the GitHub avatar.
        """
        if not self.images_available:
            return GeneratedImages(card_image_url=profile.avatar_url)
        backend = self._require_backend()
        assert self._blob_store is not None
        theme = ", ".join(skills[:3]) or "technology"
        background_prompt = (
            f"A modern abstract technology background themed on {theme} development. "
            "Dark gradient with glowing geometric patterns, circuit-like lines and floating particles "
            "in deep purple and blue. Futuristic and professional, no text."
        )
        card_prompt = (
            f"A professional social media card for a developer named {profile.display_name}, themed on {theme}. "
            "Purple to blue gradient with abstract geometric shapes, clean and suitable as an Open Graph preview. "
            "No text."
        )
        try:
            background, card = await asyncio.gather(
                backend.generate_image(background_prompt, *BACKGROUND_SIZE),
                backend.generate_image(card_prompt, *CARD_SIZE),
            )
            stamp = int(self._clock().timestamp() * 1000)
            background_key = f"backgrounds/{identity}-bg-{stamp}.png"
            card_key = f"cards/{identity}-card-{stamp}.png"
            await asyncio.to_thread(self._blob_store.put, background_key, background, IMAGE_CONTENT_TYPE)
            await asyncio.to_thread(self._blob_store.put, card_key, card, IMAGE_CONTENT_TYPE)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Image generation for %s failed: %s", identity, exc)
            emit_event("generation_failed", username=identity, stage="images", error=str(exc))
            return GeneratedImages(card_image_url=profile.avatar_url, errors=[str(exc)])
        return GeneratedImages(background_url=asset_url(background_key), card_image_url=asset_url(card_key))


__all__ = [
    "ContentBundle",
    "ContentGenerator",
    "GeneratedImages",
    "extract_skills",
    "fallback_description",
    "parse_quote",
]
