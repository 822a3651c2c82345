"""Generative backend used for portfolio text and images."""

from __future__ import annotations

import base64
import logging
from typing import Dict, Optional, Protocol

from agents import Agent, ModelSettings, RunConfig, Runner
from openai import AsyncOpenAI

from .config import Settings, get_settings
from .errors import GenerationUnavailable

logger = logging.getLogger(__name__)

WRITER_INSTRUCTIONS = (
    "You write short, specific copy for developer portfolio pages. "
    "Answer with the requested text only, without preamble, explanations or surrounding quotes "
    "unless the requested format asks for them."
)

# Sizes accepted by the Images API, keyed by orientation.
_IMAGE_SIZES: Dict[str, str] = {
    "landscape": "1536x1024",
    "portrait": "1024x1536",
    "square": "1024x1024",
}


class GenerativeBackend(Protocol):
    async def generate_text(self, prompt: str, max_tokens: int) -> str:  # pragma: no cover - protocol definition
        ...

    async def generate_image(self, prompt: str, width: int, height: int) -> bytes:  # pragma: no cover - protocol definition
        ...


def image_size_for(width: int, height: int) -> str:
    if width > height:
        return _IMAGE_SIZES["landscape"]
    if height > width:
        return _IMAGE_SIZES["portrait"]
    return _IMAGE_SIZES["square"]


class OpenAIGenerativeBackend:
    """Text through the agents runner, images through the Images API."""

    def __init__(self, settings: Optional[Settings] = None, *, client: Optional[AsyncOpenAI] = None) -> None:
        resolved = settings or get_settings()
        self._settings = resolved
        self._client = client
        self._agent: Optional[Agent] = None

    @property
    def configured(self) -> bool:
        return bool(self._settings.openai_api_key) or self._client is not None

    def _require_configured(self) -> None:
        if not self.configured:
            raise GenerationUnavailable("OPENAI_API_KEY is not configured.")

    def _writer(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                name="MyEdge Portfolio Writer",
                instructions=WRITER_INSTRUCTIONS,
                model=self._settings.text_model,
                tools=[],
                model_settings=ModelSettings(store=False),
            )
        return self._agent

    def _images(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._settings.openai_api_key)
        return self._client

    async def generate_text(self, prompt: str, max_tokens: int) -> str:
        self._require_configured()
        try:
            result = await Runner.run(
                self._writer(),
                prompt,
                context=None,
                run_config=RunConfig(model_settings=ModelSettings(max_tokens=max_tokens)),
            )
        except Exception as exc:  # noqa: BLE001
            raise GenerationUnavailable(f"Text generation failed: {exc}") from exc
        output = result.final_output
        text = output.strip() if isinstance(output, str) else str(output or "").strip()
        if not text:
            raise GenerationUnavailable("Text generation returned an empty response.")
        return text

    async def generate_image(self, prompt: str, width: int, height: int) -> bytes:
        self._require_configured()
        size = image_size_for(width, height)
        try:
            response = await self._images().images.generate(
                model=self._settings.image_model,
                prompt=prompt,
                size=size,  # type: ignore[arg-type]
                n=1,
            )
        except Exception as exc:  # noqa: BLE001
            raise GenerationUnavailable(f"Image generation failed: {exc}") from exc
        data = response.data[0].b64_json if response.data else None
        if not data:
            raise GenerationUnavailable("Image generation returned no image data.")
        logger.debug("Generated %s image (%s requested %dx%d)", size, self._settings.image_model, width, height)
        return base64.b64decode(data)


__all__ = ["GenerativeBackend", "OpenAIGenerativeBackend", "image_size_for"]
