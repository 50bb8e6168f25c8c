"""Gemini client wrapper shared by the decision engine and the code operations.

One instance is built at process start from :class:`ServerConfig` and passed
to every component that calls a model. There is no module-level client.
"""

from __future__ import annotations

import logging
import mimetypes
from typing import Any

from google import genai
from google.genai import types

from .config import VALID_THINKING_LEVELS, ServerConfig
from .retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)


def _resolve_thinking_level(value: str) -> str:
    """Normalize and validate a thinking level string.

    Raises:
        ValueError: If the level is not in VALID_THINKING_LEVELS.
    """
    level = value.strip().lower()
    if level not in VALID_THINKING_LEVELS:
        allowed = ", ".join(sorted(VALID_THINKING_LEVELS))
        raise ValueError(f"Invalid thinking level '{value}'. Allowed: {allowed}")
    return level


def _guess_mime(url: str, default: str) -> str:
    mime, _ = mimetypes.guess_type(url.split("?", 1)[0])
    return mime or default


def build_contents(
    text: str,
    *,
    image_urls: list[str] | None = None,
    video_urls: list[str] | None = None,
) -> types.Content | str:
    """Build prompt contents, attaching media URLs as file parts.

    Plain text is returned unchanged when there is no media so text-only
    calls stay cheap to log and to assert on in tests.
    """
    if not image_urls and not video_urls:
        return text
    parts: list[types.Part] = [types.Part(text=text)]
    for url in image_urls or []:
        parts.append(types.Part(file_data=types.FileData(
            file_uri=url, mime_type=_guess_mime(url, "image/png"),
        )))
    for url in video_urls or []:
        parts.append(types.Part(file_data=types.FileData(
            file_uri=url, mime_type=_guess_mime(url, "video/mp4"),
        )))
    return types.Content(role="user", parts=parts)


class GeminiClient:
    """Thin async wrapper around ``genai.Client`` with retry and thinking support."""

    def __init__(self, config: ServerConfig, client: genai.Client | None = None) -> None:
        self._config = config
        self._client = client
        self._retry = RetryPolicy.from_config(config)

    @property
    def config(self) -> ServerConfig:
        return self._config

    def _get(self) -> genai.Client:
        if self._client is None:
            if not self._config.gemini_api_key:
                raise ValueError("No Gemini API key — set GEMINI_API_KEY")
            self._client = genai.Client(api_key=self._config.gemini_api_key)
            logger.info("Created Gemini client (key …%s)", self._config.gemini_api_key[-4:])
        return self._client

    async def generate(
        self,
        contents: Any,
        *,
        model: str | None = None,
        thinking_level: str | None = None,
        response_schema: dict | None = None,
        temperature: float | None = None,
        system_instruction: str | None = None,
        **kwargs: Any,
    ) -> str:
        """Generate text via Gemini, optionally constrained to a JSON schema.

        Args:
            contents: Prompt contents (text or multimodal Content).
            model: Model ID; defaults to the configured code model.
            thinking_level: Override thinking level.
            response_schema: JSON schema dict to constrain output format.
            temperature: Override temperature.
            system_instruction: System-level instruction prepended to the prompt.
            **kwargs: Forwarded to the underlying generate_content call.

        Returns:
            The model's text response with thinking parts stripped.
        """
        cfg = self._config
        resolved_model = model or cfg.code_model
        resolved_thinking = _resolve_thinking_level(thinking_level or cfg.thinking_level)

        config = types.GenerateContentConfig(
            thinking_config=types.ThinkingConfig(thinking_level=resolved_thinking),
            temperature=temperature if temperature is not None else cfg.temperature,
        )
        if system_instruction:
            config.system_instruction = system_instruction
        if response_schema:
            config.response_mime_type = "application/json"
            config.response_json_schema = response_schema

        client = self._get()
        response = await with_retry(
            lambda: client.aio.models.generate_content(
                model=resolved_model,
                contents=contents,
                config=config,
                **kwargs,
            ),
            self._retry,
        )

        parts = response.candidates[0].content.parts if response.candidates else []
        text_parts = [p.text for p in parts if p.text and not getattr(p, "thought", False)]
        return "\n".join(text_parts) if text_parts else (response.text or "")

    async def close(self) -> None:
        """Shut down the underlying client, if one was created."""
        if self._client is None:
            return
        try:
            await self._client.aio.aclose()
        except Exception:
            logger.debug("Async Gemini client close failed", exc_info=True)
        self._client = None
        logger.info("Closed Gemini client")
