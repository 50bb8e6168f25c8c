"""Assemble the read-only ContextPacket handed to the decision engine.

Building context must never fail a request: if storage or web analysis
breaks, the builder degrades to the minimal fallback packet and the
decision is made on the instruction and chat window alone.
"""

from __future__ import annotations

import logging

from .config import ServerConfig
from .models.context import (
    ChatMessage,
    ContextPacket,
    ImageContext,
    ImageReference,
    SceneSnapshot,
    UserContext,
    WebContext,
)
from .store import SceneStore
from .tracing import trace
from .url_detection import detect_target_url
from .web_analysis import WebAnalyzer

logger = logging.getLogger(__name__)

_TOPIC_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("create", "generate"), "scene creation"),
    (("edit", "change"), "scene editing"),
    (("color", "background"), "styling"),
)


def summarize_conversation(messages: list[ChatMessage]) -> str:
    """One-line topic summary of the user turns in *messages*."""
    if not messages:
        return "New conversation"
    topics: list[str] = []
    for message in messages:
        if message.role != "user":
            continue
        text = message.content.lower()
        for keywords, topic in _TOPIC_KEYWORDS:
            if topic not in topics and any(k in text for k in keywords):
                topics.append(topic)
    if not topics:
        return "General conversation"
    return f"Conversation about: {', '.join(topics)}"


def build_image_context(
    user_context: UserContext, chat_history: list[ChatMessage], window: int,
) -> ImageContext:
    """Current uploads plus images from user turns in the last *window* messages."""
    recent = chat_history[-window:]
    references = [
        ImageReference(position=i, prompt=msg.content, urls=list(msg.image_urls))
        for i, msg in enumerate(recent, start=1)
        if msg.role == "user" and msg.image_urls
    ]
    return ImageContext(
        current_images=list(user_context.image_urls),
        recent_images_from_chat=references,
    )


class ContextBuilder:
    """Read-only assembly of scenes, chat, images and web context."""

    def __init__(
        self,
        store: SceneStore,
        config: ServerConfig,
        web_analyzer: WebAnalyzer | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._web_analyzer = web_analyzer

    def fallback(self, chat_history: list[ChatMessage]) -> ContextPacket:
        return ContextPacket(
            scene_history=[],
            conversation_summary="New conversation",
            recent_messages=chat_history[-self._config.recent_message_window:],
            image_context=ImageContext(),
            web_context=None,
        )

    @trace(name="build_context", span_type="RETRIEVER")
    async def build(
        self,
        project_id: str,
        user_prompt: str,
        chat_history: list[ChatMessage] | None = None,
        user_context: UserContext | None = None,
    ) -> ContextPacket:
        """Build the packet for one instruction. Never raises."""
        chat_history = chat_history or []
        user_context = user_context or UserContext()
        try:
            scenes = await self._store.list_scenes(project_id)
            recent = chat_history[-self._config.recent_message_window:]
            packet = ContextPacket(
                scene_history=[
                    SceneSnapshot(
                        id=s.id,
                        name=s.name or "Untitled Scene",
                        code=s.code,
                        order=s.order,
                        duration=s.duration,
                        updated_at=s.updated_at,
                    )
                    for s in scenes
                ],
                conversation_summary=summarize_conversation(recent),
                recent_messages=recent,
                image_context=build_image_context(
                    user_context, chat_history, self._config.image_history_window,
                ),
                web_context=await self._web_context(user_prompt),
            )
        except Exception as exc:
            logger.warning("Context build failed for project %s, using fallback: %s", project_id, exc)
            return self.fallback(chat_history)

        logger.debug(
            "Context for %s: %d scenes, %d messages, web=%s",
            project_id, len(packet.scene_history), len(packet.recent_messages),
            packet.web_context is not None,
        )
        return packet

    async def _web_context(self, user_prompt: str) -> WebContext | None:
        if self._web_analyzer is None or not self._config.web_analysis_enabled:
            return None
        url = detect_target_url(user_prompt)
        if url is None:
            return None
        try:
            return await self._web_analyzer.analyze(url)
        except Exception as exc:
            logger.warning("Web analysis failed for %s: %s", url, exc)
            return None
