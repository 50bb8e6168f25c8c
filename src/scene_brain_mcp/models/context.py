"""Request-scoped context models assembled before a decision.

A ``ContextPacket`` is built fresh for every instruction, handed to the
decision engine, and discarded. It is never persisted.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ..types import ChatRole


class ChatMessage(BaseModel):
    """One prior chat turn."""

    role: ChatRole
    content: str = ""
    image_urls: list[str] = Field(default_factory=list)


class SceneSnapshot(BaseModel):
    """A scene as seen by the decision step, with full code for cross-scene edits."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    code: str
    order: int
    duration: int
    updated_at: datetime | None = None


class ImageReference(BaseModel):
    """Images attached to an earlier user turn, tagged with its position."""

    model_config = ConfigDict(frozen=True)

    position: int = Field(ge=1, description="1-based turn position within the scanned window")
    prompt: str = ""
    urls: list[str] = Field(default_factory=list)


class ImageContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_images: list[str] = Field(default_factory=list)
    recent_images_from_chat: list[ImageReference] = Field(default_factory=list)


class Screenshots(BaseModel):
    model_config = ConfigDict(frozen=True)

    desktop: str = ""
    mobile: str = ""


class PageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    description: str = ""
    headings: list[str] = Field(default_factory=list)


class WebContext(BaseModel):
    """Result of analysing a URL referenced by the prompt."""

    model_config = ConfigDict(frozen=True)

    original_url: str
    screenshots: Screenshots = Field(default_factory=Screenshots)
    page_metadata: PageMetadata = Field(default_factory=PageMetadata)
    analyzed_at: datetime

    def screenshot_urls(self) -> list[str]:
        return [u for u in (self.screenshots.desktop, self.screenshots.mobile) if u]


class UserContext(BaseModel):
    """Per-request extras supplied alongside the instruction."""

    image_urls: list[str] = Field(default_factory=list)
    video_urls: list[str] = Field(default_factory=list)
    model_override: str | None = None


class ContextPacket(BaseModel):
    """Bounded snapshot of project and conversation state for one decision."""

    model_config = ConfigDict(frozen=True)

    scene_history: list[SceneSnapshot] = Field(default_factory=list)
    conversation_summary: str = "New conversation"
    recent_messages: list[ChatMessage] = Field(default_factory=list)
    image_context: ImageContext = Field(default_factory=ImageContext)
    web_context: WebContext | None = None

    def find_scene(self, scene_id: str | None) -> SceneSnapshot | None:
        if not scene_id:
            return None
        return next((s for s in self.scene_history if s.id == scene_id), None)

    def most_recent_scene(self) -> SceneSnapshot | None:
        """The most recently touched scene, falling back to the last in order."""
        if not self.scene_history:
            return None
        dated = [s for s in self.scene_history if s.updated_at is not None]
        if dated:
            return max(dated, key=lambda s: (s.updated_at, s.order))
        return max(self.scene_history, key=lambda s: s.order)
