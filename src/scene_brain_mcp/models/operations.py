"""Typed inputs and outputs for the four scene operations.

Every output is either ``success=True`` with ``data`` or ``success=False``
with ``error``. Operations never raise across this boundary.
"""

from __future__ import annotations

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from .context import SceneSnapshot, WebContext

T = TypeVar("T")


class OperationFailure(BaseModel):
    message: str


class OperationOutput(BaseModel, Generic[T]):
    success: bool
    data: T | None = None
    error: OperationFailure | None = None

    @classmethod
    def ok(cls, data: T) -> OperationOutput[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str) -> OperationOutput[T]:
        return cls(success=False, error=OperationFailure(message=message))


# ── Add ──────────────────────────────────────────────────────────────────────


class AddSceneInput(BaseModel):
    tool: Literal["addScene"] = "addScene"
    user_prompt: str
    project_id: str
    scene_number: int = Field(ge=1, description="1-based number the new scene will get")
    storyboard: list[SceneSnapshot] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)
    video_urls: list[str] = Field(default_factory=list)
    web_context: WebContext | None = None
    model_override: str | None = None


class AddSceneData(BaseModel):
    name: str
    code: str
    duration: int | None = None
    props: dict = Field(default_factory=dict)
    reasoning: str = ""
    model_used: str | None = None


AddSceneOutput = OperationOutput[AddSceneData]


# ── Edit ─────────────────────────────────────────────────────────────────────


class ReferenceScene(BaseModel):
    id: str
    name: str
    code: str


class EditSceneInput(BaseModel):
    tool: Literal["editScene"] = "editScene"
    user_prompt: str
    project_id: str
    scene_id: str
    code: str
    current_duration: int
    error_details: str | None = None
    reference_scenes: list[ReferenceScene] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)
    video_urls: list[str] = Field(default_factory=list)
    web_context: WebContext | None = None
    model_override: str | None = None


class EditSceneData(BaseModel):
    code: str
    duration: int | None = Field(default=None, description="Only set when the edit changed it")
    reasoning: str = ""
    changes_applied: list[str] = Field(default_factory=list)
    model_used: str | None = None


EditSceneOutput = OperationOutput[EditSceneData]


# ── Delete ───────────────────────────────────────────────────────────────────


class DeleteSceneInput(BaseModel):
    tool: Literal["deleteScene"] = "deleteScene"
    user_prompt: str
    project_id: str
    scene_id: str


class DeleteSceneData(BaseModel):
    deleted_scene_id: str
    reasoning: str = ""


DeleteSceneOutput = OperationOutput[DeleteSceneData]


# ── Trim ─────────────────────────────────────────────────────────────────────


class TrimSceneInput(BaseModel):
    tool: Literal["trimScene"] = "trimScene"
    user_prompt: str
    project_id: str
    scene_id: str
    current_duration: int = Field(ge=1)
    new_duration: int | None = Field(default=None, description="Absolute target in frames")
    delta_frames: int | None = Field(default=None, description="Relative change in frames")


class TrimSceneData(BaseModel):
    duration: int
    trimmed_frames: int
    reasoning: str = ""


TrimSceneOutput = OperationOutput[TrimSceneData]
