"""Persistent scene and iteration models.

``Scene`` rows are owned by a project and written only by the dispatcher.
``SceneIteration`` rows are append-only audit records, one per executed
operation, used for revert and for later quality analysis.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..types import OperationType


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Scene(BaseModel):
    """One addressable unit of generated animation code plus timing."""

    id: str = Field(default_factory=new_id)
    project_id: str
    order: int = Field(ge=0, description="0-based position in the storyboard")
    name: str = "Scene"
    code: str
    duration: int = Field(ge=1, description="Duration in frames")
    props: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class SceneIteration(BaseModel):
    """Immutable record of one executed operation."""

    id: str = Field(default_factory=new_id)
    scene_id: str
    project_id: str
    operation_type: OperationType
    user_prompt: str
    brain_reasoning: str = ""
    tool_reasoning: str | None = None
    code_before: str | None = None
    code_after: str | None = None
    generation_time_ms: int = Field(default=0, ge=0)
    model_used: str | None = None
    message_id: str | None = None
    created_at: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_code_shape(self) -> SceneIteration:
        op = self.operation_type
        if op == "create" and (self.code_before is not None or self.code_after is None):
            raise ValueError("create iterations carry code_after only")
        if op == "delete" and (self.code_before is None or self.code_after is not None):
            raise ValueError("delete iterations carry code_before only")
        if op == "edit" and (self.code_before is None or self.code_after is None):
            raise ValueError("edit iterations carry both code_before and code_after")
        return self
