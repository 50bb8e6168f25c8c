"""Structured output schema for the code-generation model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GeneratedCode(BaseModel):
    """What the add/edit prompts ask the code model to return.

    ``code`` is the only required field; everything else is best-effort.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    code: str
    name: str | None = None
    reasoning: str = ""
    new_duration_frames: int | None = Field(
        default=None,
        alias="newDurationFrames",
        description="Must equal the exported durationInFrames value",
    )
    changes: list[str] = Field(default_factory=list)
