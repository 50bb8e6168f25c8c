"""Decision models: the model-facing payload and the validated tagged union.

The decision model answers with a flat ``BrainDecisionPayload``. The engine
checks it and converts it into exactly one variant of ``Decision``; each
variant carries only the fields its operation needs, so the dispatcher never
has to shape-check a loose payload.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ..types import ToolName


class BrainDecisionPayload(BaseModel):
    """Structured output requested from the decision model.

    Field names follow the camelCase wire format used in the system prompt.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tool_name: ToolName | None = Field(default=None, alias="toolName")
    target_scene_id: str | None = Field(default=None, alias="targetSceneId")
    target_duration: int | None = Field(
        default=None,
        alias="targetDuration",
        description="Trim only: new duration in frames",
    )
    referenced_scene_ids: list[str] = Field(default_factory=list, alias="referencedSceneIds")
    reasoning: str = ""
    needs_clarification: bool = Field(default=False, alias="needsClarification")
    clarification_question: str | None = Field(default=None, alias="clarificationQuestion")
    error_details: str | None = Field(
        default=None,
        alias="errorDetails",
        description="Error text to fix, when the request is an error fix",
    )
    user_feedback: str | None = Field(default=None, alias="userFeedback")


class _DecisionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    reasoning: str = ""
    user_feedback: str | None = None


class AddSceneDecision(_DecisionBase):
    tool_name: Literal["addScene"] = "addScene"


class EditSceneDecision(_DecisionBase):
    tool_name: Literal["editScene"] = "editScene"
    target_scene_id: str
    referenced_scene_ids: tuple[str, ...] = ()
    error_details: str | None = None


class DeleteSceneDecision(_DecisionBase):
    tool_name: Literal["deleteScene"] = "deleteScene"
    target_scene_id: str


class TrimSceneDecision(_DecisionBase):
    tool_name: Literal["trimScene"] = "trimScene"
    target_scene_id: str
    target_duration: int = Field(ge=1, description="New duration in frames")


class ClarificationDecision(_DecisionBase):
    tool_name: Literal[None] = None
    clarification_question: str

    @property
    def needs_clarification(self) -> bool:
        return True


Decision = Union[
    AddSceneDecision,
    EditSceneDecision,
    DeleteSceneDecision,
    TrimSceneDecision,
    ClarificationDecision,
]


def is_clarification(decision: Decision) -> bool:
    return isinstance(decision, ClarificationDecision)
