"""Scene tools: generate from an instruction, list the storyboard."""

from __future__ import annotations

import logging
from typing import Annotated

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..errors import make_tool_error
from ..models.context import UserContext
from ..runtime import get_orchestrator
from ..tracing import trace
from ..types import ProjectId, UserMessage, coerce_json_param

logger = logging.getLogger(__name__)
scenes_server = FastMCP("scenes")


@scenes_server.tool(
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=True,
        idempotentHint=False,
        openWorldHint=True,
    )
)
@trace(name="scene_generate", span_type="TOOL")
async def scene_generate(
    project_id: ProjectId,
    user_message: UserMessage,
    user_id: Annotated[str, Field(description="Caller identity, for logs")] = "anonymous",
    image_urls: Annotated[list[str] | None, Field(
        description="Images attached to this message",
    )] = None,
    video_urls: Annotated[list[str] | None, Field(
        description="Videos attached to this message",
    )] = None,
    model_override: Annotated[str | None, Field(
        description="Model preset (best, balanced, budget) or a model id for code generation",
    )] = None,
    message_id: Annotated[str | None, Field(
        description="Chat message id to record on the iteration",
    )] = None,
) -> dict:
    """Apply one natural-language instruction to a project's storyboard.

    The instruction becomes exactly one of: add a scene, edit a scene,
    delete a scene, change a scene's length, or a clarification question.

    Args:
        project_id: Project whose scenes are changed.
        user_message: The instruction, e.g. "make the title red" or "cut the last second".
        user_id: Caller identity.
        image_urls: Image URLs attached to the instruction.
        video_urls: Video URLs attached to the instruction.
        model_override: Preset name or model id.
        message_id: Id of the chat message carrying the instruction.

    Returns:
        Dict with success, data (the scene), error, clarification_question,
        decision_reasoning, operation and user_feedback.
    """
    image_urls = coerce_json_param(image_urls, list)
    video_urls = coerce_json_param(video_urls, list)

    try:
        response = await get_orchestrator().generate(
            project_id,
            user_id,
            user_message,
            UserContext(
                image_urls=image_urls or [],
                video_urls=video_urls or [],
                model_override=model_override,
            ),
            message_id=message_id,
        )
        return response.model_dump(mode="json")
    except Exception as exc:
        return make_tool_error(exc)


@scenes_server.tool(annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=False))
@trace(name="scene_list", span_type="TOOL")
async def scene_list(
    project_id: ProjectId,
    include_code: Annotated[bool, Field(description="Include each scene's full code")] = False,
) -> dict:
    """List a project's scenes in storyboard order.

    Args:
        project_id: Project to list.
        include_code: When False, code is omitted to keep the payload small.

    Returns:
        Dict with project_id, scene count, total duration in frames and the scenes.
    """
    try:
        scenes = await get_orchestrator().store.list_scenes(project_id)
        exclude = None if include_code else {"code"}
        return {
            "project_id": project_id,
            "count": len(scenes),
            "total_frames": sum(s.duration for s in scenes),
            "scenes": [s.model_dump(mode="json", exclude=exclude) for s in scenes],
        }
    except Exception as exc:
        return make_tool_error(exc)
