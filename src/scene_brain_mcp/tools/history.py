"""Iteration history tools: inspect and revert recorded operations."""

from __future__ import annotations

from typing import Annotated

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..errors import make_tool_error
from ..runtime import get_orchestrator
from ..tracing import trace
from ..types import ProjectId

history_server = FastMCP("history")


@history_server.tool(annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=False))
@trace(name="scene_iterations", span_type="TOOL")
async def scene_iterations(
    project_id: ProjectId,
    scene_id: Annotated[str | None, Field(description="Only iterations of this scene")] = None,
    limit: Annotated[int, Field(ge=1, le=200, description="Maximum records")] = 20,
    include_code: Annotated[bool, Field(description="Include code_before/code_after")] = False,
) -> dict:
    """List recorded operations, newest first.

    Records survive scene deletion, so a deleted scene's history is still here.

    Args:
        project_id: Project to inspect.
        scene_id: Restrict to one scene.
        limit: How many records to return.
        include_code: Include the code snapshots.

    Returns:
        Dict with project_id and iterations.
    """
    try:
        iterations = await get_orchestrator().store.list_iterations(project_id, scene_id, limit)
        exclude = None if include_code else {"code_before", "code_after"}
        return {
            "project_id": project_id,
            "iterations": [it.model_dump(mode="json", exclude=exclude) for it in iterations],
        }
    except Exception as exc:
        return make_tool_error(exc)


@history_server.tool(
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=True,
        idempotentHint=False,
        openWorldHint=False,
    )
)
@trace(name="scene_revert", span_type="TOOL")
async def scene_revert(
    project_id: ProjectId,
    iteration_id: Annotated[str, Field(min_length=1, description="Iteration to undo")],
    message_id: Annotated[str | None, Field(description="Chat message requesting the revert")] = None,
) -> dict:
    """Undo one recorded operation.

    An edit restores the previous code, a create deletes the scene, and a
    delete restores the scene at the end of the storyboard. The undo is
    itself recorded as a new iteration.

    Args:
        project_id: Project the iteration belongs to.
        iteration_id: Id from scene_iterations.
        message_id: Optional chat message id.

    Returns:
        Dict with the affected scene, or a tool error.
    """
    try:
        scene = await get_orchestrator().dispatcher.revert(project_id, iteration_id, message_id)
        return {"success": True, "data": scene.model_dump(mode="json")}
    except Exception as exc:
        return make_tool_error(exc)
