"""Delete operation: deterministic, no model call."""

from __future__ import annotations

from ..models.operations import DeleteSceneData, DeleteSceneInput, DeleteSceneOutput
from .base import SceneOperation


class DeleteScene(SceneOperation[DeleteSceneInput, DeleteSceneOutput]):
    name = "deleteScene"
    output_type = DeleteSceneOutput

    async def execute(self, inp: DeleteSceneInput) -> DeleteSceneOutput:
        if not inp.scene_id:
            raise ValueError("No scene id provided")
        return DeleteSceneOutput.ok(DeleteSceneData(
            deleted_scene_id=inp.scene_id,
            reasoning=f"Removed scene {inp.scene_id}",
        ))
