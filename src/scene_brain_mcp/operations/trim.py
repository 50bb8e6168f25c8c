"""Trim operation: change a scene's length without touching its code."""

from __future__ import annotations

from ..models.operations import TrimSceneData, TrimSceneInput, TrimSceneOutput
from .base import SceneOperation


class TrimScene(SceneOperation[TrimSceneInput, TrimSceneOutput]):
    name = "trimScene"
    output_type = TrimSceneOutput

    async def execute(self, inp: TrimSceneInput) -> TrimSceneOutput:
        if inp.new_duration is not None:
            new_duration = inp.new_duration
        elif inp.delta_frames is not None:
            new_duration = inp.current_duration + inp.delta_frames
        else:
            raise ValueError("No target duration given")

        if new_duration < 1:
            raise ValueError(f"Duration must be at least 1 frame, got {new_duration}")

        trimmed = inp.current_duration - new_duration
        verb = "Trimmed" if trimmed >= 0 else "Extended"
        return TrimSceneOutput.ok(TrimSceneData(
            duration=new_duration,
            trimmed_frames=trimmed,
            reasoning=f"{verb} scene from {inp.current_duration} to {new_duration} frames",
        ))
