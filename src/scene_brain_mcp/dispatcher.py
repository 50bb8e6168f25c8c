"""Dispatcher: the only component that writes scene state.

Every operation follows the same shape: load prerequisites, run the
operation, validate its output, persist the scene change together with its
iteration record, return the scene. A failed operation aborts before any
write. Storage failures surface as ``PersistenceError`` and are not retried.
``generation_time_ms`` runs from dispatch to the iteration write inside the
store transaction.

Deleting a scene does not renumber the remaining scenes' ``order``.
Concurrent writes to the same scene are last-write-wins.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .client import GeminiClient
from .config import ServerConfig
from .duration import extract_duration_from_code
from .errors import NotFoundError, ToolExecutionError
from .models.context import ContextPacket, UserContext
from .models.decision import (
    AddSceneDecision,
    ClarificationDecision,
    Decision,
    DeleteSceneDecision,
    EditSceneDecision,
    TrimSceneDecision,
)
from .models.operations import (
    AddSceneInput,
    DeleteSceneInput,
    EditSceneInput,
    OperationOutput,
    ReferenceScene,
    TrimSceneInput,
)
from .models.scene import Scene, SceneIteration
from .operations import AddScene, DeleteScene, EditScene, TrimScene
from .store import SceneStore
from .tracing import trace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchRequest:
    """What the dispatcher needs besides the decision itself."""

    project_id: str
    user_prompt: str
    packet: ContextPacket = field(default_factory=ContextPacket)
    user_context: UserContext = field(default_factory=UserContext)
    message_id: str | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_success(output: OperationOutput, operation: str):
    if not output.success or output.data is None:
        message = output.error.message if output.error else f"{operation} failed"
        raise ToolExecutionError(message)
    return output.data


class SceneDispatcher:
    """Execute decisions against storage."""

    def __init__(self, store: SceneStore, client: GeminiClient, config: ServerConfig) -> None:
        self._store = store
        self._config = config
        self._add = AddScene(client)
        self._edit = EditScene(client)
        self._delete = DeleteScene()
        self._trim = TrimScene()

    async def _load_scene(self, project_id: str, scene_id: str) -> Scene:
        scene = await self._store.get_scene(scene_id)
        if scene is None or scene.project_id != project_id:
            raise NotFoundError(f"Scene {scene_id} not found")
        return scene

    @trace(name="dispatch", span_type="CHAIN")
    async def execute(self, decision: Decision, request: DispatchRequest) -> Scene:
        """Apply *decision* and return the created, updated or deleted scene.

        Raises:
            NotFoundError: The target scene does not exist.
            ToolExecutionError: The operation failed; nothing was written.
            PersistenceError: The write failed.
        """
        start = time.monotonic()
        if isinstance(decision, AddSceneDecision):
            return await self._execute_add(decision, request, start)
        if isinstance(decision, EditSceneDecision):
            return await self._execute_edit(decision, request, start)
        if isinstance(decision, DeleteSceneDecision):
            return await self._execute_delete(decision, request, start)
        if isinstance(decision, TrimSceneDecision):
            return await self._execute_trim(decision, request, start)
        if isinstance(decision, ClarificationDecision):
            raise ValueError("Clarification decisions are answered, not dispatched")
        raise TypeError(f"Unknown decision type: {type(decision).__name__}")

    async def _execute_add(self, decision: AddSceneDecision, request: DispatchRequest, start: float) -> Scene:
        count = await self._store.count_scenes(request.project_id)
        ctx = request.user_context
        data = _require_success(await self._add.run(AddSceneInput(
            user_prompt=request.user_prompt,
            project_id=request.project_id,
            scene_number=count + 1,
            storyboard=request.packet.scene_history,
            image_urls=ctx.image_urls,
            video_urls=ctx.video_urls,
            web_context=request.packet.web_context,
            model_override=ctx.model_override,
        )), "addScene")
        if not data.code.strip():
            raise ToolExecutionError("addScene returned empty code")

        scene = Scene(
            project_id=request.project_id,
            order=count,
            name=data.name,
            code=data.code,
            duration=data.duration or self._config.default_scene_duration,
            props=data.props,
        )
        iteration = SceneIteration(
            scene_id=scene.id,
            project_id=request.project_id,
            operation_type="create",
            user_prompt=request.user_prompt,
            brain_reasoning=decision.reasoning,
            tool_reasoning=data.reasoning,
            code_after=scene.code,
            model_used=data.model_used,
            message_id=request.message_id,
        )
        await self._store.insert_scene(scene, iteration, started=start)
        return scene

    async def _execute_edit(self, decision: EditSceneDecision, request: DispatchRequest, start: float) -> Scene:
        scene = await self._load_scene(request.project_id, decision.target_scene_id)

        references: list[ReferenceScene] = []
        for ref_id in decision.referenced_scene_ids:
            ref = await self._store.get_scene(ref_id)
            if ref is None or ref.project_id != request.project_id:
                logger.warning("Referenced scene %s not found, skipping", ref_id)
                continue
            references.append(ReferenceScene(id=ref.id, name=ref.name, code=ref.code))

        ctx = request.user_context
        data = _require_success(await self._edit.run(EditSceneInput(
            user_prompt=request.user_prompt,
            project_id=request.project_id,
            scene_id=scene.id,
            code=scene.code,
            current_duration=scene.duration,
            error_details=decision.error_details,
            reference_scenes=references,
            image_urls=ctx.image_urls,
            video_urls=ctx.video_urls,
            web_context=request.packet.web_context,
            model_override=ctx.model_override,
        )), "editScene")
        if not data.code.strip():
            raise ToolExecutionError("editScene returned empty code")

        updated = scene.model_copy(update={
            "code": data.code,
            "duration": data.duration or scene.duration,
            "updated_at": _now(),
        })
        iteration = SceneIteration(
            scene_id=scene.id,
            project_id=request.project_id,
            operation_type="edit",
            user_prompt=request.user_prompt,
            brain_reasoning=decision.reasoning,
            tool_reasoning=data.reasoning,
            code_before=scene.code,
            code_after=updated.code,
            model_used=data.model_used,
            message_id=request.message_id,
        )
        if not await self._store.update_scene(updated, iteration, started=start):
            raise NotFoundError(f"Scene {scene.id} not found")
        return updated

    async def _execute_delete(self, decision: DeleteSceneDecision, request: DispatchRequest, start: float) -> Scene:
        scene = await self._load_scene(request.project_id, decision.target_scene_id)
        data = _require_success(await self._delete.run(DeleteSceneInput(
            user_prompt=request.user_prompt,
            project_id=request.project_id,
            scene_id=scene.id,
        )), "deleteScene")

        iteration = SceneIteration(
            scene_id=scene.id,
            project_id=request.project_id,
            operation_type="delete",
            user_prompt=request.user_prompt,
            brain_reasoning=decision.reasoning,
            tool_reasoning=data.reasoning,
            code_before=scene.code,
            message_id=request.message_id,
        )
        if not await self._store.delete_scene(scene.id, iteration, started=start):
            raise NotFoundError(f"Scene {scene.id} not found")
        return scene

    async def _execute_trim(self, decision: TrimSceneDecision, request: DispatchRequest, start: float) -> Scene:
        scene = await self._load_scene(request.project_id, decision.target_scene_id)
        data = _require_success(await self._trim.run(TrimSceneInput(
            user_prompt=request.user_prompt,
            project_id=request.project_id,
            scene_id=scene.id,
            current_duration=scene.duration,
            new_duration=decision.target_duration,
        )), "trimScene")

        updated = scene.model_copy(update={"duration": data.duration, "updated_at": _now()})
        iteration = SceneIteration(
            scene_id=scene.id,
            project_id=request.project_id,
            operation_type="edit",
            user_prompt=request.user_prompt,
            brain_reasoning=decision.reasoning,
            tool_reasoning=data.reasoning,
            code_before=scene.code,
            code_after=scene.code,
            message_id=request.message_id,
        )
        if not await self._store.update_scene(updated, iteration, started=start):
            raise NotFoundError(f"Scene {scene.id} not found")
        return updated

    @trace(name="revert", span_type="CHAIN")
    async def revert(self, project_id: str, iteration_id: str, message_id: str | None = None) -> Scene:
        """Undo the effect of one iteration, recording the undo as a new iteration.

        edit -> code restored to ``code_before`` (duration untouched);
        create -> scene deleted; delete -> scene recreated at the end of the
        storyboard under its old id.

        Raises:
            NotFoundError: Unknown iteration, or the scene it touched is gone.
            ValueError: A deleted scene has already been restored.
        """
        start = time.monotonic()
        source = await self._store.get_iteration(iteration_id)
        if source is None or source.project_id != project_id:
            raise NotFoundError(f"Iteration {iteration_id} not found")

        prompt = f"Revert iteration {iteration_id}"
        reasoning = f"Reverted {source.operation_type} from {source.created_at.isoformat()}"

        if source.operation_type == "edit":
            scene = await self._load_scene(project_id, source.scene_id)
            updated = scene.model_copy(update={"code": source.code_before, "updated_at": _now()})
            iteration = SceneIteration(
                scene_id=scene.id,
                project_id=project_id,
                operation_type="edit",
                user_prompt=prompt,
                brain_reasoning=reasoning,
                code_before=scene.code,
                code_after=updated.code,
                message_id=message_id,
            )
            if not await self._store.update_scene(updated, iteration, started=start):
                raise NotFoundError(f"Scene {scene.id} not found")
            return updated

        if source.operation_type == "create":
            scene = await self._load_scene(project_id, source.scene_id)
            iteration = SceneIteration(
                scene_id=scene.id,
                project_id=project_id,
                operation_type="delete",
                user_prompt=prompt,
                brain_reasoning=reasoning,
                code_before=scene.code,
                message_id=message_id,
            )
            if not await self._store.delete_scene(scene.id, iteration, started=start):
                raise NotFoundError(f"Scene {scene.id} not found")
            return scene

        if await self._store.get_scene(source.scene_id) is not None:
            raise ValueError(f"Scene {source.scene_id} has already been restored")
        code = source.code_before or ""
        scene = Scene(
            id=source.scene_id,
            project_id=project_id,
            order=await self._store.count_scenes(project_id),
            name="Restored scene",
            code=code,
            duration=extract_duration_from_code(code) or self._config.default_scene_duration,
        )
        iteration = SceneIteration(
            scene_id=scene.id,
            project_id=project_id,
            operation_type="create",
            user_prompt=prompt,
            brain_reasoning=reasoning,
            code_after=code,
            message_id=message_id,
        )
        await self._store.insert_scene(scene, iteration, started=start)
        return scene
