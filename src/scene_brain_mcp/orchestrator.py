"""Request pipeline: context -> decision -> dispatch -> response.

``SceneOrchestrator.generate`` is the single entry point for an instruction.
It never raises: failures come back as ``success=False`` with a structured
``ToolError`` whose message is safe to show the user.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from .brain import DecisionEngine
from .client import GeminiClient
from .config import ServerConfig
from .context_builder import ContextBuilder
from .dispatcher import DispatchRequest, SceneDispatcher
from .errors import ToolError, make_tool_error
from .models.context import ChatMessage, UserContext
from .models.decision import is_clarification
from .models.scene import Scene, new_id
from .store import SceneStore
from .tracing import tag_request, trace
from .types import ToolName
from .web_analysis import HttpWebAnalyzer, WebAnalyzer

logger = logging.getLogger(__name__)


class GenerateResponse(BaseModel):
    """Outcome of one instruction.

    Exactly one of ``data``, ``error`` and ``clarification_question`` is set.
    For a delete, ``data`` is the scene as it was before removal.
    """

    success: bool
    data: Scene | None = None
    error: ToolError | None = None
    clarification_question: str | None = None
    decision_reasoning: str = ""
    operation: ToolName | None = None
    user_feedback: str | None = None


def _assistant_text(response: GenerateResponse) -> str:
    if response.clarification_question:
        return response.clarification_question
    if response.error:
        return response.error.error
    if response.user_feedback:
        return response.user_feedback
    labels = {
        "addScene": "Created",
        "editScene": "Updated",
        "deleteScene": "Deleted",
        "trimScene": "Trimmed",
    }
    name = response.data.name if response.data else "scene"
    return f"{labels.get(response.operation or '', 'Updated')} {name}"


class SceneOrchestrator:
    """Wire the context builder, decision engine and dispatcher for one project store."""

    def __init__(
        self,
        store: SceneStore,
        context_builder: ContextBuilder,
        engine: DecisionEngine,
        dispatcher: SceneDispatcher,
        config: ServerConfig,
    ) -> None:
        self._store = store
        self._context_builder = context_builder
        self._engine = engine
        self._dispatcher = dispatcher
        self._config = config

    @property
    def store(self) -> SceneStore:
        return self._store

    @property
    def dispatcher(self) -> SceneDispatcher:
        return self._dispatcher

    async def _load_history(self, project_id: str) -> list[ChatMessage]:
        window = max(self._config.recent_message_window, self._config.image_history_window)
        try:
            return await self._store.recent_messages(project_id, window)
        except Exception as exc:
            logger.warning("Could not load chat history for %s: %s", project_id, exc)
            return []

    async def _record_turns(
        self,
        project_id: str,
        user_message: str,
        user_context: UserContext,
        message_id: str,
        response: GenerateResponse,
    ) -> None:
        try:
            await self._store.append_message(
                project_id, "user", user_message, user_context.image_urls, message_id=message_id,
            )
            await self._store.append_message(project_id, "assistant", _assistant_text(response))
        except Exception as exc:
            logger.warning("Could not record chat turns for %s: %s", project_id, exc)

    @trace(name="scene_generate_pipeline", span_type="CHAIN")
    async def generate(
        self,
        project_id: str,
        user_id: str,
        user_message: str,
        user_context: UserContext | None = None,
        message_id: str | None = None,
        chat_history: list[ChatMessage] | None = None,
    ) -> GenerateResponse:
        """Turn one instruction into at most one scene mutation.

        Args:
            project_id: Project whose storyboard is changed.
            user_id: Caller identity, used for logging only.
            user_message: The free-text instruction.
            user_context: Attached images/videos and an optional model override.
            message_id: Chat message id recorded on the iteration; generated when omitted.
            chat_history: Prior turns; loaded from the message log when omitted.

        Returns:
            GenerateResponse with the affected scene, a clarification question,
            or a structured error.
        """
        user_context = user_context or UserContext()
        message_id = message_id or new_id()
        if chat_history is None:
            chat_history = await self._load_history(project_id)

        logger.info("generate: project=%s user=%s message=%s", project_id, user_id, message_id)
        try:
            packet = await self._context_builder.build(
                project_id, user_message, chat_history, user_context,
            )
            decision = await self._engine.decide(packet, user_message, user_context)
            tag_request(project_id=project_id, operation=decision.tool_name or "clarification")
            if is_clarification(decision):
                response = GenerateResponse(
                    success=True,
                    clarification_question=decision.clarification_question,
                    decision_reasoning=decision.reasoning,
                    user_feedback=decision.user_feedback,
                )
            else:
                scene = await self._dispatcher.execute(decision, DispatchRequest(
                    project_id=project_id,
                    user_prompt=user_message,
                    packet=packet,
                    user_context=user_context,
                    message_id=message_id,
                ))
                response = GenerateResponse(
                    success=True,
                    data=scene,
                    decision_reasoning=decision.reasoning,
                    operation=decision.tool_name,
                    user_feedback=decision.user_feedback,
                )
        except Exception as exc:
            logger.error("generate failed for project %s: %s", project_id, exc)
            response = GenerateResponse(success=False, error=ToolError(**make_tool_error(exc)))

        await self._record_turns(project_id, user_message, user_context, message_id, response)
        return response


def build_orchestrator(
    config: ServerConfig,
    *,
    client: GeminiClient | None = None,
    store: SceneStore | None = None,
    web_analyzer: WebAnalyzer | None = None,
) -> SceneOrchestrator:
    """Composition root: build every component from one config object."""
    client = client or GeminiClient(config)
    store = store or SceneStore(config.db_path)
    if web_analyzer is None and config.web_analysis_enabled:
        web_analyzer = HttpWebAnalyzer(timeout=config.web_fetch_timeout)
    return SceneOrchestrator(
        store=store,
        context_builder=ContextBuilder(store, config, web_analyzer),
        engine=DecisionEngine(client, config),
        dispatcher=SceneDispatcher(store, client, config),
        config=config,
    )
