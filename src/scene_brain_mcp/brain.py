"""Decision engine: turn one instruction plus context into one Decision.

The model proposes a flat ``BrainDecisionPayload``; ``resolve_decision``
then applies the deterministic parts of the policy (XOR check, error-fix
and timing-edit rewrites, target defaults, exact trim arithmetic) and
returns exactly one variant of the ``Decision`` union.
"""

from __future__ import annotations

import logging
import re

from pydantic import ValidationError

from .client import GeminiClient, build_contents
from .config import MODEL_PRESETS, ServerConfig
from .duration import looks_like_timing_edit, resolve_trim_target
from .errors import DecisionError
from .models.context import ContextPacket, SceneSnapshot, UserContext
from .models.decision import (
    AddSceneDecision,
    BrainDecisionPayload,
    ClarificationDecision,
    Decision,
    DeleteSceneDecision,
    EditSceneDecision,
    TrimSceneDecision,
)
from .parsing import DECISION_RESPONSE_CHAIN, UnrecoverableResponse, run_chain
from .prompts.brain import BRAIN_REQUEST, BRAIN_SYSTEM, SCENE_LINE
from .tracing import trace

logger = logging.getLogger(__name__)

DEFAULT_QUESTION = "Could you tell me a bit more about what you'd like to change?"
WHICH_SCENE_QUESTION = "Which scene do you mean? You can say e.g. \"scene 2\"."
HOW_LONG_QUESTION = "How long should the scene be, in seconds?"
NO_SCENES_QUESTION = "There are no scenes yet. What should the first scene show?"

_ERROR_CONTEXT = re.compile(
    r"\b(?:type|reference|syntax|range)error\b|\bis not (?:defined|a function)\b|"
    r"\bcannot read propert(?:y|ies)\b|\bfailed to compile\b|\bunexpected token\b|"
    r"\bstack trace\b|\b(?:uncaught|unhandled)\b[^.\n]*\b(?:error|exception)\b|"
    r"\b(?:error|exception)\s*:",
    re.I,
)
_NEW_SCENE_REQUEST = re.compile(
    r"\b(?:new|another|additional|extra)\s+scene\b|"
    r"\b(?:add|create|make|insert|append|build)\s+(?:a|an|one)\s+(?:[\w-]+\s+){0,3}?scene\b",
    re.I,
)
_SCENE_NUMBER = re.compile(r"\bscene\s*#?\s*(\d+)\b", re.I)
_FIRST_SCENE = re.compile(r"\b(?:first|opening)\s+scene\b", re.I)
_LAST_SCENE = re.compile(r"\b(?:last|final)\s+scene\b", re.I)
_NEWEST_SCENE = re.compile(r"\b(?:newest|latest|new|recent)\s+scene\b", re.I)


def is_error_fix(prompt: str) -> bool:
    """True when the instruction quotes a runtime or compile error.

    A bare mention of "error" or "crash" is not enough: "a 404 error page"
    or "a car crash" describe content, not a broken scene.
    """
    return _ERROR_CONTEXT.search(prompt) is not None


def requests_new_scene(prompt: str) -> bool:
    """True when the instruction explicitly asks for another scene."""
    return _NEW_SCENE_REQUEST.search(prompt) is not None


def resolve_scene_reference(prompt: str, packet: ContextPacket) -> SceneSnapshot | None:
    """Find the scene the prompt names by position ("scene 2", "the last scene")."""
    ordered = sorted(packet.scene_history, key=lambda s: s.order)
    if not ordered:
        return None
    if match := _SCENE_NUMBER.search(prompt):
        index = int(match.group(1)) - 1
        return ordered[index] if 0 <= index < len(ordered) else None
    if _FIRST_SCENE.search(prompt):
        return ordered[0]
    if _LAST_SCENE.search(prompt):
        return ordered[-1]
    if _NEWEST_SCENE.search(prompt):
        return packet.most_recent_scene()
    return None


def resolve_decision(
    payload: BrainDecisionPayload,
    packet: ContextPacket,
    user_prompt: str,
    fps: int,
) -> Decision:
    """Validate a model payload and convert it into one Decision variant."""
    feedback = {"reasoning": payload.reasoning, "user_feedback": payload.user_feedback}
    tool = payload.tool_name

    if payload.needs_clarification == (tool is not None):
        logger.warning(
            "Decision violates tool/clarification exclusivity (tool=%s, clarify=%s)",
            tool, payload.needs_clarification,
        )
        return ClarificationDecision(
            clarification_question=payload.clarification_question or DEFAULT_QUESTION, **feedback,
        )
    if tool is None:
        return ClarificationDecision(
            clarification_question=payload.clarification_question or DEFAULT_QUESTION, **feedback,
        )

    error_details = payload.error_details
    if (
        tool == "addScene"
        and packet.scene_history
        and (error_details or is_error_fix(user_prompt))
        and not requests_new_scene(user_prompt)
    ):
        logger.info("Rewriting addScene to editScene for an error-fix request")
        tool = "editScene"
        error_details = error_details or user_prompt
    if tool == "trimScene" and looks_like_timing_edit(user_prompt):
        logger.info("Rewriting trimScene to editScene for an animation-timing request")
        tool = "editScene"

    if tool == "addScene":
        return AddSceneDecision(**feedback)

    if not packet.scene_history and tool == "editScene" and not error_details:
        logger.info("No scenes to edit, creating one instead")
        return AddSceneDecision(**feedback)
    if not packet.scene_history and not payload.target_scene_id:
        return ClarificationDecision(clarification_question=NO_SCENES_QUESTION, **feedback)

    target_id = payload.target_scene_id
    if not target_id:
        named = resolve_scene_reference(user_prompt, packet)
        if named is not None:
            target_id = named.id
        elif tool != "deleteScene":
            recent = packet.most_recent_scene()
            target_id = recent.id if recent else None
    if not target_id:
        return ClarificationDecision(clarification_question=WHICH_SCENE_QUESTION, **feedback)

    if tool == "deleteScene":
        return DeleteSceneDecision(target_scene_id=target_id, **feedback)

    if tool == "trimScene":
        target = packet.find_scene(target_id)
        computed = resolve_trim_target(user_prompt, target.duration, fps) if target else None
        duration = computed or payload.target_duration
        if computed and payload.target_duration and computed != payload.target_duration:
            logger.info(
                "Trim target %d from the request overrides model value %d",
                computed, payload.target_duration,
            )
        if not duration or duration < 1:
            return ClarificationDecision(clarification_question=HOW_LONG_QUESTION, **feedback)
        return TrimSceneDecision(target_scene_id=target_id, target_duration=duration, **feedback)

    known = {s.id for s in packet.scene_history}
    referenced = tuple(
        sid for sid in dict.fromkeys(payload.referenced_scene_ids)
        if sid in known and sid != target_id
    )
    return EditSceneDecision(
        target_scene_id=target_id,
        referenced_scene_ids=referenced,
        error_details=error_details,
        **feedback,
    )


def render_request(packet: ContextPacket, user_prompt: str, fps: int) -> str:
    """Render the per-request context block for the decision model."""
    ordered = sorted(packet.scene_history, key=lambda s: s.order)
    storyboard = "\n\n".join(
        SCENE_LINE.format(
            number=i, id=s.id, name=s.name, duration=s.duration,
            seconds=s.duration / fps, code=s.code,
        )
        for i, s in enumerate(ordered, start=1)
    ) or "(empty)"

    recent_messages = "\n".join(
        f"{m.role}: {m.content}" for m in packet.recent_messages
    )

    image_lines: list[str] = []
    if packet.image_context.current_images:
        image_lines.append(
            f"IMAGES ATTACHED NOW: {len(packet.image_context.current_images)}"
        )
    for ref in packet.image_context.recent_images_from_chat:
        image_lines.append(f'Earlier images (message {ref.position}, "{ref.prompt}"): {len(ref.urls)}')

    web = packet.web_context
    web_context = ""
    if web is not None:
        web_context = (
            f"WEBSITE: {web.original_url} | {web.page_metadata.title} | "
            f"{web.page_metadata.description}"
        )

    return BRAIN_REQUEST.format(
        user_prompt=user_prompt,
        scene_count=len(ordered),
        storyboard=storyboard,
        conversation_summary=packet.conversation_summary,
        recent_messages=recent_messages,
        image_context="\n".join(image_lines),
        web_context=web_context,
    )


def resolve_brain_model(config: ServerConfig, override: str | None) -> str:
    """A preset override changes the decision model; a raw model id only affects code."""
    if override and override in MODEL_PRESETS:
        return MODEL_PRESETS[override]["brain_model"]
    return config.brain_model


class DecisionEngine:
    """One structured model call per instruction, then deterministic validation."""

    def __init__(self, client: GeminiClient, config: ServerConfig) -> None:
        self._client = client
        self._config = config

    @trace(name="decide", span_type="CHAIN")
    async def decide(
        self,
        packet: ContextPacket,
        user_prompt: str,
        user_context: UserContext | None = None,
    ) -> Decision:
        """Choose the operation for *user_prompt*.

        Raises:
            DecisionError: If the model call fails or its answer cannot be read.
        """
        user_context = user_context or UserContext()
        contents = build_contents(
            render_request(packet, user_prompt, self._config.fps),
            image_urls=user_context.image_urls,
        )
        try:
            raw = await self._client.generate(
                contents,
                model=resolve_brain_model(self._config, user_context.model_override),
                system_instruction=BRAIN_SYSTEM.format(fps=self._config.fps),
                response_schema=BrainDecisionPayload.model_json_schema(by_alias=True),
            )
        except Exception as exc:
            logger.error("Decision model call failed: %s", exc)
            raise DecisionError("Could not reach the decision model, please try again") from exc

        try:
            parsed = run_chain(raw or "", DECISION_RESPONSE_CHAIN)
            payload = BrainDecisionPayload.model_validate(parsed.value)
        except (UnrecoverableResponse, ValidationError) as exc:
            logger.error("Unreadable decision response: %s", exc)
            raise DecisionError("The decision model returned an unreadable answer") from exc

        decision = resolve_decision(payload, packet, user_prompt, self._config.fps)
        logger.info(
            "Decision: %s (target=%s)",
            decision.tool_name or "clarification",
            getattr(decision, "target_scene_id", None),
        )
        return decision
