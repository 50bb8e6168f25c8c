"""Tests for the decision engine and deterministic decision resolution."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from scene_brain_mcp.brain import (
    DEFAULT_QUESTION,
    HOW_LONG_QUESTION,
    NO_SCENES_QUESTION,
    WHICH_SCENE_QUESTION,
    DecisionEngine,
    is_error_fix,
    render_request,
    resolve_decision,
    resolve_scene_reference,
)
from scene_brain_mcp.config import MODEL_PRESETS
from scene_brain_mcp.errors import DecisionError
from scene_brain_mcp.models.context import ContextPacket, SceneSnapshot, UserContext
from scene_brain_mcp.models.decision import (
    AddSceneDecision,
    BrainDecisionPayload,
    ClarificationDecision,
    DeleteSceneDecision,
    EditSceneDecision,
    TrimSceneDecision,
)
from tests.conftest import decision_response, make_code

_T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _packet(*durations: int, newest: int | None = None) -> ContextPacket:
    """Scenes s1..sN in order; *newest* (1-based) gets the latest updated_at."""
    scenes = []
    for i, duration in enumerate(durations, start=1):
        updated = _T0 + timedelta(minutes=i)
        if newest == i:
            updated = _T0 + timedelta(days=1)
        scenes.append(SceneSnapshot(
            id=f"s{i}", name=f"Scene {i}", code=make_code(f"Scene {i}", duration),
            order=i - 1, duration=duration, updated_at=updated,
        ))
    return ContextPacket(scene_history=scenes)


def _payload(**fields) -> BrainDecisionPayload:
    return BrainDecisionPayload.model_validate({"reasoning": "r", **fields})


class TestResolveDecisionExclusivity:
    def test_tool_and_clarification_together(self):
        """GIVEN a payload with a tool AND needsClarification WHEN resolved THEN clarification."""
        decision = resolve_decision(
            _payload(toolName="addScene", needsClarification=True), _packet(150), "x", 30,
        )
        assert isinstance(decision, ClarificationDecision)
        assert decision.clarification_question == DEFAULT_QUESTION

    def test_neither_tool_nor_clarification(self):
        decision = resolve_decision(_payload(), _packet(150), "x", 30)
        assert isinstance(decision, ClarificationDecision)

    def test_explicit_clarification_keeps_question(self):
        decision = resolve_decision(
            _payload(needsClarification=True, clarificationQuestion="Which color?"),
            _packet(150), "make it nicer", 30,
        )
        assert decision.clarification_question == "Which color?"
        assert decision.tool_name is None
        assert decision.needs_clarification is True


class TestResolveDecisionRewrites:
    def test_error_fix_add_becomes_edit(self):
        """GIVEN addScene for a prompt with an error message WHEN resolved THEN edit of newest scene."""
        prompt = "Fix this: ReferenceError: opacity is not defined"
        decision = resolve_decision(_payload(toolName="addScene"), _packet(150, 90, newest=1), prompt, 30)

        assert isinstance(decision, EditSceneDecision)
        assert decision.target_scene_id == "s1"
        assert decision.error_details == prompt

    def test_error_prompt_on_empty_project_still_adds(self):
        decision = resolve_decision(_payload(toolName="addScene"), _packet(), "error: crashed", 30)
        assert isinstance(decision, AddSceneDecision)

    @pytest.mark.parametrize("prompt", [
        "add a new scene showing a car crash",
        "create a new scene with a 404 error page design",
        "add an intro scene about exception handling",
    ])
    def test_new_scene_request_mentioning_errors_stays_add(self, prompt):
        """GIVEN addScene for a new-scene prompt that mentions errors WHEN resolved THEN still an add."""
        decision = resolve_decision(_payload(toolName="addScene"), _packet(150), prompt, 30)
        assert isinstance(decision, AddSceneDecision)

    def test_quoted_error_in_new_scene_request_stays_add(self):
        prompt = "add another scene that shows 'TypeError: x is not a function' on a terminal"
        decision = resolve_decision(_payload(toolName="addScene"), _packet(150), prompt, 30)
        assert isinstance(decision, AddSceneDecision)

    def test_payload_error_details_drive_rewrite(self):
        """GIVEN addScene with errorDetails from the model WHEN resolved THEN edit carrying those details."""
        decision = resolve_decision(
            _payload(toolName="addScene", errorDetails="opacity is undefined at frame 12"),
            _packet(150), "fix it please", 30,
        )
        assert isinstance(decision, EditSceneDecision)
        assert decision.error_details == "opacity is undefined at frame 12"

    def test_timing_trim_becomes_edit(self):
        decision = resolve_decision(
            _payload(toolName="trimScene", targetSceneId="s1", targetDuration=60),
            _packet(150), "speed up the animations to fit 2 seconds", 30,
        )
        assert isinstance(decision, EditSceneDecision)
        assert decision.target_scene_id == "s1"

    def test_edit_on_empty_project_becomes_add(self):
        decision = resolve_decision(_payload(toolName="editScene"), _packet(), "make it blue", 30)
        assert isinstance(decision, AddSceneDecision)

    def test_delete_on_empty_project_asks(self):
        decision = resolve_decision(_payload(toolName="deleteScene"), _packet(), "delete it", 30)
        assert decision.clarification_question == NO_SCENES_QUESTION


class TestResolveDecisionTargets:
    def test_missing_target_defaults_to_most_recent(self):
        decision = resolve_decision(_payload(toolName="editScene"), _packet(150, 90, 60, newest=2), "make it red", 30)
        assert decision.target_scene_id == "s2"

    def test_named_scene_beats_most_recent(self):
        decision = resolve_decision(
            _payload(toolName="editScene"), _packet(150, 90, 60, newest=2), "make scene 3 red", 30,
        )
        assert decision.target_scene_id == "s3"

    def test_delete_without_target_asks_which(self):
        """GIVEN a delete with no resolvable target WHEN resolved THEN ask which scene."""
        decision = resolve_decision(_payload(toolName="deleteScene"), _packet(150, 90), "delete it", 30)
        assert decision.clarification_question == WHICH_SCENE_QUESTION

    def test_delete_named_scene(self):
        decision = resolve_decision(_payload(toolName="deleteScene"), _packet(150, 90), "delete the last scene", 30)
        assert isinstance(decision, DeleteSceneDecision)
        assert decision.target_scene_id == "s2"

    def test_unknown_references_are_dropped(self):
        decision = resolve_decision(
            _payload(toolName="editScene", targetSceneId="s1", referencedSceneIds=["s2", "ghost", "s1", "s2"]),
            _packet(150, 90), "use the colors from scene 2", 30,
        )
        assert decision.referenced_scene_ids == ("s2",)


class TestResolveDecisionTrim:
    def test_computed_duration_overrides_model(self):
        """GIVEN a 150-frame scene and "cut the last second" WHEN the model says 100 THEN 120 wins."""
        decision = resolve_decision(
            _payload(toolName="trimScene", targetSceneId="s1", targetDuration=100),
            _packet(150), "cut the last second", 30,
        )
        assert isinstance(decision, TrimSceneDecision)
        assert decision.target_duration == 120

    def test_plain_words_do_not_override_model_duration(self):
        """GIVEN "as" next to a real amount WHEN resolved THEN the model's matching value stands."""
        decision = resolve_decision(
            _payload(toolName="trimScene", targetSceneId="s1", targetDuration=120),
            _packet(150), "make it 4 seconds, as short as the intro", 30,
        )
        assert isinstance(decision, TrimSceneDecision)
        assert decision.target_duration == 120

    def test_ambiguous_amounts_keep_model_duration(self):
        decision = resolve_decision(
            _payload(toolName="trimScene", targetSceneId="s1", targetDuration=75),
            _packet(150), "make it 2 seconds or maybe 3 seconds", 30,
        )
        assert decision.target_duration == 75

    def test_model_duration_used_when_prompt_is_vague(self):
        decision = resolve_decision(
            _payload(toolName="trimScene", targetSceneId="s1", targetDuration=75),
            _packet(150), "a bit shorter please", 30,
        )
        assert decision.target_duration == 75

    def test_no_duration_anywhere_asks_how_long(self):
        decision = resolve_decision(
            _payload(toolName="trimScene", targetSceneId="s1"), _packet(150), "shorter", 30,
        )
        assert decision.clarification_question == HOW_LONG_QUESTION


class TestHelpers:
    @pytest.mark.parametrize("prompt,expected", [
        ("TypeError: cannot read properties of undefined", True),
        ("the scene crashed", False),
        ("a 404 error page", False),
        ("Uncaught error in the title animation", True),
        ("failed to compile after the last edit", True),
        ("make the title bigger", False),
    ])
    def test_is_error_fix(self, prompt, expected):
        assert is_error_fix(prompt) is expected

    def test_scene_reference_out_of_range(self):
        assert resolve_scene_reference("edit scene 9", _packet(150, 90)) is None

    def test_first_scene_reference(self):
        assert resolve_scene_reference("change the first scene", _packet(150, 90)).id == "s1"

    def test_render_request_lists_storyboard(self):
        text = render_request(_packet(150, 90), "make it blue", 30)
        assert "s1" in text and "s2" in text
        assert "make it blue" in text

    def test_render_request_empty_storyboard(self):
        assert "(empty)" in render_request(_packet(), "add an intro", 30)


class TestDecisionEngine:
    async def test_decide_add(self, mock_client, config):
        mock_client.generate.return_value = decision_response(toolName="addScene", userFeedback="Adding it")
        engine = DecisionEngine(mock_client, config)

        decision = await engine.decide(_packet(), "create an intro")

        assert isinstance(decision, AddSceneDecision)
        assert decision.user_feedback == "Adding it"
        kwargs = mock_client.generate.await_args.kwargs
        assert kwargs["model"] == config.brain_model
        assert "toolName" in kwargs["response_schema"]["properties"]

    async def test_decide_accepts_fenced_json(self, mock_client, config):
        mock_client.generate.return_value = (
            "```json\n" + decision_response(toolName="deleteScene", targetSceneId="s1") + "\n```"
        )
        decision = await DecisionEngine(mock_client, config).decide(_packet(150), "delete scene 1")
        assert isinstance(decision, DeleteSceneDecision)

    async def test_preset_override_selects_brain_model(self, mock_client, config):
        mock_client.generate.return_value = decision_response(toolName="addScene")
        await DecisionEngine(mock_client, config).decide(
            _packet(), "intro", UserContext(model_override="budget"),
        )
        assert mock_client.generate.await_args.kwargs["model"] == MODEL_PRESETS["budget"]["brain_model"]

    async def test_model_failure_raises_decision_error(self, mock_client, config):
        mock_client.generate.side_effect = RuntimeError("503 unavailable")
        with pytest.raises(DecisionError, match="decision model"):
            await DecisionEngine(mock_client, config).decide(_packet(), "intro")

    async def test_garbage_response_raises_decision_error(self, mock_client, config):
        """GIVEN prose with no JSON WHEN decided THEN DecisionError, not a guessed operation."""
        mock_client.generate.return_value = "I think you should add a scene."
        with pytest.raises(DecisionError, match="unreadable"):
            await DecisionEngine(mock_client, config).decide(_packet(), "intro")

    async def test_invalid_tool_name_raises_decision_error(self, mock_client, config):
        mock_client.generate.return_value = decision_response(toolName="renameScene")
        with pytest.raises(DecisionError):
            await DecisionEngine(mock_client, config).decide(_packet(), "rename it")
