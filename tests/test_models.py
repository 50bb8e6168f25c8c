"""Tests for Pydantic models."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from scene_brain_mcp.models.context import ContextPacket, SceneSnapshot
from scene_brain_mcp.models.decision import (
    AddSceneDecision,
    BrainDecisionPayload,
    ClarificationDecision,
    Decision,
    TrimSceneDecision,
    is_clarification,
)
from scene_brain_mcp.models.generation import GeneratedCode
from scene_brain_mcp.models.operations import AddSceneData, AddSceneOutput
from scene_brain_mcp.models.scene import Scene, SceneIteration


class TestSceneIteration:
    def test_create_carries_code_after_only(self):
        with pytest.raises(ValidationError, match="create"):
            SceneIteration(
                scene_id="s", project_id="p", operation_type="create",
                user_prompt="x", code_before="a", code_after="b",
            )

    def test_delete_carries_code_before_only(self):
        with pytest.raises(ValidationError, match="delete"):
            SceneIteration(
                scene_id="s", project_id="p", operation_type="delete",
                user_prompt="x", code_after="b",
            )

    def test_edit_needs_both(self):
        with pytest.raises(ValidationError, match="edit"):
            SceneIteration(
                scene_id="s", project_id="p", operation_type="edit",
                user_prompt="x", code_after="b",
            )

    def test_is_frozen(self):
        it = SceneIteration(
            scene_id="s", project_id="p", operation_type="create", user_prompt="x", code_after="b",
        )
        with pytest.raises(ValidationError):
            it.code_after = "c"


class TestScene:
    def test_rejects_zero_duration(self):
        with pytest.raises(ValidationError):
            Scene(project_id="p", order=0, code="x", duration=0)

    def test_ids_are_unique(self):
        a = Scene(project_id="p", order=0, code="x", duration=1)
        b = Scene(project_id="p", order=0, code="x", duration=1)
        assert a.id != b.id


class TestDecisionModels:
    def test_payload_reads_camel_case(self):
        payload = BrainDecisionPayload.model_validate({
            "toolName": "trimScene", "targetSceneId": "s1", "targetDuration": 90,
            "referencedSceneIds": ["s2"], "unknownField": True,
        })
        assert payload.tool_name == "trimScene"
        assert payload.target_duration == 90
        assert payload.referenced_scene_ids == ["s2"]

    def test_union_discriminates_on_tool_name(self):
        adapter = TypeAdapter(Decision)
        decision = adapter.validate_python({"tool_name": "trimScene", "target_scene_id": "s1", "target_duration": 30})
        assert isinstance(decision, TrimSceneDecision)

    def test_trim_requires_positive_duration(self):
        with pytest.raises(ValidationError):
            TrimSceneDecision(target_scene_id="s1", target_duration=0)

    def test_is_clarification(self):
        assert is_clarification(ClarificationDecision(clarification_question="?")) is True
        assert is_clarification(AddSceneDecision()) is False


class TestContextPacket:
    def _snapshot(self, sid: str, order: int, minutes: int | None) -> SceneSnapshot:
        updated = None
        if minutes is not None:
            updated = datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes)
        return SceneSnapshot(id=sid, name=sid, code="", order=order, duration=30, updated_at=updated)

    def test_most_recent_prefers_latest_update(self):
        packet = ContextPacket(scene_history=[self._snapshot("a", 0, 10), self._snapshot("b", 1, 5)])
        assert packet.most_recent_scene().id == "a"

    def test_most_recent_falls_back_to_last_in_order(self):
        packet = ContextPacket(scene_history=[self._snapshot("a", 0, None), self._snapshot("b", 1, None)])
        assert packet.most_recent_scene().id == "b"

    def test_empty_packet(self):
        packet = ContextPacket()
        assert packet.most_recent_scene() is None
        assert packet.find_scene("a") is None
        assert packet.conversation_summary == "New conversation"


class TestOperationOutput:
    def test_ok_and_fail(self):
        ok = AddSceneOutput.ok(AddSceneData(name="Intro", code="x"))
        assert ok.success is True and ok.error is None
        failed = AddSceneOutput.fail("addScene failed: nope")
        assert failed.success is False
        assert failed.data is None
        assert failed.error.message == "addScene failed: nope"


class TestGeneratedCode:
    def test_alias_and_defaults(self):
        generated = GeneratedCode.model_validate({"code": "x", "newDurationFrames": 45})
        assert generated.new_duration_frames == 45
        assert generated.changes == []

    def test_code_required(self):
        with pytest.raises(ValidationError):
            GeneratedCode.model_validate({"reasoning": "no code"})
