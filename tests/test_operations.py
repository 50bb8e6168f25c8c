"""Tests for the add, edit, delete and trim operations."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from scene_brain_mcp.config import MODEL_PRESETS
from scene_brain_mcp.models.context import PageMetadata, SceneSnapshot, Screenshots, WebContext
from scene_brain_mcp.models.operations import (
    AddSceneInput,
    DeleteSceneInput,
    EditSceneInput,
    ReferenceScene,
    TrimSceneInput,
)
from scene_brain_mcp.operations import AddScene, DeleteScene, EditScene, TrimScene
from scene_brain_mcp.operations.base import resolve_code_model
from scene_brain_mcp.operations.edit import build_edit_context
from tests.conftest import code_response, make_code


def _add_input(**overrides) -> AddSceneInput:
    fields = {"user_prompt": "create an intro", "project_id": "p1", "scene_number": 1}
    fields.update(overrides)
    return AddSceneInput(**fields)


def _edit_input(**overrides) -> EditSceneInput:
    fields = {
        "user_prompt": "make the title red",
        "project_id": "p1",
        "scene_id": "s1",
        "code": make_code("Intro", 150),
        "current_duration": 150,
    }
    fields.update(overrides)
    return EditSceneInput(**fields)


def _web() -> WebContext:
    return WebContext(
        original_url="https://stripe.com",
        screenshots=Screenshots(desktop="https://stripe.com/og.png"),
        page_metadata=PageMetadata(title="Stripe", description="Payments", headings=["Pay"]),
        analyzed_at=datetime.now(timezone.utc),
    )


class TestResolveCodeModel:
    def test_default(self, config):
        assert resolve_code_model(config, None) == config.code_model

    def test_preset(self, config):
        assert resolve_code_model(config, "best") == MODEL_PRESETS["best"]["code_model"]

    def test_raw_model_id(self, config):
        assert resolve_code_model(config, "gemini-custom-001") == "gemini-custom-001"


class TestAddScene:
    async def test_success_reads_duration_from_code(self, mock_client):
        code = make_code("Intro", 120)
        mock_client.generate.return_value = code_response(code, name="Intro")

        out = await AddScene(mock_client).run(_add_input())

        assert out.success is True
        assert out.data.code == code
        assert out.data.duration == 120
        assert out.data.name == "Intro"
        assert out.data.model_used == mock_client.config.code_model

    async def test_default_name_uses_scene_number(self, mock_client):
        mock_client.generate.return_value = code_response(make_code())
        out = await AddScene(mock_client).run(_add_input(scene_number=3))
        assert out.data.name == "Scene 3"

    async def test_duration_falls_back_to_reported_frames(self, mock_client):
        code = make_code().replace("export const durationInFrames_abc = 90;\n", "")
        mock_client.generate.return_value = code_response(code, newDurationFrames=75)
        out = await AddScene(mock_client).run(_add_input())
        assert out.data.duration == 75

    async def test_web_context_adds_brand_section_and_preview(self, mock_client):
        mock_client.generate.return_value = code_response(make_code())

        await AddScene(mock_client).run(_add_input(web_context=_web()))

        contents = mock_client.generate.await_args.args[0]
        text = contents.parts[0].text
        assert "https://stripe.com" in text
        assert contents.parts[1].file_data.file_uri == "https://stripe.com/og.png"

    async def test_previous_scene_is_style_reference(self, mock_client):
        mock_client.generate.return_value = code_response(make_code())
        previous = SceneSnapshot(id="s1", name="Intro", code="// previous code", order=0, duration=90)

        await AddScene(mock_client).run(_add_input(scene_number=2, storyboard=[previous]))

        prompt = mock_client.generate.await_args.args[0]
        assert "// previous code" in prompt

    async def test_truncated_response_fails(self, mock_client):
        """GIVEN a response cut off mid-code WHEN added THEN success is False and nothing raised."""
        mock_client.generate.return_value = '{"code": "const { AbsoluteFill } = window.Remotion;\\nexport default function A() {'

        out = await AddScene(mock_client).run(_add_input())

        assert out.success is False
        assert out.data is None
        assert "truncated" in out.error.message

    async def test_short_code_is_rejected(self, mock_client):
        mock_client.generate.return_value = code_response("const a = 1;")
        out = await AddScene(mock_client).run(_add_input())
        assert out.success is False
        assert out.error.message == "addScene failed: Invalid code returned"

    async def test_empty_response_fails(self, mock_client):
        mock_client.generate.return_value = ""
        out = await AddScene(mock_client).run(_add_input())
        assert out.success is False

    async def test_model_exception_becomes_failure(self, mock_client):
        """GIVEN the model call raises WHEN run THEN a user-safe failure is returned."""
        mock_client.generate.side_effect = RuntimeError("internal rpc detail")
        out = await AddScene(mock_client).run(_add_input())
        assert out.success is False
        assert "internal rpc detail" not in out.error.message

    async def test_raw_code_block_is_accepted(self, mock_client):
        code = make_code("Fenced", 60)
        mock_client.generate.return_value = f"Here is the scene:\n```tsx\n{code}\n```"
        out = await AddScene(mock_client).run(_add_input())
        assert out.success is True
        assert out.data.duration == 60


class TestEditScene:
    async def test_success_without_duration_change(self, mock_client):
        new_code = make_code("Red Intro", 150)
        mock_client.generate.return_value = code_response(new_code, changes=["title is red"])

        out = await EditScene(mock_client).run(_edit_input())

        assert out.success is True
        assert out.data.code == new_code
        assert out.data.duration is None
        assert out.data.changes_applied == ["title is red"]

    async def test_duration_reported_by_model(self, mock_client):
        mock_client.generate.return_value = code_response(make_code("Intro", 60), newDurationFrames=60)
        out = await EditScene(mock_client).run(_edit_input())
        assert out.data.duration == 60

    async def test_heals_current_frame_naming(self, mock_client):
        """GIVEN edited code declaring currentFrame WHEN returned THEN it is renamed to frame."""
        broken = make_code().replace("const frame = useCurrentFrame();", "const currentFrame = useCurrentFrame();")
        mock_client.generate.return_value = code_response(broken)

        out = await EditScene(mock_client).run(_edit_input())

        assert "const frame = useCurrentFrame()" in out.data.code
        assert "const currentFrame" not in out.data.code

    async def test_empty_source_code_fails(self, mock_client):
        out = await EditScene(mock_client).run(_edit_input(code="  "))
        assert out.success is False
        mock_client.generate.assert_not_awaited()

    async def test_defaults_when_model_omits_reasoning(self, mock_client):
        mock_client.generate.return_value = code_response(make_code(), reasoning="")
        out = await EditScene(mock_client).run(_edit_input())
        assert out.data.reasoning == "Applied edit: make the title red"
        assert out.data.changes_applied == ["Applied edit: make the title red"]

    def test_edit_context_sections(self):
        inp = _edit_input(
            error_details="ReferenceError: x is not defined",
            reference_scenes=[ReferenceScene(id="s2", name="Outro", code="// outro")],
            video_urls=["https://cdn/v.mp4"],
        )
        context = build_edit_context(inp)
        assert "ERROR TO FIX:\nReferenceError: x is not defined" in context
        assert "Outro (ID: s2)" in context
        assert "Video 1: https://cdn/v.mp4" in context
        assert context.endswith("CURRENT DURATION: 150 frames")


class TestDeleteScene:
    async def test_delete(self):
        out = await DeleteScene().run(DeleteSceneInput(user_prompt="x", project_id="p1", scene_id="s1"))
        assert out.success is True
        assert out.data.deleted_scene_id == "s1"

    async def test_missing_id(self):
        out = await DeleteScene().run(DeleteSceneInput(user_prompt="x", project_id="p1", scene_id=""))
        assert out.success is False


class TestTrimScene:
    @pytest.mark.parametrize("kwargs,duration,trimmed", [
        ({"new_duration": 120}, 120, 30),
        ({"delta_frames": -30}, 120, 30),
        ({"delta_frames": 60}, 210, -60),
    ])
    async def test_trim(self, kwargs, duration, trimmed):
        inp = TrimSceneInput(user_prompt="x", project_id="p1", scene_id="s1", current_duration=150, **kwargs)
        out = await TrimScene().run(inp)
        assert out.data.duration == duration
        assert out.data.trimmed_frames == trimmed

    async def test_below_one_frame_fails(self):
        inp = TrimSceneInput(user_prompt="x", project_id="p1", scene_id="s1", current_duration=30, delta_frames=-30)
        out = await TrimScene().run(inp)
        assert out.success is False
        assert "at least 1 frame" in out.error.message

    async def test_no_target_fails(self):
        inp = TrimSceneInput(user_prompt="x", project_id="p1", scene_id="s1", current_duration=30)
        assert (await TrimScene().run(inp)).success is False
