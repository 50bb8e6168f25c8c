"""Shared test fixtures for scene-brain-mcp."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from scene_brain_mcp.config import ServerConfig
from scene_brain_mcp.models.scene import Scene, SceneIteration
from scene_brain_mcp.store import SceneStore


def unwrap_tool(tool: Any) -> Any:
    """Extract the raw coroutine from a FastMCP FunctionTool, if wrapped.

    FastMCP 2.x wraps @server.tool functions in FunctionTool (not callable).
    FastMCP 3.x preserves the original function. This helper works with both.
    """
    return getattr(tool, "fn", tool)


def make_code(title: str = "Hello", frames: int = 90) -> str:
    """A minimal well-formed scene body, long enough to pass validation."""
    return (
        "const { AbsoluteFill, useCurrentFrame, interpolate } = window.Remotion;\n\n"
        f"export default function {title.replace(' ', '')}Scene() {{\n"
        "  const frame = useCurrentFrame();\n"
        "  const opacity = interpolate(frame, [0, 30], [0, 1]);\n"
        f"  return <AbsoluteFill style={{{{ opacity }}}}><h1>{title}</h1></AbsoluteFill>;\n"
        "}\n\n"
        f"export const durationInFrames_abc = {frames};\n"
    )


def code_response(code: str, **extra: Any) -> str:
    """JSON text as the code model would return it."""
    return json.dumps({"code": code, "reasoning": "done", **extra})


def decision_response(**fields: Any) -> str:
    """JSON text as the decision model would return it (camelCase keys)."""
    payload = {"reasoning": "test", "needsClarification": False, **fields}
    return json.dumps(payload)


@pytest.fixture(autouse=True, scope="session")
def _unwrap_fastmcp_tools():
    """Patch tool modules so FunctionTool objects become directly callable."""
    import importlib
    import pkgutil

    import scene_brain_mcp.tools as tools_pkg

    modules = []
    for info in pkgutil.walk_packages(tools_pkg.__path__, tools_pkg.__name__ + "."):
        modules.append(importlib.import_module(info.name))

    for mod in modules:
        for name in list(vars(mod)):
            obj = getattr(mod, name, None)
            if obj is not None and hasattr(obj, "fn") and not callable(obj):
                setattr(mod, name, obj.fn)


@pytest.fixture(autouse=True)
def _set_dummy_api_key(monkeypatch):
    """Ensure tests never hit real Gemini API."""
    monkeypatch.setenv("GEMINI_API_KEY", "test-key-not-real")


@pytest.fixture(autouse=True)
def _disable_tracing(monkeypatch):
    """Disable MLflow tracing in all tests to avoid real tracking-server calls."""
    monkeypatch.setenv("SCENE_TRACING_ENABLED", "false")


@pytest.fixture()
def clean_config():
    """Reset the config singleton between tests."""
    from scene_brain_mcp.config import reset_config

    reset_config()
    yield
    reset_config()


@pytest.fixture()
def config(tmp_path) -> ServerConfig:
    return ServerConfig(
        gemini_api_key="test-key-not-real",
        db_path=str(tmp_path / "scenes.db"),
        web_analysis_enabled=False,
        retry_base_delay=0.01,
    )


@pytest.fixture()
def store(config):
    s = SceneStore(config.db_path)
    yield s
    s.close()


@pytest.fixture()
def mock_client(config):
    """A GeminiClient stand-in: ``generate`` is an AsyncMock returning text."""
    client = MagicMock()
    client.config = config
    client.generate = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture()
def seed_scene(store):
    """Insert a scene (with its create iteration) and return it."""

    async def _seed(project_id: str = "p1", order: int = 0, name: str = "Intro",
                    code: str | None = None, duration: int = 150) -> Scene:
        scene = Scene(
            project_id=project_id,
            order=order,
            name=name,
            code=code or make_code(name, duration),
            duration=duration,
        )
        await store.insert_scene(scene, SceneIteration(
            scene_id=scene.id,
            project_id=project_id,
            operation_type="create",
            user_prompt=f"create {name}",
            code_after=scene.code,
        ))
        return scene

    return _seed
