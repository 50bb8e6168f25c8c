"""Environment-driven settings shared by the tools and the generation pipeline."""

from __future__ import annotations

import math
import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

VALID_THINKING_LEVELS = {"minimal", "low", "medium", "high"}

MODEL_PRESETS: dict[str, dict[str, str]] = {
    "best": {
        "brain_model": "gemini-3.1-pro-preview",
        "code_model": "gemini-3.1-pro-preview",
        "label": "Max quality — 3.1 Pro for decisions and code",
    },
    "balanced": {
        "brain_model": "gemini-3-flash-preview",
        "code_model": "gemini-3.1-pro-preview",
        "label": "Flash decides, Pro writes code",
    },
    "budget": {
        "brain_model": "gemini-3-flash-preview",
        "code_model": "gemini-3-flash-preview",
        "label": "Cost-optimized — 3 Flash for everything",
    },
}


def _resolve_tracing_enabled(flag_value: str, tracking_uri: str) -> bool:
    """Tracing is on when a tracking URI is set, unless explicitly disabled."""
    if flag_value.lower() == "false":
        return False
    return bool(tracking_uri)


class ServerConfig(BaseModel):
    """Settings for one server process.

    Built once at process start and handed to the client, the decision
    engine, the operations and the dispatcher.
    """

    gemini_api_key: str = Field(default="")
    brain_model: str = Field(default="gemini-3-flash-preview")
    code_model: str = Field(default="gemini-3.1-pro-preview")
    thinking_level: str = Field(default="medium")
    temperature: float = Field(default=1.0)
    db_path: str = Field(default="")
    fps: int = Field(default=30)
    default_scene_duration: int = Field(default=150)
    recent_message_window: int = Field(default=5)
    image_history_window: int = Field(default=10)
    response_size_ceiling: int = Field(default=16384)
    min_code_length: int = Field(default=100)
    web_analysis_enabled: bool = Field(default=True)
    web_fetch_timeout: float = Field(default=15.0)
    retry_max_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=1.0)
    retry_max_delay: float = Field(default=60.0)
    tracing_enabled: bool = Field(default=False)
    mlflow_tracking_uri: str = Field(default="")
    mlflow_experiment_name: str = Field(default="scene-brain-mcp")

    @field_validator("thinking_level")
    @classmethod
    def validate_thinking_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level not in VALID_THINKING_LEVELS:
            allowed = ", ".join(sorted(VALID_THINKING_LEVELS))
            raise ValueError(f"Invalid thinking level '{value}'. Allowed: {allowed}")
        return level

    @field_validator(
        "fps",
        "default_scene_duration",
        "recent_message_window",
        "image_history_window",
        "response_size_ceiling",
        "retry_max_attempts",
    )
    @classmethod
    def validate_positive_ints(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Configuration values must be >= 1")
        return value

    @field_validator("retry_base_delay", "retry_max_delay", "web_fetch_timeout")
    @classmethod
    def validate_positive_floats(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Delays and timeouts must be > 0")
        return value

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Read every setting from ``SCENE_*``, ``GEMINI_*`` and ``MLFLOW_*`` variables."""
        db_default = str(Path.home() / ".local" / "share" / "scene-brain-mcp" / "scenes.db")
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            brain_model=os.getenv("SCENE_BRAIN_MODEL", "gemini-3-flash-preview"),
            code_model=os.getenv("SCENE_CODE_MODEL", "gemini-3.1-pro-preview"),
            thinking_level=os.getenv("SCENE_THINKING_LEVEL", "medium"),
            temperature=float(os.getenv("SCENE_TEMPERATURE", "1.0")),
            db_path=os.getenv("SCENE_DB_PATH", db_default),
            fps=int(os.getenv("SCENE_FPS", "30")),
            default_scene_duration=int(os.getenv("SCENE_DEFAULT_DURATION", "150")),
            recent_message_window=int(os.getenv("SCENE_RECENT_MESSAGES", "5")),
            image_history_window=int(os.getenv("SCENE_IMAGE_HISTORY", "10")),
            response_size_ceiling=int(os.getenv("SCENE_RESPONSE_CEILING", "16384")),
            min_code_length=int(os.getenv("SCENE_MIN_CODE_LENGTH", "100")),
            web_analysis_enabled=os.getenv("SCENE_WEB_ANALYSIS", "true").lower() != "false",
            web_fetch_timeout=float(os.getenv("SCENE_WEB_TIMEOUT", "15")),
            retry_max_attempts=int(os.getenv("SCENE_RETRY_MAX_ATTEMPTS", "3")),
            retry_base_delay=float(os.getenv("SCENE_RETRY_BASE_DELAY", "1.0")),
            retry_max_delay=float(os.getenv("SCENE_RETRY_MAX_DELAY", "60.0")),
            tracing_enabled=_resolve_tracing_enabled(
                os.getenv("SCENE_TRACING_ENABLED", ""),
                os.getenv("MLFLOW_TRACKING_URI", ""),
            ),
            mlflow_tracking_uri=os.getenv("MLFLOW_TRACKING_URI", ""),
            mlflow_experiment_name=os.getenv("MLFLOW_EXPERIMENT_NAME", "scene-brain-mcp"),
        )

    def with_preset(self, preset: str) -> ServerConfig:
        """Return a copy with the brain/code models of *preset* applied."""
        if preset not in MODEL_PRESETS:
            allowed = ", ".join(sorted(MODEL_PRESETS))
            raise ValueError(f"Unknown preset '{preset}'. Allowed: {allowed}")
        models = MODEL_PRESETS[preset]
        return self.model_copy(
            update={"brain_model": models["brain_model"], "code_model": models["code_model"]}
        )

    def seconds_to_frames(self, seconds: float) -> int:
        """Convert a duration in seconds to frames at the project frame rate."""
        return math.floor(seconds * self.fps + 0.5)


_config: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Return the process config, reading the environment on first access.

    Only the runtime holder and the tracing helpers call this; the
    pipeline components receive the config object explicitly.
    """
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached config so the next ``get_config`` rereads the environment."""
    global _config
    _config = None
