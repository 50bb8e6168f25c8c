"""Shared plumbing for the scene operations.

An operation is a pure ``run(input) -> output`` unit: it may call a model
but never touches storage. ``run`` never raises; any failure becomes
``success=False`` with a message that is safe to show the user.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from ..client import GeminiClient
from ..config import MODEL_PRESETS, ServerConfig
from ..errors import user_message
from ..models.generation import GeneratedCode
from ..models.operations import OperationOutput
from ..parsing import CODE_RESPONSE_CHAIN, detect_truncation, run_chain

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=OperationOutput)


class SceneOperation(Generic[InputT, OutputT]):
    """Base class: subclasses implement ``execute`` and set ``output_type``."""

    name: ClassVar[str]
    output_type: ClassVar[type[OperationOutput]]

    async def execute(self, inp: InputT) -> OutputT:
        raise NotImplementedError

    async def run(self, inp: InputT) -> OutputT:
        try:
            return await self.execute(inp)
        except Exception as exc:
            logger.warning("%s failed: %s", self.name, exc, exc_info=not isinstance(exc, ValueError))
            return self.output_type.fail(f"{self.name} failed: {user_message(exc)}")


def resolve_code_model(config: ServerConfig, override: str | None) -> str:
    """Pick the code model: a preset name maps to its code model, anything else is a model id."""
    if not override:
        return config.code_model
    if override in MODEL_PRESETS:
        return MODEL_PRESETS[override]["code_model"]
    return override


class CodeGenerationMixin:
    """Model call + parse + validate, shared by add and edit."""

    client: GeminiClient

    async def generate_code(self, contents: Any, *, model: str, system_instruction: str) -> GeneratedCode:
        """Ask the code model for a scene and return the validated response.

        Raises:
            ValueError: Empty, truncated, unparseable or too-short responses.
        """
        cfg = self.client.config
        raw = await self.client.generate(
            contents,
            model=model,
            system_instruction=system_instruction,
            response_schema=GeneratedCode.model_json_schema(by_alias=True),
        )
        if not raw or not raw.strip():
            raise ValueError("No response from the code model")

        report = detect_truncation(raw, cfg.response_size_ceiling)
        if report.hard:
            raise ValueError(f"Model response was truncated ({', '.join(report.reasons)})")

        parsed = run_chain(raw, CODE_RESPONSE_CHAIN)
        try:
            generated = GeneratedCode.model_validate(parsed.value)
        except ValidationError as exc:
            raise ValueError("Model response is missing the scene code") from exc

        if len(generated.code.strip()) < cfg.min_code_length:
            raise ValueError("Invalid code returned")
        return generated
