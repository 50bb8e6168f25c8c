"""Shared type aliases and helpers for tool parameters."""

from __future__ import annotations

import json
from typing import Annotated, Literal

from pydantic import Field


def coerce_json_param(value: str | dict | list | None, expected_type: type) -> dict | list | None:
    """Decode a list or object parameter that arrived JSON-encoded.

    Some MCP hosts serialise array params such as ``image_urls`` into a
    string. The decoded value replaces *value* only when it is an instance
    of *expected_type*; anything else is passed through untouched.
    """
    if isinstance(value, str) and value.lstrip()[:1] in ("[", "{"):
        try:
            decoded = json.loads(value)
        except ValueError:
            return value
        if isinstance(decoded, expected_type):
            return decoded
    return value


# Literal enums

ToolName = Literal["addScene", "editScene", "deleteScene", "trimScene"]
OperationType = Literal["create", "edit", "delete"]
ChatRole = Literal["user", "assistant"]


# Annotated aliases

ProjectId = Annotated[str, Field(min_length=1, description="Project the scenes belong to")]
UserMessage = Annotated[str, Field(
    min_length=1,
    max_length=8000,
    description="Free-text instruction describing the change to the video",
)]
