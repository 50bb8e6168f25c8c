"""Structured error handling: exception taxonomy, classification and the tool error model."""

from __future__ import annotations

import sqlite3
from enum import Enum

from pydantic import BaseModel


class SceneBrainError(Exception):
    """Base class for failures that are reported to the caller verbatim."""


class DecisionError(SceneBrainError):
    """The decision model call failed or produced an unusable decision."""


class ToolExecutionError(SceneBrainError):
    """A scene operation failed or returned invalid/empty code."""


class NotFoundError(SceneBrainError):
    """The target scene (or iteration) does not exist."""


class PersistenceError(SceneBrainError):
    """A storage read or write failed."""


class ErrorCategory(str, Enum):
    """Categories of errors for diagnostics."""

    DECISION_FAILED = "DECISION_FAILED"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    SCENE_NOT_FOUND = "SCENE_NOT_FOUND"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    API_QUOTA_EXCEEDED = "API_QUOTA_EXCEEDED"
    API_PERMISSION_DENIED = "API_PERMISSION_DENIED"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    UNKNOWN = "UNKNOWN"


class ToolError(BaseModel):
    """Structured error returned from any tool."""

    error: str
    category: str
    hint: str
    retryable: bool = False
    retry_after_seconds: int | None = None


_GENERIC_MESSAGE = "Something went wrong while processing the request"


def categorize_error(error: Exception) -> tuple[ErrorCategory, str]:
    """Map an exception to an ErrorCategory + human-readable hint."""
    if isinstance(error, NotFoundError):
        return (
            ErrorCategory.SCENE_NOT_FOUND,
            "The scene no longer exists — refresh the storyboard and name a current scene",
        )
    if isinstance(error, PersistenceError) or isinstance(error, sqlite3.Error):
        return (
            ErrorCategory.PERSISTENCE_FAILED,
            "Saving the change failed — nothing was modified, try again",
        )
    if isinstance(error, ToolExecutionError):
        return (
            ErrorCategory.TOOL_EXECUTION_FAILED,
            "The scene could not be generated — rephrase the request or try again",
        )
    if isinstance(error, DecisionError):
        return (
            ErrorCategory.DECISION_FAILED,
            "Could not decide how to apply the request — try again or be more specific",
        )

    s = str(error).lower()
    if "429" in s or "quota" in s or "resource_exhausted" in s:
        return (
            ErrorCategory.API_QUOTA_EXCEEDED,
            "Rate limit hit — wait and retry, or switch to a cheaper model preset",
        )
    if "403" in s or "permission" in s:
        return (
            ErrorCategory.API_PERMISSION_DENIED,
            "API key lacks permission — check GEMINI_API_KEY",
        )
    if isinstance(error, TimeoutError) or "timeout" in s or "timed out" in s:
        return (
            ErrorCategory.NETWORK_ERROR,
            "Request timed out — try again or check connectivity",
        )
    if isinstance(error, ValueError):
        return (
            ErrorCategory.INVALID_ARGUMENT,
            "Invalid input parameter — check the request fields",
        )
    return (ErrorCategory.UNKNOWN, "Unexpected failure — see server logs")


def user_message(error: Exception) -> str:
    """Return a message safe to show to the end user.

    Typed errors carry messages written for users. Anything else may hold
    a provider payload, so only a generic message is surfaced.
    """
    if isinstance(error, SceneBrainError) and str(error):
        return str(error)
    if isinstance(error, ValueError) and str(error):
        return str(error)
    return _GENERIC_MESSAGE


def make_tool_error(error: Exception) -> dict:
    """Create a serialisable ToolError dict from an exception."""
    cat, hint = categorize_error(error)
    retryable = cat in {
        ErrorCategory.API_QUOTA_EXCEEDED,
        ErrorCategory.NETWORK_ERROR,
        ErrorCategory.PERSISTENCE_FAILED,
    }
    return ToolError(
        error=user_message(error),
        category=cat.value,
        hint=hint,
        retryable=retryable,
        retry_after_seconds=60 if cat == ErrorCategory.API_QUOTA_EXCEEDED else None,
    ).model_dump(mode="json")
