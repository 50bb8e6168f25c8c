"""Tests for structured error categorization and user-safe messages."""

from __future__ import annotations

import sqlite3

import pytest

from scene_brain_mcp.errors import (
    DecisionError,
    ErrorCategory,
    NotFoundError,
    PersistenceError,
    ToolExecutionError,
    categorize_error,
    make_tool_error,
    user_message,
)


class TestCategorizeError:
    @pytest.mark.parametrize("exc,category", [
        (NotFoundError("Scene x not found"), ErrorCategory.SCENE_NOT_FOUND),
        (PersistenceError("write failed"), ErrorCategory.PERSISTENCE_FAILED),
        (sqlite3.OperationalError("database is locked"), ErrorCategory.PERSISTENCE_FAILED),
        (ToolExecutionError("Invalid code returned"), ErrorCategory.TOOL_EXECUTION_FAILED),
        (DecisionError("model down"), ErrorCategory.DECISION_FAILED),
        (RuntimeError("429 RESOURCE_EXHAUSTED"), ErrorCategory.API_QUOTA_EXCEEDED),
        (RuntimeError("403 permission denied"), ErrorCategory.API_PERMISSION_DENIED),
        (TimeoutError(), ErrorCategory.NETWORK_ERROR),
        (ValueError("bad field"), ErrorCategory.INVALID_ARGUMENT),
        (RuntimeError("boom"), ErrorCategory.UNKNOWN),
    ])
    def test_categories(self, exc, category):
        assert categorize_error(exc)[0] == category

    def test_typed_error_wins_over_message_patterns(self):
        """GIVEN a DecisionError whose text mentions a quota
        WHEN categorized THEN the type decides, not the text.
        """
        assert categorize_error(DecisionError("quota"))[0] == ErrorCategory.DECISION_FAILED


class TestUserMessage:
    def test_typed_errors_are_shown_verbatim(self):
        assert user_message(NotFoundError("Scene abc not found")) == "Scene abc not found"

    def test_provider_payloads_are_not_leaked(self):
        """GIVEN an untyped provider exception with an internal payload
        WHEN converted for the user THEN only a generic message remains.
        """
        exc = RuntimeError('{"error": {"code": 500, "internal": "stack at gemini.rpc"}}')
        msg = user_message(exc)
        assert "gemini.rpc" not in msg
        assert msg == "Something went wrong while processing the request"


class TestMakeToolError:
    def test_quota_is_retryable_with_delay(self):
        result = make_tool_error(RuntimeError("429 Too Many Requests"))
        assert result["category"] == "API_QUOTA_EXCEEDED"
        assert result["retryable"] is True
        assert result["retry_after_seconds"] == 60

    def test_not_found_is_not_retryable(self):
        result = make_tool_error(NotFoundError("Scene s1 not found"))
        assert result["category"] == "SCENE_NOT_FOUND"
        assert result["retryable"] is False
        assert result["error"] == "Scene s1 not found"

    def test_builtin_timeout_maps_to_network_error(self):
        result = make_tool_error(TimeoutError())
        assert result["category"] == "NETWORK_ERROR"
        assert result["retryable"] is True
