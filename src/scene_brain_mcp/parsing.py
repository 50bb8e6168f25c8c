"""Recovery of structured output from model responses.

Models do not always honour the JSON response format: they wrap JSON in
markdown fences, prepend commentary, or skip JSON and return a bare code
block. Parsing runs an ordered chain of strategies; each returns
``Parsed`` or ``Unrecovered`` and the first ``Parsed`` wins.

Truncation detection is independent of parsing. It reports and leaves
retry policy to the caller.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

RESPONSE_SIZE_CEILING = 16384

RAW_CODE_REASONING = "Code extracted from response"


@dataclass(frozen=True)
class Parsed:
    value: dict
    strategy: str


@dataclass(frozen=True)
class Unrecovered:
    strategy: str
    reason: str


ParseOutcome = Parsed | Unrecovered
ParseStrategy = Callable[[str], ParseOutcome]


class UnrecoverableResponse(ValueError):
    """No strategy in the chain could recover a structured object."""

    def __init__(self, attempts: Sequence[Unrecovered], preview: str) -> None:
        self.attempts = list(attempts)
        tried = ", ".join(a.strategy for a in attempts)
        super().__init__(f"Could not extract JSON or code from response (tried: {tried})")
        self.preview = preview


def _loads_object(text: str, strategy: str) -> ParseOutcome:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        return Unrecovered(strategy, f"invalid JSON: {exc.msg}")
    if not isinstance(value, dict):
        return Unrecovered(strategy, f"expected object, got {type(value).__name__}")
    return Parsed(value, strategy)


# ── Strategies ───────────────────────────────────────────────────────────────

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
_CODE_REASONING_OBJECT = re.compile(
    r'\{\s*"code"\s*:\s*"[\s\S]*?"\s*,\s*"reasoning"\s*:[\s\S]*?\}\s*$',
    re.MULTILINE,
)
_WHOLE_OBJECT = re.compile(r"\s*(\{[\s\S]*\})\s*\Z")
_ANY_CODE_BLOCK = re.compile(r"```(?:tsx?|javascript|jsx)?\s*([\s\S]*?)\s*```")


def parse_direct(text: str) -> ParseOutcome:
    """The whole response is a JSON object."""
    return _loads_object(text, "direct")


def parse_fenced_json(text: str) -> ParseOutcome:
    """A JSON object inside a markdown fence."""
    match = _FENCED_JSON.search(text)
    if not match:
        return Unrecovered("fenced_json", "no fenced JSON block")
    return _loads_object(match.group(1), "fenced_json")


def parse_code_object(text: str) -> ParseOutcome:
    """A ``{"code": ..., "reasoning": ...}`` object closing the response."""
    match = _CODE_REASONING_OBJECT.search(text)
    if not match:
        return Unrecovered("code_object", "no trailing code/reasoning object")
    return _loads_object(match.group(0), "code_object")


def parse_after_fence(text: str) -> ParseOutcome:
    """A JSON object that follows a closed code fence and a blank line."""
    for separator in ("```\n\n", "```\r\n\r\n"):
        pieces = text.split(separator)
        if len(pieces) > 1:
            match = _WHOLE_OBJECT.match(pieces[1])
            if match:
                return _loads_object(match.group(1), "after_fence")
    return Unrecovered("after_fence", "no JSON after a code fence")


def parse_outer_object(text: str) -> ParseOutcome:
    """Everything between the first ``{`` and the last ``}``."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return Unrecovered("outer_object", "no braces")
    return _loads_object(text[start:end + 1], "outer_object")


def parse_raw_code_block(text: str) -> ParseOutcome:
    """Give up on JSON and take the first fenced code block as the code."""
    match = _ANY_CODE_BLOCK.search(text)
    if not match or not match.group(1).strip():
        return Unrecovered("raw_code_block", "no fenced code block")
    return Parsed(
        {
            "code": match.group(1),
            "reasoning": RAW_CODE_REASONING,
            "changes": ["Applied requested changes"],
        },
        "raw_code_block",
    )


CODE_RESPONSE_CHAIN: tuple[ParseStrategy, ...] = (
    parse_direct,
    parse_fenced_json,
    parse_code_object,
    parse_after_fence,
    parse_raw_code_block,
)

DECISION_RESPONSE_CHAIN: tuple[ParseStrategy, ...] = (
    parse_direct,
    parse_fenced_json,
    parse_outer_object,
)


def run_chain(text: str, chain: Sequence[ParseStrategy]) -> Parsed:
    """Run *chain* over *text* and return the first recovered object.

    Raises:
        UnrecoverableResponse: If every strategy fails.
    """
    attempts: list[Unrecovered] = []
    for strategy in chain:
        outcome = strategy(text)
        if isinstance(outcome, Parsed):
            if attempts:
                logger.info(
                    "Recovered response via %s after %d failed strategies",
                    outcome.strategy, len(attempts),
                )
            return outcome
        attempts.append(outcome)
        logger.debug("Parse strategy %s failed: %s", outcome.strategy, outcome.reason)
    raise UnrecoverableResponse(attempts, text[:500])


# ── Truncation ───────────────────────────────────────────────────────────────

_HARD_ENDINGS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("partial_escape", re.compile(r"\\n\s*$")),
    ("trailing_backslash", re.compile(r"\\\s*$")),
    ("trailing_quote", re.compile(r'"\s*$')),
    ("trailing_comma", re.compile(r",\s*$")),
    ("trailing_colon", re.compile(r":\s*$")),
    ("open_bracket", re.compile(r"\[\s*$")),
    ("open_brace", re.compile(r"\{\s*$")),
)
_SOFT_REASONS = frozenset({"missing_closing_brace"})


@dataclass(frozen=True)
class TruncationReport:
    """Diagnostic about whether a response looks cut off.

    ``reasons`` lists every signal that fired. ``missing_closing_brace`` on
    its own is soft: fenced or plain-code responses legitimately end
    without ``}``.
    """

    length: int
    reasons: tuple[str, ...] = field(default_factory=tuple)

    @property
    def truncated(self) -> bool:
        return bool(self.reasons)

    @property
    def hard(self) -> bool:
        return any(r not in _SOFT_REASONS for r in self.reasons)


def _is_valid_json(text: str) -> bool:
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return False
    return True


def _odd_quote_count(text: str) -> bool:
    unescaped = re.sub(r"\\.", "", text)
    return unescaped.count('"') % 2 == 1


def detect_truncation(text: str, ceiling: int = RESPONSE_SIZE_CEILING) -> TruncationReport:
    """Flag responses whose ending or size is inconsistent with complete output."""
    reasons: list[str] = []
    if len(text) == ceiling:
        reasons.append("size_ceiling")

    trimmed = text.strip()
    if trimmed and not _is_valid_json(text):
        for name, pattern in _HARD_ENDINGS:
            if pattern.search(trimmed):
                reasons.append(name)
                break
        if trimmed.startswith("{") and _odd_quote_count(trimmed):
            reasons.append("odd_quote_count")
        if not trimmed.endswith("}"):
            reasons.append("missing_closing_brace")

    report = TruncationReport(length=len(text), reasons=tuple(reasons))
    if report.hard:
        logger.warning(
            "Possible truncated response (%d chars): %s, tail %r",
            len(text), ", ".join(report.reasons), text[-200:],
        )
    return report
