"""Deterministic duration arithmetic for trim requests.

The decision model is asked to compute ``targetDuration`` itself, but frame
arithmetic is cheap to do exactly. ``resolve_trim_target`` understands the
common phrasings ("make it 3 seconds", "cut the last second", "add 2
seconds", "cut in half") and its answer overrides the model's when it
matches. Phrasings it cannot pin to one amount return ``None`` so the
model's value stands.
"""

from __future__ import annotations

import re

_NUMBER_WORDS: dict[str, float] = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10, "half a": 0.5, "half an": 0.5,
}

# Digits may touch their unit ("3s"); number words need a space and a full
# unit, so "as" or "a scene" never read as an amount. An ordinal "second"
# followed by a noun ("a second scene") is not a duration either.
_AMOUNT = (
    r"(?:\b(\d+(?:\.\d+)?)\s*(?:more\s+)?(s|secs?|seconds?|frames?)"
    r"|\b(half an?|an?|one|two|three|four|five|six|seven|eight|nine|ten)"
    r"\s+(?:more\s+)?(secs?|seconds?|frames?))\b"
    r"(?!\s+(?:scenes?|versions?|times?|takes?|pass(?:es)?|looks?|ones?|slides?)\b)"
)
_CUT_VERB = r"\b(?:cut|remove|trim|drop|shave|chop)\b(?:\s+off)?"

_DURATION_EXPORT = re.compile(r"export\s+const\s+durationInFrames(?:_\w+)?\s*=\s*(\d+)")

_HALVE = re.compile(r"\b(?:cut|trim|reduce)\b.*\bin half\b|\bhalve\b", re.I)
_DOUBLE = re.compile(
    r"\bdouble\s+(?:it|its\s+(?:length|duration)|the\s+(?:scene'?s?\s+)?(?:length|duration))\b"
    r"|\btwice\s+as\s+long\b",
    re.I,
)
_CUT_LAST_AMOUNT = re.compile(
    rf"{_CUT_VERB}\s+(?:the\s+)?(?:last|final|first)\s+{_AMOUNT}", re.I,
)
_CUT_LAST_SECOND = re.compile(
    rf"{_CUT_VERB}\s+(?:the\s+)?(?:last|final|first)\s+second\b", re.I,
)
_CUT_BY = re.compile(
    rf"\b(?:cut|remove|trim|drop|shave|shorten|reduce)\b.*?\bby\s+{_AMOUNT}", re.I,
)
_CUT_AMOUNT = re.compile(rf"{_CUT_VERB}\s+{_AMOUNT}", re.I)
_SHORTER = re.compile(rf"{_AMOUNT}\s+shorter\b", re.I)
_LONGER = re.compile(rf"{_AMOUNT}\s+longer\b", re.I)
_EXTEND = re.compile(
    rf"\b(?:add|extend|lengthen)\b(?:.*?\bby)?\s+(?:another\s+)?{_AMOUNT}", re.I,
)
_ABSOLUTE = re.compile(_AMOUNT, re.I)
_TO_AMOUNT = re.compile(rf"\b(?:to|be)\s+{_AMOUNT}", re.I)
_ABSOLUTE_VERB = re.compile(
    r"\b(?:make|set|change|shorten|lengthen|trim|cut|should be|to)\b", re.I,
)

_TIMING_EDIT = re.compile(
    r"\b(?:speed\s*up|slow\s*down|faster|slower|compress|stretch|fit\s+(?:the\s+)?animations?|"
    r"animations?\s+(?:to\s+)?fit|pace|pacing|timing)\b",
    re.I,
)


def _amount_in_frames(match: re.Match[str], fps: int) -> int:
    token = (match.group(1) or match.group(3)).lower()
    unit = (match.group(2) or match.group(4)).lower()
    value = _NUMBER_WORDS[token] if token in _NUMBER_WORDS else float(token)
    if unit.startswith("f"):
        return int(value)
    return int(value * fps + 0.5)


def _single_amount(matches: list[re.Match[str]], fps: int) -> int | None:
    amounts = {_amount_in_frames(m, fps) for m in matches}
    return amounts.pop() if len(amounts) == 1 else None


def extract_duration_from_code(code: str) -> int | None:
    """Return the frame count declared by ``export const durationInFrames...``."""
    match = _DURATION_EXPORT.search(code)
    if not match:
        return None
    value = int(match.group(1))
    return value if value >= 1 else None


def looks_like_timing_edit(prompt: str) -> bool:
    """True when the request changes animation timing rather than just length."""
    return _TIMING_EDIT.search(prompt) is not None


def resolve_trim_target(prompt: str, current_frames: int, fps: int = 30) -> int | None:
    """Compute the new duration in frames that *prompt* asks for.

    Relative phrasings are applied to *current_frames*; absolute phrasings
    replace it. Returns ``None`` when the prompt carries no recognisable
    duration, names several amounts without saying which is the target, or
    the result would be shorter than one frame.
    """
    target: int | None = None

    if _HALVE.search(prompt):
        target = current_frames // 2
    elif _DOUBLE.search(prompt):
        target = current_frames * 2
    elif match := _CUT_LAST_AMOUNT.search(prompt):
        target = current_frames - _amount_in_frames(match, fps)
    elif _CUT_LAST_SECOND.search(prompt):
        target = current_frames - fps
    elif match := (_CUT_BY.search(prompt) or _CUT_AMOUNT.search(prompt) or _SHORTER.search(prompt)):
        target = current_frames - _amount_in_frames(match, fps)
    elif match := (_LONGER.search(prompt) or _EXTEND.search(prompt)):
        target = current_frames + _amount_in_frames(match, fps)
    elif _ABSOLUTE_VERB.search(prompt):
        # "make scene 1 3 seconds"; with several amounts only a "to"/"be" one decides
        target = _single_amount(list(_ABSOLUTE.finditer(prompt)), fps)
        if target is None:
            target = _single_amount(list(_TO_AMOUNT.finditer(prompt)), fps)

    if target is None or target < 1:
        return None
    return target
