"""Named rewrite rules for known mistakes in generated Remotion code.

The code model repeatedly names the frame variable ``currentFrame`` (which
collides with Remotion globals) or destructures ``currentFrame`` from
``window.Remotion`` instead of ``useCurrentFrame``. Each rule here fixes one
of those mistakes and nothing else.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_CURRENT_FRAME_DECL = "const currentFrame = useCurrentFrame()"
_FRAME_DECL = "const frame = useCurrentFrame()"

_CURRENT_FRAME_DECL_RE = re.compile(r"const currentFrame = useCurrentFrame\(\)")
_CURRENT_FRAME_WORD = re.compile(r"\bcurrentFrame\b")
_REMOTION_DESTRUCTURE_AHEAD = re.compile(r"[^{]*\}\s*=\s*window\.Remotion")
_CURRENT_FRAME_LINE = re.compile(r"^\s*const currentFrame\s*=.*$", re.MULTILINE)
_DESTRUCTURED_CURRENT_FRAME = re.compile(
    r"(const\s*\{[^}]*)(\bcurrentFrame\b)([^}]*\}\s*=\s*window\.Remotion)"
)


@dataclass(frozen=True)
class RewriteRule:
    name: str
    applies: Callable[[str], bool]
    rewrite: Callable[[str], str]


def _inside_open_brace(code: str, pos: int) -> bool:
    """True when a ``{`` before *pos* has no ``}`` between it and *pos*."""
    before = code[:pos]
    return before.rfind("{") > before.rfind("}")


def _rename_current_frame(code: str) -> str:
    code = _CURRENT_FRAME_DECL_RE.sub(_FRAME_DECL, code)
    pieces: list[str] = []
    last = 0
    for match in _CURRENT_FRAME_WORD.finditer(code):
        if _inside_open_brace(code, match.start()):
            continue
        if _REMOTION_DESTRUCTURE_AHEAD.match(code, match.end()):
            continue
        pieces.append(code[last:match.start()])
        pieces.append("frame")
        last = match.end()
    pieces.append(code[last:])
    return "".join(pieces)


def _drop_duplicate_declaration(code: str) -> str:
    return _CURRENT_FRAME_LINE.sub("", code)


def _fix_destructuring(code: str) -> str:
    return _DESTRUCTURED_CURRENT_FRAME.sub(r"\1useCurrentFrame\3", code)


RENAME_CURRENT_FRAME = RewriteRule(
    name="rename_current_frame",
    applies=lambda code: _CURRENT_FRAME_DECL in code,
    rewrite=_rename_current_frame,
)

DROP_DUPLICATE_CURRENT_FRAME = RewriteRule(
    name="drop_duplicate_current_frame",
    applies=lambda code: _FRAME_DECL in code and "const currentFrame" in code,
    rewrite=_drop_duplicate_declaration,
)

FIX_CURRENT_FRAME_DESTRUCTURING = RewriteRule(
    name="fix_current_frame_destructuring",
    applies=lambda code: _DESTRUCTURED_CURRENT_FRAME.search(code) is not None,
    rewrite=_fix_destructuring,
)

EDIT_RULES: tuple[RewriteRule, ...] = (
    RENAME_CURRENT_FRAME,
    DROP_DUPLICATE_CURRENT_FRAME,
    FIX_CURRENT_FRAME_DESTRUCTURING,
)


def apply_rules(code: str, rules: tuple[RewriteRule, ...] = EDIT_RULES) -> tuple[str, list[str]]:
    """Apply each rule whose precondition holds, in order.

    Returns:
        The rewritten code and the names of the rules that fired.
    """
    fired: list[str] = []
    for rule in rules:
        if rule.applies(code):
            logger.warning("Healing generated code: %s", rule.name)
            code = rule.rewrite(code)
            fired.append(rule.name)
    return code, fired
