"""Extract one JSON action object from free-form model text.

Model output is treated as an untrusted wire format. ``parse_response``
never raises: it returns either a :class:`ParsedObject` or a
:class:`ParseFailure` whose diagnostic can be shown back to the model.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")

# Characters of context shown on each side of a decode error.
WINDOW_CHARS = 40


@dataclass(frozen=True)
class ParsedObject:
    """A decoded JSON object."""
    value: Dict[str, Any]
    source: str  # "direct" or "fenced"


@dataclass(frozen=True)
class ParseFailure:
    """Model text that could not be decoded into a JSON object."""
    message: str
    line: Optional[int] = None
    column: Optional[int] = None
    window: Optional[str] = None

    @property
    def diagnostic(self) -> str:
        """Human-readable explanation suitable for corrective guidance."""
        text = self.message
        if self.line is not None and self.column is not None:
            text += f" (line {self.line}, column {self.column})"
        if self.window:
            text += f"\nNear: {self.window}"
        return text


ParseResult = Union[ParsedObject, ParseFailure]


def line_column(text: str, pos: int) -> tuple:
    """Return the 1-based (line, column) of offset ``pos`` in ``text``."""
    line = text.count("\n", 0, pos) + 1
    column = pos - (text.rfind("\n", 0, pos) + 1) + 1
    return line, column


def _window(text: str, pos: int) -> str:
    start = max(0, pos - WINDOW_CHARS)
    end = min(len(text), pos + WINDOW_CHARS)
    snippet = text[start:pos] + ">>>" + text[pos:end]
    return snippet.replace("\n", "\\n")


def _decode(candidate: str, source: str) -> ParseResult:
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError as e:
        line, column = line_column(candidate, e.pos)
        return ParseFailure(
            message=f"Invalid JSON: {e.msg}",
            line=line,
            column=column,
            window=_window(candidate, e.pos),
        )
    if not isinstance(value, dict):
        return ParseFailure(
            message=f"Expected a JSON object, got {type(value).__name__}",
        )
    return ParsedObject(value=value, source=source)


def parse_response(text: str) -> ParseResult:
    """Extract the action object from raw model text.

    1. If the trimmed text is delimited like an object, decode it directly.
    2. Otherwise (or if that fails) decode the first fenced code block.
    3. If neither decodes, return a ParseFailure.
    """
    trimmed = (text or "").strip()
    direct: Optional[ParseResult] = None
    if trimmed.startswith("{") and trimmed.endswith("}"):
        direct = _decode(trimmed, "direct")
        if isinstance(direct, ParsedObject):
            return direct

    match = _FENCE_RE.search(trimmed)
    if match:
        return _decode(match.group(1), "fenced")

    if direct is not None:
        return direct
    return ParseFailure(message="Response did not contain a JSON object or a fenced JSON block")
