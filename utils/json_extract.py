"""Tolerant JSON extraction from free-form model text.

Models are asked for bare JSON but routinely wrap it in fences or add a
sentence before it. parse_json tries, in order:

    1. the text as-is
    2. the body of the first ```json / ``` fenced block
    3. the span between the first "{" and the last "}"
    4. the span between the first "[" and the last "]"

and returns a ParseResult instead of raising, so callers can degrade to an
empty result.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

from core.errors import ParseError

_FENCED = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ParseResult:
    ok: bool
    value: Any = None
    error: str = ""
    raw: str = ""

    def unwrap(self):
        """Return the parsed value or raise ParseError."""
        if not self.ok:
            raise ParseError(self.error)
        return self.value

    def get(self, key, default=None):
        """dict-style access that tolerates failures and non-object payloads."""
        if self.ok and isinstance(self.value, dict):
            return self.value.get(key, default)
        return default


def _fenced(text):
    m = _FENCED.search(text)
    return m.group(1).strip() if m else ""


def _span(text, open_ch, close_ch):
    start, end = text.find(open_ch), text.rfind(close_ch)
    if start == -1 or end <= start:
        return ""
    return text[start:end + 1]


_STRATEGIES = (
    ("direct", lambda t: t.strip()),
    ("fenced", _fenced),
    ("object", lambda t: _span(t, "{", "}")),
    ("array", lambda t: _span(t, "[", "]")),
)


def parse_json(text):
    """Parse the first JSON value recoverable from text. Never raises."""
    if not isinstance(text, str) or not text.strip():
        return ParseResult(ok=False, error="empty response", raw="")

    for name, extract in _STRATEGIES:
        candidate = extract(text)
        if not candidate:
            continue
        try:
            return ParseResult(ok=True, value=json.loads(candidate), raw=text)
        except json.JSONDecodeError:
            continue

    return ParseResult(ok=False, error="no parseable JSON in response", raw=text[:200])
