"""Best-effort structured decode of model output.

Models wrap JSON in markdown fences, prefix it with prose, or return prose
alone.  ``decode_json`` tries, in order: the fence-stripped text as-is, then
the first ``{ ... }`` or ``[ ... ]`` block inside it.  It never raises;
failures come back as ``DecodeResult.error``.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")
_OBJECT_BLOCK = re.compile(r"\{[\s\S]*\}")
_ARRAY_BLOCK = re.compile(r"\[[\s\S]*\]")


@dataclass(frozen=True)
class DecodeResult:
    """Either ``value`` (decode succeeded) or ``error`` (it did not)."""

    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def strip_code_fence(text: str) -> str:
    """Remove one leading ```/```json marker and one trailing ``` marker."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def decode_json(raw: str | None) -> DecodeResult:
    if raw is None or not str(raw).strip():
        return DecodeResult(error="empty response")

    text = strip_code_fence(str(raw))
    try:
        return DecodeResult(value=json.loads(text))
    except (json.JSONDecodeError, TypeError) as exc:
        first_error = str(exc)

    for pattern in (_OBJECT_BLOCK, _ARRAY_BLOCK):
        match = pattern.search(text)
        if not match:
            continue
        try:
            return DecodeResult(value=json.loads(match.group()))
        except (json.JSONDecodeError, TypeError):
            continue

    return DecodeResult(error=f"not valid JSON: {first_error}")


def decode_json_object(raw: str | None) -> DecodeResult:
    """Like :func:`decode_json`, but only a JSON object counts as success."""
    result = decode_json(raw)
    if result.ok and not isinstance(result.value, dict):
        return DecodeResult(error=f"expected a JSON object, got {type(result.value).__name__}")
    return result
