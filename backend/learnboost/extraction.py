"""Recover a JSON payload from free-form model output.

Model responses are untrusted text: the JSON may be wrapped in prose or
markdown fences, or be cut short. Everything that massages raw model text
into structured data lives here so callers only ever see parsed values or a
:class:`GenerationParseError`.
"""
from __future__ import annotations

import json
import re
from typing import Any, Optional

from .errors import GenerationParseError

_FENCE = re.compile(r"```(?:json|JSON)?[ \t]*\n?")


def strip_fences(text: str) -> str:
    return _FENCE.sub("", text).strip()


def json_candidate(text: str) -> Optional[str]:
    """Slice from the first ``{``/``[`` to the last ``}``/``]``, or None."""
    t = strip_fences(text)
    starts = [i for i in (t.find("{"), t.find("[")) if i != -1]
    if not starts:
        return None
    t = t[min(starts):]
    end = max(t.rfind("}"), t.rfind("]"))
    if end == -1:
        return None
    return t[: end + 1]


def extract_json(text: Optional[str]) -> Any:
    if not text or not str(text).strip():
        raise GenerationParseError("Model returned an empty response")
    text = str(text)
    try:
        return json.loads(text)
    except ValueError:
        pass
    candidate = json_candidate(text)
    if candidate is None:
        raise GenerationParseError("Model response did not contain JSON")
    try:
        return json.loads(candidate)
    except ValueError as err:
        raise GenerationParseError(f"Model response was not valid JSON: {err.msg}") from err


def items_under(payload: Any, key: str) -> list:
    """Return ``payload[key]`` when it is a list, or ``payload`` itself when it is one."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    raise GenerationParseError(f"Model response JSON has no '{key}' list")
