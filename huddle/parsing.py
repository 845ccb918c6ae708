"""Lenient extraction of structured data from agent replies."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .errors import OutputParseError

logger = logging.getLogger(__name__)

_FENCED_PATTERNS = (
    re.compile(r"```json:structured_output\s*(.*?)\s*```", re.DOTALL),
    re.compile(r"```json\s*(.*?)\s*```", re.DOTALL),
)
_BRACE_RE = re.compile(r"\{[\s\S]*\}")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def _clean_json(candidate: str) -> str:
    candidate = _CONTROL_CHARS_RE.sub("", candidate)
    return _TRAILING_COMMA_RE.sub(r"\1", candidate)


def _loads_object(candidate: str) -> dict[str, Any] | None:
    for attempt in (candidate, _clean_json(candidate)):
        try:
            data = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def extract_structured_output(output: str) -> dict[str, Any]:
    """Find a JSON object in agent output.

    Tries fenced blocks first, then the outermost brace span. Raises
    ``OutputParseError`` if nothing parses.
    """
    for pattern in _FENCED_PATTERNS:
        match = pattern.search(output)
        if match:
            data = _loads_object(match.group(1))
            if data is not None:
                return data

    match = _BRACE_RE.search(output)
    if match:
        data = _loads_object(match.group(0))
        if data is not None:
            return data

    raise OutputParseError("No JSON object found in agent output")


def completion_key(role: str) -> str:
    return f"{role.replace('-', '_')}_complete"


def parse_agent_output(role: str, content: str) -> dict[str, Any]:
    """Parse an agent reply, falling back to ``{"message": ..., "<role>_complete": False}``."""
    try:
        return extract_structured_output(content)
    except OutputParseError:
        logger.debug("Unstructured reply from %s, using fallback shape", role)
        return {"message": content, completion_key(role): False}
