"""Extract and parse JSON from model responses.

Model output arrives in many shapes: fenced ```json blocks, plain fenced
blocks, raw objects/arrays, or JSON surrounded by chatter. Responses are also
frequently truncated mid-object when the model hits its token limit, so a
best-effort repair pass runs before giving up.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_EMBEDDED_JSON = re.compile(r"\{[\s\S]*\}|\[[\s\S]*\]")
_CLOSERS = {"{": "}", "[": "]"}


class JSONExtractionError(ValueError):
    """Base error for JSON extraction failures."""


class NoJSONFoundError(JSONExtractionError):
    """The text contains no JSON-like substring at all."""


class JSONParseError(JSONExtractionError):
    """A JSON-like substring was found but could not be parsed, even after repair."""


def _strip_code_fences(text: str) -> str:
    if "```json" in text:
        return text.split("```json", 1)[1].split("```", 1)[0]
    if "```" in text:
        parts = text.split("```")
        if len(parts) > 1:
            return parts[1]
    return text


def _locate_json(text: str) -> str:
    if text.startswith("{") or text.startswith("["):
        return text

    match = _EMBEDDED_JSON.search(text)
    if match:
        return match.group(0)

    # Truncated output: an opener with no matching closer anywhere
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if starts:
        return text[min(starts):]

    raise NoJSONFoundError("No JSON object or array found in response")


def repair_json(text: str) -> str:
    """Attempt to repair common JSON defects.

    Strips trailing commas, closes an unterminated string and appends the
    closing braces/brackets that are still open, innermost first.

    Args:
        text: JSON-like text that failed to parse

    Returns:
        Repaired text (not guaranteed to be valid)
    """
    repaired = _TRAILING_COMMA.sub(r"\1", text)

    stack: list[str] = []
    in_string = False
    escaped = False
    for char in repaired:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(char)
        elif char in ("}", "]") and stack and _CLOSERS[stack[-1]] == char:
            stack.pop()

    if in_string:
        if escaped:
            repaired = repaired[:-1]
        repaired += '"'

    if stack:
        repaired = repaired.rstrip()
        # A dangling separator cannot be followed directly by a closer
        while repaired.endswith(",") or repaired.endswith(":"):
            if repaired.endswith(":"):
                repaired += " null"
                break
            repaired = repaired[:-1].rstrip()
        repaired += "".join(_CLOSERS[opener] for opener in reversed(stack))

    return repaired


def extract_json(text: str) -> Any:
    """Extract and parse the JSON payload of a model response.

    Args:
        text: Raw text response from a model

    Returns:
        Parsed JSON value (usually a dict or list)

    Raises:
        NoJSONFoundError: If the text contains nothing that looks like JSON
        JSONParseError: If JSON-like text is present but unparseable after repair
    """
    clean = _strip_code_fences((text or "").strip()).strip()
    candidate = _locate_json(clean)

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as first_error:
        logger.warning(f"Initial JSON parse failed, attempting repair: {first_error}")
        try:
            result = json.loads(repair_json(candidate))
        except json.JSONDecodeError:
            start_preview = candidate[:500]
            end_preview = candidate[-200:] if len(candidate) > 500 else ""
            raise JSONParseError(
                f"Failed to parse JSON: {first_error}. "
                f"Response length: {len(candidate)} chars. "
                f"Start preview: {start_preview}... "
                + (f"End preview: ...{end_preview}" if end_preview else "")
            ) from first_error
        logger.info("Successfully parsed JSON after repair")
        return result
