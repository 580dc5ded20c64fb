"""
Tolerant JSON parsing of model output.

Models wrap JSON in markdown fences, leave trailing commas, or add prose
around the object. ``parse_json_response`` repairs what it can and falls back
to the result type's default; it never raises.
"""

import json
import re
from typing import Any, Iterator, Optional, TypeVar

from loguru import logger
from pydantic import ValidationError

from .schemas import StageResult

T = TypeVar("T", bound=StageResult)

FENCE_RE = re.compile(r"```[a-zA-Z]*\s*\n?(.*?)\n?\s*```", re.DOTALL)

# Bound on how many bracket positions are tried before giving up
MAX_CANDIDATES = 20


def strip_code_fences(text: str) -> str:
    """Return the body of the first markdown code block, or the text itself."""
    text = text.strip()
    match = FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    if text.startswith("```"):
        # Unterminated block (truncated output)
        lines = text.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()
    return text


def remove_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing bracket, outside string literals."""
    out: list[str] = []
    in_string = False
    escaped = False
    pending: Optional[int] = None

    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            out.append(ch)
            continue

        if ch in "}]" and pending is not None:
            del out[pending]
        if ch == ",":
            pending = len(out)
        elif not ch.isspace():
            pending = None
        if ch == '"':
            in_string = True
        out.append(ch)

    return "".join(out)


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index one past the bracket closing ``text[start]``, ignoring brackets in strings."""
    stack = []
    in_string = False
    escaped = False
    pairs = {"{": "}", "[": "]"}

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in pairs:
            stack.append(pairs[ch])
        elif ch in ("}", "]"):
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return i + 1
    return None


def balanced_substrings(text: str) -> Iterator[str]:
    """Yield balanced ``{...}``/``[...]`` substrings in order of their opening bracket."""
    tried = 0
    for start, ch in enumerate(text):
        if ch not in "{[":
            continue
        end = _balanced_end(text, start)
        if end is not None:
            yield text[start:end]
            tried += 1
            if tried >= MAX_CANDIDATES:
                return


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    repaired = remove_trailing_commas(candidate)
    if repaired != candidate:
        try:
            return json.loads(repaired)
        except json.JSONDecodeError:
            pass
    return None


def extract_json(text: Optional[str]) -> Any:
    """Best-effort decode of the JSON value in ``text``. Returns None if nothing parses."""
    if not text or not text.strip():
        return None

    cleaned = strip_code_fences(text)
    value = _loads(cleaned)
    if value is not None:
        return value

    for candidate in balanced_substrings(cleaned):
        value = _loads(candidate)
        if value is not None:
            return value
    return None


def parse_json_response(text: Optional[str], model: type[T]) -> T:
    """
    Parse model output into ``model``.

    Returns ``model.default()`` (tagged ``fallback=True``) when no JSON object
    can be recovered or it does not validate.
    """
    data = extract_json(text)

    if isinstance(data, dict):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning(f"{model.__name__}: response did not validate ({e.error_count()} errors), using default")
            return model.default()

    preview = (text or "")[:200].replace("\n", " ")
    logger.warning(f"{model.__name__}: no JSON object in response, using default. Raw: {preview!r}")
    return model.default()
