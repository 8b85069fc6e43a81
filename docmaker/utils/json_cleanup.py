"""
Helpers for turning messy LLM output into Python objects, and nested
objects back into prompt-friendly text.

parse_llm_json(text)        -> Any      (raises ValueError if nothing parses)
fix_truncated_json(text)    -> str
deep_stringify(value)       -> str | List[str]
safe_stringify(value)       -> str
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Tuple, Union

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def _try_json(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def _strip_code_fences(text: str) -> str:
    """Remove ```json / ``` delimiters that LLMs often wrap output in."""
    text = re.sub(r"^```(?:json)?\s*", "", text.strip(), flags=re.IGNORECASE)
    text = re.sub(r"```\s*$", "", text)
    text = text.strip()
    # Fence somewhere in the middle of surrounding prose
    match = _FENCED_BLOCK.search(text)
    if match:
        text = match.group(1).strip()
    return text


def _clean(text: str) -> str:
    text = _TRAILING_COMMA.sub(r"\1", text)
    return _CONTROL_CHARS.sub("", text)


def parse_llm_json(text: str) -> Any:
    """
    Parse JSON from a Gemini / OpenAI response.

    Strategies, in order:
      1. direct parse after stripping fences, trailing commas, control chars
      2. the outermost ``{ ... }`` range (then the same range repaired)
      3. the outermost ``[ ... ]`` range
      4. everything from the first ``{`` with truncation repaired

    Raises:
        ValueError: no strategy produced valid JSON.
    """
    if not text or not text.strip():
        raise ValueError("Empty response, nothing to parse")

    clean = _clean(_strip_code_fences(text))

    ok, value = _try_json(clean)
    if ok:
        return value

    obj_start = clean.find("{")
    obj_end = clean.rfind("}")
    if obj_start != -1 and obj_end > obj_start:
        fragment = clean[obj_start:obj_end + 1]
        ok, value = _try_json(fragment)
        if ok:
            return value
        ok, value = _try_json(fix_truncated_json(fragment))
        if ok:
            return value

    arr_start = clean.find("[")
    arr_end = clean.rfind("]")
    if arr_start != -1 and arr_end > arr_start:
        ok, value = _try_json(clean[arr_start:arr_end + 1])
        if ok:
            return value

    if obj_start != -1:
        ok, value = _try_json(fix_truncated_json(clean[obj_start:]))
        if ok:
            logger.debug("parse_llm_json: recovered truncated JSON")
            return value

    logger.warning("parse_llm_json: all strategies failed. Preview: %s", text[:300])
    raise ValueError("Could not parse JSON from model response")


def fix_truncated_json(text: str) -> str:
    """
    Close whatever a truncated JSON document left open.

    Drops a dangling ``"key":`` and a trailing comma, terminates an
    unfinished string value, then appends the missing ``]`` / ``}`` in
    reverse nesting order.
    """
    fixed = text.strip()
    fixed = re.sub(r',\s*"[^"]*"\s*:\s*$', "", fixed)
    fixed = re.sub(r':\s*"[^"]*$', ': ""', fixed)
    fixed = re.sub(r",\s*$", "", fixed)

    stack: List[str] = []
    in_string = False
    escaped = False
    for ch in fixed:
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack:
            stack.pop()

    if in_string:
        fixed += '"'
    # A comma right before the closers would still be invalid
    fixed = re.sub(r",\s*$", "", fixed)
    return fixed + "".join(reversed(stack))


def deep_stringify(value: Any) -> Union[str, List[str]]:
    """
    Flatten nested dicts/lists into readable text.

    Lists map to a list of strings (dict items become ``k: v, k: v``);
    dicts become ``k: v; k: v``.  Empty values are skipped.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)

    if isinstance(value, (list, tuple)):
        out: List[str] = []
        for item in value:
            if isinstance(item, dict):
                out.append(", ".join(
                    f"{k}: {_joined(v)}" for k, v in item.items() if v not in (None, "")
                ))
            else:
                out.append(_joined(item))
        return out

    if isinstance(value, dict):
        return "; ".join(
            f"{k}: {_joined(v)}" for k, v in value.items() if v not in (None, "")
        )

    return str(value)


def _joined(value: Any) -> str:
    result = deep_stringify(value)
    return ", ".join(result) if isinstance(result, list) else result


def safe_stringify(value: Any) -> str:
    """Stringify for display; never returns a Python repr of a dict."""
    return _joined(value)
