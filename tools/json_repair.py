# tools/json_repair.py
"""
Meal Calorie Analyzer — Model Output Cleaner
============================================
Heuristic cleanup for the loosely-structured JSON a language model returns.
Each step is a pure text transformation; none of them needs the model.

Steps (applied in order by clean_model_response):
1. Strip Markdown code fences
2. Keep only the outermost {...} span
3. Drop commentary the model interleaved after a quoted string
4. Give object keys emitted without a value a default of 0
5. Remove trailing commas before } or ]

Steps 1 and 3-5 never look inside string literals, so valid JSON passes
through byte-for-byte.
"""

import json
import re
from typing import Any, Callable

from pydantic import ValidationError

from tools.calorie_schema import CalorieBreakdown

# =============================================================================
# PATTERNS
# =============================================================================
FENCE_PATTERN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")
TRAILING_COMMA_PATTERN = re.compile(r",(\s*[}\]])")

JSON_DELIMITERS = ",:{}[]"


# =============================================================================
# SCANNING HELPERS
# =============================================================================
def _string_end(text: str, start: int) -> int:
    """Index just past the string literal opening at `start` (or len(text))."""
    i = start + 1
    n = len(text)
    while i < n:
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == '"':
            return i + 1
        i += 1
    return n


def _skip_whitespace(text: str, start: int) -> int:
    i = start
    while i < len(text) and text[i].isspace():
        i += 1
    return i


def _map_outside_strings(text: str, transform: Callable[[str], str]) -> str:
    """Apply `transform` to every segment that is not a string literal."""
    parts = []
    segment_start = 0
    i = 0
    while i < len(text):
        if text[i] == '"':
            parts.append(transform(text[segment_start:i]))
            end = _string_end(text, i)
            parts.append(text[i:end])
            segment_start = i = end
        else:
            i += 1
    parts.append(transform(text[segment_start:]))
    return "".join(parts)


# =============================================================================
# CLEANING STEPS
# =============================================================================
def strip_code_fences(text: str) -> str:
    """Remove ``` / ```json fence markers outside string literals."""
    return _map_outside_strings(text, lambda segment: FENCE_PATTERN.sub("", segment)).strip()


def extract_json_object(text: str) -> str:
    """Greedy match from the first '{' to the last '}'; unchanged if none."""
    match = JSON_OBJECT_PATTERN.search(text)
    return match.group(0) if match else text


def remove_interleaved_commentary(text: str) -> str:
    """
    Collapse `"value" some stray prose,` down to `"value",`.

    After each string literal, anything up to the next JSON delimiter that
    is not itself a delimiter or a new string is treated as prose and dropped.
    """
    out = []
    n = len(text)
    i = 0
    while i < n:
        if text[i] != '"':
            out.append(text[i])
            i += 1
            continue

        end = _string_end(text, i)
        out.append(text[i:end])

        j = _skip_whitespace(text, end)
        if j < n and text[j] not in JSON_DELIMITERS and text[j] != '"':
            k = j
            while k < n and text[k] not in JSON_DELIMITERS:
                k += 1
            if k < n:
                end = k
        i = end

    return "".join(out)


def patch_missing_values(text: str) -> str:
    """
    Insert a default of 0 for object keys emitted with a comma but no value.

    Example: '"totalEstimatedCalories",}' -> '"totalEstimatedCalories": 0,}'

    Strings in value position (after ':' or inside arrays) are left alone.
    Text outside any brackets is treated as object content.
    """
    out = []
    stack = []
    expecting_key = True
    n = len(text)
    i = 0
    while i < n:
        ch = text[i]

        if ch == '"':
            end = _string_end(text, i)
            out.append(text[i:end])
            in_object = not stack or stack[-1] == "{"
            if expecting_key and in_object:
                j = _skip_whitespace(text, end)
                if j < n and text[j] == ",":
                    out.append(": 0")
            expecting_key = False
            i = end
            continue

        if ch in "{[":
            stack.append(ch)
            expecting_key = ch == "{"
        elif ch in "}]":
            if stack:
                stack.pop()
            expecting_key = False
        elif ch == ",":
            expecting_key = not stack or stack[-1] == "{"
        elif ch == ":":
            expecting_key = False

        out.append(ch)
        i += 1

    return "".join(out)


def strip_trailing_commas(text: str) -> str:
    """Example: '{"a": 1,}' -> '{"a": 1}'"""
    return _map_outside_strings(text, lambda segment: TRAILING_COMMA_PATTERN.sub(r"\1", segment))


def clean_model_response(text: str) -> str:
    """Apply every syntactic repair step in order."""
    cleaned = strip_code_fences(text)
    cleaned = extract_json_object(cleaned)
    cleaned = remove_interleaved_commentary(cleaned)
    cleaned = patch_missing_values(cleaned)
    cleaned = strip_trailing_commas(cleaned)
    return cleaned


def unwrap_model_reply(text: str) -> str:
    """Lighter cleanup for a self-correction reply: fences and outer object only."""
    return extract_json_object(strip_code_fences(text))


# =============================================================================
# PARSING
# =============================================================================
def parse_breakdown(text: str) -> CalorieBreakdown:
    """
    Parse text into a validated CalorieBreakdown.

    Raises:
        ValueError: invalid JSON, a non-object payload, a schema violation,
            or a payload that reports an error instead of a breakdown.
    """
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        breakdown = CalorieBreakdown.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Schema validation failed: {e}") from e

    if breakdown.is_error:
        raise ValueError(f"Model reported an error: {breakdown.error}")

    return breakdown


def to_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


__all__ = [
    "strip_code_fences",
    "extract_json_object",
    "remove_interleaved_commentary",
    "patch_missing_values",
    "strip_trailing_commas",
    "clean_model_response",
    "unwrap_model_reply",
    "parse_breakdown",
    "to_json",
]
