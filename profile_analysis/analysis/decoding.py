"""Two-stage decoding of LLM scoring output: strict JSON first, pattern extraction second.

Decoders return a tagged result instead of guessing silently:

- ``Ok(value)``: strict decode succeeded and the value was within bounds.
- ``Degraded(value, notes)``: a value was recovered, but something was
  repaired (lenient extraction, clamped score, truncated summary, ...).
- ``Err(reason)``: nothing usable could be recovered.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar, Union

from profile_analysis.models import SUMMARY_MAX_CHARS, AnalysisResult

T = TypeVar("T")

DEFAULT_SUMMARY = "Analysis completed"

_SCORE_RE = re.compile(r'"overall_score"\s*:\s*"?(-?\d+(?:\.\d+)?)(?![\d.eE])')
_SUMMARY_RE = re.compile(r'"summary_text"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Degraded(Generic[T]):
    value: T
    notes: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Err:
    reason: str


Decoded = Union[Ok[T], Degraded[T], Err]


def first_of(*decoders: Callable[[str], Decoded]) -> Callable[[str], Decoded]:
    """Compose decoders: return the first non-Err result, else the combined errors."""

    def decode(text: str) -> Decoded:
        reasons = []
        for decoder in decoders:
            result = decoder(text)
            if not isinstance(result, Err):
                return result
            reasons.append(result.reason)
        return Err("; ".join(reasons))

    return decode


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned)
    cleaned = re.sub(r"\s*```\s*$", "", cleaned)
    return cleaned.strip()


def find_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` block in text, or None."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        c = text[i]
        if escape:
            escape = False
            continue
        if c == "\\":
            escape = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def decode_strict(text: str) -> Decoded[AnalysisResult]:
    """Parse the whole response as a JSON object with both required fields."""
    cleaned = strip_code_fences(text or "")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        block = find_json_object(cleaned)
        if block is None:
            return Err("strict: response is not JSON")
        try:
            data = json.loads(block)
        except json.JSONDecodeError as e:
            return Err(f"strict: invalid JSON ({e.msg})")

    if not isinstance(data, dict):
        return Err("strict: top-level JSON is not an object")
    if "overall_score" not in data or "summary_text" not in data:
        return Err("strict: missing overall_score or summary_text")

    score = data["overall_score"]
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return Err("strict: overall_score is not a number")
    if isinstance(score, float) and not math.isfinite(score):
        return Err("strict: overall_score is not finite")
    summary = data["summary_text"]
    if not isinstance(summary, str):
        return Err("strict: summary_text is not a string")

    return _bounded(score, summary, notes=[])


def decode_lenient(text: str) -> Decoded[AnalysisResult]:
    """Pull the score and summary substrings directly out of the raw text."""
    score_match = _SCORE_RE.search(text or "")
    if not score_match:
        return Err("lenient: no overall_score found")

    score = float(score_match.group(1))
    if not math.isfinite(score):
        return Err("lenient: overall_score is not finite")

    notes = ["recovered by pattern extraction"]
    summary_match = _SUMMARY_RE.search(text)
    if summary_match:
        summary = _unescape(summary_match.group(1))
    else:
        summary = DEFAULT_SUMMARY
        notes.append("summary_text missing, default used")

    return _bounded(score, summary, notes=notes)


decode_light_analysis = first_of(decode_strict, decode_lenient)


def _bounded(score: float, summary: str, notes: list[str]) -> Decoded[AnalysisResult]:
    value = int(round(score))
    if value != score:
        notes.append(f"score {score} rounded to {value}")
    if value < 0 or value > 100:
        clamped = max(0, min(100, value))
        notes.append(f"score {value} clamped to {clamped}")
        value = clamped

    summary = summary.strip()
    if len(summary) > SUMMARY_MAX_CHARS:
        summary = summary[:SUMMARY_MAX_CHARS - 3].rstrip() + "..."
        notes.append(f"summary truncated to {SUMMARY_MAX_CHARS} chars")
    if not summary:
        summary = DEFAULT_SUMMARY
        notes.append("empty summary_text, default used")

    result = AnalysisResult(overall_score=value, summary_text=summary)
    if notes:
        return Degraded(result, tuple(notes))
    return Ok(result)


def _unescape(raw: str) -> str:
    try:
        return json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        return raw
