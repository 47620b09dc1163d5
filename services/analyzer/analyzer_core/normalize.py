from __future__ import annotations

import json
import re
from typing import Any, Dict

from pydantic import ValidationError

from libs.core.models import AnalysisSummary, RevisedResume

from .errors import ParseError

_OPENING_FENCE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_CLOSING_FENCE = re.compile(r"\r?\n?```\s*$")


def strip_code_fences(text: str) -> str:
    if not text:
        return ""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = _OPENING_FENCE.sub("", stripped, count=1)
        stripped = _CLOSING_FENCE.sub("", stripped, count=1)
    return stripped.strip()


def extract_json(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return ""
    return text[start : end + 1]


def parse_json_object(raw_text: str, stage: str) -> Dict[str, Any]:
    cleaned = strip_code_fences(raw_text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        # Prose around the object is tolerated; anything else is malformed.
        candidate = extract_json(cleaned)
        if not candidate or candidate == cleaned:
            raise ParseError(stage, raw_text) from None
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError as exc:
            raise ParseError(stage, raw_text) from exc
    if not isinstance(payload, dict):
        raise ParseError(stage, raw_text)
    return payload


def coerce_summary(payload: Dict[str, Any], raw_text: str = "") -> AnalysisSummary:
    try:
        return AnalysisSummary.model_validate(payload)
    except ValidationError as exc:
        raise ParseError("scoring", raw_text, reason="schema_mismatch") from exc


def coerce_revised_resume(payload: Dict[str, Any], raw_text: str = "") -> RevisedResume:
    try:
        return RevisedResume.model_validate(payload)
    except ValidationError as exc:
        raise ParseError("revising", raw_text, reason="schema_mismatch") from exc


def normalize_summary(raw_text: str) -> AnalysisSummary:
    return coerce_summary(parse_json_object(raw_text, "scoring"), raw_text)


def normalize_revised_resume(raw_text: str) -> RevisedResume:
    return coerce_revised_resume(parse_json_object(raw_text, "revising"), raw_text)


def normalize_cover_letter(raw_text: str) -> str:
    text = (raw_text or "").replace("\r\n", "\n").strip()
    if not text:
        raise ParseError("writing", raw_text or "", reason="empty_output")
    return text
