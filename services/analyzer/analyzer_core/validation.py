from __future__ import annotations

from typing import Any

from libs.core.models import (
    JOB_DESCRIPTION_MAX_CHARS,
    JOB_DESCRIPTION_MIN_CHARS,
    RESUME_MAX_CHARS,
    RESUME_MIN_CHARS,
    AnalysisRequest,
)

from .errors import InputValidationError


def _checked_text(value: Any, field: str, min_chars: int, max_chars: int) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if len(text) < min_chars:
        raise InputValidationError(field, "too_short", min_chars)
    if len(text) > max_chars:
        raise InputValidationError(field, "too_long", max_chars)
    return text


def validate_request(resume: Any, job_description: Any) -> AnalysisRequest:
    """Trim and bound-check both inputs; raises before any model spend."""
    return AnalysisRequest(
        resume=_checked_text(resume, "resume", RESUME_MIN_CHARS, RESUME_MAX_CHARS),
        job_description=_checked_text(
            job_description,
            "jobDescription",
            JOB_DESCRIPTION_MIN_CHARS,
            JOB_DESCRIPTION_MAX_CHARS,
        ),
    )
