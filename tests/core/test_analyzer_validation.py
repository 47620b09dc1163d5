from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
ANALYZER_SERVICE_ROOT = ROOT / "services" / "analyzer"
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ANALYZER_SERVICE_ROOT))
from analyzer_core.errors import InputValidationError  # type: ignore  # noqa: E402
from analyzer_core.validation import validate_request  # type: ignore  # noqa: E402

VALID_JOB = "Requires SQL, Python and stakeholder communication."


def test_validate_request_trims_inputs() -> None:
    request = validate_request("  " + "r" * 60 + "\n", "\t" + VALID_JOB + "  ")
    assert request.resume == "r" * 60
    assert request.job_description == VALID_JOB


@pytest.mark.parametrize(
    ("resume", "reason", "bound"),
    [
        ("r" * 49, "too_short", 50),
        ("   " + "r" * 49 + "   ", "too_short", 50),
        ("r" * 15001, "too_long", 15000),
    ],
)
def test_resume_bounds(resume: str, reason: str, bound: int) -> None:
    with pytest.raises(InputValidationError) as excinfo:
        validate_request(resume, VALID_JOB)
    assert excinfo.value.field == "resume"
    assert excinfo.value.reason == reason
    assert excinfo.value.bound == bound
    assert str(bound) in excinfo.value.public_message
    assert excinfo.value.status_code == 400


@pytest.mark.parametrize(
    ("job_description", "reason", "bound"),
    [("j" * 19, "too_short", 20), ("j" * 8001, "too_long", 8000)],
)
def test_job_description_bounds(job_description: str, reason: str, bound: int) -> None:
    with pytest.raises(InputValidationError) as excinfo:
        validate_request("r" * 50, job_description)
    assert excinfo.value.field == "jobDescription"
    assert excinfo.value.reason == reason
    assert excinfo.value.bound == bound


def test_exact_bounds_are_accepted() -> None:
    validate_request("r" * 50, "j" * 20)
    validate_request("r" * 15000, "j" * 8000)


def test_non_string_input_is_rejected_as_too_short() -> None:
    with pytest.raises(InputValidationError) as excinfo:
        validate_request(None, VALID_JOB)
    assert excinfo.value.reason == "too_short"
