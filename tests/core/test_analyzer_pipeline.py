from __future__ import annotations

import json
import sys
import threading
from pathlib import Path

import pytest
from prometheus_client import REGISTRY

ROOT = Path(__file__).resolve().parents[2]
ANALYZER_SERVICE_ROOT = ROOT / "services" / "analyzer"
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ANALYZER_SERVICE_ROOT))
from libs.core import llm_provider as llm_provider_module  # noqa: E402
from libs.core.llm_provider import (  # noqa: E402
    ChatCompletionProvider,
    RateLimitedError,
    UnconfiguredError,
)
from libs.core.models import AnalysisSummary, RevisedResume  # noqa: E402
from analyzer_core.errors import (  # type: ignore  # noqa: E402
    InputValidationError,
    ParseError,
    PipelineCancelled,
)
from analyzer_core.service import (  # type: ignore  # noqa: E402
    assemble_result,
    create_provider_from_env,
    run_analysis_pipeline,
)

RESUME = (
    "Jane Doe\njane@example.com | (555) 555-0100 | Lansing, MI\n\n"
    "EXPERIENCE\nData Analyst at Acme Corp, 2020–2023\n"
    "- Built weekly SQL dashboards for the sales and finance teams.\n"
    "- Automated data quality checks in Python, cutting manual review time.\n"
    "- Presented quarterly findings to regional stakeholders and executives.\n"
    "SKILLS\nSQL, Python, Excel, Tableau\n"
    "EDUCATION\nBS Statistics, Michigan State University, 2019\n"
)
JOB_DESCRIPTION = (
    "Senior Data Analyst. Requirements: SQL, Python, stakeholder communication. "
    "You will partner with product managers to turn data into decisions."
)

STAGE_ONE = {
    "matchScore": 82,
    "alignments": [
        {"requirement": "SQL", "match": "Built weekly SQL dashboards", "score": 92},
        {"requirement": "Python", "match": "Automated checks in Python", "score": 85},
        {
            "requirement": "Stakeholder communication",
            "match": "Presented quarterly findings to executives",
            "score": 80,
        },
        {"requirement": "Data visualization", "match": "Tableau dashboards", "score": 75},
        {"requirement": "Product partnership", "match": "Worked with sales teams", "score": 60},
    ],
}

STAGE_TWO = {
    "summary": {"original": "", "revised": "Data analyst turning SQL and Python into decisions."},
    "experience": [
        {
            "title": "Data Analyst",
            "company": "Acme Corp",
            "dates": "2020–2023",
            "location": "Lansing, MI",
            "originalBullets": ["Built weekly SQL dashboards for the sales and finance teams."],
            "revisedBullets": ["Built 12 weekly SQL dashboards used by 40+ sales and finance staff."],
        }
    ],
    "skills": {
        "original": ["SQL", "Python", "Excel", "Tableau"],
        "categories": [{"name": "Programming & Tools", "skills": ["SQL", "Python"]}],
        "added": ["Stakeholder Management"],
    },
    "education": [
        {"degree": "BS Statistics", "institution": "Michigan State University", "dates": "2019"}
    ],
    "rewrittenBullets": ["Built 12 weekly SQL dashboards used by 40+ sales and finance staff."],
}

COVER_LETTER = (
    "Dear Hiring Manager,\n\n"
    "I am excited to apply for the Senior Data Analyst role.\n\n"
    "At Acme Corp I built SQL dashboards used by 40+ staff.\n\n"
    "I thrive on partnering with product teams.\n\n"
    "I would welcome the chance to talk.\n\nSincerely,\n[Your Name]"
)


class _FakeLLMResponse:
    def __init__(self, content: str) -> None:
        self.content = content


class _FakeProvider:
    def __init__(self, outputs: list[object], *, configured: bool = True) -> None:
        self._outputs = list(outputs)
        self.configured = configured
        self.calls: list[dict] = []
        self.model = "fake-model"

    def ensure_configured(self) -> None:
        if not self.configured:
            raise UnconfiguredError("LLM_API_KEY is not configured")

    def complete(self, system: str, user: str, *, json_mode: bool = False) -> _FakeLLMResponse:
        self.calls.append({"system": system, "user": user, "json_mode": json_mode})
        if not self._outputs:
            raise RuntimeError("no_more_outputs")
        next_item = self._outputs.pop(0)
        if isinstance(next_item, Exception):
            raise next_item
        return _FakeLLMResponse(str(next_item))


def _happy_provider() -> _FakeProvider:
    return _FakeProvider(
        outputs=[
            "```json\n" + json.dumps(STAGE_ONE) + "\n```",
            json.dumps(STAGE_TWO),
            COVER_LETTER,
        ]
    )


def test_pipeline_end_to_end_returns_all_stage_outputs_unmodified() -> None:
    provider = _happy_provider()

    result = run_analysis_pipeline(RESUME, JOB_DESCRIPTION, provider)

    assert result.match_score == 82
    assert [item.model_dump(by_alias=True) for item in result.alignments] == STAGE_ONE[
        "alignments"
    ]
    assert result.revised_resume.experience[0].revised_bullets == STAGE_TWO["experience"][0][
        "revisedBullets"
    ]
    assert result.rewritten_bullets == STAGE_TWO["rewrittenBullets"]
    assert result.cover_letter == COVER_LETTER
    assert result.cover_letter.startswith("Dear Hiring Manager,")
    assert len(provider.calls) == 3
    assert [call["json_mode"] for call in provider.calls] == [True, True, False]


def test_later_stages_receive_stage_one_alignments_only() -> None:
    provider = _happy_provider()

    run_analysis_pipeline(RESUME, JOB_DESCRIPTION, provider)

    revision_prompt = provider.calls[1]["user"]
    cover_prompt = provider.calls[2]["user"]
    assert "- SQL: Built weekly SQL dashboards" in revision_prompt
    assert "- SQL: Built weekly SQL dashboards" in cover_prompt
    # The cover letter prompt is grounded on alignments, not the revised resume.
    assert "40+ sales and finance staff" not in cover_prompt


def test_malformed_stage_one_stops_pipeline_after_one_call() -> None:
    provider = _FakeProvider(outputs=['{"matchScore": 82, "alignments": [', "unused", "unused"])

    with pytest.raises(ParseError) as excinfo:
        run_analysis_pipeline(RESUME, JOB_DESCRIPTION, provider)

    assert excinfo.value.stage == "scoring"
    assert len(provider.calls) == 1


def test_malformed_stage_two_never_reaches_cover_letter() -> None:
    provider = _FakeProvider(outputs=[json.dumps(STAGE_ONE), "Sorry, I cannot help.", "unused"])

    with pytest.raises(ParseError) as excinfo:
        run_analysis_pipeline(RESUME, JOB_DESCRIPTION, provider)

    assert excinfo.value.stage == "revising"
    assert len(provider.calls) == 2


def test_missing_optional_sections_become_empty_lists() -> None:
    stage_two = {key: value for key, value in STAGE_TWO.items()}
    stage_two.pop("rewrittenBullets")
    provider = _FakeProvider(outputs=[json.dumps(STAGE_ONE), json.dumps(stage_two), COVER_LETTER])

    result = run_analysis_pipeline(RESUME, JOB_DESCRIPTION, provider)

    assert result.revised_resume.projects == []
    assert result.revised_resume.honors == []
    assert result.rewritten_bullets == []
    dumped = result.model_dump(by_alias=True)
    assert dumped["revisedResume"]["projects"] == []
    assert dumped["revisedResume"]["honors"] == []


def test_completion_error_aborts_without_partial_result() -> None:
    provider = _FakeProvider(
        outputs=[json.dumps(STAGE_ONE), json.dumps(STAGE_TWO), RateLimitedError("slow down")]
    )

    with pytest.raises(RateLimitedError):
        run_analysis_pipeline(RESUME, JOB_DESCRIPTION, provider)
    assert len(provider.calls) == 3


def test_invalid_input_never_calls_provider() -> None:
    provider = _happy_provider()

    with pytest.raises(InputValidationError):
        run_analysis_pipeline("too short", JOB_DESCRIPTION, provider)
    with pytest.raises(InputValidationError):
        run_analysis_pipeline(RESUME, "j" * 8001, provider)
    assert provider.calls == []


def test_unconfigured_fake_provider_fails_before_any_call() -> None:
    provider = _FakeProvider(outputs=[], configured=False)

    with pytest.raises(UnconfiguredError):
        run_analysis_pipeline(RESUME, JOB_DESCRIPTION, provider)
    assert provider.calls == []


def test_missing_credential_fails_before_network(monkeypatch) -> None:
    def _fail_urlopen(request, timeout=0):  # type: ignore[no-untyped-def]
        raise AssertionError("network must not be called")

    monkeypatch.setattr(llm_provider_module, "urlopen", _fail_urlopen)
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    provider = create_provider_from_env()
    assert isinstance(provider, ChatCompletionProvider)
    with pytest.raises(UnconfiguredError):
        run_analysis_pipeline(RESUME, JOB_DESCRIPTION, provider)


def test_cancelled_run_stops_before_next_stage() -> None:
    cancel_event = threading.Event()
    provider = _happy_provider()
    original_complete = provider.complete

    def _complete_then_cancel(system: str, user: str, *, json_mode: bool = False):
        response = original_complete(system, user, json_mode=json_mode)
        cancel_event.set()
        return response

    provider.complete = _complete_then_cancel  # type: ignore[method-assign]
    cancelled_before = _outcome_count("cancelled")
    failed_before = _outcome_count("failed")

    with pytest.raises(PipelineCancelled):
        run_analysis_pipeline(RESUME, JOB_DESCRIPTION, provider, cancel_event=cancel_event)
    assert len(provider.calls) == 1
    assert _outcome_count("cancelled") == cancelled_before + 1
    assert _outcome_count("failed") == failed_before


def _outcome_count(outcome: str) -> float:
    value = REGISTRY.get_sample_value("analyses_total", {"outcome": outcome})
    return value or 0.0


def test_create_provider_from_env_reads_settings(monkeypatch) -> None:
    monkeypatch.setenv("LLM_API_KEY", "secret")
    monkeypatch.setenv("LLM_MODEL", "google/gemini-2.5-flash")
    monkeypatch.setenv("LLM_BASE_URL", "https://gateway.example.com/")
    monkeypatch.setenv("LLM_TIMEOUT_S", "15")
    monkeypatch.setenv("LLM_MAX_RETRIES", "not-a-number")

    provider = create_provider_from_env()

    assert provider.api_key == "secret"
    assert provider.model == "google/gemini-2.5-flash"
    assert provider.base_url == "https://gateway.example.com"
    assert provider.timeout_s == 15.0
    assert provider.max_retries == 1


def test_assemble_result_applies_defaults() -> None:
    summary = AnalysisSummary.model_validate({"matchScore": 50, "alignments": None})
    revised = RevisedResume.model_validate({})

    result = assemble_result(summary, revised, "Dear Hiring Manager,\n\nHello.")

    assert result.alignments == []
    assert result.rewritten_bullets == []
    assert result.revised_resume.experience == []
    assert result.revised_resume.summary.revised == ""


def test_create_provider_from_env_falls_back_to_openai_names(monkeypatch) -> None:
    for name in ("LLM_API_KEY", "LLM_MODEL", "LLM_BASE_URL", "LLM_TIMEOUT_S"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LLM_MAX_RETRIES", "")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-fallback")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://proxy.example.com")
    monkeypatch.setenv("OPENAI_TIMEOUT_S", "30")
    monkeypatch.setenv("OPENAI_MAX_RETRIES", "3")

    provider = create_provider_from_env()

    assert provider.api_key == "sk-fallback"
    assert provider.model == "gpt-4o"
    assert provider.base_url == "https://proxy.example.com"
    assert provider.timeout_s == 30.0
    assert provider.max_retries == 3
