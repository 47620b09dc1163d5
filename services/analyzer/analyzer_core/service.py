from __future__ import annotations

import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from libs.core import llm_provider, logging as core_logging, prompts, state_machine
from libs.core.llm_provider import CompletionError, LLMProvider
from libs.core.models import (
    EXPECTED_ALIGNMENTS,
    AnalysisRequest,
    AnalysisResult,
    AnalysisSummary,
    CallerIdentity,
    PipelineState,
    RevisedResume,
)

from . import metrics
from .errors import AnalyzerError, ParseError, PipelineCancelled
from .normalize import normalize_cover_letter, normalize_revised_resume, normalize_summary
from .validation import validate_request

_DEFAULT_LLM_TIMEOUT_S = 60.0
_DEFAULT_LLM_MAX_RETRIES = 1
LOGGER = core_logging.get_logger("analyzer")


def _parse_optional_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_optional_int(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _resolve_float(primary: str | None, fallback: str | None, default: float) -> float:
    parsed_primary = _parse_optional_float(primary)
    if parsed_primary is not None:
        return parsed_primary
    parsed_fallback = _parse_optional_float(fallback)
    if parsed_fallback is not None:
        return parsed_fallback
    return default


def _resolve_int(primary: str | None, fallback: str | None, default: int) -> int:
    parsed_primary = _parse_optional_int(primary)
    if parsed_primary is not None:
        return parsed_primary
    parsed_fallback = _parse_optional_int(fallback)
    if parsed_fallback is not None:
        return parsed_fallback
    return default


def create_provider_from_env() -> LLMProvider:
    return llm_provider.resolve_provider(
        api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
        model=os.getenv("LLM_MODEL", os.getenv("OPENAI_MODEL", "")),
        base_url=os.getenv("LLM_BASE_URL", os.getenv("OPENAI_BASE_URL", "")),
        temperature=_parse_optional_float(os.getenv("LLM_TEMPERATURE")),
        timeout_s=_resolve_float(
            os.getenv("LLM_TIMEOUT_S"),
            os.getenv("OPENAI_TIMEOUT_S"),
            _DEFAULT_LLM_TIMEOUT_S,
        ),
        max_retries=_resolve_int(
            os.getenv("LLM_MAX_RETRIES"),
            os.getenv("OPENAI_MAX_RETRIES"),
            _DEFAULT_LLM_MAX_RETRIES,
        ),
    )


@dataclass
class PipelineRun:
    """State owned by a single analysis; never shared between requests."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: PipelineState = PipelineState.validating
    request: Optional[AnalysisRequest] = None
    summary: Optional[AnalysisSummary] = None
    revised_resume: Optional[RevisedResume] = None
    cover_letter: Optional[str] = None
    failure: Optional[str] = None

    def advance(self, new_state: PipelineState) -> None:
        self.state = state_machine.advance(self.state, new_state)


def run_analysis_pipeline(
    resume: Any,
    job_description: Any,
    provider: LLMProvider,
    *,
    cancel_event: threading.Event | None = None,
    caller: CallerIdentity | None = None,
) -> AnalysisResult:
    run = PipelineRun()
    log = LOGGER.bind(run_id=run.run_id, caller=caller.subject if caller else None)
    started_at = time.monotonic()
    try:
        run.request = validate_request(resume, job_description)
        provider.ensure_configured()

        _check_cancelled(cancel_event)
        run.advance(PipelineState.scoring)
        _run_scoring(run, provider, log)

        _check_cancelled(cancel_event)
        run.advance(PipelineState.revising)
        _run_revising(run, provider, log)

        _check_cancelled(cancel_event)
        run.advance(PipelineState.writing)
        _run_writing(run, provider, log)

        result = assemble_result(run.summary, run.revised_resume, run.cover_letter)
        run.advance(PipelineState.done)
    except PipelineCancelled as exc:
        run.failure = str(exc)
        cancelled_in = run.state
        run.advance(PipelineState.failed)
        metrics.analyses_total.labels(outcome="cancelled").inc()
        log.info(
            "analysis_cancelled",
            state=cancelled_in.value,
            duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
        )
        raise
    except (AnalyzerError, CompletionError) as exc:
        failed_in = run.state
        run.failure = str(exc)
        run.advance(PipelineState.failed)
        kind = getattr(exc, "kind", None) or getattr(exc, "code", "error")
        metrics.analysis_stage_failures_total.labels(stage=failed_in.value, kind=kind).inc()
        metrics.analyses_total.labels(outcome="failed").inc()
        log.warning(
            "analysis_failed",
            state=failed_in.value,
            error_type=exc.__class__.__name__,
            error=str(exc),
            duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
        )
        raise
    metrics.analyses_total.labels(outcome="succeeded").inc()
    log.info(
        "analysis_finished",
        match_score=result.match_score,
        duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
    )
    return result


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise PipelineCancelled("caller_disconnected")


def _run_scoring(run: PipelineRun, provider: LLMProvider, log: Any) -> None:
    prompt = prompts.scoring_prompt(run.request)
    raw = _generate(provider, "scoring", prompt, log, json_mode=True)
    run.summary = _normalize_logged(normalize_summary, raw, log, "scoring")
    if len(run.summary.alignments) != EXPECTED_ALIGNMENTS:
        log.warning(
            "unexpected_alignment_count",
            expected=EXPECTED_ALIGNMENTS,
            received=len(run.summary.alignments),
        )


def _run_revising(run: PipelineRun, provider: LLMProvider, log: Any) -> None:
    prompt = prompts.revision_prompt(run.request, run.summary.alignments)
    raw = _generate(provider, "revising", prompt, log, json_mode=True)
    run.revised_resume = _normalize_logged(normalize_revised_resume, raw, log, "revising")


def _run_writing(run: PipelineRun, provider: LLMProvider, log: Any) -> None:
    # Grounded on stage-1 alignments only; the revised resume is not fed back in.
    prompt = prompts.cover_letter_prompt(run.request, run.summary.alignments)
    raw = _generate(provider, "writing", prompt, log)
    run.cover_letter = _normalize_logged(normalize_cover_letter, raw, log, "writing")


def _normalize_logged(normalizer: Any, raw: str, log: Any, stage: str) -> Any:
    try:
        return normalizer(raw)
    except ParseError as exc:
        log.warning(
            "stage_output_unparseable",
            stage=stage,
            reason=exc.reason,
            raw_output=core_logging.truncate_for_log(raw),
        )
        raise


def _generate(
    provider: LLMProvider,
    stage: str,
    prompt: prompts.StagePrompt,
    log: Any,
    *,
    json_mode: bool = False,
) -> str:
    started_at = time.monotonic()
    log.info("stage_started", stage=stage, prompt_chars=len(prompt.user))
    try:
        with metrics.analysis_stage_duration_seconds.labels(stage=stage).time():
            response = provider.complete(prompt.system, prompt.user, json_mode=json_mode)
    except CompletionError as exc:
        log.warning(
            "llm_complete_failed",
            stage=stage,
            provider_type=provider.__class__.__name__,
            provider_model=getattr(provider, "model", ""),
            duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
            error_kind=exc.kind,
            error=str(exc),
            upstream_body=core_logging.truncate_for_log(getattr(exc, "body", "")),
        )
        raise
    log.info(
        "stage_finished",
        stage=stage,
        provider_type=provider.__class__.__name__,
        provider_model=getattr(provider, "model", ""),
        output_chars=len(response.content),
        duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
    )
    return response.content


def assemble_result(
    summary: AnalysisSummary, revised_resume: RevisedResume, cover_letter: str
) -> AnalysisResult:
    return AnalysisResult.model_validate(
        {
            "match_score": summary.match_score,
            "alignments": [item.model_dump() for item in summary.alignments],
            "rewritten_bullets": revised_resume.rewritten_bullets,
            "cover_letter": cover_letter,
            "revised_resume": revised_resume.model_dump(),
        }
    )
