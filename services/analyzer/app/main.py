from __future__ import annotations

import functools
import os
import threading
from typing import Any, Dict, Optional

import anyio
import anyio.to_thread
from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import make_asgi_app
from pydantic import BaseModel, ConfigDict, Field

from libs.core import logging as core_logging
from libs.core.llm_provider import CompletionError
from libs.core.models import AnalysisResult, CallerIdentity
from analyzer_core import AnalyzerError, create_provider_from_env, run_analysis_pipeline
from analyzer_core import export
from analyzer_core.auth import bearer_token, create_verifier_from_env
from analyzer_core.errors import GENERIC_FAILURE_MESSAGE

core_logging.configure_logging("analyzer")
LOGGER = core_logging.get_logger("analyzer")

_DISCONNECT_POLL_S = 0.5


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Left untyped so the pipeline validator owns every length/shape error.
    resume: Any = None
    job_description: Any = Field(default=None, alias="jobDescription")


class ExportRequest(BaseModel):
    result: AnalysisResult
    resume: str = ""


app = FastAPI(title="Resume Match Analyzer")
app.state.llm_provider = create_provider_from_env()
app.state.identity_verifier = create_verifier_from_env()

cors_origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def _error_response(status_code: int, message: str, code: Optional[str] = None) -> JSONResponse:
    content: Dict[str, Any] = {"error": message}
    if code:
        content["code"] = code
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(AnalyzerError)
async def _analyzer_error_handler(_request: Request, exc: AnalyzerError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("request_failed", error_type=exc.__class__.__name__, detail=exc.detail)
        return _error_response(500, GENERIC_FAILURE_MESSAGE, "pipeline_failed")
    return _error_response(exc.status_code, exc.public_message, exc.code)


@app.exception_handler(CompletionError)
async def _completion_error_handler(_request: Request, exc: CompletionError) -> JSONResponse:
    LOGGER.error("request_failed", error_type=exc.__class__.__name__, kind=exc.kind, detail=str(exc))
    return _error_response(500, GENERIC_FAILURE_MESSAGE, "pipeline_failed")


@app.exception_handler(Exception)
async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("request_failed", error_type=exc.__class__.__name__, detail=str(exc))
    return _error_response(500, GENERIC_FAILURE_MESSAGE, "pipeline_failed")


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    LOGGER.info("request_body_invalid", errors=len(exc.errors()))
    return _error_response(400, "Request body must be a JSON object.", "invalid_body")


def get_caller(
    request: Request, authorization: Optional[str] = Header(default=None)
) -> CallerIdentity:
    token = bearer_token(authorization)
    return request.app.state.identity_verifier.verify(token)


async def _cancel_on_disconnect(request: Request, cancel_event: threading.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            LOGGER.info("caller_disconnected")
            cancel_event.set()
            return
        await anyio.sleep(_DISCONNECT_POLL_S)


@app.get("/healthz")
def healthz() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/analyze-resume", response_model=AnalysisResult)
async def analyze_resume_endpoint(
    body: AnalyzeRequest,
    request: Request,
    caller: CallerIdentity = Depends(get_caller),
) -> AnalysisResult:
    core_logging.log_event(
        LOGGER,
        "analysis_requested",
        {
            "caller": caller.subject,
            "resume_chars": len(body.resume) if isinstance(body.resume, str) else None,
            "job_description_chars": (
                len(body.job_description) if isinstance(body.job_description, str) else None
            ),
        },
    )
    cancel_event = threading.Event()
    run = functools.partial(
        run_analysis_pipeline,
        body.resume,
        body.job_description,
        request.app.state.llm_provider,
        cancel_event=cancel_event,
        caller=caller,
    )
    outcome: Dict[str, Any] = {}
    async with anyio.create_task_group() as task_group:
        task_group.start_soon(_cancel_on_disconnect, request, cancel_event)
        try:
            outcome["result"] = await anyio.to_thread.run_sync(run)
        except Exception as exc:  # noqa: BLE001 - re-raised below, outside the task group
            outcome["error"] = exc
        finally:
            task_group.cancel_scope.cancel()
    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


def _docx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=export.DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/export/resume")
def export_resume_endpoint(
    body: ExportRequest, caller: CallerIdentity = Depends(get_caller)
) -> Response:
    LOGGER.info("export_requested", caller=caller.subject, document="resume")
    document = export.build_resume_document(body.result, body.resume)
    return _docx_response(export.document_bytes(document), export.RESUME_FILENAME)


@app.post("/export/cover-letter")
def export_cover_letter_endpoint(
    body: ExportRequest, caller: CallerIdentity = Depends(get_caller)
) -> Response:
    LOGGER.info("export_requested", caller=caller.subject, document="cover_letter")
    document = export.build_cover_letter_document(body.result.cover_letter, body.resume)
    return _docx_response(export.document_bytes(document), export.COVER_LETTER_FILENAME)
