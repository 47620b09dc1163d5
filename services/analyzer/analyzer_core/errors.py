from __future__ import annotations

GENERIC_FAILURE_MESSAGE = "Unable to process your request. Please try again later."


class AnalyzerError(Exception):
    status_code = 500
    code = "pipeline_failed"

    def __init__(self, detail: str, *, public_message: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.public_message = public_message or GENERIC_FAILURE_MESSAGE


class InputValidationError(AnalyzerError):
    status_code = 400

    def __init__(self, field: str, reason: str, bound: int) -> None:
        label = "Resume" if field == "resume" else "Job description"
        if reason == "too_short":
            message = f"{label} must be at least {bound} characters."
        else:
            message = f"{label} must be at most {bound} characters."
        super().__init__(f"{reason}:{field}:{bound}", public_message=message)
        self.field = field
        self.reason = reason
        self.bound = bound
        self.code = reason


class ParseError(AnalyzerError):
    code = "malformed_model_output"

    def __init__(self, stage: str, raw_text: str, reason: str = "malformed") -> None:
        super().__init__(f"{reason}:{stage}")
        self.stage = stage
        self.raw_text = raw_text
        self.reason = reason


class PipelineCancelled(AnalyzerError):
    status_code = 499
    code = "cancelled"


class AuthenticationError(AnalyzerError):
    status_code = 401
    code = "unauthenticated"

    def __init__(self, detail: str) -> None:
        super().__init__(detail, public_message="Authentication required.")
