from .errors import AnalyzerError, AuthenticationError, InputValidationError, ParseError, PipelineCancelled
from .service import assemble_result, create_provider_from_env, run_analysis_pipeline
from .validation import validate_request

__all__ = [
    "AnalyzerError",
    "AuthenticationError",
    "InputValidationError",
    "ParseError",
    "PipelineCancelled",
    "assemble_result",
    "create_provider_from_env",
    "run_analysis_pipeline",
    "validate_request",
]
