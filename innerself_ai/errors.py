"""Typed pipeline errors.

Every stage after prompt rendering can fail with exactly one of four stable
error tags. The orchestrator either recovers from them with a fallback reading
or lets them propagate to the HTTP boundary, which maps them to a 502 body
built from to_dict().
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable error tags exposed to callers in diagnostic mode."""
    EMPTY_MODEL_OUTPUT = "EMPTY_MODEL_OUTPUT"
    JSON_PARSE_FAILED = "JSON_PARSE_FAILED"
    SCHEMA_VALIDATION_FAILED = "SCHEMA_VALIDATION_FAILED"
    GENERATION_SERVICE_FAILED = "GENERATION_SERVICE_FAILED"


DEFAULT_PREVIEW_CHARS = 300


def truncate_preview(text: Optional[str], limit: int = DEFAULT_PREVIEW_CHARS) -> Optional[str]:
    """Bound a diagnostic preview so raw replies never leak in full."""
    if text is None:
        return None
    if len(text) <= limit:
        return text
    return text[:limit]


class PipelineError(Exception):
    """Base class for failures inside the reading pipeline."""

    code: ErrorCode

    def __init__(
        self,
        message: str,
        preview: Optional[str] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.preview = preview
        self.details = details
        # Filled in by the pipeline
        self.stage: Optional[str] = None
        self.request_id: Optional[str] = None

    def to_dict(self, request_id: Optional[str] = None) -> dict:
        """Convert to API error body."""
        body = {
            "error": self.code.value,
            "message": self.message,
            "preview": self.preview,
        }
        request_id = request_id or self.request_id
        if request_id:
            body["request_id"] = request_id
        return body

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value}, message={self.message!r})"


class EmptyModelOutputError(PipelineError):
    """The reply carried no text to parse."""
    code = ErrorCode.EMPTY_MODEL_OUTPUT


class JSONParseFailedError(PipelineError):
    """Text was present but could not be parsed, even after brace carving."""
    code = ErrorCode.JSON_PARSE_FAILED


class SchemaValidationError(PipelineError):
    """Parsed payload does not match the reading envelope shape."""
    code = ErrorCode.SCHEMA_VALIDATION_FAILED

    def __init__(self, message: str, path: str = "$", preview: Optional[str] = None):
        super().__init__(f"{path}: {message}", preview=preview, details=message)
        self.path = path


class GenerationServiceError(PipelineError):
    """The generation call itself errored, timed out or was aborted."""
    code = ErrorCode.GENERATION_SERVICE_FAILED
