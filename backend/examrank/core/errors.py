"""Domain exceptions for the scoring pipeline."""

from typing import Any


class PipelineError(Exception):
    """Base class for pipeline errors carrying a stable error code."""

    code = "PIPELINE_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ExamNotFoundError(PipelineError):
    """Raised when an exam id does not resolve to a row."""

    code = "EXAM_NOT_FOUND"


class JobRunNotFoundError(PipelineError):
    """Raised when a job run id does not resolve to a row."""

    code = "JOB_RUN_NOT_FOUND"


class InvalidTransitionError(PipelineError):
    """Raised when a submission status change is not an allowed transition."""

    code = "INVALID_TRANSITION"
