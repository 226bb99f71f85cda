"""Application-specific exceptions for consistent error handling."""

from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from examrank.core.errors import (
    ExamNotFoundError,
    InvalidTransitionError,
    JobRunNotFoundError,
    PipelineError,
)

_STATUS_BY_ERROR: dict[type[PipelineError], int] = {
    ExamNotFoundError: status.HTTP_404_NOT_FOUND,
    JobRunNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
}


class AppError(HTTPException):
    """Application error with standardized error code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | list[Any] | None = None,
    ):
        """Initialize application error."""
        super().__init__(
            status_code=status_code,
            detail={
                "code": code,
                "message": message,
                "details": details,
            },
        )
        self.code = code
        self.message = message
        self.details = details


def to_app_error(exc: PipelineError) -> AppError:
    """Map a domain error onto the HTTP error envelope."""
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return AppError(status_code=status_code, code=exc.code, message=exc.message, details=exc.details)


async def pipeline_exception_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Render domain errors raised out of route handlers."""
    app_error = to_app_error(exc)
    return JSONResponse(status_code=app_error.status_code, content={"error": app_error.detail})
