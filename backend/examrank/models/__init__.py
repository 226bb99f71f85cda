"""Database models."""

# Import all models here so Alembic can detect them
from examrank.models.exam import (
    ConfidenceLevel,
    Cutoff,
    Exam,
    ProcessingStatus,
    Shift,
    Submission,
)
from examrank.models.jobs import JobLock, JobRun, JobRunStatus

__all__ = [
    "ConfidenceLevel",
    "Cutoff",
    "Exam",
    "JobLock",
    "JobRun",
    "JobRunStatus",
    "ProcessingStatus",
    "Shift",
    "Submission",
]
