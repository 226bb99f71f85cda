"""Batch processing API schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BatchRunRequest(BaseModel):
    """Request to run the batch pipeline."""

    force: bool = Field(default=False, description="Skip the time window and pending threshold checks")


class BatchResultOut(BaseModel):
    """Aggregate result of one orchestrator run."""

    examsProcessed: int
    totalSubmissions: int
    errors: list[str]
    durationMs: int
    skippedExams: list[int] = []


class BatchRunResponse(BaseModel):
    """Outcome of a batch trigger attempt."""

    triggered: bool
    reason: str
    pendingCount: int
    jobId: UUID | None = None
    result: BatchResultOut | None = None


class PendingCountResponse(BaseModel):
    pendingCount: int
    byStatus: dict[str, int]


class NormalizationStatus(BaseModel):
    """Re-normalization status of one exam."""

    examId: int
    examName: str
    normalizationMethod: str | None
    methodLabel: str
    lastNormalizedAt: datetime | None
    subsAtLastNormalization: int
    currentTotalSubmissions: int
    newSinceNormalization: int
    percentNew: float
    threshold: float
    isSignificant: bool
    recommendation: str


class NormalizationStatusResponse(BaseModel):
    statuses: list[NormalizationStatus]
    timestamp: datetime


class NormalizationMethodOut(BaseModel):
    value: str
    label: str


class JobRunOut(BaseModel):
    """Job run as polled by the admin dashboard."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_key: str
    status: str
    triggered_by: str
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    progress_percent: int
    records_processed: int
    total_records: int | None = None
    stats_json: dict[str, Any] = {}
    error_text: str | None = None
