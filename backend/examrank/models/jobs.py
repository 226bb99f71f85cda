"""Job execution and locking models."""

import uuid

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from examrank.db.base import Base


class JobRunStatus:
    """Job run status values."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class JobRun(Base):
    """Job execution tracking, polled by the dashboard for progress."""

    __tablename__ = "job_run"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_key = Column(String(100), nullable=False)  # e.g. "batch_processing"
    status = Column(String(20), nullable=False, server_default=JobRunStatus.QUEUED)
    triggered_by = Column(String(50), nullable=False, server_default="system")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    # Progress
    progress_percent = Column(Integer, nullable=False, server_default="0", default=0)
    records_processed = Column(Integer, nullable=False, server_default="0", default=0)
    total_records = Column(Integer, nullable=True)

    stats_json = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    error_text = Column(Text(), nullable=True)

    __table_args__ = (
        Index("ix_job_run_job_key", "job_key"),
        Index("ix_job_run_status", "status"),
    )


class JobLock(Base):
    """Lease-based lock, keyed per job or per exam (``exam:<id>``)."""

    __tablename__ = "job_lock"

    job_key = Column(String(100), primary_key=True)
    locked_until = Column(DateTime(timezone=True), nullable=False)
    locked_by = Column(String(200), nullable=True)  # Process/host identifier + lease token
