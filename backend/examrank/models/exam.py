"""Exam, shift, submission and cutoff models."""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from examrank.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class ProcessingStatus(str, Enum):
    """Submission lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class ConfidenceLevel(str, Enum):
    """Cutoff prediction confidence."""

    MEDIUM = "medium"
    HIGH = "high"


class Exam(Base):
    """A sitting series: owns shifts, submissions and cutoff predictions."""

    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    total_marks = Column(Float, nullable=False)
    normalization_method = Column(String(30), nullable=True, server_default="z_score")
    normalization_config = Column(JSONType, nullable=True)
    is_active = Column(Boolean, nullable=False, server_default=true(), default=True)

    # Re-normalization bookkeeping
    last_normalized_at = Column(DateTime(timezone=True), nullable=True)
    subs_at_last_normalization = Column(Integer, nullable=False, server_default="0", default=0)
    renorm_threshold = Column(Float, nullable=True)  # percent of new submissions

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    shifts = relationship("Shift", back_populates="exam", cascade="all, delete-orphan")


class Shift(Base):
    """One sitting occasion of an exam with cached raw-score statistics."""

    __tablename__ = "shifts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    shift_code = Column(String(100), nullable=True)

    # Stats cache (rebuilt wholesale each batch run)
    candidate_count = Column(Integer, nullable=False, server_default="0", default=0)
    avg_raw_score = Column(Float, nullable=True)
    std_dev = Column(Float, nullable=True)
    max_raw_score = Column(Float, nullable=True)
    min_raw_score = Column(Float, nullable=True)
    difficulty_index = Column(Float, nullable=True)
    difficulty_label = Column(String(20), nullable=True)  # Easy | Moderate | Difficult
    stats_updated_at = Column(DateTime(timezone=True), nullable=True)

    exam = relationship("Exam", back_populates="shifts")

    __table_args__ = (Index("ix_shifts_exam_id", "exam_id"),)


class Submission(Base):
    """One candidate's result within an exam shift."""

    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    shift_id = Column(Integer, ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False)
    roll_number = Column(String(50), nullable=True)
    dob = Column(Date, nullable=True)
    category = Column(String(10), nullable=False)

    # Scoring
    raw_score = Column(Float, nullable=False)
    normalized_score = Column(Float, nullable=True)

    # Ranks
    overall_rank = Column(Integer, nullable=True)
    category_rank = Column(Integer, nullable=True)
    shift_rank = Column(Integer, nullable=True)

    # Percentiles (0..100)
    overall_percentile = Column(Float, nullable=True)
    category_percentile = Column(Float, nullable=True)
    shift_percentile = Column(Float, nullable=True)

    processing_status = Column(
        String(20),
        nullable=False,
        server_default=ProcessingStatus.PENDING.value,
        default=ProcessingStatus.PENDING.value,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_submissions_exam_shift", "exam_id", "shift_id"),
        Index("ix_submissions_status", "processing_status"),
        Index("ix_submissions_exam_category", "exam_id", "category"),
    )


class Cutoff(Base):
    """Predicted cutoff per (exam, category, post code)."""

    __tablename__ = "cutoffs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    category = Column(String(10), nullable=False)
    post_code = Column(String(50), nullable=False)
    post_name = Column(Text, nullable=True)

    expected_cutoff = Column(Float, nullable=False)
    safe_score = Column(Float, nullable=True)
    minimum_score = Column(Float, nullable=True)
    confidence_level = Column(String(10), nullable=True)
    prediction_basis = Column(JSONType, nullable=True)  # dataPoints, methodology, factors

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("exam_id", "category", "post_code", name="uq_cutoffs_exam_category_post"),
    )
