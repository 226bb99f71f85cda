"""Create exam scoring and job tables

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "exams",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("total_marks", sa.Float(), nullable=False),
        sa.Column("normalization_method", sa.String(30), nullable=True, server_default="z_score"),
        sa.Column("normalization_config", postgresql.JSONB(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("last_normalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subs_at_last_normalization", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("renorm_threshold", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("exam_id", sa.Integer(), sa.ForeignKey("exams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shift_code", sa.String(100), nullable=True),
        sa.Column("candidate_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_raw_score", sa.Float(), nullable=True),
        sa.Column("std_dev", sa.Float(), nullable=True),
        sa.Column("max_raw_score", sa.Float(), nullable=True),
        sa.Column("min_raw_score", sa.Float(), nullable=True),
        sa.Column("difficulty_index", sa.Float(), nullable=True),
        sa.Column("difficulty_label", sa.String(20), nullable=True),
        sa.Column("stats_updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_shifts_exam_id", "shifts", ["exam_id"])

    op.create_table(
        "submissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("exam_id", sa.Integer(), sa.ForeignKey("exams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("roll_number", sa.String(50), nullable=True),
        sa.Column("dob", sa.Date(), nullable=True),
        sa.Column("category", sa.String(10), nullable=False),
        sa.Column("raw_score", sa.Float(), nullable=False),
        sa.Column("normalized_score", sa.Float(), nullable=True),
        sa.Column("overall_rank", sa.Integer(), nullable=True),
        sa.Column("category_rank", sa.Integer(), nullable=True),
        sa.Column("shift_rank", sa.Integer(), nullable=True),
        sa.Column("overall_percentile", sa.Float(), nullable=True),
        sa.Column("category_percentile", sa.Float(), nullable=True),
        sa.Column("shift_percentile", sa.Float(), nullable=True),
        sa.Column("processing_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_submissions_exam_shift", "submissions", ["exam_id", "shift_id"])
    op.create_index("ix_submissions_status", "submissions", ["processing_status"])
    op.create_index("ix_submissions_exam_category", "submissions", ["exam_id", "category"])

    op.create_table(
        "cutoffs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("exam_id", sa.Integer(), sa.ForeignKey("exams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(10), nullable=False),
        sa.Column("post_code", sa.String(50), nullable=False),
        sa.Column("post_name", sa.Text(), nullable=True),
        sa.Column("expected_cutoff", sa.Float(), nullable=False),
        sa.Column("safe_score", sa.Float(), nullable=True),
        sa.Column("minimum_score", sa.Float(), nullable=True),
        sa.Column("confidence_level", sa.String(10), nullable=True),
        sa.Column("prediction_basis", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("exam_id", "category", "post_code", name="uq_cutoffs_exam_category_post"),
    )

    # Job tracking
    op.create_table(
        "job_run",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("job_key", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="QUEUED"),
        sa.Column("triggered_by", sa.String(50), nullable=False, server_default="system"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("progress_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("records_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_records", sa.Integer(), nullable=True),
        sa.Column("stats_json", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("error_text", sa.Text(), nullable=True),
    )
    op.create_index("ix_job_run_job_key", "job_run", ["job_key"])
    op.create_index("ix_job_run_status", "job_run", ["status"])

    op.create_table(
        "job_lock",
        sa.Column("job_key", sa.String(100), primary_key=True),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("locked_by", sa.String(200), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("job_lock")
    op.drop_index("ix_job_run_status", table_name="job_run")
    op.drop_index("ix_job_run_job_key", table_name="job_run")
    op.drop_table("job_run")
    op.drop_table("cutoffs")
    op.drop_index("ix_submissions_exam_category", table_name="submissions")
    op.drop_index("ix_submissions_status", table_name="submissions")
    op.drop_index("ix_submissions_exam_shift", table_name="submissions")
    op.drop_table("submissions")
    op.drop_index("ix_shifts_exam_id", table_name="shifts")
    op.drop_table("shifts")
    op.drop_table("exams")
