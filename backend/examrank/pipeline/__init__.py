"""Submission processing pipeline: stats, state machine and batch orchestration."""
