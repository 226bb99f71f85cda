"""Tests for settings validation and JSON logging."""

import json
import logging

import pytest
from pydantic import ValidationError

from examrank.core.config import DEFAULT_DATABASE_URL, Settings
from examrank.core.logging import CustomJsonFormatter, setup_logging


def test_selection_ratio_lookup():
    s = Settings(ENV="test")
    assert s.selection_ratio("ST") == 0.25
    assert s.selection_ratio("UNKNOWN") == 0.15


def test_selection_ratios_must_be_fractions():
    with pytest.raises(ValidationError):
        Settings(ENV="test", SELECTION_RATIOS={"UR": 1.5})


@pytest.mark.parametrize("value", ["6:00", "24:00", "06-00", "ab:cd"])
def test_window_bounds_validated(value):
    with pytest.raises(ValidationError):
        Settings(ENV="test", BATCH_NORM_WINDOW_END=value)


def test_prod_requires_database_url():
    with pytest.raises(ValueError):
        Settings(ENV="prod", DATABASE_URL=DEFAULT_DATABASE_URL)
    assert Settings(ENV="prod", DATABASE_URL="postgresql+asyncpg://u:p@db/x").ENV == "prod"


def test_json_formatter_fields():
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(logger)s %(message)s")
    record = logging.LogRecord("examrank.test", logging.INFO, __file__, 1, "Exam processed", None, None)
    record.exam_id = 7

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "Exam processed"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "examrank.test"
    assert payload["exam_id"] == 7


def test_setup_logging_emits_module_and_function():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging()
        formatter = root.handlers[0].formatter
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
    record = logging.LogRecord(
        "examrank.pipeline", logging.ERROR, __file__, 1, "Batch error", None, None, func="run_batch_processing"
    )

    payload = json.loads(formatter.format(record))

    assert payload["module"] == "test_config"
    assert payload["function"] == "run_batch_processing"
    assert payload["message"] == "Batch error"
