import json
import logging

import pytest

from config.base import _coerce_bool, _coerce_int
from config.validation import validate_and_exit, validate_environment
from flask_app.utils.logging_config import JSONFormatter


@pytest.mark.parametrize(
    ("value", "expected"),
    [("true", True), ("ON", True), ("0", False), ("no", False), ("maybe", True), (None, True)],
)
def test_coerce_bool_falls_back_to_default(value, expected):
    assert _coerce_bool(value, default=True) is expected


def test_coerce_int_rejects_garbage_and_values_below_minimum():
    assert _coerce_int("14", 31, minimum=0) == 14
    assert _coerce_int("abc", 31, minimum=0) == 31
    assert _coerce_int("-1", 31, minimum=0) == 31
    assert _coerce_int("", 31) == 31


def test_validation_is_skipped_outside_production():
    assert validate_environment("development") == (True, [])


def test_production_validation_reports_missing_settings(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("IMPORTER_DUPLICATE_SUBSCRIPTION_WINDOW_DAYS", "soon")

    is_valid, errors = validate_environment("production")

    assert is_valid is False
    assert len(errors) == 3
    assert any("IMPORTER_DUPLICATE_SUBSCRIPTION_WINDOW_DAYS" in error for error in errors)


def test_production_validation_passes_with_required_settings(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "a" * 64)
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/donations")
    monkeypatch.setenv("IMPORTER_DUPLICATE_SUBSCRIPTION_WINDOW_DAYS", "45")

    assert validate_environment("production") == (True, [])


def test_validate_and_exit_exits_on_failure(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        validate_and_exit("production")

    assert excinfo.value.code == 1


def test_testing_config_is_applied(app):
    assert app.config["TESTING"] is True
    assert app.config["IMPORTER_ENABLED"] is True
    assert app.config["LOG_LEVEL"] == "WARNING"


def test_json_formatter_includes_structured_extra_fields():
    formatter = JSONFormatter("Donation Tracker", "1.0.0")
    record = logging.LogRecord("flask_app.importer", logging.INFO, __file__, 10, "Imported %s rows", (3,), None)
    record.importer_file = "payments.csv"

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "Imported 3 rows"
    assert payload["level"] == "INFO"
    assert payload["app"] == "Donation Tracker"
    assert payload["importer_file"] == "payments.csv"
