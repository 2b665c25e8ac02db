"""
Unit Tests for Configuration and Structured Logging

Run with: pytest tests/test_config_and_logging.py -v
"""

import contextvars
import json
import logging
from decimal import Decimal

from config import Settings
from logging_config import (
    JSONFormatter,
    RequestContextFilter,
    clear_request_context,
    set_request_context,
)
from reconciliation.models import ReconciliationRules
from sentry_integration import filter_sensitive_data


class TestSettings:
    """Test Settings parsing and validation."""

    def test_register_numbers_list(self):
        settings = Settings(REGISTER_NUMBERS=" REG001, REG002 ,,")
        assert settings.register_numbers_list == ["REG001", "REG002"]

    def test_empty_register_numbers(self):
        assert Settings(REGISTER_NUMBERS="").register_numbers_list == []

    def test_rules_from_settings(self):
        settings = Settings(CASH_DISCREPANCY_THRESHOLD=2.5, MIN_OPENING_CASH=150)

        rules = ReconciliationRules.from_settings(settings)

        assert rules.cash_discrepancy_threshold == Decimal("2.5")
        assert rules.min_opening_cash == Decimal("150.0")
        assert rules.large_discrepancy_threshold == Decimal("50.0")

    def test_inconsistent_thresholds_reported(self):
        settings = Settings(CASH_DISCREPANCY_THRESHOLD=60, LARGE_DISCREPANCY_THRESHOLD=50)

        errors = settings.validate_production_config()

        assert "LARGE_DISCREPANCY_THRESHOLD must not be below CASH_DISCREPANCY_THRESHOLD" in errors

    def test_negative_threshold_reported(self):
        errors = Settings(MAX_RETURNS_PERCENTAGE=-1).validate_production_config()
        assert "MAX_RETURNS_PERCENTAGE cannot be negative" in errors

    def test_debug_in_production_reported(self):
        settings = Settings(ENVIRONMENT="production", DEBUG=True, CORS_ORIGINS="https://pos.example.com")
        assert "DEBUG should be False in production" in settings.validate_production_config()

    def test_production_cors_excludes_localhost(self):
        settings = Settings(ENVIRONMENT="production", CORS_ORIGINS="https://pos.example.com")
        assert settings.cors_origins_list == ["https://pos.example.com"]

    def test_development_cors_includes_localhost(self):
        settings = Settings(ENVIRONMENT="development", CORS_ORIGINS="")
        assert "http://localhost:3000" in settings.cors_origins_list


class TestStructuredLogging:
    """Test JSON log output."""

    def _record(self, **extra):
        record = logging.LogRecord(
            name="reconciliation.services.reconciliation_service",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Reconciliation event: %s",
            args=("reconciliation.run_completed",),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_includes_extra_fields(self):
        record = self._record(event="reconciliation.run_completed", run_id="run-1")

        data = json.loads(JSONFormatter(service_name="cash-reconciliation").format(record))

        assert data["service"] == "cash-reconciliation"
        assert data["message"] == "Reconciliation event: reconciliation.run_completed"
        assert data["extra"]["event"] == "reconciliation.run_completed"
        assert data["extra"]["run_id"] == "run-1"

    def test_request_context_filter_stamps_request_id(self):
        context = RequestContextFilter()
        set_request_context("req-42")
        record = self._record()

        try:
            assert context.filter(record) is True
            assert record.request_id == "req-42"
        finally:
            clear_request_context()

        context.filter(record)
        assert record.request_id is None

    def test_request_id_is_isolated_per_context(self):
        """A request id set inside another context does not leak out of it."""
        context = RequestContextFilter()
        contextvars.copy_context().run(set_request_context, "req-other")
        record = self._record()

        context.filter(record)

        assert record.request_id is None


class TestSentryFiltering:
    """Test redaction before events leave the process."""

    def test_sensitive_headers_redacted(self):
        event = {
            "request": {"headers": {"Authorization": "Bearer abc", "X-Request-ID": "req-1"}},
            "extra": {"api_key": "secret", "run_id": "run-1"},
        }

        filtered = filter_sensitive_data(event, {})

        assert filtered["request"]["headers"]["Authorization"] == "[REDACTED]"
        assert filtered["request"]["headers"]["X-Request-ID"] == "req-1"
        assert filtered["extra"]["api_key"] == "[REDACTED]"
        assert filtered["extra"]["run_id"] == "run-1"

    def test_cookies_and_nested_body_redacted(self):
        event = {
            "request": {
                "cookies": {"session": "abc", "theme": "dark"},
                "data": {"entries": [{"register_number": "REG001", "token": "t-1"}]},
            },
        }

        filtered = filter_sensitive_data(event, {})

        assert filtered["request"]["cookies"] == {"session": "[REDACTED]", "theme": "dark"}
        assert filtered["request"]["data"]["entries"][0] == {
            "register_number": "REG001",
            "token": "[REDACTED]",
        }
