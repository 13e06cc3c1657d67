"""
Unit Tests for Sentry exception capture

Run with: pytest backend/tests/test_sentry_integration.py -v
"""

from unittest.mock import patch

import sentry_integration


class TestCaptureException:

    def test_disabled_without_init(self):
        with patch.object(sentry_integration, "_sentry_initialized", False):
            assert sentry_integration.capture_exception(ValueError("boom")) is None

    def test_tags_set_on_isolated_scope(self):
        error = ValueError("boom")

        with patch.object(sentry_integration, "_sentry_initialized", True), \
                patch("sentry_integration.sentry_sdk.capture_exception", return_value="event-1") as capture:
            event_id = sentry_integration.capture_exception(
                error, tags={"job_id": "vendor-1"}, statement_id="stmt-1"
            )

        assert event_id == "event-1"
        capture.assert_called_once_with(error)
