"""
Unit Tests for log record context

Run with: pytest backend/tests/test_logging_config.py -v
"""

import logging

from logging_config import RequestContextFilter


def make_record(**extra):
    record = logging.LogRecord("vendor_import", logging.INFO, __file__, 1, "message", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContextFilter:

    def test_job_context_added(self):
        context = RequestContextFilter()
        context.set_request_context("req-1")
        context.bind_job("vendor-1", org_id="org-1", user_id="user-1")

        record = make_record()
        context.filter(record)

        assert record.request_id == "req-1"
        assert record.job_id == "vendor-1"
        assert record.org_id == "org-1"
        assert record.user_id == "user-1"

    def test_explicit_extra_wins(self):
        context = RequestContextFilter()
        context.bind_job("vendor-1", org_id="org-1")

        record = make_record(org_id="org-2")
        context.filter(record)

        assert record.org_id == "org-2"

    def test_new_request_drops_job_context(self):
        context = RequestContextFilter()
        context.bind_job("vendor-1", org_id="org-1")
        context.set_request_context("req-2")

        record = make_record()
        context.filter(record)

        assert record.job_id is None
        assert record.org_id is None
