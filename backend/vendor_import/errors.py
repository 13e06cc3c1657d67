"""
Vendor import error taxonomy.

Errors raised before any state mutation are reported synchronously to the
submitter; errors raised while a job runs are terminal for that job.
MatchOracleFailure never leaves the matcher.
"""

from typing import Optional


class VendorImportError(Exception):
    """Base class for vendor import failures."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class UnauthorizedError(VendorImportError):
    """No authenticated user/organization on the request."""


class NotFoundError(VendorImportError):
    """Statement missing or owned by another organization."""


class ImportValidationError(VendorImportError):
    """Submission or confirmation payload failed validation."""


class MatchOracleFailure(VendorImportError):
    """The AI matching oracle failed or returned unusable output."""


class ExtractionError(VendorImportError):
    """The vendor document yielded no usable property expenses."""


class DuplicateImportError(VendorImportError):
    """The vendor/description pair was already imported for the statement month."""


class PersistenceFailure(VendorImportError):
    """Line-item write or totals transaction failed; nothing was committed."""
