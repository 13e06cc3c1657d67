"""
Vendor Import Module

Imports vendor invoices into owner statements:
- Queued submission, processing by queue delivery
- Exact then AI-assisted property name matching
- Unmatched lines kept for manual resolution
- Statement totals recomputed after every write
"""

from vendor_import.errors import (
    VendorImportError,
    UnauthorizedError,
    NotFoundError,
    ImportValidationError,
    MatchOracleFailure,
    ExtractionError,
    DuplicateImportError,
    PersistenceFailure
)
from vendor_import.matching_rules import (
    normalize_property_name,
    PropertyMatcher,
    KnownProperty,
    MatchResult,
    PropertyMatchResult
)
from vendor_import.job_store import JobStatus, JobStore, JobIdMinter
from vendor_import.job_queue import QueuePublisher, QueueSignatureVerifier
from vendor_import.services.totals import StatementTotals, calculate_totals, recalculate_totals
from vendor_import.services.import_handler import VendorImportJobHandler, JobResult
from vendor_import.endpoints.vendor_import_api import router as vendor_import_router

__all__ = [
    # Errors
    'VendorImportError',
    'UnauthorizedError',
    'NotFoundError',
    'ImportValidationError',
    'MatchOracleFailure',
    'ExtractionError',
    'DuplicateImportError',
    'PersistenceFailure',
    # Matching
    'normalize_property_name',
    'PropertyMatcher',
    'KnownProperty',
    'MatchResult',
    'PropertyMatchResult',
    # Jobs
    'JobStatus',
    'JobStore',
    'JobIdMinter',
    'QueuePublisher',
    'QueueSignatureVerifier',
    # Services
    'StatementTotals',
    'calculate_totals',
    'recalculate_totals',
    'VendorImportJobHandler',
    'JobResult',
    # Router
    'vendor_import_router'
]
