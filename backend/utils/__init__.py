"""
Utils Package

Provides utility modules for:
- validation_errors: Structured 400 responses for malformed request bodies
"""

from .validation_errors import (
    ValidationErrorResponse,
    parse_body,
    parse_request_body,
)

__all__ = [
    'ValidationErrorResponse',
    'parse_body',
    'parse_request_body',
]
