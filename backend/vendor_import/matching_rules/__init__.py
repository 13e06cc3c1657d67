"""
Matching Rules Module
"""

from .name_normalizer import normalize_property_name
from .property_matcher import (
    PropertyMatcher,
    KnownProperty,
    MatchResult,
    PropertyMatchResult,
    PropertyMatchOutput,
    OracleMatch,
)

__all__ = [
    "normalize_property_name",
    "PropertyMatcher",
    "KnownProperty",
    "MatchResult",
    "PropertyMatchResult",
    "PropertyMatchOutput",
    "OracleMatch",
]
