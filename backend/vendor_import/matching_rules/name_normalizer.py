"""
Property name normalisation for exact-match detection.

"123 Main St (OLD)" and "123   main st" normalise to the same key.
Keys are for comparison only, never for display.
"""

import re

_TRAILING_TAGS = re.compile(r"(?:\s*\((?:OLD|NEW)\))+\s*$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_TAG_KEYS = ("(old)", "(new)")


def normalize_property_name(name: str) -> str:
    """
    Turn a raw property label into a canonical comparison key.

    Rules, applied in order:
    1. Strip a trailing "(OLD)" or "(NEW)" tag (case-insensitive) and the
       whitespace before it
    2. Remove all whitespace
    3. Lower-case

    The result never ends in a tag, so normalising a key again returns it
    unchanged.
    """
    if not name:
        return ""

    key = _TRAILING_TAGS.sub("", name)
    key = _WHITESPACE.sub("", key).lower()

    # A tag written with inner spaces ("( OLD )") only surfaces after step 2
    while key.endswith(_TAG_KEYS):
        key = key[:-len("(old)")]

    return key
