"""
Unit Tests for property name normalisation

Run with: pytest backend/tests/test_name_normalizer.py -v
"""

import pytest

from vendor_import.matching_rules import normalize_property_name


class TestNormalizePropertyName:
    """Canonical comparison keys."""

    def test_old_tag_and_spacing_ignored(self):
        assert normalize_property_name("123 Main St (OLD)") == normalize_property_name("123mainst")

    def test_new_tag_case_insensitive(self):
        assert normalize_property_name("Oak Villa (new)") == "oakvilla"
        assert normalize_property_name("Oak Villa(NEW)  ") == "oakvilla"

    def test_whitespace_removed_everywhere(self):
        assert normalize_property_name("  5405\tRoyal \n Yacht ") == "5405royalyacht"

    def test_lower_cased(self):
        assert normalize_property_name("ARROWBROOK") == "arrowbrook"

    def test_tag_only_stripped_at_end(self):
        assert normalize_property_name("(OLD) Barn") == "(old)barn"

    def test_other_parentheses_kept(self):
        assert normalize_property_name("Unit 4 (Rear)") == "unit4(rear)"

    def test_empty(self):
        assert normalize_property_name("") == ""

    @pytest.mark.parametrize("name", [
        "123 Main St (OLD)",
        "Oak Villa (OLD) (NEW)",
        "Lake House ( old )",
        "Cabin (old)(OLD)",
        "  Plain Name  ",
        "(NEW)",
    ])
    def test_idempotent(self, name):
        once = normalize_property_name(name)
        assert normalize_property_name(once) == once

    @pytest.mark.parametrize("name", ["x (OLD)(NEW)", "x (new) (OLD)", "x ( OLD )"])
    def test_repeated_and_spaced_tags_stripped(self, name):
        assert normalize_property_name(name) == "x"
