"""
Unit Tests for the two-phase property matcher

Tests:
- Exact (normalised) matches never reach the oracle
- Oracle admission rules (known name, known property, confidence >= 0.5)
- Fail-closed fallback when the oracle errors
- matches / unmatched always partition the input

Run with: pytest backend/tests/test_property_matcher.py -v
"""

import pytest

from services.ai_client import AIClientError, PromptRequest
from vendor_import.matching_rules import (
    KnownProperty,
    OracleMatch,
    PropertyMatcher,
    PropertyMatchOutput,
)
from conftest import make_oracle

PROPERTIES = [
    KnownProperty(id="p1", name="123 Main St"),
    KnownProperty(id="p2", name="Oak Villa", address="9 Oak Rd"),
    KnownProperty(id="p3", name="Arrowbrook"),
]


def oracle_output(**matches):
    return PropertyMatchOutput(matches={
        name: OracleMatch(property_id=pid, confidence=conf, reason="similar")
        for name, (pid, conf) in matches.items()
    })


def assert_partition(result, names):
    assert set(result.matches) | set(result.unmatched) == set(names)
    assert not set(result.matches) & set(result.unmatched)


class TestExactPhase:

    @pytest.mark.asyncio
    async def test_exact_matches_skip_oracle(self):
        oracle = make_oracle()
        matcher = PropertyMatcher(oracle)

        result = await matcher.match(["123 main st (OLD)", "OAK VILLA"], PROPERTIES)

        assert result.matches["123 main st (OLD)"].property_id == "p1"
        assert result.matches["OAK VILLA"].property_id == "p2"
        assert result.unmatched == []
        assert result.oracle_called is False
        oracle.generate_structured.assert_not_called()

    @pytest.mark.asyncio
    async def test_exact_match_confidence_and_reason(self):
        matcher = PropertyMatcher(make_oracle())

        result = await matcher.match(["Arrowbrook"], PROPERTIES)

        match = result.matches["Arrowbrook"]
        assert match.confidence == 1.0
        assert match.reason == "exact match"

    @pytest.mark.asyncio
    async def test_exact_match_not_overwritten_by_oracle(self):
        # Oracle tries to reassign an exact-matched name
        oracle = make_oracle(oracle_output(**{
            "Arrowbrook": ("p2", 0.9),
            "Main Street 123": ("p1", 0.85),
        }))
        matcher = PropertyMatcher(oracle)

        result = await matcher.match(["Arrowbrook", "Main Street 123"], PROPERTIES)

        assert result.matches["Arrowbrook"].property_id == "p3"
        assert result.matches["Arrowbrook"].confidence == 1.0
        assert result.matches["Main Street 123"].property_id == "p1"

    @pytest.mark.asyncio
    async def test_duplicate_names_collapsed(self):
        matcher = PropertyMatcher(make_oracle())

        result = await matcher.match(["Arrowbrook", "Arrowbrook"], PROPERTIES)

        assert list(result.matches) == ["Arrowbrook"]


class TestOraclePhase:

    @pytest.mark.asyncio
    async def test_one_batched_call_for_remaining_names(self):
        oracle = make_oracle(oracle_output(**{"Main Street 123": ("p1", 0.85)}))
        matcher = PropertyMatcher(oracle)

        await matcher.match(["Arrowbrook", "Main Street 123", "Oak Vila"], PROPERTIES)

        oracle.generate_structured.assert_awaited_once()
        args, kwargs = oracle.generate_structured.call_args
        assert args[0] is PropertyMatchOutput
        request = args[1]
        assert isinstance(request, PromptRequest)
        assert '"Main Street 123"' in request.prompt
        assert '"Oak Vila"' in request.prompt
        assert "below 0.5" in request.prompt
        assert kwargs["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_low_confidence_rejected(self):
        oracle = make_oracle(oracle_output(**{
            "Main Street 123": ("p1", 0.85),
            "Oak Vila": ("p2", 0.49),
        }))
        matcher = PropertyMatcher(oracle)

        result = await matcher.match(["Main Street 123", "Oak Vila"], PROPERTIES)

        assert result.matches["Main Street 123"].confidence == 0.85
        assert result.unmatched == ["Oak Vila"]

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self):
        oracle = make_oracle(oracle_output(**{"Oak Vila": ("p2", 0.5)}))
        matcher = PropertyMatcher(oracle)

        result = await matcher.match(["Oak Vila"], PROPERTIES)

        assert result.matches["Oak Vila"].property_id == "p2"

    @pytest.mark.asyncio
    async def test_unknown_property_id_rejected(self):
        oracle = make_oracle(oracle_output(**{"Oak Vila": ("p-missing", 0.9)}))
        matcher = PropertyMatcher(oracle)

        result = await matcher.match(["Oak Vila"], PROPERTIES)

        assert result.matches == {}
        assert result.unmatched == ["Oak Vila"]

    @pytest.mark.asyncio
    async def test_unrequested_names_ignored(self):
        oracle = make_oracle(oracle_output(**{
            "Oak Vila": ("p2", 0.8),
            "Invented Name": ("p1", 0.9),
        }))
        matcher = PropertyMatcher(oracle)

        result = await matcher.match(["Oak Vila"], PROPERTIES)

        assert set(result.matches) == {"Oak Vila"}

    @pytest.mark.asyncio
    async def test_oracle_unmatched_list_not_trusted(self):
        # Oracle forgets a name entirely; it must still come back unmatched
        output = PropertyMatchOutput(matches={}, unmatched=[])
        matcher = PropertyMatcher(make_oracle(output))

        result = await matcher.match(["Oak Vila", "Nowhere"], PROPERTIES)

        assert result.unmatched == ["Oak Vila", "Nowhere"]

    @pytest.mark.asyncio
    async def test_missing_reason_defaulted(self):
        output = PropertyMatchOutput(matches={"Oak Vila": OracleMatch(property_id="p2", confidence=0.7)})
        matcher = PropertyMatcher(make_oracle(output))

        result = await matcher.match(["Oak Vila"], PROPERTIES)

        assert result.matches["Oak Vila"].reason == "ai match"

    @pytest.mark.asyncio
    async def test_no_properties_skips_oracle(self):
        oracle = make_oracle()
        matcher = PropertyMatcher(oracle)

        result = await matcher.match(["Anything"], [])

        assert result.unmatched == ["Anything"]
        oracle.generate_structured.assert_not_called()


class TestOracleFailure:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        AIClientError("AI request timed out"),
        AIClientError("Output does not match PropertyMatchOutput"),
        RuntimeError("connection reset"),
    ])
    async def test_failure_sends_remaining_to_unmatched(self, error):
        matcher = PropertyMatcher(make_oracle(error=error))

        result = await matcher.match(["123 Main St", "Main St. #123", "Oak Vila"], PROPERTIES)

        assert result.matches["123 Main St"].confidence == 1.0
        assert result.unmatched == ["Main St. #123", "Oak Vila"]
        assert result.oracle_failed is True

    @pytest.mark.asyncio
    async def test_wrong_output_type_is_failure(self):
        oracle = make_oracle()
        oracle.generate_structured.return_value = {"matches": {}}
        matcher = PropertyMatcher(oracle)

        result = await matcher.match(["Oak Vila"], PROPERTIES)

        assert result.oracle_failed is True
        assert result.unmatched == ["Oak Vila"]


class TestPartition:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("names", [
        [],
        ["Arrowbrook"],
        ["Arrowbrook", "Main Street 123", "Oak Vila", "Nowhere", "Nowhere"],
    ])
    async def test_matches_and_unmatched_partition_input(self, names):
        oracle = make_oracle(oracle_output(**{
            "Main Street 123": ("p1", 0.85),
            "Oak Vila": ("p2", 0.3),
        }))
        matcher = PropertyMatcher(oracle)

        result = await matcher.match(names, PROPERTIES)

        assert_partition(result, names)
        assert all(m.confidence >= 0.5 for m in result.matches.values())

    @pytest.mark.asyncio
    async def test_to_dict_wire_shape(self):
        matcher = PropertyMatcher(make_oracle())

        result = await matcher.match(["Arrowbrook", "Nowhere"], PROPERTIES)

        assert result.to_dict() == {
            "matches": {"Arrowbrook": {"propertyId": "p3", "confidence": 1.0, "reason": "exact match"}},
            "unmatched": ["Nowhere"],
        }
