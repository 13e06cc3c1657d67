"""
Property Matcher

Matches vendor property names against the organization's property registry.

Phase 1 - Exact:
- Normalised name equality (see name_normalizer)
- Confidence 1.0, reason "exact match", no oracle call

Phase 2 - Oracle:
- All remaining names in ONE structured-generation request
- Only entries naming a remaining import name and a known property
  with confidence >= 0.5 are admitted
- Any oracle failure sends every remaining name to unmatched

Every import name ends up in exactly one of matches / unmatched.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from services.ai_client import PromptRequest
from vendor_import.errors import MatchOracleFailure
from vendor_import.matching_rules.name_normalizer import normalize_property_name

logger = logging.getLogger(__name__)


# ==================== ORACLE OUTPUT SCHEMA ====================

class OracleMatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    property_id: str = Field(..., alias="propertyId")
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: Optional[str] = None


class PropertyMatchOutput(BaseModel):
    """Schema the oracle must answer with."""
    matches: Dict[str, OracleMatch] = Field(default_factory=dict)
    unmatched: List[str] = Field(default_factory=list)


# ==================== RESULT TYPES ====================

@dataclass
class KnownProperty:
    """A property from the registry."""
    id: str
    name: str
    address: Optional[str] = None


@dataclass
class MatchResult:
    """Match decision for one import name."""
    property_id: str
    confidence: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "propertyId": self.property_id,
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass
class PropertyMatchResult:
    """Outcome of matching a list of import names."""
    matches: Dict[str, MatchResult] = field(default_factory=dict)
    unmatched: List[str] = field(default_factory=list)
    oracle_called: bool = False
    oracle_failed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matches": {name: m.to_dict() for name, m in self.matches.items()},
            "unmatched": list(self.unmatched),
        }


# ==================== MATCHER ====================

class PropertyMatcher:
    """
    Two-phase property name matcher.

    The oracle is any object exposing the AIClient.generate_structured
    coroutine; it is injected, never looked up globally.
    """

    EXACT_CONFIDENCE = 1.0
    EXACT_REASON = "exact match"
    MIN_CONFIDENCE = 0.5
    # Slightly above the client default to give the model room to reason
    ORACLE_TEMPERATURE = 0.3

    def __init__(self, oracle):
        self.oracle = oracle

    async def match(
        self,
        import_names: Sequence[str],
        properties: Sequence[KnownProperty]
    ) -> PropertyMatchResult:
        """
        Match import names to known properties.

        Args:
            import_names: Property names as written by the vendor
            properties: The organization's known properties

        Returns:
            PropertyMatchResult partitioning the (de-duplicated) import names
        """
        names = list(dict.fromkeys(import_names))

        result = PropertyMatchResult()
        result.matches, remaining = self._match_exact(names, properties)

        if not remaining:
            return result

        if not properties:
            result.unmatched = remaining
            return result

        result.oracle_called = True
        try:
            oracle_matches = await self._match_with_oracle(remaining, properties)
        except MatchOracleFailure as e:
            logger.warning(
                f"Oracle matching failed, {len(remaining)} name(s) left unmatched: {e.message}"
            )
            result.oracle_failed = True
            oracle_matches = {}

        for name, match in oracle_matches.items():
            # Exact matches are never overwritten
            result.matches.setdefault(name, match)

        result.unmatched = [name for name in remaining if name not in result.matches]

        logger.info(
            "Property matching complete",
            extra={
                "import_names": len(names),
                "exact_matches": len(names) - len(remaining),
                "oracle_matches": len(oracle_matches),
                "unmatched": len(result.unmatched),
            }
        )
        return result

    def _match_exact(
        self,
        names: List[str],
        properties: Sequence[KnownProperty]
    ) -> Tuple[Dict[str, MatchResult], List[str]]:
        """Phase 1: normalised equality. Returns (matches, remaining names)."""
        index: Dict[str, KnownProperty] = {}
        for prop in properties:
            key = normalize_property_name(prop.name)
            if key:
                # First registered property wins on collisions
                index.setdefault(key, prop)

        matches: Dict[str, MatchResult] = {}
        remaining: List[str] = []

        for name in names:
            prop = index.get(normalize_property_name(name))
            if prop is not None:
                matches[name] = MatchResult(
                    property_id=prop.id,
                    confidence=self.EXACT_CONFIDENCE,
                    reason=self.EXACT_REASON,
                )
            else:
                remaining.append(name)

        return matches, remaining

    async def _match_with_oracle(
        self,
        remaining: List[str],
        properties: Sequence[KnownProperty]
    ) -> Dict[str, MatchResult]:
        """
        Phase 2: one batched oracle call for every remaining name.

        Raises:
            MatchOracleFailure: for any failure of the call or its output
        """
        try:
            output = await self.oracle.generate_structured(
                PropertyMatchOutput,
                PromptRequest(prompt=build_match_prompt(remaining, properties)),
                temperature=self.ORACLE_TEMPERATURE,
            )
        except Exception as e:
            raise MatchOracleFailure(str(e) or type(e).__name__) from e

        if not isinstance(output, PropertyMatchOutput):
            raise MatchOracleFailure(f"Unexpected oracle output type {type(output).__name__}")

        known_ids = {prop.id for prop in properties}
        wanted = set(remaining)
        admitted: Dict[str, MatchResult] = {}

        for name, candidate in output.matches.items():
            if name not in wanted:
                logger.debug(f"Oracle returned unknown import name {name!r}; ignored")
                continue
            if candidate.property_id not in known_ids:
                logger.debug(f"Oracle returned unknown property id for {name!r}; ignored")
                continue
            if candidate.confidence < self.MIN_CONFIDENCE:
                continue

            admitted[name] = MatchResult(
                property_id=candidate.property_id,
                confidence=candidate.confidence,
                reason=candidate.reason or "ai match",
            )

        return admitted


def build_match_prompt(remaining: Sequence[str], properties: Sequence[KnownProperty]) -> str:
    """Prompt stating the matching policy for the oracle."""
    def describe(prop: KnownProperty) -> str:
        if prop.address:
            return f'"{prop.name}" (ID: {prop.id}, address: {prop.address})'
        return f'"{prop.name}" (ID: {prop.id})'

    database_lines = "\n".join(describe(p) for p in properties)
    import_lines = "\n".join(f'"{name}"' for name in remaining)

    return f"""Match property names from import data to database properties.

DATABASE PROPERTIES:
{database_lines}

IMPORT PROPERTIES:
{import_lines}

MATCHING RULES:
1. Very similar matches (minor textual differences) get confidence 0.8-0.9
2. Partial matches get confidence 0.5-0.7
3. Anything below 0.5 must NOT be returned as a match
4. Each import property maps to at most one database property ID

Return JSON format:
{{
  "matches": {{
    "importPropertyName": {{
      "propertyId": "database-property-id",
      "confidence": 0.85,
      "reason": "short reason"
    }}
  }},
  "unmatched": ["unmatched-property-name"]
}}"""
