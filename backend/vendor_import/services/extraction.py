"""
Vendor Document Extraction

Turns a vendor invoice (base64 PDF) into per-property expense lines using
the AI client. The document is passed through untouched; no parsing or OCR
happens in this service.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from dateutil.parser import parse as parse_date
from pydantic import BaseModel, Field

from services.ai_client import AIClientError, ChatMessage, MessagesRequest
from vendor_import.errors import ExtractionError

logger = logging.getLogger(__name__)


class ExtractedLineOutput(BaseModel):
    date: Optional[str] = None
    amount: Decimal = Field(..., allow_inf_nan=False)


class ExtractionOutput(BaseModel):
    """Schema the extraction model must answer with."""
    expenses: Dict[str, List[ExtractedLineOutput]] = Field(default_factory=dict)


@dataclass
class ExtractedLine:
    """One expense line for a vendor property name; date None means not stated."""
    date: Optional[date]
    amount: Decimal


def parse_line_date(value: Optional[str]) -> Optional[date]:
    """Parse a date the model wrote; blank or unreadable gives None."""
    if not value or not value.strip():
        return None
    try:
        return parse_date(value.strip()).date()
    except (ValueError, OverflowError):
        logger.debug(f"Unreadable extracted date {value!r}; using statement default")
        return None


def build_extraction_prompt(known_property_names: Sequence[str]) -> str:
    known = "\n".join(f"- {name}" for name in known_property_names)
    return f"""Extract expense data from this table-based invoice PDF.

EXPECTED OUTPUT: JSON object with an "expenses" key; each key inside it is a
property name/address from the invoice, and each value is an array of
expense objects.

PROPERTY NAMES: Use the property names/addresses EXACTLY as they appear in
the invoice. For reference, the known properties are:
{known}

EXTRACTION RULES:
1. Find the main table/list of properties and their associated costs
2. For each property row, extract:
   - The property name/address (exactly as shown)
   - The total amount/cost for that property
   - The line date as YYYY-MM-DD, or leave date empty if not clear per line
3. If a property has multiple line items, sum them into one amount

OUTPUT FORMAT:
{{
  "expenses": {{
    "Property Name/Address": [{{"date": "YYYY-MM-DD or empty", "amount": 123.45}}]
  }}
}}"""


class VendorDocumentExtractor:
    """Extracts {property name: [ExtractedLine]} from a vendor document."""

    def __init__(self, ai_client, model: Optional[str] = None):
        self.ai_client = ai_client
        self.model = model

    async def extract(
        self,
        document_base64: str,
        known_property_names: Sequence[str],
        filename: str = "vendor-invoice.pdf"
    ) -> Dict[str, List[ExtractedLine]]:
        """
        Extract expense lines per vendor property name.

        Raises:
            ExtractionError: AI failure, or no property lines in the document
        """
        request = MessagesRequest(messages=[
            ChatMessage(role="user", content=[
                {"type": "text", "text": build_extraction_prompt(known_property_names)},
                {
                    "type": "file",
                    "file": {
                        "filename": filename,
                        "file_data": f"data:application/pdf;base64,{document_base64}",
                    },
                },
            ])
        ])

        try:
            output = await self.ai_client.generate_structured(
                ExtractionOutput, request, model=self.model
            )
        except AIClientError as e:
            raise ExtractionError(f"Document extraction failed: {e}") from e

        extracted: Dict[str, List[ExtractedLine]] = {}
        for name, lines in output.expenses.items():
            name = name.strip()
            if not name or not lines:
                continue
            extracted.setdefault(name, []).extend(
                ExtractedLine(date=parse_line_date(line.date), amount=line.amount)
                for line in lines
            )

        if not extracted:
            raise ExtractionError("No property expenses found in document")

        logger.info(
            f"Extracted expenses for {len(extracted)} vendor properties",
            extra={"property_count": len(extracted)}
        )
        return extracted
