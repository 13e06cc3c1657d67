"""
Vendor Import Confirmation

Applies property matches a user approved in the import preview: writes the
approved expenses to each property's statement for the month and recomputes
totals. Expenses are written in chunks; each chunk and the recompute of the
statements it touched commit together.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List

from vendor_import.errors import ImportValidationError, NotFoundError
from vendor_import.schemas import VendorImportConfirmRequest
from vendor_import.services.extraction import parse_line_date
from vendor_import.services.import_handler import default_expense_date
from vendor_import.services.statement_store import NewExpense, StatementRef, StatementStore
from vendor_import.services.totals import recompute_statement_totals

logger = logging.getLogger(__name__)

CONFIRM_CHUNK_SIZE = 300


@dataclass
class ConfirmResult:
    created_count: int = 0
    updated_properties: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "createdCount": self.created_count,
            "updatedPropertiesCount": len(self.updated_properties),
            "updatedProperties": list(self.updated_properties),
        }


def chunked(items: List[Any], size: int) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class VendorImportConfirmService:
    """Writes user-approved vendor import matches."""

    def __init__(self, store: StatementStore, chunk_size: int = CONFIRM_CHUNK_SIZE):
        self.store = store
        self.chunk_size = chunk_size

    async def confirm(
        self,
        org_id: str,
        user_id: str,
        request: VendorImportConfirmRequest
    ) -> ConfirmResult:
        """
        Apply approved matches.

        Raises:
            ImportValidationError: no approvals, or a property without a
                statement in the month
            NotFoundError: statement missing or in another organization
        """
        if not request.approved_matches:
            raise ImportValidationError("No approved matches provided")

        current = await self.store.find_statement(request.current_statement_id)
        if current is None or current.management_group_id != org_id:
            raise NotFoundError("Statement not found")

        month_statements = await self.store.list_month_statements(org_id, current.statement_month)
        statement_by_property: Dict[str, StatementRef] = {}
        for s in month_statements:
            statement_by_property.setdefault(s.property_id, s)

        fallback_date = default_expense_date(current.statement_month)
        expenses: List[NewExpense] = []
        updated_properties: List[str] = []

        for match in request.approved_matches:
            target = statement_by_property.get(match.property.id)
            if target is None:
                raise ImportValidationError(
                    f'Property "{match.property.name}" not found in current month statements'
                )
            if match.property.name not in updated_properties:
                updated_properties.append(match.property.name)

            for expense in match.expenses:
                expenses.append(NewExpense(
                    owner_statement_id=target.id,
                    date=parse_line_date(expense.date) or fallback_date,
                    description=expense.description,
                    vendor=expense.vendor,
                    amount=Decimal(str(expense.amount)),
                ))

        created = 0
        for chunk in chunked(expenses, self.chunk_size):
            touched = {e.owner_statement_id for e in chunk}
            async with self.store.transaction(touched):
                created += await self.store.write_line_items(chunk)
                for statement_id in sorted(touched):
                    await recompute_statement_totals(self.store, statement_id, user_id)

        logger.info(
            f"Confirmed vendor import: {created} expenses across {len(updated_properties)} properties",
            extra={"org_id": org_id, "statement_id": request.current_statement_id}
        )
        return ConfirmResult(created_count=created, updated_properties=updated_properties)
