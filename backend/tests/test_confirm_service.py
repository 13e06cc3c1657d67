"""
Unit Tests for vendor import confirmation

Run with: pytest backend/tests/test_confirm_service.py -v
"""

from datetime import date
from decimal import Decimal

import pytest

from vendor_import.errors import ImportValidationError, NotFoundError
from vendor_import.schemas import VendorImportConfirmRequest
from vendor_import.services.confirm_service import VendorImportConfirmService, chunked
from conftest import ORG_ID, USER_ID


def approved(property_id, name, expenses):
    return {
        "property": {"id": property_id, "name": name},
        "confidence": 0.9,
        "reason": "exact",
        "expenses": expenses,
        "totalAmount": sum(e["amount"] for e in expenses),
    }


def expense(amount, when="2025-03-05"):
    return {"date": when, "description": "March landscaping", "vendor": "Green Lawns", "amount": amount}


def make_request(statement_id="stmt-main", matches=None):
    return VendorImportConfirmRequest.model_validate({
        "currentStatementId": statement_id,
        "approvedMatches": matches if matches is not None else [],
    })


class TestChunked:

    def test_splits_with_remainder(self):
        assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert chunked([], 300) == []


class TestConfirm:

    @pytest.mark.asyncio
    async def test_writes_approved_expenses(self, store):
        service = VendorImportConfirmService(store)
        request = make_request(matches=[
            approved("prop-main", "123 Main St", [expense(95.0), expense(5.0, when="")]),
            approved("prop-oak", "Oak Villa", [expense(60.5)]),
        ])

        result = await service.confirm(ORG_ID, USER_ID, request)

        assert result.to_dict() == {
            "success": True,
            "createdCount": 3,
            "updatedPropertiesCount": 2,
            "updatedProperties": ["123 Main St", "Oak Villa"],
        }
        main_dates = sorted(e["date"] for e in store.expenses if e["owner_statement_id"] == "stmt-main")
        assert main_dates == [date(2025, 3, 5), date(2025, 3, 15)]
        assert store.totals["stmt-main"]["grand_total"] == Decimal("900.00")
        assert store.totals["stmt-oak"]["grand_total"] == Decimal("-60.50")
        assert store.totals["stmt-main"]["updated_by"] == USER_ID

    @pytest.mark.asyncio
    async def test_chunks_commit_separately(self, store):
        service = VendorImportConfirmService(store, chunk_size=2)
        request = make_request(matches=[
            approved("prop-main", "123 Main St", [expense(1.0), expense(2.0)]),
            approved("prop-oak", "Oak Villa", [expense(3.0)]),
        ])

        result = await service.confirm(ORG_ID, USER_ID, request)

        assert result.created_count == 3
        assert store.locked == [["stmt-main"], ["stmt-oak"]]
        assert store.commits == 2

    @pytest.mark.asyncio
    async def test_no_approvals(self, store):
        service = VendorImportConfirmService(store)

        with pytest.raises(ImportValidationError) as exc_info:
            await service.confirm(ORG_ID, USER_ID, make_request(matches=[]))

        assert exc_info.value.message == "No approved matches provided"

    @pytest.mark.asyncio
    async def test_statement_of_other_org(self, store):
        service = VendorImportConfirmService(store)
        request = make_request(statement_id="stmt-other", matches=[
            approved("prop-other", "Elsewhere House", [expense(1.0)])
        ])

        with pytest.raises(NotFoundError):
            await service.confirm(ORG_ID, USER_ID, request)

        assert store.commits == 0

    @pytest.mark.asyncio
    async def test_property_outside_month_rejected_before_writes(self, store):
        service = VendorImportConfirmService(store)
        request = make_request(matches=[
            approved("prop-main", "123 Main St", [expense(1.0)]),
            approved("prop-other", "Elsewhere House", [expense(2.0)]),
        ])

        with pytest.raises(ImportValidationError) as exc_info:
            await service.confirm(ORG_ID, USER_ID, request)

        assert exc_info.value.message == 'Property "Elsewhere House" not found in current month statements'
        assert store.expenses == []
        assert store.totals == {}


class TestConfirmRequest:

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_amount_rejected(self, amount):
        with pytest.raises(ValueError):
            make_request(matches=[approved("prop-main", "123 Main St", [expense(amount)])])
