"""
Shared fixtures for the vendor import tests.

FakeStatementStore is an in-memory StatementStore with the same method
surface; its transaction() restores written state when the block raises.
"""

from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import Settings, get_settings
from services.auth import create_session_token
from vendor_import.dependencies import get_import_handler, get_statement_store
from vendor_import.endpoints.vendor_import_api import router as vendor_import_router
from vendor_import.errors import PersistenceFailure
from vendor_import.job_queue import QueueSignatureVerifier
from vendor_import.job_store import JobIdMinter, JobStore
from vendor_import.matching_rules import KnownProperty, PropertyMatcher, PropertyMatchOutput
from vendor_import.services.import_handler import VendorImportJobHandler
from vendor_import.services.statement_store import LineItems, StatementRef

TEST_SECRET = "test-secret-key-with-at-least-32-characters"
TEST_SIGNING_KEY = "sig_current_test_key"
TEST_NEXT_SIGNING_KEY = "sig_next_test_key"
ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"
USER_ID = "user-1"
MONTH = date(2025, 3, 1)


class FakeStatementStore:
    """In-memory statement store."""

    def __init__(self):
        self.statements: Dict[str, StatementRef] = {}
        self.deleted_statements = set()
        self.properties: Dict[str, tuple] = {}
        self.incomes: List[dict] = []
        self.expenses: List[dict] = []
        self.adjustments: List[dict] = []
        self.unmatched_items: List[dict] = []
        self.totals: Dict[str, dict] = {}
        self.locked: List[List[str]] = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_totals_write = False

    # ---- seeding ----

    def add_property(self, property_id: str, name: str, org_id: str = ORG_ID, address: Optional[str] = None):
        self.properties[property_id] = (org_id, KnownProperty(id=property_id, name=name, address=address))

    def add_statement(self, statement_id: str, property_id: str, org_id: str = ORG_ID, month: date = MONTH, deleted: bool = False):
        _, prop = self.properties[property_id]
        self.statements[statement_id] = StatementRef(
            id=statement_id,
            management_group_id=org_id,
            property_id=property_id,
            property_name=prop.name,
            statement_month=month,
        )
        if deleted:
            self.deleted_statements.add(statement_id)

    def add_income(self, statement_id: str, gross_income):
        self.incomes.append({"owner_statement_id": statement_id, "gross_income": gross_income})

    def add_expense(self, statement_id: str, amount, vendor: str = "Existing Vendor", description: str = "Existing"):
        self.expenses.append({
            "owner_statement_id": statement_id,
            "date": MONTH,
            "description": description,
            "vendor": vendor,
            "amount": amount,
        })

    def add_adjustment(self, statement_id: str, amount):
        self.adjustments.append({"owner_statement_id": statement_id, "amount": amount})

    # ---- store surface ----

    @asynccontextmanager
    async def transaction(self, statement_ids=()):
        snapshot = (list(self.expenses), list(self.unmatched_items), dict(self.totals))
        self.locked.append(sorted(set(statement_ids)))
        try:
            yield self
        except Exception:
            self.expenses, self.unmatched_items, self.totals = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    async def find_statement(self, statement_id):
        return self.statements.get(statement_id)

    async def list_month_statements(self, org_id, statement_month):
        return [
            s for s in self.statements.values()
            if s.management_group_id == org_id
            and s.statement_month == statement_month
            and s.id not in self.deleted_statements
        ]

    async def list_properties(self, org_id, property_ids=None):
        return [
            prop for owner, prop in self.properties.values()
            if owner == org_id and (property_ids is None or prop.id in property_ids)
        ]

    async def find_line_items(self, statement_id):
        return LineItems(
            incomes=[i for i in self.incomes if i["owner_statement_id"] == statement_id],
            expenses=[e for e in self.expenses if e["owner_statement_id"] == statement_id],
            adjustments=[a for a in self.adjustments if a["owner_statement_id"] == statement_id],
        )

    async def find_duplicate_expense(self, org_id, statement_month, vendor, description):
        for e in self.expenses:
            s = self.statements.get(e["owner_statement_id"])
            if (s and s.management_group_id == org_id and s.statement_month == statement_month
                    and e["vendor"] == vendor and e["description"] == description):
                return "expense-dup"
        return None

    async def has_unmatched_items(self, job_id):
        return any(i["job_id"] == job_id for i in self.unmatched_items)

    async def write_line_items(self, expenses):
        self.expenses.extend(asdict(e) for e in expenses)
        return len(expenses)

    async def write_unmatched_items(self, items):
        self.unmatched_items.extend(asdict(i) for i in items)
        return len(items)

    async def write_statement_totals(self, statement_id, totals, updated_by, updated_at):
        if self.fail_totals_write:
            raise PersistenceFailure("Database error: OperationalError")
        self.totals[statement_id] = {
            "total_income": totals.total_income,
            "total_expenses": totals.total_expenses,
            "total_adjustments": totals.total_adjustments,
            "grand_total": totals.grand_total,
            "updated_by": updated_by,
        }


def make_oracle(output: Optional[PropertyMatchOutput] = None, error: Optional[Exception] = None):
    """AI client stand-in for the matcher."""
    oracle = MagicMock()
    if error is not None:
        oracle.generate_structured = AsyncMock(side_effect=error)
    else:
        oracle.generate_structured = AsyncMock(return_value=output or PropertyMatchOutput())
    return oracle


def make_extractor(extracted):
    extractor = MagicMock()
    extractor.extract = AsyncMock(return_value=extracted)
    return extractor


@pytest.fixture
def store():
    """Store seeded with two properties of ORG_ID and one of OTHER_ORG_ID for MONTH."""
    s = FakeStatementStore()
    s.add_property("prop-main", "123 Main St")
    s.add_property("prop-oak", "Oak Villa", address="9 Oak Rd")
    s.add_property("prop-other", "Elsewhere House", org_id=OTHER_ORG_ID)
    s.add_statement("stmt-main", "prop-main")
    s.add_statement("stmt-oak", "prop-oak")
    s.add_statement("stmt-other", "prop-other", org_id=OTHER_ORG_ID)
    s.add_income("stmt-main", Decimal("1000.00"))
    return s


@pytest.fixture
def job_store():
    return JobStore(ttl_seconds=3600)


@pytest.fixture
def test_settings():
    return Settings(
        ENVIRONMENT="development",
        JWT_SECRET_KEY=TEST_SECRET,
        APP_BASE_URL="http://testserver",
        QUEUE_TOKEN="queue-token",
        QUEUE_CURRENT_SIGNING_KEY=TEST_SIGNING_KEY,
        QUEUE_NEXT_SIGNING_KEY=TEST_NEXT_SIGNING_KEY,
        QUEUE_RETRIES=2,
    )


@pytest.fixture
def publisher():
    p = MagicMock()
    p.publish_json = AsyncMock(return_value="msg-1")
    return p


@pytest.fixture
def auth_headers():
    token = create_session_token(USER_ID, ORG_ID, TEST_SECRET)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app(store, job_store, publisher, test_settings):
    """Vendor import router on a bare app with fakes in app.state and overrides."""
    application = FastAPI()
    application.include_router(vendor_import_router, prefix="/api")

    application.state.job_store = job_store
    application.state.job_id_minter = JobIdMinter()
    application.state.queue_publisher = publisher
    application.state.signature_verifier = QueueSignatureVerifier(TEST_SIGNING_KEY, TEST_NEXT_SIGNING_KEY)
    application.state.ai_client = make_oracle()

    application.dependency_overrides[get_settings] = lambda: test_settings
    application.dependency_overrides[get_statement_store] = lambda: store
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def use_handler(app, store, job_store):
    """Install a handler built from fakes; returns a setter taking (extracted, oracle)."""
    def install(extracted, oracle=None):
        handler = VendorImportJobHandler(
            store=store,
            matcher=PropertyMatcher(oracle or make_oracle()),
            extractor=make_extractor(extracted),
            job_store=job_store,
        )
        app.dependency_overrides[get_import_handler] = lambda: handler
        return handler
    return install
