"""
Statement Store

SQLAlchemy repository for everything the vendor import pipeline reads and
writes: statements, properties, line items, unmatched items and totals.

Transactions:
- transaction(statement_ids) commits on success and rolls back on any error
- the listed statement rows are locked (SELECT ... FOR UPDATE) in id order,
  so two imports touching the same statements serialize instead of deadlocking
- SQLAlchemy errors surface as PersistenceFailure
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, update, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.statement_models import (
    PropertyDB, OwnerStatementDB, OwnerStatementIncomeDB,
    OwnerStatementExpenseDB, OwnerStatementAdjustmentDB, UnmatchedImportItemDB
)
from vendor_import.errors import PersistenceFailure
from vendor_import.matching_rules import KnownProperty

logger = logging.getLogger(__name__)


# ==================== VALUE TYPES ====================

@dataclass
class StatementRef:
    """The parts of a statement the import pipeline needs."""
    id: str
    management_group_id: str
    property_id: str
    property_name: Optional[str]
    statement_month: date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "management_group_id": self.management_group_id,
            "property_id": self.property_id,
            "property_name": self.property_name,
            "statement_month": self.statement_month.isoformat(),
        }


@dataclass
class LineItems:
    """All line items of one statement."""
    incomes: List[Any] = field(default_factory=list)
    expenses: List[Any] = field(default_factory=list)
    adjustments: List[Any] = field(default_factory=list)


@dataclass
class NewExpense:
    """Expense line to insert."""
    owner_statement_id: str
    date: date
    description: str
    vendor: str
    amount: Decimal


@dataclass
class NewUnmatchedItem:
    """Imported line with no matching property."""
    job_id: str
    management_group_id: str
    statement_month: date
    property_name: str
    vendor: str
    description: str
    date: date
    amount: Decimal
    created_by: str


def _to_statement_ref(row: OwnerStatementDB) -> StatementRef:
    return StatementRef(
        id=row.id,
        management_group_id=row.management_group_id,
        property_id=row.property_id,
        property_name=row.property.name if row.property else None,
        statement_month=row.statement_month,
    )


# ==================== REPOSITORY ====================

class StatementStore:
    """Repository for owner statement data used by vendor imports."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _execute(self, stmt, params=None):
        try:
            if params is None:
                return await self.session.execute(stmt)
            return await self.session.execute(stmt, params)
        except SQLAlchemyError as e:
            logger.error(f"Statement store query failed: {e}")
            raise PersistenceFailure(f"Database error: {type(e).__name__}") from e

    # ==================== TRANSACTIONS ====================

    @asynccontextmanager
    async def transaction(self, statement_ids: Iterable[str] = ()) -> AsyncIterator["StatementStore"]:
        """
        Run a block atomically, holding row locks on the given statements.

        Reads issued before entering may already have begun a transaction
        (SQLAlchemy autobegin); it is adopted and committed here.
        """
        ids = sorted(set(statement_ids))
        try:
            if ids:
                await self._execute(
                    select(OwnerStatementDB.id)
                    .where(OwnerStatementDB.id.in_(ids))
                    .order_by(OwnerStatementDB.id)
                    .with_for_update()
                )
            yield self
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceFailure(f"Transaction failed: {type(e).__name__}") from e
        except Exception:
            await self.session.rollback()
            raise

    # ==================== READ ====================

    async def find_statement(self, statement_id: str) -> Optional[StatementRef]:
        """Get a statement by id (None if missing)."""
        result = await self._execute(
            select(OwnerStatementDB).where(OwnerStatementDB.id == statement_id)
        )
        row = result.scalars().first()
        return _to_statement_ref(row) if row else None

    async def list_month_statements(self, org_id: str, statement_month: date) -> List[StatementRef]:
        """Live statements of one organization for one statement month."""
        result = await self._execute(
            select(OwnerStatementDB)
            .where(
                OwnerStatementDB.management_group_id == org_id,
                OwnerStatementDB.statement_month == statement_month,
                OwnerStatementDB.deleted_at.is_(None),
            )
            .order_by(OwnerStatementDB.created_at, OwnerStatementDB.id)
        )
        return [_to_statement_ref(row) for row in result.scalars().unique().all()]

    async def list_properties(
        self,
        org_id: str,
        property_ids: Optional[Sequence[str]] = None
    ) -> List[KnownProperty]:
        """Live properties of an organization, optionally restricted to ids."""
        stmt = select(PropertyDB).where(
            PropertyDB.management_group_id == org_id,
            PropertyDB.deleted_at.is_(None),
        )
        if property_ids is not None:
            if not property_ids:
                return []
            stmt = stmt.where(PropertyDB.id.in_(list(property_ids)))

        result = await self._execute(stmt.order_by(PropertyDB.name))
        return [
            KnownProperty(id=row.id, name=row.name, address=row.address)
            for row in result.scalars().all()
        ]

    async def find_line_items(self, statement_id: str) -> LineItems:
        """Full current income, expense and adjustment collections."""
        items = LineItems()
        for model, target in (
            (OwnerStatementIncomeDB, items.incomes),
            (OwnerStatementExpenseDB, items.expenses),
            (OwnerStatementAdjustmentDB, items.adjustments),
        ):
            result = await self._execute(
                select(model).where(model.owner_statement_id == statement_id)
            )
            target.extend(result.scalars().all())
        return items

    async def find_duplicate_expense(
        self,
        org_id: str,
        statement_month: date,
        vendor: str,
        description: str
    ) -> Optional[str]:
        """Id of an expense with this vendor and description in the org's month, if any."""
        result = await self._execute(
            select(OwnerStatementExpenseDB.id)
            .join(OwnerStatementDB, OwnerStatementExpenseDB.owner_statement_id == OwnerStatementDB.id)
            .where(
                OwnerStatementDB.management_group_id == org_id,
                OwnerStatementDB.statement_month == statement_month,
                OwnerStatementExpenseDB.vendor == vendor,
                OwnerStatementExpenseDB.description == description,
            )
            .limit(1)
        )
        return result.scalars().first()

    async def has_unmatched_items(self, job_id: str) -> bool:
        """Whether a job already left unmatched items."""
        result = await self._execute(
            select(UnmatchedImportItemDB.id)
            .where(UnmatchedImportItemDB.job_id == job_id)
            .limit(1)
        )
        return result.scalars().first() is not None

    # ==================== WRITE ====================

    async def write_line_items(self, expenses: Sequence[NewExpense]) -> int:
        """Bulk insert expense lines. Returns the number written."""
        if not expenses:
            return 0
        await self._execute(
            insert(OwnerStatementExpenseDB),
            [
                {
                    "owner_statement_id": e.owner_statement_id,
                    "date": e.date,
                    "description": e.description,
                    "vendor": e.vendor,
                    "amount": e.amount,
                }
                for e in expenses
            ]
        )
        return len(expenses)

    async def write_unmatched_items(self, items: Sequence[NewUnmatchedItem]) -> int:
        """Bulk insert unmatched import lines. Returns the number written."""
        if not items:
            return 0
        await self._execute(
            insert(UnmatchedImportItemDB),
            [
                {
                    "job_id": i.job_id,
                    "management_group_id": i.management_group_id,
                    "statement_month": i.statement_month,
                    "property_name": i.property_name,
                    "vendor": i.vendor,
                    "description": i.description,
                    "date": i.date,
                    "amount": i.amount,
                    "created_by": i.created_by,
                }
                for i in items
            ]
        )
        return len(items)

    async def write_statement_totals(
        self,
        statement_id: str,
        totals,
        updated_by: str,
        updated_at: datetime
    ) -> None:
        """Store derived totals on a statement."""
        await self._execute(
            update(OwnerStatementDB)
            .where(OwnerStatementDB.id == statement_id)
            .values(
                total_income=totals.total_income,
                total_expenses=totals.total_expenses,
                total_adjustments=totals.total_adjustments,
                grand_total=totals.grand_total,
                updated_at=updated_at,
                updated_by=updated_by,
            )
        )
