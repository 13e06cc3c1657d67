"""
Owner Statement Database Models

Tables touched by the vendor import pipeline:
- properties: canonical property registry per management group
- owner_statements: one statement per property per month, with derived totals
- owner_statement_incomes / _expenses / _adjustments: line items
- vendor_import_unmatched_items: imported lines awaiting manual resolution

Derived total columns on owner_statements are written only by
recalculate_totals; they are never edited directly.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Integer, Date, DateTime, ForeignKey, Index, Numeric
)
from sqlalchemy.orm import relationship

from database.connection import Base


# Arbitrary precision for money; matches the statement ledger
MONEY = Numeric(65, 30)


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PropertyDB(Base):
    """Canonical property referenced by statements and match results."""
    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    management_group_id = Column(String(64), nullable=False)
    name = Column(Text, nullable=False)
    address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_properties_group_deleted", "management_group_id", "deleted_at"),
        Index("ix_properties_name_group", "name", "management_group_id"),
    )


class OwnerStatementDB(Base):
    """
    Reconciliation record for one property and one statement month.

    total_income, total_expenses, total_adjustments and grand_total are
    derived from the line items.
    """
    __tablename__ = "owner_statements"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    management_group_id = Column(String(64), nullable=False)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False)
    statement_month = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)

    total_income = Column(MONEY, nullable=True)
    total_expenses = Column(MONEY, nullable=True)
    total_adjustments = Column(MONEY, nullable=True)
    grand_total = Column(MONEY, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    created_by = Column(String(64), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    updated_by = Column(String(64), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    property = relationship("PropertyDB", lazy="joined")

    __table_args__ = (
        Index("ix_owner_statements_group_month_deleted", "management_group_id", "statement_month", "deleted_at"),
        Index("ix_owner_statements_property_month", "property_id", "statement_month"),
    )


class OwnerStatementIncomeDB(Base):
    """Booking income line."""
    __tablename__ = "owner_statement_incomes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_statement_id = Column(
        String(36), ForeignKey("owner_statements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    check_in = Column(DateTime(timezone=True), nullable=False)
    check_out = Column(DateTime(timezone=True), nullable=False)
    days = Column(Integer, nullable=False)
    platform = Column(Text, nullable=False)
    guest = Column(Text, nullable=False)
    gross_revenue = Column(MONEY, nullable=False)
    host_fee = Column(MONEY, nullable=False)
    platform_fee = Column(MONEY, nullable=False)
    gross_income = Column(MONEY, nullable=False)


class OwnerStatementExpenseDB(Base):
    """Expense line; vendor imports create these."""
    __tablename__ = "owner_statement_expenses"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_statement_id = Column(
        String(36), ForeignKey("owner_statements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date = Column(Date, nullable=False, index=True)
    description = Column(Text, nullable=False)
    vendor = Column(Text, nullable=False)
    amount = Column(MONEY, nullable=False)

    __table_args__ = (
        Index("ix_owner_statement_expenses_vendor_description", "vendor", "description"),
    )


class OwnerStatementAdjustmentDB(Base):
    """Manual adjustment line (positive or negative)."""
    __tablename__ = "owner_statement_adjustments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_statement_id = Column(
        String(36), ForeignKey("owner_statements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    check_in = Column(DateTime(timezone=True), nullable=True)
    check_out = Column(DateTime(timezone=True), nullable=True)
    description = Column(Text, nullable=False)
    amount = Column(MONEY, nullable=False)


class UnmatchedImportItemDB(Base):
    """
    Imported expense whose vendor property name matched no known property.

    Kept so the import can be completed manually through the confirm endpoint.
    """
    __tablename__ = "vendor_import_unmatched_items"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    job_id = Column(String(64), nullable=False, index=True)
    management_group_id = Column(String(64), nullable=False)
    statement_month = Column(Date, nullable=False)
    property_name = Column(Text, nullable=False)
    vendor = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    amount = Column(MONEY, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    created_by = Column(String(64), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_unmatched_items_group_month", "management_group_id", "statement_month"),
    )
