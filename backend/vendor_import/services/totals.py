"""
Owner Statement Totals

Pure calculation of statement totals from the three line-item collections,
plus the transactional recompute that writes them back.

Rules:
- Income contributes gross_income; expenses and adjustments contribute amount
- Missing, None, non-numeric, NaN or infinite amounts contribute 0
- Sums are exact (Decimal); each total is rounded to 2dp (ROUND_HALF_UP)
  on its own, and grand_total is rounded from the unrounded sums
- Always called with the full current collections, never a delta
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Dict, Iterable, Tuple

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0")

# Room for NUMERIC(65, 30) values without context rounding
_SUM_PRECISION = 100

INCOME_AMOUNT_FIELDS: Tuple[str, ...] = ("gross_income", "grossIncome")
AMOUNT_FIELDS: Tuple[str, ...] = ("amount",)


@dataclass(frozen=True)
class StatementTotals:
    """Derived totals of an owner statement."""
    total_income: Decimal = Decimal("0.00")
    total_expenses: Decimal = Decimal("0.00")
    total_adjustments: Decimal = Decimal("0.00")
    grand_total: Decimal = Decimal("0.00")

    def to_dict(self) -> Dict[str, float]:
        return {
            "totalIncome": float(self.total_income),
            "totalExpenses": float(self.total_expenses),
            "totalAdjustments": float(self.total_adjustments),
            "grandTotal": float(self.grand_total),
        }


def safe_parse_decimal(value: Any) -> Decimal:
    """
    Parse a monetary value, returning 0 for anything unusable.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary
    expansion. Booleans are not amounts.
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    else:
        try:
            parsed = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError):
            return ZERO

    if not parsed.is_finite():
        return ZERO
    return parsed


def _item_amount(item: Any, fields: Tuple[str, ...]) -> Decimal:
    for name in fields:
        if isinstance(item, dict):
            if name in item:
                return safe_parse_decimal(item[name])
        elif hasattr(item, name):
            return safe_parse_decimal(getattr(item, name))
    return ZERO


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_totals(
    incomes: Iterable[Any],
    expenses: Iterable[Any],
    adjustments: Iterable[Any]
) -> StatementTotals:
    """
    Calculate statement totals from the full line-item collections.

    Items may be dicts or ORM/plain objects.
    """
    with localcontext() as ctx:
        ctx.prec = _SUM_PRECISION

        total_income = sum((_item_amount(i, INCOME_AMOUNT_FIELDS) for i in incomes), ZERO)
        total_expenses = sum((_item_amount(e, AMOUNT_FIELDS) for e in expenses), ZERO)
        total_adjustments = sum((_item_amount(a, AMOUNT_FIELDS) for a in adjustments), ZERO)
        grand_total = total_income - total_expenses + total_adjustments

        return StatementTotals(
            total_income=_round(total_income),
            total_expenses=_round(total_expenses),
            total_adjustments=_round(total_adjustments),
            grand_total=_round(grand_total),
        )


async def recompute_statement_totals(store, statement_id: str, acting_user_id: str) -> StatementTotals:
    """
    Recompute and store totals for one statement inside the caller's transaction.

    The caller's transaction must hold the statement row lock (see
    StatementStore.transaction). The full line-item set is always re-read.
    """
    items = await store.find_line_items(statement_id)
    totals = calculate_totals(items.incomes, items.expenses, items.adjustments)

    await store.write_statement_totals(
        statement_id,
        totals,
        updated_by=acting_user_id,
        updated_at=datetime.now(timezone.utc),
    )

    logger.info(
        f"Recalculated totals for statement {statement_id}",
        extra={"statement_id": statement_id, "grand_total": str(totals.grand_total)}
    )
    return totals


async def recalculate_totals(store, statement_id: str, acting_user_id: str) -> StatementTotals:
    """
    Recompute totals for one statement in its own atomic transaction.

    Safe to call repeatedly: unchanged line items give identical totals.
    """
    async with store.transaction([statement_id]):
        return await recompute_statement_totals(store, statement_id, acting_user_id)
