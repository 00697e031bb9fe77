"""
Reconciliation - what the drawer should hold, and what it does hold

Pure functions over a shift and its movements: no clock, no store, no
side effects. The same inputs always produce the same report, and
reordering the movements changes nothing.

expected_cash = opening_float
              + payments in cash methods
              + DEPOSIT adjustments
              - WITHDRAWAL adjustments

difference = declared_cash - expected_cash (negative means cash is short)
"""

from collections.abc import Iterable
from decimal import Decimal

from pydantic import BaseModel, Field

from parkops.shift.models import (
    AdjustmentType,
    CashMovement,
    MovementKind,
    PaymentMethod,
    Shift,
)


class CategoryTotal(BaseModel):
    """Sum and count of movements in one category"""

    total: Decimal = Decimal("0")
    count: int = 0


class ReconciliationReport(BaseModel):
    """
    Aggregated view of a shift's ledger

    Attributes:
        payments: Per payment method totals (every accepted method listed)
        adjustments: Per adjustment type totals
        opening_float: Float the shift opened with
        cash_collected: Payments in cash methods
        total_collected: Payments in all methods
        expected_cash: Cash the drawer should hold
        declared_cash: Cash the operator counted (None before close)
        difference: declared - expected (None when nothing declared)
        movement_count: Number of ledger entries
    """

    shift_id: str
    operator_id: str
    device_id: str
    payments: dict[str, CategoryTotal] = Field(default_factory=dict)
    adjustments: dict[str, CategoryTotal] = Field(default_factory=dict)
    opening_float: Decimal
    cash_collected: Decimal
    total_collected: Decimal
    expected_cash: Decimal
    declared_cash: Decimal | None = None
    difference: Decimal | None = None
    movement_count: int = 0


def _add(totals: dict[str, CategoryTotal], key: str, amount: Decimal) -> None:
    current = totals.setdefault(key, CategoryTotal())
    totals[key] = CategoryTotal(total=current.total + amount, count=current.count + 1)


def reconcile(
    shift: Shift,
    movements: Iterable[CashMovement],
    declared_cash: Decimal | None = None,
    cash_methods: Iterable[str] = (PaymentMethod.CASH.value,),
    methods: Iterable[str] | None = None,
) -> ReconciliationReport:
    """
    Compute the reconciliation of a shift

    Args:
        shift: Shift whose float opens the computation
        movements: The shift's ledger entries, in any order
        declared_cash: Counted cash at close (None for a preview)
        cash_methods: Payment methods that put physical cash in the drawer
        methods: Payment methods to list even when unused
            (defaults to every known method)

    Returns:
        ReconciliationReport
    """
    cash = set(cash_methods)
    listed = list(methods) if methods is not None else [m.value for m in PaymentMethod]

    payments: dict[str, CategoryTotal] = {m: CategoryTotal() for m in listed}
    adjustments: dict[str, CategoryTotal] = {t.value: CategoryTotal() for t in AdjustmentType}
    count = 0

    for movement in movements:
        count += 1
        if movement.kind == MovementKind.PAYMENT:
            _add(payments, movement.method or "", movement.amount)
        else:
            _add(adjustments, movement.adjustment_type.value, movement.amount)

    cash_collected = sum(
        (t.total for m, t in payments.items() if m in cash), Decimal("0")
    )
    total_collected = sum((t.total for t in payments.values()), Decimal("0"))
    expected_cash = (
        shift.opening_float
        + cash_collected
        + adjustments[AdjustmentType.DEPOSIT.value].total
        - adjustments[AdjustmentType.WITHDRAWAL.value].total
    )

    return ReconciliationReport(
        shift_id=shift.shift_id,
        operator_id=shift.operator_id,
        device_id=shift.device_id,
        payments=dict(sorted(payments.items())),
        adjustments=adjustments,
        opening_float=shift.opening_float,
        cash_collected=cash_collected,
        total_collected=total_collected,
        expected_cash=expected_cash,
        declared_cash=declared_cash,
        difference=declared_cash - expected_cash if declared_cash is not None else None,
        movement_count=count,
    )
