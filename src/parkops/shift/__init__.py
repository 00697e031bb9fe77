"""
Shift - cash custody across an operator's shift

Opening float, an append-only ledger of payments and adjustments, and the
declared-versus-expected reconciliation at close.
"""

from parkops.shift.commands import CapturePayment, RecordAdjustment
from parkops.shift.ledger import ShiftLedger
from parkops.shift.lifecycle import ShiftLifecycle
from parkops.shift.models import (
    AdjustmentType,
    CashMovement,
    MovementKind,
    PaymentMethod,
    Shift,
    ShiftStatus,
)
from parkops.shift.projections import ShiftRegistry
from parkops.shift.reconciliation import CategoryTotal, ReconciliationReport, reconcile

__all__ = [
    "AdjustmentType",
    "CapturePayment",
    "CashMovement",
    "CategoryTotal",
    "MovementKind",
    "PaymentMethod",
    "RecordAdjustment",
    "ReconciliationReport",
    "Shift",
    "ShiftLedger",
    "ShiftLifecycle",
    "ShiftRegistry",
    "ShiftStatus",
    "reconcile",
]
