"""
Shift Module Events - Domain events for cash custody

Two kinds of stream carry these:
- the shift stream (ShiftOpened, PaymentCaptured, CashAdjusted, ShiftClosed)
- the custody stream of an operator/device pair (CustodyClaimed, CustodyReleased)

Opening and closing write to both streams in one transaction, so the
custody stream always agrees with the shift it points at.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from parkops.shift.models import AdjustmentType


class ShiftOpened(BaseModel):
    """
    A shift was opened with an initial cash float

    The ledger starts empty; the float is a shift attribute, not a movement.
    """

    shift_id: str
    operator_id: str
    device_id: str
    sector_id: str | None
    opening_float: Decimal
    opened_at: datetime
    opened_by: str | None
    notes: str | None = None


class PaymentCaptured(BaseModel):
    """A payment was appended to the shift ledger"""

    shift_id: str
    movement_id: str
    sequence: int
    method: str
    amount: Decimal
    idempotency_key: str
    reference: str | None
    recorded_at: datetime
    recorded_by: str | None


class CashAdjusted(BaseModel):
    """A manual withdrawal or deposit was appended to the shift ledger"""

    shift_id: str
    movement_id: str
    sequence: int
    adjustment_type: AdjustmentType
    amount: Decimal
    reason: str
    receipt_number: str | None
    approved_by: str | None
    idempotency_key: str | None
    recorded_at: datetime
    recorded_by: str | None


class ShiftClosed(BaseModel):
    """
    A shift was closed with the operator's declared cash

    The reconciliation computed at close is stored verbatim; later reads
    return it rather than recomputing.
    """

    shift_id: str
    closed_at: datetime
    closed_by: str | None
    closing_declared_cash: Decimal
    notes: str | None
    report: dict[str, Any]


class CustodyClaimed(BaseModel):
    """An operator/device pair started holding cash for a shift"""

    operator_id: str
    device_id: str
    shift_id: str
    claimed_at: datetime


class CustodyReleased(BaseModel):
    """An operator/device pair stopped holding cash for a shift"""

    operator_id: str
    device_id: str
    shift_id: str
    released_at: datetime
