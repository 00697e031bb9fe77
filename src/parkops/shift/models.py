"""
Shift Domain Models - cash custody across an operator's shift

A shift is the period during which an operator holds cash custody on one
device. It opens with a float, accumulates an append-only ledger of cash
movements, and closes with a declared count compared against the
expected cash.

Key concepts:
- One OPEN shift per (operator, device) pair at any instant
- Movements are immutable and totally ordered by sequence
- CLOSED is terminal: the close-out figures are recorded once
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class ShiftStatus(str, Enum):
    """
    Shift lifecycle states

    OPEN → CLOSED

    Only OPEN shifts accept movements.
    """

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class PaymentMethod(str, Enum):
    """Payment methods known to the platform; the policy decides which are accepted"""

    CASH = "CASH"
    CARD = "CARD"
    WEBPAY = "WEBPAY"
    TRANSFER = "TRANSFER"


class AdjustmentType(str, Enum):
    """
    Manual cash adjustments

    WITHDRAWAL: cash taken out of the drawer (e.g. a supervisor pickup)
    DEPOSIT: cash put into the drawer (e.g. extra change)
    """

    WITHDRAWAL = "WITHDRAWAL"
    DEPOSIT = "DEPOSIT"


class MovementKind(str, Enum):
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"


class CashMovement(BaseModel):
    """
    One immutable ledger entry

    Payments carry a method and an idempotency key; adjustments carry a
    type and a reason. sequence is 1-based and gap-free within a shift.

    Attributes:
        movement_id: Unique identifier
        shift_id: Owning shift
        sequence: Position in the shift's ledger
        kind: PAYMENT or ADJUSTMENT
        amount: Strictly positive amount
        recorded_at: When the movement was recorded
        method: Payment method (payments only)
        adjustment_type: WITHDRAWAL or DEPOSIT (adjustments only)
        idempotency_key: Client key deduplicating retries
        reference: External reference, e.g. a parking session id
        reason: Why the adjustment was made
        receipt_number: Paper receipt backing an adjustment
        approved_by: Supervisor who approved an adjustment
        recorded_by: Actor who posted the movement
    """

    movement_id: str
    shift_id: str
    sequence: int = Field(ge=1)
    kind: MovementKind
    amount: Decimal = Field(gt=0)
    recorded_at: datetime
    method: str | None = None
    adjustment_type: AdjustmentType | None = None
    idempotency_key: str | None = None
    reference: str | None = None
    reason: str | None = None
    receipt_number: str | None = None
    approved_by: str | None = None
    recorded_by: str | None = None

    model_config = {"frozen": True}

    def category(self) -> str:
        """Payment method for payments, adjustment type for adjustments"""
        if self.kind == MovementKind.PAYMENT:
            return self.method or ""
        return self.adjustment_type.value if self.adjustment_type else ""


class Shift(BaseModel):
    """
    A period of cash custody by one operator on one device

    Invariants enforced:
    - opening_float >= 0
    - closed_at and closing_declared_cash are set exactly when status is CLOSED
    """

    shift_id: str
    operator_id: str
    device_id: str
    sector_id: str | None = None
    opening_float: Decimal = Field(ge=0)
    opened_at: datetime
    opened_by: str | None = None
    notes: str | None = None
    status: ShiftStatus = ShiftStatus.OPEN
    closed_at: datetime | None = None
    closed_by: str | None = None
    closing_declared_cash: Decimal | None = None
    closing_notes: str | None = None
    movement_count: int = 0
    version: int = 1

    def is_open(self) -> bool:
        return self.status == ShiftStatus.OPEN
