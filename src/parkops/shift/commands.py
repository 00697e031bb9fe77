"""
Shift Module Commands - Intentions to change cash custody

Amounts are validated by the lifecycle, not by pydantic, so a negative
float surfaces as InvalidAmount rather than a validation error.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from parkops.shift.models import AdjustmentType


class OpenShift(BaseModel):
    """
    Open a shift for an operator on a device

    Requirements:
    - Operator exists and is ACTIVE
    - Sector (if given) exists
    - opening_float >= 0
    - No OPEN shift for the same operator/device pair
    """

    operator_id: str = Field(..., min_length=1)
    device_id: str = Field(..., min_length=1)
    opening_float: Decimal
    sector_id: str | None = None
    notes: str | None = Field(default=None, max_length=1000)


class CapturePayment(BaseModel):
    """
    Record a payment collected during the shift

    The idempotency key is mandatory: payment collaborators retry, and a
    retried capture must never be counted twice.
    """

    method: str
    amount: Decimal
    idempotency_key: str = Field(..., min_length=1, max_length=200)
    reference: str | None = None


class RecordAdjustment(BaseModel):
    """Record a manual cash withdrawal or deposit"""

    adjustment_type: AdjustmentType
    amount: Decimal
    reason: str = Field(..., min_length=1, max_length=500)
    receipt_number: str | None = None
    approved_by: str | None = None
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=200)


class CloseShift(BaseModel):
    """
    Close a shift with the operator's declared cash count

    Requirements:
    - Shift is OPEN
    - closing_declared_cash >= 0
    """

    shift_id: str
    closing_declared_cash: Decimal
    notes: str | None = Field(default=None, max_length=1000)


MovementCommand = CapturePayment | RecordAdjustment
