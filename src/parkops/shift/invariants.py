"""
Shift Module Invariants - pure checks on amounts, methods and state

Target: every rejection path of the lifecycle is reachable through one of
these functions.
"""

from decimal import Decimal

from parkops.kernel.errors import (
    IdempotencyConflict,
    InvalidAmount,
    ShiftNotOpen,
    UnsupportedPaymentMethod,
)
from parkops.kernel.policy import OperationsPolicy
from parkops.shift.commands import CapturePayment, MovementCommand, RecordAdjustment
from parkops.shift.models import CashMovement, MovementKind, Shift


def validate_positive_amount(field: str, amount: Decimal) -> None:
    """
    Raises:
        InvalidAmount: If amount <= 0 (or not a finite number)
    """
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(field, str(amount), "greater than 0")


def validate_non_negative_amount(field: str, amount: Decimal) -> None:
    """
    Raises:
        InvalidAmount: If amount < 0 (or not a finite number)
    """
    if not amount.is_finite() or amount < 0:
        raise InvalidAmount(field, str(amount), "greater than or equal to 0")


def validate_payment_method(method: str, policy: OperationsPolicy) -> None:
    """
    Raises:
        UnsupportedPaymentMethod: If the policy does not accept the method
    """
    if method not in policy.accepted_payment_methods:
        raise UnsupportedPaymentMethod(method, list(policy.accepted_payment_methods))


def validate_shift_open(shift: Shift) -> None:
    """
    Raises:
        ShiftNotOpen: If the shift is not OPEN
    """
    if not shift.is_open():
        raise ShiftNotOpen(shift.shift_id, shift.status.value)


def validate_replay_matches(existing: CashMovement, command: MovementCommand) -> None:
    """
    A reused idempotency key must describe the same movement

    Raises:
        IdempotencyConflict: If kind, amount or category differ
    """
    key = existing.idempotency_key or ""
    if isinstance(command, CapturePayment):
        if existing.kind != MovementKind.PAYMENT:
            raise IdempotencyConflict(key, "recorded as an adjustment")
        if existing.method != command.method or existing.amount != command.amount:
            raise IdempotencyConflict(key, "payload differs from the recorded payment")
        if command.reference is not None and existing.reference != command.reference:
            raise IdempotencyConflict(key, "recorded with a different reference")
    elif isinstance(command, RecordAdjustment):
        if existing.kind != MovementKind.ADJUSTMENT:
            raise IdempotencyConflict(key, "recorded as a payment")
        if (
            existing.adjustment_type != command.adjustment_type
            or existing.amount != command.amount
        ):
            raise IdempotencyConflict(key, "payload differs from the recorded adjustment")
