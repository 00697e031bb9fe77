"""
Shift ledger - a shift's state replayed from its own event stream

The ledger is the write-side view used for every decision: it is loaded
fresh from the store under the shift lock, so it never lags behind
another writer the way a projection can.
"""

from decimal import Decimal

from parkops.kernel.events import Event
from parkops.shift.models import (
    AdjustmentType,
    CashMovement,
    MovementKind,
    Shift,
    ShiftStatus,
)
from parkops.shift.reconciliation import ReconciliationReport


def movement_from_event(event: Event) -> CashMovement:
    """Build the ledger entry recorded by a PaymentCaptured or CashAdjusted event"""
    payload = event.payload
    if event.event_type == "PaymentCaptured":
        return CashMovement(
            movement_id=payload["movement_id"],
            shift_id=payload["shift_id"],
            sequence=payload["sequence"],
            kind=MovementKind.PAYMENT,
            amount=Decimal(payload["amount"]),
            recorded_at=payload["recorded_at"],
            method=payload["method"],
            idempotency_key=payload["idempotency_key"],
            reference=payload.get("reference"),
            recorded_by=payload.get("recorded_by"),
        )
    return CashMovement(
        movement_id=payload["movement_id"],
        shift_id=payload["shift_id"],
        sequence=payload["sequence"],
        kind=MovementKind.ADJUSTMENT,
        amount=Decimal(payload["amount"]),
        recorded_at=payload["recorded_at"],
        adjustment_type=AdjustmentType(payload["adjustment_type"]),
        idempotency_key=payload.get("idempotency_key"),
        reason=payload.get("reason"),
        receipt_number=payload.get("receipt_number"),
        approved_by=payload.get("approved_by"),
        recorded_by=payload.get("recorded_by"),
    )


class ShiftLedger:
    """
    Aggregate state of one shift

    Built from events: ShiftOpened, PaymentCaptured, CashAdjusted, ShiftClosed
    """

    def __init__(self) -> None:
        self.shift: Shift | None = None
        self.movements: list[CashMovement] = []
        self.closing_report: ReconciliationReport | None = None
        self.version = 0
        self._by_key: dict[str, CashMovement] = {}

    @classmethod
    def from_events(cls, events: list[Event]) -> "ShiftLedger":
        ledger = cls()
        for event in events:
            ledger.apply_event(event)
        return ledger

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to the aggregate

        Args:
            event: Event from this shift's stream
        """
        payload = event.payload
        if event.event_type == "ShiftOpened":
            self.shift = Shift(
                shift_id=payload["shift_id"],
                operator_id=payload["operator_id"],
                device_id=payload["device_id"],
                sector_id=payload.get("sector_id"),
                opening_float=Decimal(payload["opening_float"]),
                opened_at=payload["opened_at"],
                opened_by=payload.get("opened_by"),
                notes=payload.get("notes"),
                version=event.version,
            )
        elif event.event_type in ("PaymentCaptured", "CashAdjusted"):
            movement = movement_from_event(event)
            self.movements.append(movement)
            if movement.idempotency_key:
                self._by_key[movement.idempotency_key] = movement
            if self.shift is not None:
                self._update_shift(movement_count=len(self.movements), version=event.version)
        elif event.event_type == "ShiftClosed":
            self.closing_report = ReconciliationReport.model_validate(payload["report"])
            if self.shift is not None:
                self._update_shift(
                    status=ShiftStatus.CLOSED,
                    closed_at=payload["closed_at"],
                    closed_by=payload.get("closed_by"),
                    closing_declared_cash=payload["closing_declared_cash"],
                    closing_notes=payload.get("notes"),
                    version=event.version,
                )
        self.version = event.version

    def _update_shift(self, **changes: object) -> None:
        # model_validate, not model_copy: payload values arrive as JSON strings
        self.shift = Shift.model_validate({**self.shift.model_dump(), **changes})

    @property
    def next_sequence(self) -> int:
        return len(self.movements) + 1

    def find_by_idempotency_key(self, idempotency_key: str) -> CashMovement | None:
        return self._by_key.get(idempotency_key)
