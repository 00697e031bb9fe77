"""
Shift Module Projections - Read Models for Query Operations

ShiftRegistry: current state of every shift, for listings and health.

Decisions never read this projection; they replay the shift stream (see
ledger.py). The registry may briefly lag a concurrent writer.
"""

import threading
from decimal import Decimal

from parkops.kernel.events import Event
from parkops.shift.models import Shift, ShiftStatus

SHIFT_EVENT_TYPES = frozenset(
    {"ShiftOpened", "PaymentCaptured", "CashAdjusted", "ShiftClosed"}
)


class ShiftRegistry:
    """
    Main shift projection

    Built from events: ShiftOpened, PaymentCaptured, CashAdjusted, ShiftClosed

    Applying an event at or below a shift's known version is a no-op, so the
    façade can re-apply events it already applied when catching up.

    Query methods: get, list_shifts, count_open
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.shifts: dict[str, Shift] = {}

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Args:
            event: Event to apply
        """
        payload = event.payload
        with self._lock:
            current = self.shifts.get(event.stream_id)
            if current is not None and event.version <= current.version:
                return

            if event.event_type == "ShiftOpened":
                self.shifts[event.stream_id] = Shift(
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
            elif current is None:
                return
            elif event.event_type in ("PaymentCaptured", "CashAdjusted"):
                self.shifts[event.stream_id] = current.model_copy(
                    update={
                        "movement_count": current.movement_count + 1,
                        "version": event.version,
                    }
                )
            elif event.event_type == "ShiftClosed":
                self.shifts[event.stream_id] = Shift.model_validate(
                    {
                        **current.model_dump(),
                        "status": ShiftStatus.CLOSED,
                        "closed_at": payload["closed_at"],
                        "closed_by": payload.get("closed_by"),
                        "closing_declared_cash": payload["closing_declared_cash"],
                        "closing_notes": payload.get("notes"),
                        "version": event.version,
                    }
                )

    # ========== Query Methods ==========

    def get(self, shift_id: str) -> Shift | None:
        with self._lock:
            return self.shifts.get(shift_id)

    def list_shifts(
        self,
        status: ShiftStatus | None = None,
        operator_id: str | None = None,
    ) -> list[Shift]:
        """List shifts, newest first, optionally filtered"""
        with self._lock:
            shifts = [
                s
                for s in self.shifts.values()
                if (status is None or s.status == status)
                and (operator_id is None or s.operator_id == operator_id)
            ]
        return sorted(shifts, key=lambda s: (s.opened_at, s.shift_id), reverse=True)

    def count_open(self) -> int:
        with self._lock:
            return sum(1 for s in self.shifts.values() if s.is_open())
