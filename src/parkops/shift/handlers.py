"""
Shift Module Handlers - Command→Event transformation

Handlers turn a validated command plus the current aggregate state into
events. They never touch the store; the lifecycle loads state, calls the
handler and performs the conditional append.

Stream layout:
- shift stream (stream_id = shift_id): ShiftOpened is version 1, every
  movement is version sequence + 1, ShiftClosed is last
- custody stream ("custody:<operator>:<device>"): claims and releases
"""

from decimal import Decimal

from parkops.kernel.events import Event, create_event
from parkops.kernel.ids import generate_id
from parkops.kernel.time import TimeProvider
from parkops.shift.commands import CapturePayment, CloseShift, OpenShift, RecordAdjustment
from parkops.shift.events import (
    CashAdjusted,
    CustodyClaimed,
    CustodyReleased,
    PaymentCaptured,
    ShiftClosed,
    ShiftOpened,
)
from parkops.shift.ledger import ShiftLedger
from parkops.shift.reconciliation import ReconciliationReport


def custody_stream(operator_id: str, device_id: str) -> str:
    return f"custody:{operator_id}:{device_id}"


class ShiftCommandHandlers:
    """
    Command handlers for the shift module

    Validation happens in the lifecycle before these are called; handlers
    only shape events.
    """

    def __init__(self, time_provider: TimeProvider) -> None:
        """
        Initialize handlers with dependencies

        Args:
            time_provider: For timestamps (injectable for testing)
        """
        self.time_provider = time_provider

    def handle_open_shift(
        self,
        command: OpenShift,
        command_id: str,
        actor_id: str | None,
        custody_version: int,
    ) -> tuple[Event, Event]:
        """
        Handle OpenShift command

        Returns:
            (ShiftOpened for the new shift stream,
             CustodyClaimed for the operator/device custody stream)
        """
        now = self.time_provider.now()
        shift_id = generate_id()

        opened = create_event(
            event_id=generate_id(),
            stream_id=shift_id,
            stream_type="shift",
            event_type="ShiftOpened",
            occurred_at=now,
            command_id=command_id,
            actor_id=actor_id,
            payload=ShiftOpened(
                shift_id=shift_id,
                operator_id=command.operator_id,
                device_id=command.device_id,
                sector_id=command.sector_id,
                opening_float=command.opening_float,
                opened_at=now,
                opened_by=actor_id,
                notes=command.notes,
            ).model_dump(mode="json"),
            version=1,
        )

        claimed = create_event(
            event_id=generate_id(),
            stream_id=custody_stream(command.operator_id, command.device_id),
            stream_type="custody",
            event_type="CustodyClaimed",
            occurred_at=now,
            command_id=command_id,
            actor_id=actor_id,
            payload=CustodyClaimed(
                operator_id=command.operator_id,
                device_id=command.device_id,
                shift_id=shift_id,
                claimed_at=now,
            ).model_dump(mode="json"),
            version=custody_version + 1,
        )

        return opened, claimed

    def handle_capture_payment(
        self,
        command: CapturePayment,
        actor_id: str | None,
        ledger: ShiftLedger,
    ) -> Event:
        """
        Handle CapturePayment command

        The idempotency key doubles as the event's command_id, so the store
        itself refuses to record the same capture twice in one shift.
        """
        now = self.time_provider.now()
        shift_id = ledger.shift.shift_id

        return create_event(
            event_id=generate_id(),
            stream_id=shift_id,
            stream_type="shift",
            event_type="PaymentCaptured",
            occurred_at=now,
            command_id=command.idempotency_key,
            actor_id=actor_id,
            payload=PaymentCaptured(
                shift_id=shift_id,
                movement_id=generate_id(),
                sequence=ledger.next_sequence,
                method=command.method,
                amount=command.amount,
                idempotency_key=command.idempotency_key,
                reference=command.reference,
                recorded_at=now,
                recorded_by=actor_id,
            ).model_dump(mode="json"),
            version=ledger.version + 1,
        )

    def handle_record_adjustment(
        self,
        command: RecordAdjustment,
        actor_id: str | None,
        ledger: ShiftLedger,
    ) -> Event:
        """Handle RecordAdjustment command"""
        now = self.time_provider.now()
        shift_id = ledger.shift.shift_id

        return create_event(
            event_id=generate_id(),
            stream_id=shift_id,
            stream_type="shift",
            event_type="CashAdjusted",
            occurred_at=now,
            command_id=command.idempotency_key or generate_id(),
            actor_id=actor_id,
            payload=CashAdjusted(
                shift_id=shift_id,
                movement_id=generate_id(),
                sequence=ledger.next_sequence,
                adjustment_type=command.adjustment_type,
                amount=command.amount,
                reason=command.reason,
                receipt_number=command.receipt_number,
                approved_by=command.approved_by,
                idempotency_key=command.idempotency_key,
                recorded_at=now,
                recorded_by=actor_id,
            ).model_dump(mode="json"),
            version=ledger.version + 1,
        )

    def handle_close_shift(
        self,
        command: CloseShift,
        command_id: str,
        actor_id: str | None,
        ledger: ShiftLedger,
        report: ReconciliationReport,
        custody_version: int,
    ) -> tuple[Event, Event]:
        """
        Handle CloseShift command

        Returns:
            (ShiftClosed carrying the report snapshot,
             CustodyReleased for the operator/device custody stream)
        """
        now = self.time_provider.now()
        shift = ledger.shift

        closed = create_event(
            event_id=generate_id(),
            stream_id=shift.shift_id,
            stream_type="shift",
            event_type="ShiftClosed",
            occurred_at=now,
            command_id=command_id,
            actor_id=actor_id,
            payload=ShiftClosed(
                shift_id=shift.shift_id,
                closed_at=now,
                closed_by=actor_id,
                closing_declared_cash=Decimal(command.closing_declared_cash),
                notes=command.notes,
                report=report.model_dump(mode="json"),
            ).model_dump(mode="json"),
            version=ledger.version + 1,
        )

        released = create_event(
            event_id=generate_id(),
            stream_id=custody_stream(shift.operator_id, shift.device_id),
            stream_type="custody",
            event_type="CustodyReleased",
            occurred_at=now,
            command_id=command_id,
            actor_id=actor_id,
            payload=CustodyReleased(
                operator_id=shift.operator_id,
                device_id=shift.device_id,
                shift_id=shift.shift_id,
                released_at=now,
            ).model_dump(mode="json"),
            version=custody_version + 1,
        )

        return closed, released
