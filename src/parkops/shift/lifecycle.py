"""
Shift lifecycle - OPEN → CLOSED with an append-only cash ledger

Concurrency model:
- Every mutating call holds an in-process lock for the stream(s) it writes
  (the custody pair for open, the shift for post, both for close)
- Every write is a conditional append: the store checks stream versions
  inside one BEGIN IMMEDIATE transaction, so writers in other processes
  are serialized too
- A version conflict proves nothing was written; the call reloads state,
  re-runs its checks and tries again (bounded by the policy)

Lock order is always shift before custody, so open (custody only) and
close (shift, then custody) cannot deadlock.

Fun fact: the drawer count at close is called a "blind count" when the
operator does not see the expected figure first. The report is computed
after the declaration is recorded, never before.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal

from parkops.access.directory import TenantDirectory
from parkops.access.invariants import require_active_operator, require_sector
from parkops.kernel.errors import IdempotencyConflict, ShiftAlreadyOpen, ShiftNotFound
from parkops.kernel.event_store import SQLiteEventStore, StreamWrite
from parkops.kernel.ids import generate_id
from parkops.kernel.logging import LogOperation, get_logger
from parkops.kernel.metrics import (
    idempotent_replays_total,
    movements_posted_total,
    open_shifts,
    shift_close_difference,
    track_command_duration,
)
from parkops.kernel.policy import OperationsPolicy, default_operations_policy
from parkops.kernel.retry import retry_on_version_conflict
from parkops.kernel.time import TimeProvider
from parkops.shift.commands import (
    CapturePayment,
    CloseShift,
    MovementCommand,
    OpenShift,
    RecordAdjustment,
)
from parkops.shift.handlers import ShiftCommandHandlers, custody_stream
from parkops.shift.invariants import (
    validate_non_negative_amount,
    validate_payment_method,
    validate_positive_amount,
    validate_replay_matches,
    validate_shift_open,
)
from parkops.shift.ledger import ShiftLedger, movement_from_event
from parkops.shift.models import CashMovement, Shift, ShiftStatus
from parkops.shift.projections import ShiftRegistry
from parkops.shift.reconciliation import ReconciliationReport, reconcile

logger = get_logger(__name__)


class StreamLocks:
    """
    One threading.Lock per stream id

    An entry lives while some thread holds or waits for it, then it is
    dropped, so closed shifts leave nothing behind.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, stream_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(stream_id, threading.Lock())
            self._users[stream_id] = self._users.get(stream_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[stream_id] -= 1
                if self._users[stream_id] == 0:
                    del self._users[stream_id]
                    del self._locks[stream_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class ShiftLifecycle:
    """
    Opens shifts, posts movements, closes shifts

    Decisions replay the shift stream from the store; the registry
    projection is only updated after a successful append and only serves
    listings.
    """

    def __init__(
        self,
        event_store: SQLiteEventStore,
        directory: TenantDirectory,
        time_provider: TimeProvider,
        policy: OperationsPolicy | None = None,
        registry: ShiftRegistry | None = None,
    ) -> None:
        """
        Initialize the lifecycle

        Args:
            event_store: Source of truth for shift and custody streams
            directory: Operator and sector lookups
            time_provider: For timestamps (injectable for testing)
            policy: Operations policy (uses defaults if None)
            registry: Shift projection to keep current (a private one if None)
        """
        self.event_store = event_store
        self.directory = directory
        self.time_provider = time_provider
        self.policy = policy or default_operations_policy
        self.registry = registry if registry is not None else ShiftRegistry()
        self.handlers = ShiftCommandHandlers(time_provider)
        self.locks = StreamLocks()

    def _with_retry(self, func):
        return retry_on_version_conflict(self.policy.version_conflict_max_attempts)(func)

    # ========== Commands ==========

    @track_command_duration("open_shift")
    def open_shift(
        self,
        operator_id: str,
        device_id: str,
        opening_float: Decimal | int | str,
        sector_id: str | None = None,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> Shift:
        """
        Open a shift for an operator on a device

        The exclusivity check and the creation are one conditional write:
        the ShiftOpened event and the custody claim land together or not
        at all.

        Raises:
            OperatorNotFound: If the operator is unknown
            OperatorInactive: If the operator is not ACTIVE
            SectorNotFound: If sector_id is given and unknown
            InvalidAmount: If opening_float < 0
            ShiftAlreadyOpen: If the pair already holds an OPEN shift
        """
        command = OpenShift(
            operator_id=operator_id,
            device_id=device_id,
            opening_float=opening_float,
            sector_id=sector_id,
            notes=notes,
        )
        with LogOperation(
            logger, "open_shift", operator_id=operator_id, device_id=device_id
        ):
            with self.locks.hold(custody_stream(operator_id, device_id)):
                shift = self._with_retry(self._open_once)(
                    command, generate_id(), actor_id or operator_id
                )
        open_shifts.inc()
        return shift

    def _open_once(self, command: OpenShift, command_id: str, actor_id: str) -> Shift:
        require_active_operator(self.directory, command.operator_id)
        if command.sector_id is not None:
            require_sector(self.directory, command.sector_id)
        validate_non_negative_amount("opening_float", command.opening_float)

        holder, custody_version = self._custody_state(command.operator_id, command.device_id)
        if holder is not None:
            raise ShiftAlreadyOpen(command.operator_id, command.device_id, holder)

        opened, claimed = self.handlers.handle_open_shift(
            command, command_id, actor_id, custody_version
        )
        self.event_store.append_batch(
            [
                StreamWrite(opened.stream_id, 0, [opened]),
                StreamWrite(claimed.stream_id, custody_version, [claimed]),
            ]
        )
        self.registry.apply_event(opened)
        return ShiftLedger.from_events([opened]).shift

    @track_command_duration("post_movement")
    def post_movement(
        self,
        shift_id: str,
        movement: MovementCommand,
        actor_id: str | None = None,
    ) -> CashMovement:
        """
        Append a payment or an adjustment to an OPEN shift

        Re-posting a payment with an idempotency key that is already in the
        ledger returns the movement recorded the first time, even after the
        shift has closed.

        Raises:
            ShiftNotFound: If the shift is unknown
            IdempotencyConflict: If the key was used for a different movement
            ShiftNotOpen: If the shift is CLOSED
            InvalidAmount: If amount <= 0
            UnsupportedPaymentMethod: If the policy rejects the method
        """
        with LogOperation(
            logger,
            "post_movement",
            shift_id=shift_id,
            kind=type(movement).__name__,
            idempotency_key=movement.idempotency_key,
        ):
            with self.locks.hold(shift_id):
                return self._with_retry(self._post_once)(shift_id, movement, actor_id)

    def _post_once(
        self, shift_id: str, command: MovementCommand, actor_id: str | None
    ) -> CashMovement:
        ledger = self._load(shift_id)

        key = command.idempotency_key
        if key:
            existing = ledger.find_by_idempotency_key(key)
            if existing is not None:
                return self._replay(existing, command)
            # Early answer; the store repeats the check inside the write
            self._require_key_unused_elsewhere(key, shift_id)

        validate_shift_open(ledger.shift)
        validate_positive_amount("amount", command.amount)

        if isinstance(command, CapturePayment):
            validate_payment_method(command.method, self.policy)
            event = self.handlers.handle_capture_payment(command, actor_id, ledger)
        else:
            event = self.handlers.handle_record_adjustment(command, actor_id, ledger)

        appended = self.event_store.append(
            shift_id, ledger.version, [event], unique_command=bool(key)
        )
        recorded = movement_from_event(appended[0])
        if appended[0].event_id != event.event_id:
            # Another process recorded the same key between our load and append
            return self._replay(recorded, command)

        self.registry.apply_event(appended[0])
        movements_posted_total.labels(
            kind=recorded.kind.value, category=recorded.category()
        ).inc()
        return recorded

    def _replay(self, existing: CashMovement, command: MovementCommand) -> CashMovement:
        validate_replay_matches(existing, command)
        idempotent_replays_total.inc()
        logger.info(
            "Idempotent replay",
            shift_id=existing.shift_id,
            movement_id=existing.movement_id,
            idempotency_key=existing.idempotency_key,
        )
        return existing

    def _require_key_unused_elsewhere(self, key: str, shift_id: str) -> None:
        for event in self.event_store.get_events_by_command_id(key):
            if event.stream_id != shift_id:
                raise IdempotencyConflict(key, f"already used on stream {event.stream_id}")

    def capture_payment(
        self,
        shift_id: str,
        method: str,
        amount: Decimal | int | str,
        idempotency_key: str,
        reference: str | None = None,
        actor_id: str | None = None,
    ) -> CashMovement:
        """Shorthand for post_movement with a CapturePayment"""
        return self.post_movement(
            shift_id,
            CapturePayment(
                method=method,
                amount=amount,
                idempotency_key=idempotency_key,
                reference=reference,
            ),
            actor_id=actor_id,
        )

    def record_adjustment(
        self,
        shift_id: str,
        adjustment_type: str,
        amount: Decimal | int | str,
        reason: str,
        receipt_number: str | None = None,
        approved_by: str | None = None,
        idempotency_key: str | None = None,
        actor_id: str | None = None,
    ) -> CashMovement:
        """Shorthand for post_movement with a RecordAdjustment"""
        return self.post_movement(
            shift_id,
            RecordAdjustment(
                adjustment_type=adjustment_type,
                amount=amount,
                reason=reason,
                receipt_number=receipt_number,
                approved_by=approved_by,
                idempotency_key=idempotency_key,
            ),
            actor_id=actor_id,
        )

    @track_command_duration("close_shift")
    def close_shift(
        self,
        shift_id: str,
        closing_declared_cash: Decimal | int | str,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> ReconciliationReport:
        """
        Close an OPEN shift against the operator's declared cash

        The report computed here is stored with the ShiftClosed event and
        is what every later preview returns.

        Raises:
            ShiftNotFound: If the shift is unknown
            ShiftNotOpen: If the shift is already CLOSED
            InvalidAmount: If closing_declared_cash < 0 (shift stays OPEN)
        """
        command = CloseShift(
            shift_id=shift_id,
            closing_declared_cash=closing_declared_cash,
            notes=notes,
        )
        with LogOperation(logger, "close_shift", shift_id=shift_id):
            with self.locks.hold(shift_id):
                shift = self._load(shift_id).shift
                with self.locks.hold(custody_stream(shift.operator_id, shift.device_id)):
                    report = self._with_retry(self._close_once)(
                        command, generate_id(), actor_id or shift.operator_id
                    )
        open_shifts.dec()
        shift_close_difference.observe(float(report.difference))
        logger.info(
            "Shift reconciled",
            shift_id=shift_id,
            movement_count=report.movement_count,
            balanced=report.difference == 0,
        )
        return report

    def _close_once(
        self, command: CloseShift, command_id: str, actor_id: str
    ) -> ReconciliationReport:
        ledger = self._load(command.shift_id)
        shift = ledger.shift
        validate_shift_open(shift)
        validate_non_negative_amount("closing_declared_cash", command.closing_declared_cash)

        report = self._reconcile(ledger, command.closing_declared_cash)
        holder, custody_version = self._custody_state(shift.operator_id, shift.device_id)
        closed, released = self.handlers.handle_close_shift(
            command, command_id, actor_id, ledger, report, custody_version
        )

        writes = [StreamWrite(shift.shift_id, ledger.version, [closed])]
        if holder == shift.shift_id:
            writes.append(StreamWrite(released.stream_id, custody_version, [released]))
        self.event_store.append_batch(writes)

        self.registry.apply_event(closed)
        return report

    # ========== Queries ==========

    def preview_reconciliation(self, shift_id: str) -> ReconciliationReport:
        """
        Reconciliation of the ledger as it stands, without mutating anything

        For a CLOSED shift this is the report recorded at close.

        Raises:
            ShiftNotFound: If the shift is unknown
        """
        ledger = self._load(shift_id)
        if ledger.closing_report is not None:
            return ledger.closing_report
        return self._reconcile(ledger, None)

    def get_shift(self, shift_id: str) -> Shift:
        """
        Raises:
            ShiftNotFound: If the shift is unknown
        """
        return self._load(shift_id).shift

    def movements(self, shift_id: str) -> list[CashMovement]:
        """Ledger entries of a shift in sequence order"""
        return list(self._load(shift_id).movements)

    def find_movement(self, shift_id: str, idempotency_key: str) -> CashMovement | None:
        """
        The movement recorded under an idempotency key, if any

        Raises:
            ShiftNotFound: If the shift is unknown
        """
        return self._load(shift_id).find_by_idempotency_key(idempotency_key)

    def current_shift(self, operator_id: str, device_id: str) -> Shift | None:
        """The OPEN shift of an operator/device pair, if any"""
        holder, _ = self._custody_state(operator_id, device_id)
        if holder is None:
            return None
        return self.get_shift(holder)

    def list_shifts(
        self,
        status: ShiftStatus | None = None,
        operator_id: str | None = None,
    ) -> list[Shift]:
        """List shifts from the registry, newest first"""
        return self.registry.list_shifts(status=status, operator_id=operator_id)

    # ========== Internals ==========

    def _load(self, shift_id: str) -> ShiftLedger:
        events = self.event_store.load_stream(shift_id)
        if not events or events[0].event_type != "ShiftOpened":
            raise ShiftNotFound(shift_id)
        return ShiftLedger.from_events(events)

    def _custody_state(self, operator_id: str, device_id: str) -> tuple[str | None, int]:
        """(shift holding custody or None, custody stream version)"""
        events = self.event_store.load_stream(custody_stream(operator_id, device_id))
        if not events:
            return None, 0
        last = events[-1]
        holder = last.payload["shift_id"] if last.event_type == "CustodyClaimed" else None
        return holder, last.version

    def _reconcile(
        self, ledger: ShiftLedger, declared_cash: Decimal | None
    ) -> ReconciliationReport:
        return reconcile(
            ledger.shift,
            ledger.movements,
            declared_cash=declared_cash,
            cash_methods=self.policy.cash_methods,
            methods=self.policy.accepted_payment_methods,
        )
