"""
ParkOps - Main façade class

This is the primary interface for the access and custody core. It hides
event sourcing, projections and command handling behind a small API.

Example:
    >>> from parkops import ParkOps
    >>> ops = ParkOps("parkops.db")
    >>> ops.register_operator("op-17", "Ana")
    >>> ops.register_sector("centro", "Centro")
    >>> ops.grant_assignment("op-17", "centro", valid_from=start)
    >>> shift = ops.open_shift("op-17", "pos-3", opening_float="10000")
    >>> ops.capture_payment(shift.shift_id, "CASH", "2500", "pay-1", sector_id="centro")
    >>> report = ops.close_shift(shift.shift_id, closing_declared_cash="12500")
"""

import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from parkops.access.commands import (
    ChangeOperatorStatus,
    GrantAssignment,
    RegisterOperator,
    RegisterSector,
    RegisterStreet,
    RevokeAssignment,
)
from parkops.access.handlers import AccessCommandHandlers, operator_stream
from parkops.access.invariants import require_operator, require_street_in_sector
from parkops.access.models import (
    AccessDecision,
    Operator,
    OperatorAssignment,
    OperatorStatus,
    Sector,
    Street,
)
from parkops.access.projections import (
    ASSIGNMENT_EVENT_TYPES,
    DIRECTORY_EVENT_TYPES,
    AssignmentStore,
    DirectoryRegistry,
)
from parkops.access.resolver import AuthorizationResolver
from parkops.kernel.errors import InvariantViolation, StreetNotFound
from parkops.kernel.event_store import SQLiteEventStore
from parkops.kernel.events import Event
from parkops.kernel.ids import generate_id
from parkops.kernel.logging import get_logger
from parkops.kernel.metrics import open_shifts
from parkops.kernel.policy import OperationsPolicy
from parkops.kernel.time import RealTimeProvider, TimeProvider
from parkops.shift.commands import MovementCommand
from parkops.shift.lifecycle import ShiftLifecycle
from parkops.shift.models import CashMovement, Shift, ShiftStatus
from parkops.shift.projections import SHIFT_EVENT_TYPES, ShiftRegistry
from parkops.shift.reconciliation import ReconciliationReport

logger = get_logger(__name__)


class ParkOps:
    """
    ParkOps main façade

    Provides a unified API for:
    - Tenant directory (operators, sectors, streets)
    - Operator assignments and authorization checks
    - Shift lifecycle and cash ledger
    - Reconciliation reports
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: OperationsPolicy | None = None,
        time_provider: TimeProvider | None = None,
    ) -> None:
        """
        Initialize ParkOps

        Args:
            sqlite_path: Path to SQLite database
            policy: Operations policy (uses defaults if None)
            time_provider: Time provider (uses real time if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or OperationsPolicy()
        self.time_provider = time_provider or RealTimeProvider()

        # Initialize infrastructure
        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.access_handlers = AccessCommandHandlers(self.time_provider)

        # Initialize projections
        self.directory = DirectoryRegistry()
        self.assignments = AssignmentStore()
        self.shift_registry = ShiftRegistry()

        self.resolver = AuthorizationResolver(
            self.directory, self.assignments, self.time_provider, self.policy
        )
        self.lifecycle = ShiftLifecycle(
            self.event_store,
            self.directory,
            self.time_provider,
            self.policy,
            self.shift_registry,
        )

        self._position = 0
        self._refresh_lock = threading.Lock()

        # Rebuild projections from event store
        self.refresh()
        open_shifts.set(self.shift_registry.count_open())

    def refresh(self) -> int:
        """
        Catch projections up with events appended since the last refresh

        Picks up writes made by other processes sharing the database.

        Returns:
            Number of events read
        """
        with self._refresh_lock:
            events = self.event_store.load_all_events(after_position=self._position)
            for event in events:
                self._apply(event)
            if events:
                self._position = events[-1].position or self._position
                logger.debug("Projections refreshed", events=len(events), position=self._position)
        return len(events)

    def _apply(self, event: Event) -> None:
        if event.event_type in DIRECTORY_EVENT_TYPES:
            self.directory.apply_event(event)
        elif event.event_type in ASSIGNMENT_EVENT_TYPES:
            self.assignments.apply_event(event)
        elif event.event_type in SHIFT_EVENT_TYPES:
            self.shift_registry.apply_event(event)

    def _store(self, events: list[Event]) -> None:
        """Store events and update projections"""
        for event in events:
            expected_version = event.version - 1
            self.event_store.append(event.stream_id, expected_version, [event])
            self._apply(event)

    # Directory operations

    def register_operator(
        self,
        operator_id: str,
        name: str,
        status: OperatorStatus = OperatorStatus.ACTIVE,
        actor_id: str = "system",
    ) -> Operator:
        """Register an operator in the tenant directory"""
        self.refresh()
        command = RegisterOperator(operator_id=operator_id, name=name, status=status)
        events = self.access_handlers.handle_register_operator(
            command, generate_id(), actor_id, self.directory
        )
        self._store(events)
        return self.directory.get_operator(operator_id)

    def set_operator_status(
        self,
        operator_id: str,
        status: OperatorStatus,
        actor_id: str = "system",
    ) -> Operator:
        """
        Activate or deactivate an operator

        Raises:
            OperatorNotFound: If the operator is unknown
        """
        self.refresh()
        command = ChangeOperatorStatus(operator_id=operator_id, status=status)
        events = self.access_handlers.handle_change_operator_status(
            command,
            generate_id(),
            actor_id,
            self.directory,
            self.event_store.get_stream_version(operator_stream(operator_id)),
        )
        self._store(events)
        return require_operator(self.directory, operator_id)

    def register_sector(
        self,
        sector_id: str,
        name: str,
        is_private: bool = False,
        actor_id: str = "system",
    ) -> Sector:
        """Register a sector"""
        self.refresh()
        command = RegisterSector(sector_id=sector_id, name=name, is_private=is_private)
        events = self.access_handlers.handle_register_sector(
            command, generate_id(), actor_id, self.directory
        )
        self._store(events)
        return self.directory.get_sector(sector_id)

    def register_street(
        self,
        street_id: str,
        sector_id: str,
        name: str,
        actor_id: str = "system",
    ) -> Street:
        """
        Register a street under a sector

        Raises:
            SectorNotFound: If the sector is unknown
        """
        self.refresh()
        command = RegisterStreet(street_id=street_id, sector_id=sector_id, name=name)
        events = self.access_handlers.handle_register_street(
            command, generate_id(), actor_id, self.directory
        )
        self._store(events)
        return self.directory.get_street(street_id)

    def list_operators(self) -> list[Operator]:
        self.refresh()
        return self.directory.list_operators()

    def list_sectors(self) -> list[Sector]:
        self.refresh()
        return self.directory.list_sectors()

    def list_streets(self, sector_id: str | None = None) -> list[Street]:
        self.refresh()
        return self.directory.list_streets(sector_id)

    # Assignment operations

    def grant_assignment(
        self,
        operator_id: str,
        sector_id: str,
        street_id: str | None = None,
        valid_from: datetime | None = None,
        valid_to: datetime | None = None,
        actor_id: str = "system",
    ) -> OperatorAssignment:
        """
        Grant an operator access to a sector or one of its streets

        Args:
            operator_id: Operator being granted
            sector_id: Sector of the grant
            street_id: Street within the sector (None = whole sector)
            valid_from: Start of the window (defaults to now)
            valid_to: End of the window (None = open-ended)
            actor_id: Actor issuing the grant

        Raises:
            OperatorNotFound, SectorNotFound, StreetNotFound,
            InvalidHierarchy, InvalidAssignmentWindow
        """
        self.refresh()
        command = GrantAssignment(
            operator_id=operator_id,
            sector_id=sector_id,
            street_id=street_id,
            valid_from=valid_from or self.time_provider.now(),
            valid_to=valid_to,
        )
        events = self.access_handlers.handle_grant_assignment(
            command, generate_id(), actor_id, self.directory
        )
        self._store(events)
        return self.assignments.get(events[0].payload["assignment_id"])

    def revoke_assignment(
        self,
        assignment_id: str,
        valid_to: datetime | None = None,
        actor_id: str = "system",
    ) -> OperatorAssignment:
        """
        End an assignment (defaults to now)

        Raises:
            AssignmentNotFound: If the assignment is unknown
            InvalidAssignmentWindow: If valid_to <= valid_from
        """
        self.refresh()
        command = RevokeAssignment(
            assignment_id=assignment_id,
            valid_to=valid_to or self.time_provider.now(),
        )
        events = self.access_handlers.handle_revoke_assignment(
            command,
            generate_id(),
            actor_id,
            self.assignments,
            self.event_store.get_stream_version(assignment_id),
        )
        self._store(events)
        return self.assignments.get(assignment_id)

    def list_assignments(self, operator_id: str) -> list[OperatorAssignment]:
        """Every assignment of an operator, oldest first"""
        self.refresh()
        return sorted(
            self.assignments.list_for_operator(operator_id),
            key=lambda a: (a.valid_from, a.assignment_id),
        )

    def active_assignments(
        self, operator_id: str, at: datetime | None = None
    ) -> list[OperatorAssignment]:
        self.refresh()
        return self.resolver.active_assignments(operator_id, at)

    # Authorization

    def can_access(
        self,
        operator_id: str,
        sector_id: str,
        street_id: str | None = None,
        at: datetime | None = None,
    ) -> bool:
        """May the operator act on the sector (street) at the instant?"""
        self.refresh()
        return self.resolver.can_access(operator_id, sector_id, street_id, at)

    def require_access(
        self,
        operator_id: str,
        sector_id: str,
        street_id: str | None = None,
        at: datetime | None = None,
    ) -> None:
        self.refresh()
        self.resolver.require_access(operator_id, sector_id, street_id, at)

    def explain_access(
        self,
        operator_id: str,
        sector_id: str,
        street_id: str | None = None,
        at: datetime | None = None,
    ) -> AccessDecision:
        """Access decision with its reason and matching assignment ids"""
        self.refresh()
        return self.resolver.decide(operator_id, sector_id, street_id, at)

    # Shift operations

    def open_shift(
        self,
        operator_id: str,
        device_id: str,
        opening_float: Decimal | int | str,
        sector_id: str | None = None,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> Shift:
        self.refresh()
        return self.lifecycle.open_shift(
            operator_id, device_id, opening_float, sector_id, notes, actor_id
        )

    def post_movement(
        self,
        shift_id: str,
        movement: MovementCommand,
        actor_id: str | None = None,
    ) -> CashMovement:
        return self.lifecycle.post_movement(shift_id, movement, actor_id)

    def capture_payment(
        self,
        shift_id: str,
        method: str,
        amount: Decimal | int | str,
        idempotency_key: str,
        sector_id: str | None = None,
        street_id: str | None = None,
        reference: str | None = None,
        actor_id: str | None = None,
    ) -> CashMovement:
        """
        Authorize the shift's operator on the payment location, then post

        The location is the given sector, else the street's sector, else
        the sector the shift was opened in. A key that is already in the
        shift's ledger is a retry: it goes straight to the ledger, which
        returns the recorded movement, and is not authorized again.

        Raises:
            ShiftNotFound: If the shift is unknown
            InvariantViolation: If no location can be determined
            Unauthorized: If the operator may not act on the location
            (and everything post_movement raises)
        """
        shift = self.lifecycle.get_shift(shift_id)
        if self.lifecycle.find_movement(shift_id, idempotency_key) is None:
            self._authorize_payment(shift, sector_id, street_id)

        return self.lifecycle.capture_payment(
            shift_id,
            method,
            amount,
            idempotency_key,
            reference=reference,
            actor_id=actor_id or shift.operator_id,
        )

    def _authorize_payment(
        self, shift: Shift, sector_id: str | None, street_id: str | None
    ) -> None:
        self.refresh()
        if sector_id is None and street_id is not None:
            street = self.directory.get_street(street_id)
            if street is None:
                raise StreetNotFound(street_id)
            sector_id = street.sector_id
        elif sector_id is not None and street_id is not None:
            require_street_in_sector(self.directory, street_id, sector_id)
        sector_id = sector_id or shift.sector_id
        if sector_id is None:
            raise InvariantViolation(
                f"Payment on shift {shift.shift_id} has no sector to authorize against"
            )
        self.resolver.require_access(shift.operator_id, sector_id, street_id)

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
        return self.lifecycle.record_adjustment(
            shift_id,
            adjustment_type,
            amount,
            reason,
            receipt_number=receipt_number,
            approved_by=approved_by,
            idempotency_key=idempotency_key,
            actor_id=actor_id,
        )

    def close_shift(
        self,
        shift_id: str,
        closing_declared_cash: Decimal | int | str,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> ReconciliationReport:
        return self.lifecycle.close_shift(shift_id, closing_declared_cash, notes, actor_id)

    def preview_reconciliation(self, shift_id: str) -> ReconciliationReport:
        return self.lifecycle.preview_reconciliation(shift_id)

    def get_shift(self, shift_id: str) -> Shift:
        return self.lifecycle.get_shift(shift_id)

    def current_shift(self, operator_id: str, device_id: str) -> Shift | None:
        return self.lifecycle.current_shift(operator_id, device_id)

    def list_shifts(
        self,
        status: ShiftStatus | None = None,
        operator_id: str | None = None,
    ) -> list[Shift]:
        self.refresh()
        return self.lifecycle.list_shifts(status, operator_id)

    def movements(self, shift_id: str) -> list[CashMovement]:
        return self.lifecycle.movements(shift_id)

    # Health

    def health(self) -> dict[str, Any]:
        """Counts for the health endpoint and the CLI"""
        self.refresh()
        return {
            "event_count": self.event_store.count_events(),
            "stream_count": self.event_store.count_streams(),
            "operators": len(self.directory.list_operators()),
            "sectors": len(self.directory.list_sectors()),
            "assignments": self.assignments.count(),
            "open_shifts": self.shift_registry.count_open(),
        }
