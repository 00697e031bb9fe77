"""
Access Module Projections - Read Models for authorization

DirectoryRegistry: operators, sectors and streets (implements TenantDirectory)
AssignmentStore: assignment intervals keyed by (operator_id, sector_id)

Both are rebuilt from the event log at start-up and caught up by the façade.
Events at or below a stream's applied version are skipped, so re-applying
an event is harmless.

Request threads read them while a writer applies events, so every access
goes through an RLock and queries hand out copies.
"""

import threading
from datetime import datetime

from parkops.access.models import (
    Operator,
    OperatorAssignment,
    OperatorStatus,
    Sector,
    Street,
)
from parkops.kernel.events import Event

DIRECTORY_EVENT_TYPES = frozenset(
    {"OperatorRegistered", "OperatorStatusChanged", "SectorRegistered", "StreetRegistered"}
)
ASSIGNMENT_EVENT_TYPES = frozenset({"AssignmentGranted", "AssignmentRevoked"})


class DirectoryRegistry:
    """
    Tenant directory projection

    Built from events: OperatorRegistered, OperatorStatusChanged,
                       SectorRegistered, StreetRegistered

    Query methods: get_operator, get_sector, get_street, list_*
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.operators: dict[str, Operator] = {}
        self.sectors: dict[str, Sector] = {}
        self.streets: dict[str, Street] = {}
        self._versions: dict[str, int] = {}

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Args:
            event: Event to apply
        """
        payload = event.payload
        with self._lock:
            if event.version <= self._versions.get(event.stream_id, 0):
                return
            self._versions[event.stream_id] = event.version

            if event.event_type == "OperatorRegistered":
                self.operators[payload["operator_id"]] = Operator(
                    operator_id=payload["operator_id"],
                    name=payload["name"],
                    status=OperatorStatus(payload["status"]),
                )
            elif event.event_type == "OperatorStatusChanged":
                operator = self.operators.get(payload["operator_id"])
                if operator is not None:
                    self.operators[operator.operator_id] = operator.model_copy(
                        update={"status": OperatorStatus(payload["new_status"])}
                    )
            elif event.event_type == "SectorRegistered":
                self.sectors[payload["sector_id"]] = Sector(
                    sector_id=payload["sector_id"],
                    name=payload["name"],
                    is_private=payload["is_private"],
                )
            elif event.event_type == "StreetRegistered":
                self.streets[payload["street_id"]] = Street(
                    street_id=payload["street_id"],
                    sector_id=payload["sector_id"],
                    name=payload["name"],
                )

    # ========== Query Methods ==========

    def get_operator(self, operator_id: str) -> Operator | None:
        with self._lock:
            return self.operators.get(operator_id)

    def get_sector(self, sector_id: str) -> Sector | None:
        with self._lock:
            return self.sectors.get(sector_id)

    def get_street(self, street_id: str) -> Street | None:
        with self._lock:
            return self.streets.get(street_id)

    def list_operators(self) -> list[Operator]:
        with self._lock:
            return sorted(self.operators.values(), key=lambda o: o.operator_id)

    def list_sectors(self) -> list[Sector]:
        with self._lock:
            return sorted(self.sectors.values(), key=lambda s: s.sector_id)

    def list_streets(self, sector_id: str | None = None) -> list[Street]:
        """List streets, optionally only those of one sector"""
        with self._lock:
            streets = [
                s
                for s in self.streets.values()
                if sector_id is None or s.sector_id == sector_id
            ]
        return sorted(streets, key=lambda s: s.street_id)


class AssignmentStore:
    """
    Assignment projection - interval lists per (operator, sector)

    Built from events: AssignmentGranted, AssignmentRevoked

    Query methods: get, get_assignments, list_for_operator, effective_for_operator
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_id: dict[str, OperatorAssignment] = {}
        self._by_key: dict[tuple[str, str], list[str]] = {}
        self._versions: dict[str, int] = {}

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Args:
            event: Event to apply
        """
        with self._lock:
            if event.version <= self._versions.get(event.stream_id, 0):
                return
            self._versions[event.stream_id] = event.version

            if event.event_type == "AssignmentGranted":
                self._apply_assignment_granted(event)
            elif event.event_type == "AssignmentRevoked":
                self._apply_assignment_revoked(event)

    def _apply_assignment_granted(self, event: Event) -> None:
        """Apply AssignmentGranted event"""
        assignment = OperatorAssignment.model_validate(
            {
                key: event.payload[key]
                for key in (
                    "assignment_id",
                    "operator_id",
                    "sector_id",
                    "street_id",
                    "valid_from",
                    "valid_to",
                )
            }
        )
        key = (assignment.operator_id, assignment.sector_id)
        with self._lock:
            if assignment.assignment_id not in self._by_id:
                self._by_key.setdefault(key, []).append(assignment.assignment_id)
            self._by_id[assignment.assignment_id] = assignment

    def _apply_assignment_revoked(self, event: Event) -> None:
        """Apply AssignmentRevoked event"""
        payload = event.payload
        with self._lock:
            assignment = self._by_id.get(payload["assignment_id"])
            if assignment is not None:
                self._by_id[assignment.assignment_id] = OperatorAssignment.model_validate(
                    {**assignment.model_dump(), "valid_to": payload["valid_to"]}
                )

    # ========== Query Methods ==========

    def get(self, assignment_id: str) -> OperatorAssignment | None:
        with self._lock:
            return self._by_id.get(assignment_id)

    def get_assignments(self, operator_id: str, sector_id: str) -> list[OperatorAssignment]:
        """Every assignment (past, current, future) for the operator/sector pair"""
        with self._lock:
            ids = self._by_key.get((operator_id, sector_id), [])
            return [self._by_id[assignment_id] for assignment_id in ids]

    def list_for_operator(self, operator_id: str) -> list[OperatorAssignment]:
        with self._lock:
            return [a for a in self._by_id.values() if a.operator_id == operator_id]

    def effective_for_operator(
        self, operator_id: str, at: datetime, upper_bound_inclusive: bool = True
    ) -> list[OperatorAssignment]:
        """Assignments of the operator in effect at the given instant"""
        return [
            a
            for a in self.list_for_operator(operator_id)
            if a.is_effective_at(at, upper_bound_inclusive)
        ]

    def count(self) -> int:
        with self._lock:
            return len(self._by_id)
