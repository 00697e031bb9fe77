"""
Access Module Handlers - Command→Event transformation

Handlers are the decision-making layer. They:
1. Read current state (directory and assignment projections)
2. Validate invariants
3. Generate events if valid
4. Return events for append to the event store

Stream layout: one stream per operator, sector and street
("operator:<id>", ...), one stream per assignment (its assignment_id).
"""

from parkops.access.commands import (
    ChangeOperatorStatus,
    GrantAssignment,
    RegisterOperator,
    RegisterSector,
    RegisterStreet,
    RevokeAssignment,
)
from parkops.access.directory import TenantDirectory
from parkops.access.events import (
    AssignmentGranted,
    AssignmentRevoked,
    OperatorRegistered,
    OperatorStatusChanged,
    SectorRegistered,
    StreetRegistered,
)
from parkops.access.invariants import (
    require_operator,
    require_sector,
    require_street_in_sector,
    validate_assignment_window,
)
from parkops.access.projections import AssignmentStore
from parkops.kernel.errors import AssignmentNotFound, InvariantViolation
from parkops.kernel.events import Event, create_event
from parkops.kernel.ids import generate_id
from parkops.kernel.time import TimeProvider, ensure_aware


def operator_stream(operator_id: str) -> str:
    return f"operator:{operator_id}"


def sector_stream(sector_id: str) -> str:
    return f"sector:{sector_id}"


def street_stream(street_id: str) -> str:
    return f"street:{street_id}"


class AccessCommandHandlers:
    """
    Command handlers for the access module

    Handlers convert commands into events, enforcing directory and window
    invariants. They depend on projections to get current state.
    """

    def __init__(self, time_provider: TimeProvider) -> None:
        """
        Initialize handlers with dependencies

        Args:
            time_provider: For timestamps (injectable for testing)
        """
        self.time_provider = time_provider

    # ========== Directory ==========

    def handle_register_operator(
        self,
        command: RegisterOperator,
        command_id: str,
        actor_id: str | None,
        directory: TenantDirectory,
    ) -> list[Event]:
        """
        Handle RegisterOperator command

        Raises:
            InvariantViolation: If the operator id is already taken
        """
        if directory.get_operator(command.operator_id) is not None:
            raise InvariantViolation(f"Operator {command.operator_id} already registered")

        now = self.time_provider.now()
        payload = OperatorRegistered(
            operator_id=command.operator_id,
            name=command.name,
            status=command.status,
            registered_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=operator_stream(command.operator_id),
                stream_type="operator",
                event_type="OperatorRegistered",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_change_operator_status(
        self,
        command: ChangeOperatorStatus,
        command_id: str,
        actor_id: str | None,
        directory: TenantDirectory,
        current_version: int,
    ) -> list[Event]:
        """
        Handle ChangeOperatorStatus command

        Setting the status an operator already has produces no event.

        Raises:
            OperatorNotFound: If the operator is unknown
        """
        operator = require_operator(directory, command.operator_id)
        if operator.status == command.status:
            return []

        now = self.time_provider.now()
        payload = OperatorStatusChanged(
            operator_id=command.operator_id,
            old_status=operator.status,
            new_status=command.status,
            changed_at=now,
            changed_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=operator_stream(command.operator_id),
                stream_type="operator",
                event_type="OperatorStatusChanged",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=current_version + 1,
            )
        ]

    def handle_register_sector(
        self,
        command: RegisterSector,
        command_id: str,
        actor_id: str | None,
        directory: TenantDirectory,
    ) -> list[Event]:
        """
        Handle RegisterSector command

        Raises:
            InvariantViolation: If the sector id is already taken
        """
        if directory.get_sector(command.sector_id) is not None:
            raise InvariantViolation(f"Sector {command.sector_id} already registered")

        now = self.time_provider.now()
        payload = SectorRegistered(
            sector_id=command.sector_id,
            name=command.name,
            is_private=command.is_private,
            registered_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=sector_stream(command.sector_id),
                stream_type="sector",
                event_type="SectorRegistered",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_register_street(
        self,
        command: RegisterStreet,
        command_id: str,
        actor_id: str | None,
        directory: TenantDirectory,
    ) -> list[Event]:
        """
        Handle RegisterStreet command

        Raises:
            SectorNotFound: If the parent sector is unknown
            InvariantViolation: If the street id is already taken
        """
        require_sector(directory, command.sector_id)
        if directory.get_street(command.street_id) is not None:
            raise InvariantViolation(f"Street {command.street_id} already registered")

        now = self.time_provider.now()
        payload = StreetRegistered(
            street_id=command.street_id,
            sector_id=command.sector_id,
            name=command.name,
            registered_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=street_stream(command.street_id),
                stream_type="street",
                event_type="StreetRegistered",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=1,
            )
        ]

    # ========== Assignments ==========

    def handle_grant_assignment(
        self,
        command: GrantAssignment,
        command_id: str,
        actor_id: str | None,
        directory: TenantDirectory,
    ) -> list[Event]:
        """
        Handle GrantAssignment command

        Validates:
        - Operator exists (inactive operators may still be granted;
          the resolver refuses them until reactivated)
        - Sector exists, street (if given) exists and lies in the sector
        - valid_to > valid_from when valid_to is given

        Raises:
            OperatorNotFound, SectorNotFound, StreetNotFound,
            InvalidHierarchy, InvalidAssignmentWindow
        """
        valid_from = ensure_aware(command.valid_from)
        valid_to = ensure_aware(command.valid_to) if command.valid_to else None

        require_operator(directory, command.operator_id)
        require_sector(directory, command.sector_id)
        if command.street_id is not None:
            require_street_in_sector(directory, command.street_id, command.sector_id)
        validate_assignment_window(valid_from, valid_to)

        now = self.time_provider.now()
        assignment_id = generate_id()
        payload = AssignmentGranted(
            assignment_id=assignment_id,
            operator_id=command.operator_id,
            sector_id=command.sector_id,
            street_id=command.street_id,
            valid_from=valid_from,
            valid_to=valid_to,
            granted_at=now,
            granted_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=assignment_id,
                stream_type="assignment",
                event_type="AssignmentGranted",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_revoke_assignment(
        self,
        command: RevokeAssignment,
        command_id: str,
        actor_id: str | None,
        assignment_store: AssignmentStore,
        current_version: int,
    ) -> list[Event]:
        """
        Handle RevokeAssignment command

        Records a new end instant. Revoking in the past shortens history as
        seen by later checks; the original grant event stays in the log.

        Raises:
            AssignmentNotFound: If the assignment is unknown
            InvalidAssignmentWindow: If valid_to <= valid_from
        """
        assignment = assignment_store.get(command.assignment_id)
        if assignment is None:
            raise AssignmentNotFound(command.assignment_id)

        valid_to = ensure_aware(command.valid_to)
        validate_assignment_window(assignment.valid_from, valid_to)

        now = self.time_provider.now()
        payload = AssignmentRevoked(
            assignment_id=assignment.assignment_id,
            operator_id=assignment.operator_id,
            sector_id=assignment.sector_id,
            previous_valid_to=assignment.valid_to,
            valid_to=valid_to,
            revoked_at=now,
            revoked_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=assignment.assignment_id,
                stream_type="assignment",
                event_type="AssignmentRevoked",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=current_version + 1,
            )
        ]
