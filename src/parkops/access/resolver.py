"""
Authorization resolver - may operator O act on sector S (street T) at instant t?

Evaluation order matters because each failure has its own error type:
sector, then street and hierarchy, then operator and status. Only then is
the private-sector shortcut taken, and only then are assignments read.

Fun fact: a sector-wide grant covers a street that did not exist when the
grant was issued. Streets come and go; the sector boundary is the contract.
"""

from datetime import datetime

from parkops.access.directory import TenantDirectory
from parkops.access.invariants import (
    require_active_operator,
    require_sector,
    require_street_in_sector,
)
from parkops.access.models import AccessDecision, OperatorAssignment
from parkops.access.projections import AssignmentStore
from parkops.kernel.errors import Unauthorized
from parkops.kernel.logging import get_logger
from parkops.kernel.metrics import access_decisions_total
from parkops.kernel.policy import OperationsPolicy, default_operations_policy
from parkops.kernel.time import TimeProvider, ensure_aware

logger = get_logger(__name__)


class AuthorizationResolver:
    """
    Read-only authorization over the directory and the assignment store

    Never mutates anything; the same inputs at the same instant always
    produce the same decision.
    """

    def __init__(
        self,
        directory: TenantDirectory,
        assignments: AssignmentStore,
        time_provider: TimeProvider,
        policy: OperationsPolicy | None = None,
    ) -> None:
        self.directory = directory
        self.assignments = assignments
        self.time_provider = time_provider
        self.policy = policy or default_operations_policy

    def decide(
        self,
        operator_id: str,
        sector_id: str,
        street_id: str | None = None,
        at: datetime | None = None,
    ) -> AccessDecision:
        """
        Evaluate access and explain the outcome

        Args:
            operator_id: Operator asking to act
            sector_id: Sector of the location
            street_id: Street within the sector (None = sector level)
            at: Instant to evaluate (defaults to the clock's now)

        Returns:
            AccessDecision with the matching assignment ids

        Raises:
            SectorNotFound, StreetNotFound, InvalidHierarchy,
            OperatorNotFound, OperatorInactive
        """
        at = ensure_aware(at) if at is not None else self.time_provider.now()

        sector = require_sector(self.directory, sector_id)
        if street_id is not None:
            require_street_in_sector(self.directory, street_id, sector_id)
        require_active_operator(self.directory, operator_id)

        if sector.is_private:
            access_decisions_total.labels(decision="private_sector").inc()
            return AccessDecision(
                operator_id=operator_id,
                sector_id=sector_id,
                street_id=street_id,
                at=at,
                allowed=True,
                reason="private_sector",
            )

        matching = [
            a
            for a in self.assignments.get_assignments(operator_id, sector_id)
            if a.covers_street(street_id)
            and a.is_effective_at(at, self.policy.assignment_upper_bound_inclusive)
        ]
        allowed = bool(matching)

        access_decisions_total.labels(decision="granted" if allowed else "denied").inc()
        logger.debug(
            "Access evaluated",
            operator_id=operator_id,
            sector_id=sector_id,
            street_id=street_id,
            at=at.isoformat(),
            allowed=allowed,
        )

        return AccessDecision(
            operator_id=operator_id,
            sector_id=sector_id,
            street_id=street_id,
            at=at,
            allowed=allowed,
            reason="assignment" if allowed else "no_assignment",
            assignment_ids=[a.assignment_id for a in matching],
        )

    def can_access(
        self,
        operator_id: str,
        sector_id: str,
        street_id: str | None = None,
        at: datetime | None = None,
    ) -> bool:
        """True iff the operator may act on the location at the instant"""
        return self.decide(operator_id, sector_id, street_id, at).allowed

    def require_access(
        self,
        operator_id: str,
        sector_id: str,
        street_id: str | None = None,
        at: datetime | None = None,
    ) -> None:
        """
        Raises:
            Unauthorized: If no effective assignment covers the location
        """
        if not self.can_access(operator_id, sector_id, street_id, at):
            raise Unauthorized(operator_id, sector_id, street_id)

    def active_assignments(
        self, operator_id: str, at: datetime | None = None
    ) -> list[OperatorAssignment]:
        """Assignments of the operator in effect at the instant, oldest first"""
        at = ensure_aware(at) if at is not None else self.time_provider.now()
        effective = self.assignments.effective_for_operator(
            operator_id, at, self.policy.assignment_upper_bound_inclusive
        )
        return sorted(effective, key=lambda a: (a.valid_from, a.assignment_id))
