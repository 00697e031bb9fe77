"""
Access Module Invariants - pure checks shared by handlers and the resolver

Each check raises the specific error for its failure so callers can tell
an unknown street from a street in the wrong sector.
"""

from datetime import datetime

from parkops.access.directory import TenantDirectory
from parkops.access.models import Operator, Sector, Street
from parkops.kernel.errors import (
    InvalidAssignmentWindow,
    InvalidHierarchy,
    OperatorInactive,
    OperatorNotFound,
    SectorNotFound,
    StreetNotFound,
)


def require_sector(directory: TenantDirectory, sector_id: str) -> Sector:
    """
    Raises:
        SectorNotFound: If the sector is unknown
    """
    sector = directory.get_sector(sector_id)
    if sector is None:
        raise SectorNotFound(sector_id)
    return sector


def require_street_in_sector(
    directory: TenantDirectory, street_id: str, sector_id: str
) -> Street:
    """
    The street must exist and belong to the given sector

    Raises:
        StreetNotFound: If the street is unknown
        InvalidHierarchy: If the street belongs to another sector
    """
    street = directory.get_street(street_id)
    if street is None:
        raise StreetNotFound(street_id)
    if street.sector_id != sector_id:
        raise InvalidHierarchy(street_id, sector_id, street.sector_id)
    return street


def require_operator(directory: TenantDirectory, operator_id: str) -> Operator:
    """
    Raises:
        OperatorNotFound: If the operator is unknown
    """
    operator = directory.get_operator(operator_id)
    if operator is None:
        raise OperatorNotFound(operator_id)
    return operator


def require_active_operator(directory: TenantDirectory, operator_id: str) -> Operator:
    """
    Raises:
        OperatorNotFound: If the operator is unknown
        OperatorInactive: If the operator is not ACTIVE
    """
    operator = require_operator(directory, operator_id)
    if not operator.is_active():
        raise OperatorInactive(operator_id, operator.status.value)
    return operator


def validate_assignment_window(valid_from: datetime, valid_to: datetime | None) -> None:
    """
    An open-ended window is always valid; a closed one must end after it starts

    Raises:
        InvalidAssignmentWindow: If valid_to <= valid_from
    """
    if valid_to is not None and valid_to <= valid_from:
        raise InvalidAssignmentWindow(valid_from.isoformat(), valid_to.isoformat())
