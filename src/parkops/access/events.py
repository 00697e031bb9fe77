"""
Access Module Events - Domain events for the directory and assignments

Every change to who may work where is captured as an event, so any past
authorization decision can be re-derived from the log.
"""

from datetime import datetime

from pydantic import BaseModel

from parkops.access.models import OperatorStatus


class OperatorRegistered(BaseModel):
    """An operator joined the tenant directory"""

    operator_id: str
    name: str
    status: OperatorStatus
    registered_at: datetime


class OperatorStatusChanged(BaseModel):
    """An operator was activated or deactivated"""

    operator_id: str
    old_status: OperatorStatus
    new_status: OperatorStatus
    changed_at: datetime
    changed_by: str | None


class SectorRegistered(BaseModel):
    """A sector was registered"""

    sector_id: str
    name: str
    is_private: bool
    registered_at: datetime


class StreetRegistered(BaseModel):
    """A street was registered under a sector"""

    street_id: str
    sector_id: str
    name: str
    registered_at: datetime


class AssignmentGranted(BaseModel):
    """
    An operator was granted a sector (or street) for a window

    Overlapping grants are allowed; the resolver takes their union.
    """

    assignment_id: str
    operator_id: str
    sector_id: str
    street_id: str | None
    valid_from: datetime
    valid_to: datetime | None
    granted_at: datetime
    granted_by: str | None


class AssignmentRevoked(BaseModel):
    """An assignment was given an end instant"""

    assignment_id: str
    operator_id: str
    sector_id: str
    previous_valid_to: datetime | None
    valid_to: datetime
    revoked_at: datetime
    revoked_by: str | None
