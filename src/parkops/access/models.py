"""
Access Domain Models - who may work where, and when

Operators collect parking fees on streets grouped into sectors. A sector
may be private (a gated lot run by the tenant itself), in which case any
active operator may work it. Public sectors require an assignment.

Key concepts:
- Assignment windows may overlap and may be open-ended
- Several assignments for the same operator/sector are a union, never a conflict
- Revocation records an end instant; grants are never deleted
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class OperatorStatus(str, Enum):
    """
    Operator account states

    Only ACTIVE operators can be authorized, even on private sectors.
    """

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Operator(BaseModel):
    """A person who collects fees and holds cash custody during shifts"""

    operator_id: str
    name: str
    status: OperatorStatus = OperatorStatus.ACTIVE

    def is_active(self) -> bool:
        return self.status == OperatorStatus.ACTIVE


class Sector(BaseModel):
    """A zone of streets; private sectors bypass assignment checks"""

    sector_id: str
    name: str
    is_private: bool = False


class Street(BaseModel):
    """A street; always belongs to exactly one sector"""

    street_id: str
    sector_id: str
    name: str


class OperatorAssignment(BaseModel):
    """
    Grant of an operator to a sector, optionally narrowed to one street

    street_id None means sector-wide: the grant covers every street of the
    sector. valid_to None means open-ended.

    Attributes:
        assignment_id: Unique identifier
        operator_id: Operator being granted
        sector_id: Sector the grant applies to
        street_id: Street within the sector, or None for the whole sector
        valid_from: Instant the grant takes effect
        valid_to: Instant the grant ends (None = until revoked)
    """

    assignment_id: str
    operator_id: str
    sector_id: str
    street_id: str | None = None
    valid_from: datetime
    valid_to: datetime | None = None

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "assignment_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "operator_id": "op-17",
                    "sector_id": "sec-centro",
                    "street_id": None,
                    "valid_from": "2024-06-01T00:00:00Z",
                    "valid_to": "2024-06-30T23:59:59Z",
                }
            ]
        },
    }

    def is_sector_wide(self) -> bool:
        return self.street_id is None

    def covers_street(self, street_id: str | None) -> bool:
        """
        Whether this grant applies to the requested location

        Without a street only sector-wide grants count; with a street, both
        a grant for that exact street and a sector-wide grant count.
        """
        if street_id is None:
            return self.is_sector_wide()
        return self.is_sector_wide() or self.street_id == street_id

    def is_effective_at(self, at: datetime, upper_bound_inclusive: bool = True) -> bool:
        """Temporal match: valid_from <= at, and at is not past valid_to"""
        if self.valid_from > at:
            return False
        if self.valid_to is None:
            return True
        if upper_bound_inclusive:
            return at <= self.valid_to
        return at < self.valid_to


class AccessDecision(BaseModel):
    """Outcome of an authorization check, for audit and CLI display"""

    operator_id: str
    sector_id: str
    street_id: str | None = None
    at: datetime
    allowed: bool
    reason: str = Field(
        ...,
        description="private_sector, assignment, or no_assignment",
    )
    assignment_ids: list[str] = Field(default_factory=list)
