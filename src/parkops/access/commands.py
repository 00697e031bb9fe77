"""
Access Module Commands - Intentions to change who may work where

Directory commands mirror the tenant's identity data so the core can run
on its own; assignment commands grant and revoke operator-to-location
rights.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from parkops.access.models import OperatorStatus


class RegisterOperator(BaseModel):
    """Register an operator in the tenant directory"""

    operator_id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    status: OperatorStatus = OperatorStatus.ACTIVE


class ChangeOperatorStatus(BaseModel):
    """
    Activate or deactivate an operator

    Deactivation takes effect immediately for every authorization check,
    private sectors included.
    """

    operator_id: str
    status: OperatorStatus


class RegisterSector(BaseModel):
    """Register a sector"""

    sector_id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    is_private: bool = False


class RegisterStreet(BaseModel):
    """Register a street under an existing sector"""

    street_id: str = Field(..., min_length=1, max_length=100)
    sector_id: str
    name: str = Field(..., min_length=1, max_length=200)


class GrantAssignment(BaseModel):
    """
    Grant an operator access to a sector (or one street of it)

    Requirements:
    - Operator, sector and street (if given) must exist
    - Street must belong to the sector
    - valid_to, when given, must come strictly after valid_from
    """

    operator_id: str
    sector_id: str
    street_id: str | None = None
    valid_from: datetime
    valid_to: datetime | None = None


class RevokeAssignment(BaseModel):
    """
    End an assignment at a given instant

    The grant stays in the log; only its valid_to changes.
    """

    assignment_id: str
    valid_to: datetime
