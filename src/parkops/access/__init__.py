"""
Access - operator-to-location authorization

Directory data (operators, sectors, streets), assignment windows and the
resolver that combines them into allow/deny decisions.
"""

from parkops.access.directory import TenantDirectory
from parkops.access.models import (
    AccessDecision,
    Operator,
    OperatorAssignment,
    OperatorStatus,
    Sector,
    Street,
)
from parkops.access.projections import AssignmentStore, DirectoryRegistry
from parkops.access.resolver import AuthorizationResolver

__all__ = [
    "AccessDecision",
    "AssignmentStore",
    "AuthorizationResolver",
    "DirectoryRegistry",
    "Operator",
    "OperatorAssignment",
    "OperatorStatus",
    "Sector",
    "Street",
    "TenantDirectory",
]
