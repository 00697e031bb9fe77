"""
Tenant directory - read-only lookups of operators, sectors and streets

The resolver and the shift lifecycle only ever read identity data through
this protocol. The evented DirectoryRegistry is the default implementation;
a deployment backed by another identity service provides its own.
"""

from typing import Protocol

from parkops.access.models import Operator, Sector, Street


class TenantDirectory(Protocol):
    """Lookups return None when the entity is unknown"""

    def get_operator(self, operator_id: str) -> Operator | None:
        ...

    def get_sector(self, sector_id: str) -> Sector | None:
        ...

    def get_street(self, street_id: str) -> Street | None:
        ...
