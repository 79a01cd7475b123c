"""Organization membership and principal administration."""

from accessgate.core.identity.organizations import (
    AdvisoryResult,
    OrganizationCreated,
    OrganizationService,
)
from accessgate.core.identity.principals import PrincipalPage, PrincipalService

__all__ = [
    "AdvisoryResult",
    "OrganizationCreated",
    "OrganizationService",
    "PrincipalPage",
    "PrincipalService",
]
