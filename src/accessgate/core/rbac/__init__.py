"""RBAC core domain.

Services live in ``accessgate.core.rbac.access`` and
``accessgate.core.rbac.role_service``.
"""

from accessgate.core.rbac.types import (
    WILDCARD,
    AccessDecision,
    Action,
    DefaultRoleName,
    Permission,
    Resource,
    Role,
)

__all__ = [
    "WILDCARD",
    "AccessDecision",
    "Action",
    "DefaultRoleName",
    "Permission",
    "Resource",
    "Role",
]
