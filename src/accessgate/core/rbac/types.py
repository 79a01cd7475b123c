"""RBAC domain types."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

WILDCARD = "*"


class DefaultRoleName(str, Enum):
    """Names of the system-default roles."""

    SYSTEM_ADMIN = "system_admin"
    ORGANIZATION_ADMIN = "organization_admin"
    USER = "user"


class Resource(str, Enum):
    """Resources managed by accessgate itself."""

    USER = "user"
    ROLE = "role"
    PERMISSION = "permission"
    ORGANIZATION = "organization"


class Action(str, Enum):
    """Common permission actions."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Permission:
    """A (resource, action) grant, optionally scoped to one organization."""

    id: UUID
    name: str
    resource: str
    action: str
    description: str = ""
    is_system_default: bool = False
    organization_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def visible_in(self, org_id: UUID | None) -> bool:
        """Whether this permission applies in the given organization context."""
        if self.is_system_default:
            return True
        return self.organization_id is not None and self.organization_id == org_id

    def matches(self, resource: str, action: str) -> bool:
        """Whether this permission grants ``action`` on ``resource``."""
        resource_ok = self.resource in (resource, WILDCARD)
        action_ok = self.action in (action, WILDCARD)
        return resource_ok and action_ok


@dataclass(frozen=True)
class Role:
    """A named bundle of permissions."""

    id: UUID
    name: str
    description: str = ""
    permission_ids: tuple[UUID, ...] = ()
    is_system_default: bool = False
    organization_id: UUID | None = None  # None for global roles
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def applies_to(self, org_id: UUID | None) -> bool:
        """Whether the role takes part in resolution for ``org_id``.

        Without an organization context every role applies. With one, roles
        scoped to a different organization are skipped.
        """
        if org_id is None or self.organization_id is None:
            return True
        return self.organization_id == org_id


@dataclass
class AccessDecision:
    """Detailed result of an access check."""

    allowed: bool
    explanation: str
    matched_permission: Permission | None = None
    role_names: list[str] = field(default_factory=list)
