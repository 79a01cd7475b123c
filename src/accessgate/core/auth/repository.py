"""Repository protocols for store operations.

Each method is a single store round-trip and is atomic on its own. No method
spans collections transactionally.

Implementations raise DuplicateIdentity when an insert or update trips a
uniqueness constraint, and StoreUnavailable when the store itself fails.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from accessgate.core.auth.types import Organization, Principal
from accessgate.core.rbac.types import Permission, Role


@runtime_checkable
class AuthRepository(Protocol):
    """Protocol for principal and organization operations.

    Implementations provide actual store access (PostgreSQL, in-memory).
    """

    # Principal lookups
    async def get_principal_by_id(self, principal_id: UUID) -> Principal | None:
        """Get principal by ID."""
        ...

    async def get_principal_by_username(
        self, username: str, auth_provider: str | None = None
    ) -> Principal | None:
        """Get principal by username, optionally restricted to one provider."""
        ...

    async def find_principal_by_username_or_email(
        self, username: str, email: str
    ) -> Principal | None:
        """Get any principal holding the username OR the email."""
        ...

    async def find_oauth_principal(
        self, auth_provider: str, email: str | None, external_id: str
    ) -> Principal | None:
        """Get the principal matching (email, provider) OR (external id, provider)."""
        ...

    # Principal mutations
    async def create_principal(
        self,
        username: str,
        email: str,
        password_hash: str | None = None,
        first_name: str = "",
        last_name: str = "",
        auth_provider: str = "local",
        external_id: str | None = None,
        email_verified: bool = False,
        role_ids: list[UUID] | None = None,
        last_login_at: datetime | None = None,
    ) -> Principal:
        """Insert a new principal with a generated ID."""
        ...

    async def update_principal(
        self,
        principal_id: UUID,
        first_name: str | None = None,
        last_name: str | None = None,
        password_hash: str | None = None,
        is_active: bool | None = None,
        email_verified: bool | None = None,
        last_login_at: datetime | None = None,
    ) -> Principal | None:
        """Update principal fields. Returns None if the principal is absent."""
        ...

    async def add_principal_organization(
        self, principal_id: UUID, org_id: UUID
    ) -> Principal | None:
        """Add an organization to the principal's set (no-op if present)."""
        ...

    async def remove_principal_organization(
        self, principal_id: UUID, org_id: UUID
    ) -> Principal | None:
        """Pull an organization from the principal's set."""
        ...

    async def add_principal_roles(
        self, principal_id: UUID, role_ids: list[UUID]
    ) -> Principal | None:
        """Union role IDs into the principal's role set, keeping order."""
        ...

    async def remove_principal_role(self, principal_id: UUID, role_id: UUID) -> Principal | None:
        """Pull a role from the principal's role set."""
        ...

    async def add_organization_to_principals(
        self, principal_ids: list[UUID], org_id: UUID
    ) -> int:
        """Add an organization to several principals. Returns count modified."""
        ...

    async def remove_organization_from_principals(self, org_id: UUID) -> int:
        """Pull an organization from every principal. Returns count modified."""
        ...

    async def list_organization_members(self, org_id: UUID) -> list[Principal]:
        """Get principals whose organization set contains org_id."""
        ...

    async def list_principals(
        self, org_id: UUID | None = None, offset: int = 0, limit: int = 50
    ) -> list[Principal]:
        """Get a page of principals in creation order, optionally one organization's."""
        ...

    async def count_principals(self, org_id: UUID | None = None) -> int:
        """Count principals, optionally only members of one organization."""
        ...

    # Organization operations
    async def get_org_by_id(self, org_id: UUID) -> Organization | None:
        """Get organization by ID."""
        ...

    async def get_org_by_name(self, name: str) -> Organization | None:
        """Get organization by name."""
        ...

    async def get_org_by_domain(self, domain: str) -> Organization | None:
        """Get organization by domain."""
        ...

    async def create_org(
        self,
        name: str,
        description: str = "",
        domain: str | None = None,
        admin_ids: list[UUID] | None = None,
    ) -> Organization:
        """Create a new organization."""
        ...

    async def update_org(
        self,
        org_id: UUID,
        name: str | None = None,
        description: str | None = None,
        domain: str | None = None,
        is_active: bool | None = None,
    ) -> Organization | None:
        """Update organization fields."""
        ...

    async def delete_org(self, org_id: UUID) -> bool:
        """Delete an organization. Returns False if it did not exist."""
        ...

    async def add_org_admin(self, org_id: UUID, principal_id: UUID) -> Organization | None:
        """Add a principal to the organization's admin set."""
        ...

    async def remove_org_admin(self, org_id: UUID, principal_id: UUID) -> Organization | None:
        """Pull a principal from the organization's admin set."""
        ...


@runtime_checkable
class RBACRepository(Protocol):
    """Protocol for role and permission operations."""

    # Role operations
    async def get_role_by_id(self, role_id: UUID) -> Role | None:
        """Get role by ID."""
        ...

    async def get_roles_by_ids(self, role_ids: list[UUID]) -> list[Role]:
        """Get the roles that exist among role_ids, in the given order."""
        ...

    async def get_default_role(self, name: str) -> Role | None:
        """Get the system-default role with this name."""
        ...

    async def find_role_by_name(self, name: str, organization_id: UUID | None) -> Role | None:
        """Get a role with this name in the same scope or among system defaults."""
        ...

    async def create_role(
        self,
        name: str,
        description: str = "",
        permission_ids: list[UUID] | None = None,
        organization_id: UUID | None = None,
        is_system_default: bool = False,
    ) -> Role:
        """Create a new role."""
        ...

    async def add_role_permissions(self, role_id: UUID, permission_ids: list[UUID]) -> Role | None:
        """Union permission IDs into the role."""
        ...

    async def remove_role_permissions(
        self, role_id: UUID, permission_ids: list[UUID]
    ) -> Role | None:
        """Pull permission IDs from the role."""
        ...

    async def list_roles(self, organization_id: UUID | None = None) -> list[Role]:
        """Get every role, or the roles that apply in one organization."""
        ...

    async def update_role(
        self, role_id: UUID, name: str | None = None, description: str | None = None
    ) -> Role | None:
        """Update role fields. Returns None if the role is absent."""
        ...

    async def delete_role(self, role_id: UUID) -> bool:
        """Delete a role. Returns False if it did not exist."""
        ...

    async def count_roles(self, is_system_default: bool | None = None) -> int:
        """Count roles, optionally filtered on the system-default flag."""
        ...

    # Permission operations
    async def get_permissions_by_ids(self, permission_ids: list[UUID]) -> list[Permission]:
        """Get the permissions that exist among permission_ids, in the given order."""
        ...

    async def get_permission(
        self, resource: str, action: str, organization_id: UUID | None
    ) -> Permission | None:
        """Get permission by its unique (resource, action, scope) key."""
        ...

    async def list_permissions(self, resource: str | None = None) -> list[Permission]:
        """Get all permissions, optionally only those on one resource."""
        ...

    async def delete_permission(self, permission_id: UUID) -> bool:
        """Delete a permission. Returns False if it did not exist."""
        ...

    async def create_permission(
        self,
        name: str,
        resource: str,
        action: str,
        description: str = "",
        organization_id: UUID | None = None,
        is_system_default: bool = False,
    ) -> Permission:
        """Create a new permission."""
        ...
