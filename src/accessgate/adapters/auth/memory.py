"""In-memory implementation of AuthRepository and RBACRepository.

Used by tests and local development. Enforces the same uniqueness rules as
the PostgreSQL schema and hands out copies, so callers never hold a
reference into the store.
"""

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from accessgate.core.auth.types import Organization, Principal
from accessgate.core.exceptions import DuplicateIdentity
from accessgate.core.rbac.types import Permission, Role


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _union(current: list[UUID], extra: list[UUID]) -> list[UUID]:
    return list(dict.fromkeys([*current, *extra]))


class InMemoryAuthStore:
    """Dictionary-backed store for principals, organizations, roles and permissions."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        """Initialize an empty store.

        Args:
            clock: Source of created/updated timestamps.
        """
        self._clock = clock
        self._principals: dict[UUID, Principal] = {}
        self._orgs: dict[UUID, Organization] = {}
        self._roles: dict[UUID, Role] = {}
        self._permissions: dict[UUID, Permission] = {}

    # Principal lookups
    async def get_principal_by_id(self, principal_id: UUID) -> Principal | None:
        """Get principal by ID."""
        return self._copy(self._principals.get(principal_id))

    async def get_principal_by_username(
        self, username: str, auth_provider: str | None = None
    ) -> Principal | None:
        """Get principal by username, optionally restricted to one provider."""
        for principal in self._principals.values():
            if principal.username != username:
                continue
            if auth_provider is None or principal.auth_provider == auth_provider:
                return self._copy(principal)
        return None

    async def find_principal_by_username_or_email(
        self, username: str, email: str
    ) -> Principal | None:
        """Get any principal holding the username OR the email."""
        for principal in self._principals.values():
            if principal.username == username or principal.email == email:
                return self._copy(principal)
        return None

    async def find_oauth_principal(
        self, auth_provider: str, email: str | None, external_id: str
    ) -> Principal | None:
        """Get the principal matching (email, provider) OR (external id, provider)."""
        for principal in self._principals.values():
            if principal.auth_provider != auth_provider:
                continue
            if principal.external_id == external_id or (email and principal.email == email):
                return self._copy(principal)
        return None

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
        for existing in self._principals.values():
            if existing.username == username:
                raise DuplicateIdentity("Username already exists")
            if existing.email == email:
                raise DuplicateIdentity("Email already exists")
            if (
                external_id is not None
                and existing.auth_provider == auth_provider
                and existing.external_id == external_id
            ):
                raise DuplicateIdentity("External identity already linked")

        now = self._clock()
        principal = Principal(
            id=uuid4(),
            username=username,
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=password_hash,
            email_verified=email_verified,
            role_ids=_union([], role_ids or []),
            auth_provider=auth_provider,
            external_id=external_id,
            created_at=now,
            updated_at=now,
            last_login_at=last_login_at,
        )
        self._principals[principal.id] = principal
        return principal.model_copy(deep=True)

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
        fields = {
            "first_name": first_name,
            "last_name": last_name,
            "password_hash": password_hash,
            "is_active": is_active,
            "email_verified": email_verified,
            "last_login_at": last_login_at,
        }
        return self._update_principal(
            principal_id, {key: value for key, value in fields.items() if value is not None}
        )

    async def add_principal_organization(
        self, principal_id: UUID, org_id: UUID
    ) -> Principal | None:
        """Add an organization to the principal's set (no-op if present)."""
        principal = self._principals.get(principal_id)
        if principal is None:
            return None
        return self._update_principal(
            principal_id, {"organization_ids": _union(principal.organization_ids, [org_id])}
        )

    async def remove_principal_organization(
        self, principal_id: UUID, org_id: UUID
    ) -> Principal | None:
        """Pull an organization from the principal's set."""
        principal = self._principals.get(principal_id)
        if principal is None:
            return None
        remaining = [oid for oid in principal.organization_ids if oid != org_id]
        return self._update_principal(principal_id, {"organization_ids": remaining})

    async def add_principal_roles(
        self, principal_id: UUID, role_ids: list[UUID]
    ) -> Principal | None:
        """Union role IDs into the principal's role set, keeping order."""
        principal = self._principals.get(principal_id)
        if principal is None:
            return None
        return self._update_principal(
            principal_id, {"role_ids": _union(principal.role_ids, role_ids)}
        )

    async def remove_principal_role(self, principal_id: UUID, role_id: UUID) -> Principal | None:
        """Pull a role from the principal's role set."""
        principal = self._principals.get(principal_id)
        if principal is None:
            return None
        remaining = [rid for rid in principal.role_ids if rid != role_id]
        return self._update_principal(principal_id, {"role_ids": remaining})

    async def add_organization_to_principals(
        self, principal_ids: list[UUID], org_id: UUID
    ) -> int:
        """Add an organization to several principals. Returns count modified."""
        modified = 0
        for principal_id in dict.fromkeys(principal_ids):
            principal = self._principals.get(principal_id)
            if principal is None or org_id in principal.organization_ids:
                continue
            await self.add_principal_organization(principal_id, org_id)
            modified += 1
        return modified

    async def remove_organization_from_principals(self, org_id: UUID) -> int:
        """Pull an organization from every principal. Returns count modified."""
        modified = 0
        for principal in list(self._principals.values()):
            if org_id in principal.organization_ids:
                await self.remove_principal_organization(principal.id, org_id)
                modified += 1
        return modified

    async def list_organization_members(self, org_id: UUID) -> list[Principal]:
        """Get principals whose organization set contains org_id."""
        return [
            principal.model_copy(deep=True)
            for principal in self._principals.values()
            if org_id in principal.organization_ids
        ]

    async def list_principals(
        self, org_id: UUID | None = None, offset: int = 0, limit: int = 50
    ) -> list[Principal]:
        """Get a page of principals in creation order, optionally one organization's."""
        selected = [
            principal
            for principal in self._principals.values()
            if org_id is None or org_id in principal.organization_ids
        ]
        selected.sort(key=lambda p: (p.created_at, str(p.id)))
        return [p.model_copy(deep=True) for p in selected[offset : offset + limit]]

    async def count_principals(self, org_id: UUID | None = None) -> int:
        """Count principals, optionally only members of one organization."""
        if org_id is None:
            return len(self._principals)
        return sum(1 for p in self._principals.values() if org_id in p.organization_ids)

    # Organization operations
    async def get_org_by_id(self, org_id: UUID) -> Organization | None:
        """Get organization by ID."""
        org = self._orgs.get(org_id)
        return org.model_copy(deep=True) if org else None

    async def get_org_by_name(self, name: str) -> Organization | None:
        """Get organization by name."""
        for org in self._orgs.values():
            if org.name == name:
                return org.model_copy(deep=True)
        return None

    async def get_org_by_domain(self, domain: str) -> Organization | None:
        """Get organization by domain."""
        for org in self._orgs.values():
            if org.domain is not None and org.domain == domain:
                return org.model_copy(deep=True)
        return None

    async def create_org(
        self,
        name: str,
        description: str = "",
        domain: str | None = None,
        admin_ids: list[UUID] | None = None,
    ) -> Organization:
        """Create a new organization."""
        self._check_org_unique(name, domain)
        now = self._clock()
        org = Organization(
            id=uuid4(),
            name=name,
            description=description,
            domain=domain,
            admin_ids=_union([], admin_ids or []),
            created_at=now,
            updated_at=now,
        )
        self._orgs[org.id] = org
        return org.model_copy(deep=True)

    async def update_org(
        self,
        org_id: UUID,
        name: str | None = None,
        description: str | None = None,
        domain: str | None = None,
        is_active: bool | None = None,
    ) -> Organization | None:
        """Update organization fields."""
        if org_id not in self._orgs:
            return None
        self._check_org_unique(name, domain, exclude=org_id)
        fields = {
            "name": name,
            "description": description,
            "domain": domain,
            "is_active": is_active,
        }
        return self._update_org(org_id, {k: v for k, v in fields.items() if v is not None})

    async def delete_org(self, org_id: UUID) -> bool:
        """Delete an organization. Returns False if it did not exist."""
        return self._orgs.pop(org_id, None) is not None

    async def add_org_admin(self, org_id: UUID, principal_id: UUID) -> Organization | None:
        """Add a principal to the organization's admin set."""
        org = self._orgs.get(org_id)
        if org is None:
            return None
        return self._update_org(org_id, {"admin_ids": _union(org.admin_ids, [principal_id])})

    async def remove_org_admin(self, org_id: UUID, principal_id: UUID) -> Organization | None:
        """Pull a principal from the organization's admin set."""
        org = self._orgs.get(org_id)
        if org is None:
            return None
        remaining = [pid for pid in org.admin_ids if pid != principal_id]
        return self._update_org(org_id, {"admin_ids": remaining})

    # Role operations
    async def get_role_by_id(self, role_id: UUID) -> Role | None:
        """Get role by ID."""
        return self._roles.get(role_id)

    async def get_roles_by_ids(self, role_ids: list[UUID]) -> list[Role]:
        """Get the roles that exist among role_ids, in the given order."""
        return [self._roles[rid] for rid in role_ids if rid in self._roles]

    async def get_default_role(self, name: str) -> Role | None:
        """Get the system-default role with this name."""
        for role in self._roles.values():
            if role.is_system_default and role.name == name:
                return role
        return None

    async def find_role_by_name(self, name: str, organization_id: UUID | None) -> Role | None:
        """Get a role with this name in the same scope or among system defaults."""
        for role in self._roles.values():
            if role.name != name:
                continue
            if role.is_system_default or role.organization_id == organization_id:
                return role
        return None

    async def create_role(
        self,
        name: str,
        description: str = "",
        permission_ids: list[UUID] | None = None,
        organization_id: UUID | None = None,
        is_system_default: bool = False,
    ) -> Role:
        """Create a new role."""
        now = self._clock()
        role = Role(
            id=uuid4(),
            name=name,
            description=description,
            permission_ids=tuple(_union([], permission_ids or [])),
            is_system_default=is_system_default,
            organization_id=organization_id,
            created_at=now,
            updated_at=now,
        )
        self._roles[role.id] = role
        return role

    async def add_role_permissions(self, role_id: UUID, permission_ids: list[UUID]) -> Role | None:
        """Union permission IDs into the role."""
        role = self._roles.get(role_id)
        if role is None:
            return None
        updated = replace(
            role,
            permission_ids=tuple(_union(list(role.permission_ids), permission_ids)),
            updated_at=self._clock(),
        )
        self._roles[role_id] = updated
        return updated

    async def remove_role_permissions(
        self, role_id: UUID, permission_ids: list[UUID]
    ) -> Role | None:
        """Pull permission IDs from the role."""
        role = self._roles.get(role_id)
        if role is None:
            return None
        dropped = set(permission_ids)
        updated = replace(
            role,
            permission_ids=tuple(pid for pid in role.permission_ids if pid not in dropped),
            updated_at=self._clock(),
        )
        self._roles[role_id] = updated
        return updated

    async def list_roles(self, organization_id: UUID | None = None) -> list[Role]:
        """Get every role, or the roles that apply in one organization."""
        roles = [
            role
            for role in self._roles.values()
            if organization_id is None or role.organization_id in (None, organization_id)
        ]
        return sorted(roles, key=lambda r: (r.name, str(r.id)))

    async def update_role(
        self, role_id: UUID, name: str | None = None, description: str | None = None
    ) -> Role | None:
        """Update role fields. Returns None if the role is absent."""
        role = self._roles.get(role_id)
        if role is None:
            return None
        fields = {"name": name, "description": description}
        updated = replace(
            role,
            **{k: v for k, v in fields.items() if v is not None},
            updated_at=self._clock(),
        )
        self._roles[role_id] = updated
        return updated

    async def delete_role(self, role_id: UUID) -> bool:
        """Delete a role. Returns False if it did not exist."""
        return self._roles.pop(role_id, None) is not None

    async def count_roles(self, is_system_default: bool | None = None) -> int:
        """Count roles, optionally filtered on the system-default flag."""
        if is_system_default is None:
            return len(self._roles)
        return sum(1 for r in self._roles.values() if r.is_system_default == is_system_default)

    # Permission operations
    async def get_permissions_by_ids(self, permission_ids: list[UUID]) -> list[Permission]:
        """Get the permissions that exist among permission_ids, in the given order."""
        return [self._permissions[pid] for pid in permission_ids if pid in self._permissions]

    async def get_permission(
        self, resource: str, action: str, organization_id: UUID | None
    ) -> Permission | None:
        """Get permission by its unique (resource, action, scope) key."""
        for permission in self._permissions.values():
            if (permission.resource, permission.action, permission.organization_id) == (
                resource,
                action,
                organization_id,
            ):
                return permission
        return None

    async def list_permissions(self, resource: str | None = None) -> list[Permission]:
        """Get all permissions, optionally only those on one resource."""
        permissions = [
            permission
            for permission in self._permissions.values()
            if resource is None or permission.resource == resource
        ]
        return sorted(permissions, key=lambda p: (p.resource, p.action))

    async def delete_permission(self, permission_id: UUID) -> bool:
        """Delete a permission. Returns False if it did not exist."""
        return self._permissions.pop(permission_id, None) is not None

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
        if await self.get_permission(resource, action, organization_id):
            raise DuplicateIdentity(f"Permission {resource}:{action} already exists")
        now = self._clock()
        permission = Permission(
            id=uuid4(),
            name=name,
            resource=resource,
            action=action,
            description=description,
            is_system_default=is_system_default,
            organization_id=organization_id,
            created_at=now,
            updated_at=now,
        )
        self._permissions[permission.id] = permission
        return permission

    # Helpers
    @staticmethod
    def _copy(principal: Principal | None) -> Principal | None:
        return principal.model_copy(deep=True) if principal else None

    def _update_principal(self, principal_id: UUID, fields: dict[str, Any]) -> Principal | None:
        principal = self._principals.get(principal_id)
        if principal is None:
            return None
        updated = principal.model_copy(update={**fields, "updated_at": self._clock()})
        self._principals[principal_id] = updated
        return updated.model_copy(deep=True)

    def _update_org(self, org_id: UUID, fields: dict[str, Any]) -> Organization:
        updated = self._orgs[org_id].model_copy(update={**fields, "updated_at": self._clock()})
        self._orgs[org_id] = updated
        return updated.model_copy(deep=True)

    def _check_org_unique(
        self, name: str | None, domain: str | None, exclude: UUID | None = None
    ) -> None:
        for org in self._orgs.values():
            if org.id == exclude:
                continue
            if name is not None and org.name == name:
                raise DuplicateIdentity("Organization name already exists")
            if domain is not None and org.domain == domain:
                raise DuplicateIdentity("Organization domain already exists")
