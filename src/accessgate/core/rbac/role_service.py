"""Role and permission administration."""

from uuid import UUID

import structlog

from accessgate.core.auth.repository import RBACRepository
from accessgate.core.exceptions import DuplicateIdentity, NotFound, ValidationFailure
from accessgate.core.rbac.types import WILDCARD, Action, DefaultRoleName, Permission, Resource, Role

logger = structlog.get_logger()

# Permissions granted to each seeded role, as (resource, action) pairs.
DEFAULT_ROLE_GRANTS: dict[DefaultRoleName, list[tuple[str, str]]] = {
    DefaultRoleName.SYSTEM_ADMIN: [(WILDCARD, WILDCARD)],
    DefaultRoleName.ORGANIZATION_ADMIN: [
        (Resource.ORGANIZATION.value, WILDCARD),
        (Resource.USER.value, Action.READ.value),
        (Resource.ROLE.value, Action.READ.value),
    ],
    DefaultRoleName.USER: [
        (Resource.USER.value, Action.READ.value),
        (Resource.ORGANIZATION.value, Action.READ.value),
    ],
}

DEFAULT_ROLE_DESCRIPTIONS = {
    DefaultRoleName.SYSTEM_ADMIN: "Full access to every resource",
    DefaultRoleName.ORGANIZATION_ADMIN: "Manages organizations and their members",
    DefaultRoleName.USER: "Assigned to every new principal",
}


class RoleService:
    """Administers roles, permissions and the grants between them."""

    def __init__(self, repo: RBACRepository) -> None:
        """Initialize the service.

        Args:
            repo: RBAC repository holding roles and permissions.
        """
        self._repo = repo

    async def create_permission(
        self,
        name: str,
        resource: str,
        action: str,
        description: str = "",
        organization_id: UUID | None = None,
        is_system_default: bool = False,
    ) -> Permission:
        """Create a permission.

        Args:
            name: Display name.
            resource: Resource name, or ``*`` for every resource.
            action: Action name, or ``*`` for every action.
            description: Optional description.
            organization_id: Scope the permission to one organization.
            is_system_default: Make the permission visible in every organization.

        Returns:
            The created permission.

        Raises:
            ValidationFailure: If a field is empty or the scope is contradictory.
            DuplicateIdentity: If (resource, action, scope) is already taken.
        """
        if not name.strip() or not resource.strip() or not action.strip():
            raise ValidationFailure("Permission name, resource and action are required")
        if is_system_default and organization_id is not None:
            raise ValidationFailure("A system-default permission cannot be organization-scoped")

        existing = await self._repo.get_permission(resource, action, organization_id)
        if existing:
            raise DuplicateIdentity(f"Permission {resource}:{action} already exists")

        permission = await self._repo.create_permission(
            name=name.strip(),
            resource=resource,
            action=action,
            description=description,
            organization_id=organization_id,
            is_system_default=is_system_default,
        )
        logger.info("permission_created", permission_id=str(permission.id), name=permission.name)
        return permission

    async def create_role(
        self,
        name: str,
        description: str = "",
        permission_ids: list[UUID] | None = None,
        organization_id: UUID | None = None,
    ) -> Role:
        """Create a role.

        Roles created here are never system defaults.

        Raises:
            ValidationFailure: If the name is empty or a permission ID is unknown.
            DuplicateIdentity: If the name is taken in the same scope or by a system default.
        """
        name = name.strip()
        if not name:
            raise ValidationFailure("Role name is required")

        if await self._repo.find_role_by_name(name, organization_id):
            raise DuplicateIdentity(f"Role already exists: {name}")

        permission_ids = list(dict.fromkeys(permission_ids or []))
        await self._require_permissions(permission_ids)

        role = await self._repo.create_role(
            name=name,
            description=description,
            permission_ids=permission_ids,
            organization_id=organization_id,
            is_system_default=False,
        )
        logger.info("role_created", role_id=str(role.id), name=role.name)
        return role

    async def add_permissions_to_role(self, role_id: UUID, permission_ids: list[UUID]) -> Role:
        """Union permissions into a role.

        Raises:
            NotFound: If the role does not exist.
            ValidationFailure: If the role is a system default or a permission ID is unknown.
        """
        await self._get_mutable_role(role_id)
        permission_ids = list(dict.fromkeys(permission_ids))
        await self._require_permissions(permission_ids)

        role = await self._repo.add_role_permissions(role_id, permission_ids)
        if not role:
            raise NotFound("Role not found")
        logger.info("role_permissions_added", role_id=str(role_id), count=len(permission_ids))
        return role

    async def remove_permissions_from_role(
        self, role_id: UUID, permission_ids: list[UUID]
    ) -> Role:
        """Pull permissions from a role. Unknown IDs are ignored.

        Raises:
            NotFound: If the role does not exist.
            ValidationFailure: If the role is a system default.
        """
        await self._get_mutable_role(role_id)
        role = await self._repo.remove_role_permissions(role_id, list(permission_ids))
        if not role:
            raise NotFound("Role not found")
        logger.info("role_permissions_removed", role_id=str(role_id), count=len(permission_ids))
        return role

    async def get_role(self, role_id: UUID) -> Role:
        """Get a role by ID.

        Raises:
            NotFound: If the role does not exist.
        """
        role = await self._repo.get_role_by_id(role_id)
        if not role:
            raise NotFound("Role not found")
        return role

    async def list_roles(self, organization_id: UUID | None = None) -> list[Role]:
        """List every role, or the global and org-scoped roles visible in one organization."""
        return await self._repo.list_roles(organization_id)

    async def update_role(
        self, role_id: UUID, name: str | None = None, description: str | None = None
    ) -> Role:
        """Rename or re-describe a role.

        Raises:
            NotFound: If the role does not exist.
            ValidationFailure: If the role is a system default or the new name is empty.
            DuplicateIdentity: If the new name is taken in the role's scope.
        """
        role = await self._get_mutable_role(role_id)
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailure("Role name is required")
            existing = await self._repo.find_role_by_name(name, role.organization_id)
            if existing and existing.id != role_id:
                raise DuplicateIdentity(f"Role already exists: {name}")

        updated = await self._repo.update_role(role_id, name=name, description=description)
        if not updated:
            raise NotFound("Role not found")
        logger.info("role_updated", role_id=str(role_id))
        return updated

    async def delete_role(self, role_id: UUID) -> None:
        """Delete a role.

        Principals still holding the ID keep it; access resolution skips it.

        Raises:
            NotFound: If the role does not exist.
            ValidationFailure: If the role is a system default.
        """
        await self._get_mutable_role(role_id)
        if not await self._repo.delete_role(role_id):
            raise NotFound("Role not found")
        logger.info("role_deleted", role_id=str(role_id))

    async def get_permission(self, permission_id: UUID) -> Permission:
        """Get a permission by ID.

        Raises:
            NotFound: If the permission does not exist.
        """
        found = await self._repo.get_permissions_by_ids([permission_id])
        if not found:
            raise NotFound("Permission not found")
        return found[0]

    async def list_permissions(self, resource: str | None = None) -> list[Permission]:
        """List permissions, optionally only those on one resource."""
        return await self._repo.list_permissions(resource)

    async def delete_permission(self, permission_id: UUID) -> None:
        """Delete a permission.

        Roles still granting the ID keep it; access resolution skips it.

        Raises:
            NotFound: If the permission does not exist.
            ValidationFailure: If the permission is a system default.
        """
        permission = await self.get_permission(permission_id)
        if permission.is_system_default:
            raise ValidationFailure("System-default permissions cannot be deleted")
        if not await self._repo.delete_permission(permission_id):
            raise NotFound("Permission not found")
        logger.info("permission_deleted", permission_id=str(permission_id))

    async def seed_default_roles(self) -> list[Role]:
        """Create the system-default roles if none exist yet.

        Returns:
            The roles created, or an empty list when defaults were already present.
        """
        if await self._repo.count_roles(is_system_default=True) > 0:
            logger.debug("default_roles_present")
            return []

        created: list[Role] = []
        for role_name, grants in DEFAULT_ROLE_GRANTS.items():
            permission_ids = [
                (await self._ensure_default_permission(resource, action)).id
                for resource, action in grants
            ]
            role = await self._repo.create_role(
                name=role_name.value,
                description=DEFAULT_ROLE_DESCRIPTIONS[role_name],
                permission_ids=permission_ids,
                is_system_default=True,
            )
            created.append(role)

        logger.info("default_roles_seeded", roles=[role.name for role in created])
        return created

    async def _ensure_default_permission(self, resource: str, action: str) -> Permission:
        existing = await self._repo.get_permission(resource, action, None)
        if existing:
            return existing
        return await self._repo.create_permission(
            name=f"{resource}:{action}",
            resource=resource,
            action=action,
            is_system_default=True,
        )

    async def _get_mutable_role(self, role_id: UUID) -> Role:
        role = await self._repo.get_role_by_id(role_id)
        if not role:
            raise NotFound("Role not found")
        if role.is_system_default:
            raise ValidationFailure("System-default roles cannot be modified")
        return role

    async def _require_permissions(self, permission_ids: list[UUID]) -> None:
        if not permission_ids:
            return
        found = await self._repo.get_permissions_by_ids(permission_ids)
        known = {permission.id for permission in found}
        missing = [pid for pid in permission_ids if pid not in known]
        if missing:
            raise ValidationFailure(
                "Unknown permission IDs: " + ", ".join(str(pid) for pid in missing)
            )
