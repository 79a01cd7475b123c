"""Access resolution: effective permissions and access checks.

Resolution is read-only. A role or permission ID that no longer resolves in
the store is skipped, so a principal with no usable roles simply resolves to
the empty set.
"""

from collections.abc import Iterable
from uuid import UUID

import structlog

from accessgate.core.auth.repository import RBACRepository
from accessgate.core.auth.types import Principal, TokenClaims
from accessgate.core.rbac.types import AccessDecision, Permission, Role

logger = structlog.get_logger()


class AccessResolver:
    """Computes effective permissions from a role set and an organization context."""

    def __init__(self, repo: RBACRepository) -> None:
        """Initialize the resolver.

        Args:
            repo: RBAC repository holding roles and permissions.
        """
        self._repo = repo

    async def resolve_permissions(
        self, role_ids: list[UUID], org_id: UUID | None = None
    ) -> frozenset[Permission]:
        """Resolve the effective permission set.

        The result is the union of the permissions attached to each role,
        keeping only system-default permissions and permissions scoped to
        ``org_id``. Roles scoped to a different organization do not
        contribute when ``org_id`` is given.

        Args:
            role_ids: The principal's role IDs.
            org_id: Organization context, or None for the global context.

        Returns:
            Effective permissions.
        """
        _, permissions = await self._resolve(role_ids, org_id)
        return frozenset(permissions)

    async def resolve_for_principal(
        self, principal: Principal | TokenClaims, org_id: UUID | None = None
    ) -> frozenset[Permission]:
        """Resolve permissions for a principal or for verified token claims."""
        return await self.resolve_permissions(_role_ids_of(principal), org_id)

    async def has_permission(
        self,
        role_ids: list[UUID],
        resource: str,
        action: str,
        org_id: UUID | None = None,
    ) -> bool:
        """Check whether any resolved permission grants ``action`` on ``resource``."""
        decision = await self.check_access(role_ids, resource, action, org_id)
        return decision.allowed

    async def check_access(
        self,
        role_ids: list[UUID],
        resource: str,
        action: str,
        org_id: UUID | None = None,
    ) -> AccessDecision:
        """Check access and explain the outcome.

        Args:
            role_ids: The principal's role IDs.
            resource: Resource name being accessed.
            action: Action being performed.
            org_id: Organization context, or None for the global context.

        Returns:
            Decision with the first matching permission and the names of the
            roles that were considered.
        """
        roles, permissions = await self._resolve(role_ids, org_id)
        role_names = [role.name for role in roles]

        if not roles:
            return AccessDecision(
                allowed=False,
                explanation="No roles apply in this context",
                role_names=role_names,
            )

        for permission in permissions:
            if permission.matches(resource, action):
                logger.debug(
                    "access_granted",
                    resource=resource,
                    action=action,
                    permission=permission.name,
                )
                return AccessDecision(
                    allowed=True,
                    explanation=f"Granted by permission '{permission.name}'",
                    matched_permission=permission,
                    role_names=role_names,
                )

        logger.debug("access_denied", resource=resource, action=action)
        return AccessDecision(
            allowed=False,
            explanation=f"No permission grants {action} on {resource}",
            role_names=role_names,
        )

    async def _resolve(
        self, role_ids: list[UUID], org_id: UUID | None
    ) -> tuple[list[Role], list[Permission]]:
        if not role_ids:
            return [], []

        roles = [
            role
            for role in await self._repo.get_roles_by_ids(_dedupe(role_ids))
            if role.applies_to(org_id)
        ]

        permission_ids = _dedupe(pid for role in roles for pid in role.permission_ids)
        if not permission_ids:
            return roles, []

        permissions = [
            permission
            for permission in await self._repo.get_permissions_by_ids(permission_ids)
            if permission.visible_in(org_id)
        ]
        return roles, permissions


def _role_ids_of(principal: Principal | TokenClaims) -> list[UUID]:
    if isinstance(principal, TokenClaims):
        return list(principal.roles)
    return list(principal.role_ids)


def _dedupe(ids: Iterable[UUID]) -> list[UUID]:
    return list(dict.fromkeys(ids))
