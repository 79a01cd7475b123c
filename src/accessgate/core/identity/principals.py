"""Principal administration: listing, role grants and email verification."""

from dataclasses import dataclass
from uuid import UUID

import structlog

from accessgate.core.auth.repository import AuthRepository, RBACRepository
from accessgate.core.auth.types import Principal, PrincipalSummary
from accessgate.core.exceptions import NotFound, ValidationFailure
from accessgate.core.rbac.types import Role

logger = structlog.get_logger()

MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class PrincipalPage:
    """One page of principals plus the total matching count."""

    items: list[PrincipalSummary]
    total: int


class PrincipalService:
    """Lists principals and edits their role sets."""

    def __init__(self, auth_repo: AuthRepository, rbac_repo: RBACRepository) -> None:
        """Initialize the service.

        Args:
            auth_repo: Auth repository holding principals.
            rbac_repo: RBAC repository holding roles.
        """
        self._auth_repo = auth_repo
        self._rbac_repo = rbac_repo

    async def list_principals(
        self, org_id: UUID | None = None, offset: int = 0, limit: int = 50
    ) -> PrincipalPage:
        """Get a page of principals, optionally one organization's members.

        Raises:
            ValidationFailure: If offset is negative or limit is outside 1..MAX_PAGE_SIZE.
        """
        if offset < 0:
            raise ValidationFailure("Offset must not be negative")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationFailure(f"Limit must be between 1 and {MAX_PAGE_SIZE}")

        principals = await self._auth_repo.list_principals(org_id, offset=offset, limit=limit)
        total = await self._auth_repo.count_principals(org_id)
        return PrincipalPage(items=[p.summary() for p in principals], total=total)

    async def get_principal(self, principal_id: UUID) -> PrincipalSummary:
        """Get a principal's public view.

        Raises:
            NotFound: If the principal does not exist.
        """
        return (await self._require(principal_id)).summary()

    async def add_role(self, principal_id: UUID, role_id: UUID) -> PrincipalSummary:
        """Grant a role. Granting a held role is a no-op.

        Raises:
            NotFound: If the principal or the role does not exist.
        """
        await self._require(principal_id)
        if not await self._rbac_repo.get_role_by_id(role_id):
            raise NotFound("Role not found")

        updated = await self._auth_repo.add_principal_roles(principal_id, [role_id])
        if not updated:
            raise NotFound("Principal not found")
        logger.info("principal_role_added", principal_id=str(principal_id), role_id=str(role_id))
        return updated.summary()

    async def remove_role(self, principal_id: UUID, role_id: UUID) -> PrincipalSummary:
        """Revoke a role.

        Raises:
            NotFound: If the principal does not exist or does not hold the role.
        """
        principal = await self._require(principal_id)
        if role_id not in principal.role_ids:
            raise NotFound("Principal does not hold this role")

        updated = await self._auth_repo.remove_principal_role(principal_id, role_id)
        if not updated:
            raise NotFound("Principal not found")
        logger.info(
            "principal_role_removed", principal_id=str(principal_id), role_id=str(role_id)
        )
        return updated.summary()

    async def list_roles(self, principal_id: UUID) -> list[Role]:
        """List the roles a principal holds, skipping deleted ones.

        Raises:
            NotFound: If the principal does not exist.
        """
        principal = await self._require(principal_id)
        return await self._rbac_repo.get_roles_by_ids(principal.role_ids)

    async def verify_email(self, principal_id: UUID) -> PrincipalSummary:
        """Mark a principal's email address as verified.

        Raises:
            NotFound: If the principal does not exist.
        """
        updated = await self._auth_repo.update_principal(principal_id, email_verified=True)
        if not updated:
            raise NotFound("Principal not found")
        logger.info("principal_email_verified", principal_id=str(principal_id))
        return updated.summary()

    async def _require(self, principal_id: UUID) -> Principal:
        principal = await self._auth_repo.get_principal_by_id(principal_id)
        if not principal:
            raise NotFound("Principal not found")
        return principal
