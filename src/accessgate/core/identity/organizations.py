"""Organization membership and administration.

Membership lives on the principal (its organization set). Organization
creation and deletion each touch principals in a second, best-effort step;
the outcome of that step is returned as an AdvisoryResult instead of being
raised, and the primary change is never rolled back.
"""

from collections.abc import Awaitable
from dataclasses import dataclass
from uuid import UUID

import structlog

from accessgate.core.auth.repository import AuthRepository
from accessgate.core.auth.types import Organization, PrincipalSummary
from accessgate.core.exceptions import (
    DuplicateIdentity,
    NotFound,
    StoreUnavailable,
    ValidationFailure,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class AdvisoryResult:
    """Outcome of a best-effort side mutation."""

    operation: str
    succeeded: bool
    affected: int = 0
    error: str | None = None


@dataclass(frozen=True)
class OrganizationCreated:
    """A created organization plus the admin back-reference outcome."""

    organization: Organization
    advisory: AdvisoryResult


class OrganizationService:
    """Manages organizations, their admins, and principal membership."""

    def __init__(self, repo: AuthRepository) -> None:
        """Initialize the service.

        Args:
            repo: Auth repository holding principals and organizations.
        """
        self._repo = repo

    async def create_organization(
        self,
        name: str,
        description: str = "",
        domain: str | None = None,
        admin_ids: list[UUID] | None = None,
        creator_id: UUID | None = None,
    ) -> OrganizationCreated:
        """Create an organization.

        The creator becomes the only admin when no admin list is given. Each
        admin then gets the organization added to its membership set; that
        step is best-effort.

        Args:
            name: Unique organization name.
            description: Optional description.
            domain: Optional unique domain.
            admin_ids: Explicit admin principal IDs.
            creator_id: Principal performing the creation.

        Returns:
            The organization and the advisory outcome of the admin back-references.

        Raises:
            ValidationFailure: If the name is empty.
            DuplicateIdentity: If the name or domain is already taken.
        """
        name = name.strip()
        if not name:
            raise ValidationFailure("Organization name is required")
        domain = _normalize_domain(domain)

        if await self._repo.get_org_by_name(name):
            raise DuplicateIdentity(f"Organization name already exists: {name}")
        if domain and await self._repo.get_org_by_domain(domain):
            raise DuplicateIdentity(f"Organization domain already exists: {domain}")

        if admin_ids:
            admins = list(dict.fromkeys(admin_ids))
        elif creator_id is not None:
            admins = [creator_id]
        else:
            admins = []

        org = await self._repo.create_org(
            name=name, description=description, domain=domain, admin_ids=admins
        )
        logger.info("organization_created", org_id=str(org.id), admin_count=len(admins))

        if admins:
            advisory = await self._advisory(
                "add_admin_memberships",
                org.id,
                self._repo.add_organization_to_principals(admins, org.id),
            )
        else:
            advisory = AdvisoryResult(operation="add_admin_memberships", succeeded=True)

        return OrganizationCreated(organization=org, advisory=advisory)

    async def update_organization(
        self,
        org_id: UUID,
        name: str | None = None,
        description: str | None = None,
        domain: str | None = None,
        is_active: bool | None = None,
    ) -> Organization:
        """Update organization fields.

        Raises:
            NotFound: If the organization does not exist.
            ValidationFailure: If the new name is empty.
            DuplicateIdentity: If the new name or domain belongs to another organization.
        """
        org = await self.get_organization(org_id)

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailure("Organization name is required")
            if name != org.name:
                other = await self._repo.get_org_by_name(name)
                if other and other.id != org_id:
                    raise DuplicateIdentity(f"Organization name already exists: {name}")

        if domain is not None:
            domain = _normalize_domain(domain)
            if domain and domain != org.domain:
                other = await self._repo.get_org_by_domain(domain)
                if other and other.id != org_id:
                    raise DuplicateIdentity(f"Organization domain already exists: {domain}")

        updated = await self._repo.update_org(
            org_id, name=name, description=description, domain=domain, is_active=is_active
        )
        if not updated:
            raise NotFound("Organization not found")
        logger.info("organization_updated", org_id=str(org_id))
        return updated

    async def delete_organization(self, org_id: UUID) -> AdvisoryResult:
        """Delete an organization and sweep it from every principal.

        Returns:
            Advisory outcome of the membership sweep.

        Raises:
            NotFound: If the organization does not exist.
        """
        if not await self._repo.delete_org(org_id):
            raise NotFound("Organization not found")
        logger.info("organization_deleted", org_id=str(org_id))

        return await self._advisory(
            "remove_memberships",
            org_id,
            self._repo.remove_organization_from_principals(org_id),
        )

    async def get_organization(self, org_id: UUID) -> Organization:
        """Get an organization.

        Raises:
            NotFound: If the organization does not exist.
        """
        org = await self._repo.get_org_by_id(org_id)
        if not org:
            raise NotFound("Organization not found")
        return org

    async def add_member(
        self,
        org_id: UUID,
        principal_id: UUID,
        role_ids: list[UUID] | None = None,
    ) -> PrincipalSummary:
        """Add a principal to an organization, optionally granting roles.

        Adding an existing member is a no-op for the membership itself.

        Raises:
            NotFound: If the organization or the principal does not exist.
        """
        await self.get_organization(org_id)
        if not await self._repo.get_principal_by_id(principal_id):
            raise NotFound("Principal not found")

        principal = await self._repo.add_principal_organization(principal_id, org_id)
        if role_ids:
            principal = await self._repo.add_principal_roles(principal_id, list(role_ids))
        if not principal:
            raise NotFound("Principal not found")

        logger.info("member_added", org_id=str(org_id), principal_id=str(principal_id))
        return principal.summary()

    async def remove_member(self, org_id: UUID, principal_id: UUID) -> PrincipalSummary:
        """Remove a principal from an organization.

        A removed member also loses admin rights on the organization.

        Raises:
            NotFound: If the organization is absent or the principal is not a member.
        """
        org = await self.get_organization(org_id)
        principal = await self._repo.get_principal_by_id(principal_id)
        if not principal or org_id not in principal.organization_ids:
            raise NotFound("Principal is not a member of this organization")

        updated = await self._repo.remove_principal_organization(principal_id, org_id)
        if principal_id in org.admin_ids:
            await self._repo.remove_org_admin(org_id, principal_id)
        if not updated:
            raise NotFound("Principal not found")

        logger.info("member_removed", org_id=str(org_id), principal_id=str(principal_id))
        return updated.summary()

    async def add_admin(self, org_id: UUID, principal_id: UUID) -> Organization:
        """Make a principal an admin, adding membership if needed.

        Raises:
            NotFound: If the organization or the principal does not exist.
        """
        await self.get_organization(org_id)
        if not await self._repo.get_principal_by_id(principal_id):
            raise NotFound("Principal not found")

        await self._repo.add_principal_organization(principal_id, org_id)
        org = await self._repo.add_org_admin(org_id, principal_id)
        if not org:
            raise NotFound("Organization not found")
        logger.info("admin_added", org_id=str(org_id), principal_id=str(principal_id))
        return org

    async def remove_admin(self, org_id: UUID, principal_id: UUID) -> Organization:
        """Revoke admin rights. Membership is kept.

        Raises:
            NotFound: If the organization is absent or the principal is not an admin.
        """
        org = await self.get_organization(org_id)
        if principal_id not in org.admin_ids:
            raise NotFound("Principal is not an admin of this organization")

        updated = await self._repo.remove_org_admin(org_id, principal_id)
        if not updated:
            raise NotFound("Organization not found")
        logger.info("admin_removed", org_id=str(org_id), principal_id=str(principal_id))
        return updated

    async def is_admin(self, org_id: UUID, principal_id: UUID) -> bool:
        """Check if a principal administers an organization."""
        org = await self._repo.get_org_by_id(org_id)
        return bool(org and principal_id in org.admin_ids)

    async def list_admins(self, org_id: UUID) -> list[PrincipalSummary]:
        """List an organization's admins, skipping deleted principals.

        Raises:
            NotFound: If the organization does not exist.
        """
        org = await self.get_organization(org_id)
        admins = []
        for principal_id in org.admin_ids:
            principal = await self._repo.get_principal_by_id(principal_id)
            if principal:
                admins.append(principal.summary())
        return admins

    async def list_members(self, org_id: UUID) -> list[PrincipalSummary]:
        """List an organization's members.

        Raises:
            NotFound: If the organization does not exist.
        """
        await self.get_organization(org_id)
        members = await self._repo.list_organization_members(org_id)
        return [member.summary() for member in members]

    async def get_principal_organizations(self, principal_id: UUID) -> list[Organization]:
        """List the organizations a principal belongs to, skipping deleted ones.

        Raises:
            NotFound: If the principal does not exist.
        """
        principal = await self._repo.get_principal_by_id(principal_id)
        if not principal:
            raise NotFound("Principal not found")

        orgs = []
        for org_id in principal.organization_ids:
            org = await self._repo.get_org_by_id(org_id)
            if org:
                orgs.append(org)
        return orgs

    async def _advisory(
        self, operation: str, org_id: UUID, sweep: Awaitable[int]
    ) -> AdvisoryResult:
        try:
            affected = await sweep
        except StoreUnavailable as e:
            logger.warning(
                "advisory_operation_failed",
                operation=operation,
                org_id=str(org_id),
                error=e.message,
            )
            return AdvisoryResult(operation=operation, succeeded=False, error=e.message)

        logger.info("advisory_operation_completed", operation=operation, affected=affected)
        return AdvisoryResult(operation=operation, succeeded=True, affected=affected)


def _normalize_domain(domain: str | None) -> str | None:
    if domain is None:
        return None
    domain = domain.strip().lower()
    return domain or None
