"""Organization API routes: lifecycle, membership and admins."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from accessgate.core.auth.types import Organization, PrincipalSummary, TokenClaims
from accessgate.core.identity.organizations import AdvisoryResult, OrganizationService
from accessgate.entrypoints.api.deps import get_organization_service
from accessgate.entrypoints.api.middleware.jwt_auth import require_permission

router = APIRouter(prefix="/organizations", tags=["organizations"])

CanCreate = Annotated[TokenClaims, Depends(require_permission("organization", "create"))]
CanUpdate = Annotated[TokenClaims, Depends(require_permission("organization", "update"))]
CanRead = Annotated[TokenClaims, Depends(require_permission("organization", "read"))]
CanDelete = Annotated[TokenClaims, Depends(require_permission("organization", "delete"))]
OrganizationServiceDep = Annotated[OrganizationService, Depends(get_organization_service)]


class CreateOrganizationRequest(BaseModel):
    """Organization creation request body."""

    name: str
    description: str = ""
    domain: str | None = None
    admin_ids: list[UUID] = Field(default_factory=list)


class AdvisoryResponse(BaseModel):
    """Outcome of a best-effort follow-up step."""

    operation: str
    succeeded: bool
    affected: int = 0
    error: str | None = None

    @classmethod
    def from_result(cls, result: AdvisoryResult) -> "AdvisoryResponse":
        """Build from a domain advisory result."""
        return cls(
            operation=result.operation,
            succeeded=result.succeeded,
            affected=result.affected,
            error=result.error,
        )


class OrganizationCreatedResponse(BaseModel):
    """Created organization with the admin back-reference outcome."""

    organization: Organization
    advisory: AdvisoryResponse


class UpdateOrganizationRequest(BaseModel):
    """Organization update body. Omitted fields are left unchanged."""

    name: str | None = None
    description: str | None = None
    domain: str | None = None
    is_active: bool | None = None


class AdminRequest(BaseModel):
    """Admin grant request body."""

    principal_id: UUID


class AdminCheckResponse(BaseModel):
    """Whether a principal administers an organization."""

    is_admin: bool


class AddMemberRequest(BaseModel):
    """Membership request body."""

    principal_id: UUID
    role_ids: list[UUID] = Field(default_factory=list)


@router.post("", response_model=OrganizationCreatedResponse, status_code=201)
async def create_organization(
    body: CreateOrganizationRequest,
    claims: CanCreate,
    service: OrganizationServiceDep,
) -> OrganizationCreatedResponse:
    """Create an organization. The caller becomes admin unless admins are listed."""
    created = await service.create_organization(
        name=body.name,
        description=body.description,
        domain=body.domain,
        admin_ids=body.admin_ids,
        creator_id=claims.sub,
    )
    return OrganizationCreatedResponse(
        organization=created.organization,
        advisory=AdvisoryResponse.from_result(created.advisory),
    )


@router.get("/{org_id}", response_model=Organization)
async def get_organization(
    org_id: UUID, claims: CanRead, service: OrganizationServiceDep
) -> Organization:
    """Get an organization."""
    return await service.get_organization(org_id)


@router.patch("/{org_id}", response_model=Organization)
async def update_organization(
    org_id: UUID,
    body: UpdateOrganizationRequest,
    claims: CanUpdate,
    service: OrganizationServiceDep,
) -> Organization:
    """Update an organization."""
    return await service.update_organization(
        org_id,
        name=body.name,
        description=body.description,
        domain=body.domain,
        is_active=body.is_active,
    )

@router.delete("/{org_id}", response_model=AdvisoryResponse)
async def delete_organization(
    org_id: UUID,
    claims: CanDelete,
    service: OrganizationServiceDep,
) -> AdvisoryResponse:
    """Delete an organization and sweep it from its members."""
    result = await service.delete_organization(org_id)
    return AdvisoryResponse.from_result(result)


@router.post("/{org_id}/members", response_model=PrincipalSummary)
async def add_member(
    org_id: UUID,
    body: AddMemberRequest,
    claims: CanUpdate,
    service: OrganizationServiceDep,
) -> PrincipalSummary:
    """Add a principal to an organization, optionally granting roles."""
    return await service.add_member(org_id, body.principal_id, body.role_ids or None)


@router.delete("/{org_id}/members/{principal_id}", response_model=PrincipalSummary)
async def remove_member(
    org_id: UUID,
    principal_id: UUID,
    claims: CanUpdate,
    service: OrganizationServiceDep,
) -> PrincipalSummary:
    """Remove a principal from an organization."""
    return await service.remove_member(org_id, principal_id)


@router.get("/{org_id}/members", response_model=list[PrincipalSummary])
async def list_members(
    org_id: UUID,
    claims: CanRead,
    service: OrganizationServiceDep,
) -> list[PrincipalSummary]:
    """List an organization's members."""
    return await service.list_members(org_id)


@router.get("/{org_id}/admins", response_model=list[PrincipalSummary])
async def list_admins(
    org_id: UUID, claims: CanRead, service: OrganizationServiceDep
) -> list[PrincipalSummary]:
    """List an organization's admins."""
    return await service.list_admins(org_id)


@router.post("/{org_id}/admins", response_model=Organization)
async def add_admin(
    org_id: UUID,
    body: AdminRequest,
    claims: CanUpdate,
    service: OrganizationServiceDep,
) -> Organization:
    """Make a principal an admin, adding membership if needed."""
    return await service.add_admin(org_id, body.principal_id)


@router.delete("/{org_id}/admins/{principal_id}", response_model=Organization)
async def remove_admin(
    org_id: UUID,
    principal_id: UUID,
    claims: CanUpdate,
    service: OrganizationServiceDep,
) -> Organization:
    """Revoke admin rights. Membership is kept."""
    return await service.remove_admin(org_id, principal_id)


@router.get("/{org_id}/admins/{principal_id}", response_model=AdminCheckResponse)
async def check_admin(
    org_id: UUID,
    principal_id: UUID,
    claims: CanRead,
    service: OrganizationServiceDep,
) -> AdminCheckResponse:
    """Check whether a principal administers an organization."""
    return AdminCheckResponse(is_admin=await service.is_admin(org_id, principal_id))
