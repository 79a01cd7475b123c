"""Principal administration routes: listing, activation, passwords and roles."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from accessgate.core.auth.service import IdentityService
from accessgate.core.auth.types import PrincipalSummary, TokenClaims
from accessgate.core.identity.principals import PrincipalService
from accessgate.entrypoints.api.deps import get_identity_service, get_principal_service
from accessgate.entrypoints.api.middleware.jwt_auth import require_permission
from accessgate.entrypoints.api.routes.roles import RoleResponse

router = APIRouter(prefix="/principals", tags=["principals"])

PrincipalServiceDep = Annotated[PrincipalService, Depends(get_principal_service)]
IdentityServiceDep = Annotated[IdentityService, Depends(get_identity_service)]
CanRead = Annotated[TokenClaims, Depends(require_permission("user", "read"))]
CanUpdate = Annotated[TokenClaims, Depends(require_permission("user", "update"))]


class PrincipalListResponse(BaseModel):
    """A page of principals."""

    items: list[PrincipalSummary]
    total: int


class SetActiveRequest(BaseModel):
    """Enable or disable request body."""

    active: bool


class SetPasswordRequest(BaseModel):
    """Administrative password reset body."""

    password: str


class AssignRoleRequest(BaseModel):
    """Role grant request body."""

    role_id: UUID


@router.get("", response_model=PrincipalListResponse)
async def list_principals(
    claims: CanRead,
    service: PrincipalServiceDep,
    org_id: UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> PrincipalListResponse:
    """List principals, optionally one organization's members."""
    page = await service.list_principals(org_id, offset=offset, limit=limit)
    return PrincipalListResponse(items=page.items, total=page.total)


@router.get("/{principal_id}", response_model=PrincipalSummary)
async def get_principal(
    principal_id: UUID, claims: CanRead, service: PrincipalServiceDep
) -> PrincipalSummary:
    """Get a principal."""
    return await service.get_principal(principal_id)


@router.put("/{principal_id}/active", response_model=PrincipalSummary)
async def set_active(
    principal_id: UUID,
    body: SetActiveRequest,
    claims: CanUpdate,
    service: IdentityServiceDep,
) -> PrincipalSummary:
    """Enable or disable a principal."""
    return await service.set_active(principal_id, body.active)


@router.post("/{principal_id}/verify-email", response_model=PrincipalSummary)
async def verify_email(
    principal_id: UUID, claims: CanUpdate, service: PrincipalServiceDep
) -> PrincipalSummary:
    """Mark a principal's email address as verified."""
    return await service.verify_email(principal_id)


@router.post("/{principal_id}/password", response_model=PrincipalSummary)
async def set_password(
    principal_id: UUID,
    body: SetPasswordRequest,
    claims: CanUpdate,
    service: IdentityServiceDep,
) -> PrincipalSummary:
    """Replace a local principal's password."""
    return await service.set_password(principal_id, body.password)


@router.get("/{principal_id}/roles", response_model=list[RoleResponse])
async def list_principal_roles(
    principal_id: UUID, claims: CanRead, service: PrincipalServiceDep
) -> list[RoleResponse]:
    """List the roles a principal holds."""
    roles = await service.list_roles(principal_id)
    return [RoleResponse.from_role(role) for role in roles]


@router.post("/{principal_id}/roles", response_model=PrincipalSummary)
async def add_principal_role(
    principal_id: UUID,
    body: AssignRoleRequest,
    claims: CanUpdate,
    service: PrincipalServiceDep,
) -> PrincipalSummary:
    """Grant a role to a principal."""
    return await service.add_role(principal_id, body.role_id)


@router.delete("/{principal_id}/roles/{role_id}", response_model=PrincipalSummary)
async def remove_principal_role(
    principal_id: UUID,
    role_id: UUID,
    claims: CanUpdate,
    service: PrincipalServiceDep,
) -> PrincipalSummary:
    """Revoke a role from a principal."""
    return await service.remove_role(principal_id, role_id)
