"""Role API routes: role CRUD and permission grants."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from accessgate.core.auth.types import TokenClaims
from accessgate.core.rbac.role_service import RoleService
from accessgate.core.rbac.types import Role
from accessgate.entrypoints.api.deps import get_role_service
from accessgate.entrypoints.api.middleware.jwt_auth import require_permission

router = APIRouter(prefix="/roles", tags=["roles"])

RoleServiceDep = Annotated[RoleService, Depends(get_role_service)]
CanRead = Annotated[TokenClaims, Depends(require_permission("role", "read"))]
CanCreate = Annotated[TokenClaims, Depends(require_permission("role", "create"))]
CanUpdate = Annotated[TokenClaims, Depends(require_permission("role", "update"))]
CanDelete = Annotated[TokenClaims, Depends(require_permission("role", "delete"))]


class RoleResponse(BaseModel):
    """A role and the permission IDs it grants."""

    id: UUID
    name: str
    description: str = ""
    permission_ids: list[UUID]
    is_system_default: bool
    organization_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        """Build from a domain role."""
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            permission_ids=list(role.permission_ids),
            is_system_default=role.is_system_default,
            organization_id=role.organization_id,
            created_at=role.created_at,
            updated_at=role.updated_at,
        )


class CreateRoleRequest(BaseModel):
    """Role creation request body."""

    name: str
    description: str = ""
    permission_ids: list[UUID] = Field(default_factory=list)
    organization_id: UUID | None = None


class UpdateRoleRequest(BaseModel):
    """Role update request body. Omitted fields are left unchanged."""

    name: str | None = None
    description: str | None = None


class RolePermissionsRequest(BaseModel):
    """Permission IDs to grant or revoke."""

    permission_ids: list[UUID]


@router.get("", response_model=list[RoleResponse])
async def list_roles(
    claims: CanRead,
    service: RoleServiceDep,
    org_id: UUID | None = None,
) -> list[RoleResponse]:
    """List roles. With org_id, only global roles and that organization's roles."""
    roles = await service.list_roles(org_id)
    return [RoleResponse.from_role(role) for role in roles]


@router.post("", response_model=RoleResponse, status_code=201)
async def create_role(
    body: CreateRoleRequest,
    claims: CanCreate,
    service: RoleServiceDep,
) -> RoleResponse:
    """Create a role."""
    role = await service.create_role(
        name=body.name,
        description=body.description,
        permission_ids=body.permission_ids,
        organization_id=body.organization_id,
    )
    return RoleResponse.from_role(role)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(role_id: UUID, claims: CanRead, service: RoleServiceDep) -> RoleResponse:
    """Get a role."""
    return RoleResponse.from_role(await service.get_role(role_id))


@router.patch("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: UUID,
    body: UpdateRoleRequest,
    claims: CanUpdate,
    service: RoleServiceDep,
) -> RoleResponse:
    """Rename or re-describe a role. System-default roles are read-only."""
    role = await service.update_role(role_id, name=body.name, description=body.description)
    return RoleResponse.from_role(role)


@router.delete("/{role_id}", status_code=204, response_class=Response)
async def delete_role(role_id: UUID, claims: CanDelete, service: RoleServiceDep) -> Response:
    """Delete a role. System-default roles cannot be deleted."""
    await service.delete_role(role_id)
    return Response(status_code=204)


@router.post("/{role_id}/permissions", response_model=RoleResponse)
async def add_role_permissions(
    role_id: UUID,
    body: RolePermissionsRequest,
    claims: CanUpdate,
    service: RoleServiceDep,
) -> RoleResponse:
    """Grant permissions to a role."""
    role = await service.add_permissions_to_role(role_id, body.permission_ids)
    return RoleResponse.from_role(role)


@router.delete("/{role_id}/permissions", response_model=RoleResponse)
async def remove_role_permissions(
    role_id: UUID,
    body: RolePermissionsRequest,
    claims: CanUpdate,
    service: RoleServiceDep,
) -> RoleResponse:
    """Revoke permissions from a role. Unknown IDs are ignored."""
    role = await service.remove_permissions_from_role(role_id, body.permission_ids)
    return RoleResponse.from_role(role)
