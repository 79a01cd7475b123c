"""Permission API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from accessgate.core.auth.types import TokenClaims
from accessgate.core.rbac.role_service import RoleService
from accessgate.entrypoints.api.deps import get_role_service
from accessgate.entrypoints.api.middleware.jwt_auth import require_permission
from accessgate.entrypoints.api.routes.access import PermissionResponse

router = APIRouter(prefix="/permissions", tags=["permissions"])

RoleServiceDep = Annotated[RoleService, Depends(get_role_service)]
CanRead = Annotated[TokenClaims, Depends(require_permission("permission", "read"))]


class CreatePermissionRequest(BaseModel):
    """Permission creation request body."""

    name: str
    resource: str
    action: str
    description: str = ""
    organization_id: UUID | None = None


@router.get("", response_model=list[PermissionResponse])
async def list_permissions(
    claims: CanRead,
    service: RoleServiceDep,
    resource: str | None = None,
) -> list[PermissionResponse]:
    """List permissions, optionally only those on one resource."""
    permissions = await service.list_permissions(resource)
    return [PermissionResponse.from_permission(p) for p in permissions]


@router.post("", response_model=PermissionResponse, status_code=201)
async def create_permission(
    body: CreatePermissionRequest,
    claims: Annotated[TokenClaims, Depends(require_permission("permission", "create"))],
    service: RoleServiceDep,
) -> PermissionResponse:
    """Create a permission. Use ``*`` as resource or action for a wildcard."""
    permission = await service.create_permission(
        name=body.name,
        resource=body.resource,
        action=body.action,
        description=body.description,
        organization_id=body.organization_id,
    )
    return PermissionResponse.from_permission(permission)


@router.get("/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: UUID, claims: CanRead, service: RoleServiceDep
) -> PermissionResponse:
    """Get a permission."""
    return PermissionResponse.from_permission(await service.get_permission(permission_id))


@router.delete("/{permission_id}", status_code=204, response_class=Response)
async def delete_permission(
    permission_id: UUID,
    claims: Annotated[TokenClaims, Depends(require_permission("permission", "delete"))],
    service: RoleServiceDep,
) -> Response:
    """Delete a permission. System-default permissions cannot be deleted."""
    await service.delete_permission(permission_id)
    return Response(status_code=204)
