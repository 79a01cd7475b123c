"""Access API routes: effective permissions and access checks."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from accessgate.core.auth.types import TokenClaims
from accessgate.core.rbac.access import AccessResolver
from accessgate.core.rbac.types import Permission
from accessgate.entrypoints.api.deps import get_access_resolver
from accessgate.entrypoints.api.middleware.jwt_auth import verify_jwt

router = APIRouter(prefix="/access", tags=["access"])


class PermissionResponse(BaseModel):
    """A resolved permission."""

    id: UUID
    name: str
    resource: str
    action: str
    description: str = ""
    is_system_default: bool = False
    organization_id: UUID | None = None

    @classmethod
    def from_permission(cls, permission: Permission) -> "PermissionResponse":
        """Build from a domain permission."""
        return cls(
            id=permission.id,
            name=permission.name,
            resource=permission.resource,
            action=permission.action,
            description=permission.description,
            is_system_default=permission.is_system_default,
            organization_id=permission.organization_id,
        )


class AccessCheckRequest(BaseModel):
    """Access check request body."""

    resource: str
    action: str
    org_id: UUID | None = None


class AccessCheckResponse(BaseModel):
    """Outcome of an access check."""

    allowed: bool
    explanation: str
    matched_permission: PermissionResponse | None = None
    role_names: list[str] = []


@router.get("/permissions", response_model=list[PermissionResponse])
async def list_effective_permissions(
    claims: Annotated[TokenClaims, Depends(verify_jwt)],
    resolver: Annotated[AccessResolver, Depends(get_access_resolver)],
    org_id: UUID | None = None,
) -> list[PermissionResponse]:
    """List the caller's effective permissions, optionally in one organization."""
    permissions = await resolver.resolve_for_principal(claims, org_id)
    ordered = sorted(permissions, key=lambda p: (p.resource, p.action, p.name))
    return [PermissionResponse.from_permission(p) for p in ordered]


@router.post("/check", response_model=AccessCheckResponse)
async def check_access(
    body: AccessCheckRequest,
    claims: Annotated[TokenClaims, Depends(verify_jwt)],
    resolver: Annotated[AccessResolver, Depends(get_access_resolver)],
) -> AccessCheckResponse:
    """Check whether the caller may perform an action on a resource."""
    decision = await resolver.check_access(
        list(claims.roles), body.resource, body.action, body.org_id
    )
    matched = decision.matched_permission
    return AccessCheckResponse(
        allowed=decision.allowed,
        explanation=decision.explanation,
        matched_permission=PermissionResponse.from_permission(matched) if matched else None,
        role_names=decision.role_names,
    )
