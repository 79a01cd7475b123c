"""JWT authentication and permission dependencies."""

from collections.abc import Callable
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from accessgate.core.auth.service import IdentityService
from accessgate.core.auth.types import TokenClaims
from accessgate.core.exceptions import InvalidToken
from accessgate.core.rbac.access import AccessResolver
from accessgate.entrypoints.api.deps import get_access_resolver, get_identity_service

logger = structlog.get_logger()

# Use Bearer token authentication
bearer_scheme = HTTPBearer(auto_error=False)


async def verify_jwt(
    request: Request,
    service: Annotated[IdentityService, Depends(get_identity_service)],
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),  # noqa: B008
) -> TokenClaims:
    """Verify the bearer access token and return its claims.

    Args:
        request: The current request.
        service: Identity service holding the token configuration.
        credentials: Bearer token credentials.

    Returns:
        Verified token claims.

    Raises:
        HTTPException: 401 if the token is missing or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = service.validate(credentials.credentials)
    except InvalidToken as e:
        logger.warning("jwt_validation_failed", reason=e.message)
        raise HTTPException(
            status_code=401,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    # Store in request state for downstream use
    request.state.claims = claims
    logger.debug("jwt_verified", principal_id=str(claims.sub))
    return claims


def _org_context(request: Request) -> UUID | None:
    raw = request.path_params.get("org_id") or request.query_params.get("org_id")
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        raise HTTPException(status_code=422, detail="Invalid organization id") from None


def require_permission(resource: str, action: str) -> Callable[..., Any]:
    """Dependency to require a permission on a resource.

    The organization context is taken from an ``org_id`` path or query
    parameter when the route has one.

    Usage:
        @router.delete("/{org_id}")
        async def delete_org(
            claims: Annotated[TokenClaims, Depends(require_permission("organization", "delete"))],
        ):
            ...

    Args:
        resource: Resource name.
        action: Action name.

    Returns:
        Dependency function that validates the permission.
    """

    async def permission_checker(
        request: Request,
        claims: Annotated[TokenClaims, Depends(verify_jwt)],
        resolver: Annotated[AccessResolver, Depends(get_access_resolver)],
    ) -> TokenClaims:
        org_id = _org_context(request)
        decision = await resolver.check_access(list(claims.roles), resource, action, org_id)
        if not decision.allowed:
            logger.info(
                "permission_denied",
                principal_id=str(claims.sub),
                resource=resource,
                action=action,
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permission '{resource}:{action}' required",
            )
        return claims

    return permission_checker
