"""Auth API routes for registration, login, token refresh and password changes."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr

from accessgate.core.auth.service import IdentityService
from accessgate.core.auth.types import AuthResult, PrincipalSummary, TokenClaims
from accessgate.entrypoints.api.deps import get_identity_service
from accessgate.entrypoints.api.middleware.jwt_auth import verify_jwt

router = APIRouter(prefix="/auth", tags=["auth"])


# Request/Response models
class RegisterRequest(BaseModel):
    """Registration request body."""

    username: str
    email: EmailStr
    password: str
    first_name: str = ""
    last_name: str = ""


class LoginRequest(BaseModel):
    """Login request body."""

    username: str
    password: str


class RefreshRequest(BaseModel):
    """Token refresh request body."""

    refresh_token: str


class ChangePasswordRequest(BaseModel):
    """Password change request body."""

    current_password: str
    new_password: str


class ProvidersResponse(BaseModel):
    """OAuth providers accepted by this deployment."""

    providers: list[str]


@router.post("/register", response_model=AuthResult, status_code=201)
async def register(
    body: RegisterRequest,
    service: Annotated[IdentityService, Depends(get_identity_service)],
) -> AuthResult:
    """Register a new local principal.

    Args:
        body: Registration info.
        service: Identity service.

    Returns:
        Access and refresh tokens with the principal summary.
    """
    return await service.register(
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )


@router.post("/login", response_model=AuthResult)
async def login(
    body: LoginRequest,
    service: Annotated[IdentityService, Depends(get_identity_service)],
) -> AuthResult:
    """Authenticate with username and password.

    Args:
        body: Login credentials.
        service: Identity service.

    Returns:
        Access and refresh tokens with the principal summary.
    """
    return await service.login(username=body.username, password=body.password)


@router.post("/refresh", response_model=AuthResult)
async def refresh(
    body: RefreshRequest,
    service: Annotated[IdentityService, Depends(get_identity_service)],
) -> AuthResult:
    """Exchange a valid token for a fresh token pair."""
    return await service.refresh(body.refresh_token)


@router.get("/me", response_model=PrincipalSummary)
async def get_current_principal(
    claims: Annotated[TokenClaims, Depends(verify_jwt)],
    service: Annotated[IdentityService, Depends(get_identity_service)],
) -> PrincipalSummary:
    """Get the authenticated principal."""
    principal = await service.get_principal(claims.sub)
    return principal.summary()


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(
    service: Annotated[IdentityService, Depends(get_identity_service)],
) -> ProvidersResponse:
    """List the OAuth providers that can be reconciled."""
    return ProvidersResponse(providers=service.available_providers())


@router.put("/password", response_model=PrincipalSummary)
async def change_password(
    body: ChangePasswordRequest,
    claims: Annotated[TokenClaims, Depends(verify_jwt)],
    service: Annotated[IdentityService, Depends(get_identity_service)],
) -> PrincipalSummary:
    """Change the authenticated principal's password."""
    return await service.change_password(
        claims.sub, current_password=body.current_password, new_password=body.new_password
    )
