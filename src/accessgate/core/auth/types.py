"""Auth domain types."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# Bumped whenever the signed claim shape changes.
CLAIMS_VERSION = 1


class AuthProvider(str, Enum):
    """Known authentication providers.

    Principals store the provider as a plain tag so providers added to the
    registry at runtime do not need a code change.
    """

    LOCAL = "local"
    GOOGLE = "google"
    GITHUB = "github"


class TokenType(str, Enum):
    """Kinds of signed identity tokens."""

    ACCESS = "access"
    REFRESH = "refresh"


class Principal(BaseModel):
    """Principal (user account) domain model."""

    id: UUID
    username: str
    email: EmailStr
    first_name: str = ""
    last_name: str = ""
    password_hash: str | None = None  # None for OAuth principals
    is_active: bool = True
    email_verified: bool = False
    role_ids: list[UUID] = Field(default_factory=list)
    organization_ids: list[UUID] = Field(default_factory=list)
    auth_provider: str = AuthProvider.LOCAL.value
    external_id: str | None = None  # provider subject id
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None

    @property
    def is_local(self) -> bool:
        """Whether the principal authenticates with a local password."""
        return self.auth_provider == AuthProvider.LOCAL.value

    def summary(self) -> "PrincipalSummary":
        """Public view of the principal, without credentials."""
        return PrincipalSummary(
            id=self.id,
            username=self.username,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            is_active=self.is_active,
            email_verified=self.email_verified,
            role_ids=list(self.role_ids),
            organization_ids=list(self.organization_ids),
            auth_provider=self.auth_provider,
            last_login_at=self.last_login_at,
        )


class PrincipalSummary(BaseModel):
    """Principal fields safe to return to callers."""

    id: UUID
    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    is_active: bool
    email_verified: bool
    role_ids: list[UUID]
    organization_ids: list[UUID]
    auth_provider: str
    last_login_at: datetime | None = None


class Organization(BaseModel):
    """Organization domain model."""

    id: UUID
    name: str
    description: str = ""
    domain: str | None = None
    is_active: bool = True
    admin_ids: list[UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class OAuthIdentity(BaseModel):
    """Identity asserted by an external provider after a completed login."""

    provider: str
    subject_id: str
    email: str | None = None
    first_name: str = ""
    last_name: str = ""
    display_name: str | None = None


class TokenClaims(BaseModel):
    """Signed token claims.

    A fixed structure: decoding rejects payloads with unknown or missing
    claims, so the signature and the shape are versioned together.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    ver: int
    typ: TokenType
    sub: UUID  # principal id
    username: str
    email: str
    roles: list[UUID]
    orgs: list[UUID]
    iat: int  # issued at timestamp
    exp: int  # expiration timestamp

    @property
    def principal_id(self) -> UUID:
        """Principal identifier carried by the token."""
        return self.sub


class AuthResult(BaseModel):
    """Outcome of a successful registration, login, reconciliation or refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    principal: PrincipalSummary
    created: bool = False
