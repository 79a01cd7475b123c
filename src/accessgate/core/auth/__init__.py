"""Auth domain types and utilities."""

from accessgate.core.auth.defaults import (
    DefaultRoleResolver,
    StaticDefaultRoleResolver,
    StoreDefaultRoleResolver,
)
from accessgate.core.auth.jwt import (
    TokenConfig,
    create_access_token,
    create_refresh_token,
    decode_token,
    issue_token,
    validate_token,
)
from accessgate.core.auth.password import PasswordPolicy, hash_password, verify_password
from accessgate.core.auth.providers import OAuthProviderConfig, OAuthProviderRegistry
from accessgate.core.auth.repository import AuthRepository, RBACRepository
from accessgate.core.auth.types import (
    AuthProvider,
    AuthResult,
    OAuthIdentity,
    Organization,
    Principal,
    PrincipalSummary,
    TokenClaims,
    TokenType,
)

__all__ = [
    "Principal",
    "PrincipalSummary",
    "Organization",
    "OAuthIdentity",
    "AuthProvider",
    "AuthResult",
    "TokenClaims",
    "TokenType",
    "TokenConfig",
    "issue_token",
    "validate_token",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "hash_password",
    "verify_password",
    "PasswordPolicy",
    "OAuthProviderConfig",
    "OAuthProviderRegistry",
    "DefaultRoleResolver",
    "StaticDefaultRoleResolver",
    "StoreDefaultRoleResolver",
    "AuthRepository",
    "RBACRepository",
]
