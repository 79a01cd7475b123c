"""JWT token creation and validation.

Tokens are compact HMAC-signed JWTs. Validation is stateless: it never
touches the store, so a token stays valid until it expires.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from pydantic import ValidationError

from accessgate.core.auth.types import CLAIMS_VERSION, Principal, TokenClaims, TokenType
from accessgate.core.exceptions import InvalidToken, ValidationFailure

DEFAULT_ALGORITHM = "HS256"
HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
ACCESS_TOKEN_EXPIRE_MINUTES = 15
REFRESH_TOKEN_EXPIRE_DAYS = 7

# Claim presence is enforced by TokenClaims; expiry is checked against the
# caller's clock below.
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_iat": False,
    "verify_nbf": False,
    "require": ["sub", "iat", "exp"],
}


@dataclass(frozen=True)
class TokenConfig:
    """Signing configuration for issued tokens."""

    secret: str
    algorithm: str = DEFAULT_ALGORITHM
    access_ttl: timedelta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    refresh_ttl: timedelta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)

    def __post_init__(self) -> None:
        """Reject configurations that cannot produce a symmetric MAC."""
        if not self.secret:
            raise ValidationFailure("Token secret must not be empty")
        if self.algorithm not in HMAC_ALGORITHMS:
            raise ValidationFailure(f"Unsupported token algorithm: {self.algorithm}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def expiry_timestamp(issued_at: datetime, ttl: timedelta) -> int:
    """NumericDate for a token issued at `issued_at`, rounded up to the next second."""
    return math.ceil((issued_at + ttl).timestamp())


def issue_token(
    principal: Principal,
    secret: str,
    ttl: timedelta,
    *,
    algorithm: str = DEFAULT_ALGORITHM,
    token_type: TokenType = TokenType.ACCESS,
    now: datetime | None = None,
) -> str:
    """Create a signed token for a principal.

    Args:
        principal: Principal whose identity and grants are embedded
        secret: Signing secret
        ttl: Lifetime of the token, must be positive
        algorithm: HMAC algorithm name
        token_type: Access or refresh token
        now: Issue time (defaults to the current UTC time)

    Returns:
        Encoded JWT string

    Raises:
        ValidationFailure: If the ttl is not positive or the algorithm is not HMAC
    """
    if ttl <= timedelta(0):
        raise ValidationFailure("Token ttl must be positive")
    if algorithm not in HMAC_ALGORITHMS:
        raise ValidationFailure(f"Unsupported token algorithm: {algorithm}")

    issued_at = now or _utcnow()

    claims = TokenClaims(
        ver=CLAIMS_VERSION,
        typ=token_type,
        sub=principal.id,
        username=principal.username,
        email=principal.email,
        roles=list(principal.role_ids),
        orgs=list(principal.organization_ids),
        iat=int(issued_at.timestamp()),
        exp=expiry_timestamp(issued_at, ttl),
    )

    return jwt.encode(claims.model_dump(mode="json"), secret, algorithm=algorithm)


def validate_token(
    token: str,
    secret: str,
    *,
    algorithm: str = DEFAULT_ALGORITHM,
    token_type: TokenType | None = TokenType.ACCESS,
    now: datetime | None = None,
) -> TokenClaims:
    """Decode and validate a token.

    Args:
        token: Encoded JWT string
        secret: Signing secret
        algorithm: The only algorithm accepted for this token
        token_type: Required token type, or None to accept any type
        now: Validation time (defaults to the current UTC time)

    Returns:
        Decoded token claims

    Raises:
        InvalidToken: If the token is malformed, tampered with, of the wrong
            type, or expired
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options=_DECODE_OPTIONS,
        )
    except jwt.InvalidTokenError as e:
        raise InvalidToken(f"Invalid token: {e}") from None

    try:
        claims = TokenClaims.model_validate(payload)
    except ValidationError:
        raise InvalidToken("Invalid token: malformed claims") from None

    if claims.ver != CLAIMS_VERSION:
        raise InvalidToken("Invalid token: unsupported claims version")

    if token_type is not None and claims.typ != token_type:
        raise InvalidToken("Invalid token: wrong token type")

    current = (now or _utcnow()).timestamp()
    if current > claims.exp:
        raise InvalidToken("Token has expired")

    return claims


def create_access_token(
    principal: Principal, config: TokenConfig, now: datetime | None = None
) -> str:
    """Create a short-lived access token using the configured settings."""
    return issue_token(
        principal,
        config.secret,
        config.access_ttl,
        algorithm=config.algorithm,
        token_type=TokenType.ACCESS,
        now=now,
    )


def create_refresh_token(
    principal: Principal, config: TokenConfig, now: datetime | None = None
) -> str:
    """Create a long-lived refresh token using the configured settings."""
    return issue_token(
        principal,
        config.secret,
        config.refresh_ttl,
        algorithm=config.algorithm,
        token_type=TokenType.REFRESH,
        now=now,
    )


def decode_token(
    token: str,
    config: TokenConfig,
    token_type: TokenType | None = TokenType.ACCESS,
    now: datetime | None = None,
) -> TokenClaims:
    """Validate a token using the configured settings."""
    return validate_token(
        token,
        config.secret,
        algorithm=config.algorithm,
        token_type=token_type,
        now=now,
    )
