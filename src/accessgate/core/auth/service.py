"""Identity service: registration, login, OAuth reconciliation, tokens and passwords."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import UUID

import structlog
from pydantic import EmailStr, TypeAdapter, ValidationError

from accessgate.core.auth.defaults import DefaultRoleResolver
from accessgate.core.auth.jwt import (
    TokenConfig,
    create_access_token,
    create_refresh_token,
    decode_token,
    expiry_timestamp,
)
from accessgate.core.auth.password import (
    DEFAULT_ROUNDS,
    PasswordPolicy,
    hash_password,
    verify_password,
)
from accessgate.core.auth.providers import OAuthProviderRegistry
from accessgate.core.auth.repository import AuthRepository
from accessgate.core.auth.types import (
    AuthProvider,
    AuthResult,
    OAuthIdentity,
    Principal,
    PrincipalSummary,
    TokenClaims,
)
from accessgate.core.exceptions import (
    AccountDisabled,
    DuplicateIdentity,
    HashingFailure,
    InvalidCredentials,
    InvalidToken,
    NotFound,
    PrincipalDisabled,
    ValidationFailure,
)

logger = structlog.get_logger()

_email_adapter: TypeAdapter[str] = TypeAdapter(EmailStr)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class IdentityService:
    """Maps local credentials and external identities to principals and issues tokens."""

    def __init__(
        self,
        repo: AuthRepository,
        token_config: TokenConfig,
        default_roles: DefaultRoleResolver,
        providers: OAuthProviderRegistry | None = None,
        password_policy: PasswordPolicy | None = None,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the service.

        Args:
            repo: Auth repository for store operations.
            token_config: Signing secret, algorithm and token lifetimes.
            default_roles: Supplies the roles attached to new principals.
            providers: OAuth providers accepted for reconciliation.
            password_policy: Rules for new local passwords.
            bcrypt_rounds: bcrypt cost for new password hashes.
            clock: Source of the current time.
        """
        self._repo = repo
        self._token_config = token_config
        self._default_roles = default_roles
        self._providers = providers or OAuthProviderRegistry()
        self._password_policy = password_policy or PasswordPolicy()
        self._bcrypt_rounds = bcrypt_rounds
        self._clock = clock

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> AuthResult:
        """Register a new local principal and return tokens.

        Args:
            username: Desired username.
            email: Email address.
            password: Plain text password.
            first_name: Optional first name.
            last_name: Optional last name.

        Returns:
            Tokens and the created principal.

        Raises:
            ValidationFailure: If the input is malformed or the password breaks policy.
            DuplicateIdentity: If the username or email is already taken.
        """
        username = username.strip()
        if not username:
            raise ValidationFailure("Username is required")
        email = self._validate_email(email)
        self._password_policy.check(password)

        existing = await self._repo.find_principal_by_username_or_email(username, email)
        if existing:
            logger.info("registration_conflict", username=username)
            raise DuplicateIdentity("Username or email already exists")

        password_hash_value = hash_password(password, rounds=self._bcrypt_rounds)
        role_ids = await self._default_roles.default_role_ids()

        try:
            principal = await self._repo.create_principal(
                username=username,
                email=email,
                password_hash=password_hash_value,
                first_name=first_name,
                last_name=last_name,
                auth_provider=AuthProvider.LOCAL.value,
                email_verified=False,
                role_ids=role_ids,
            )
        except DuplicateIdentity:
            # Lost a race against a concurrent registration.
            logger.info("registration_conflict_on_insert", username=username)
            raise DuplicateIdentity("Username or email already exists") from None

        logger.info("principal_registered", principal_id=str(principal.id))
        return self._issue(principal, created=True)

    async def login(self, username: str, password: str) -> AuthResult:
        """Authenticate a local principal and return tokens.

        Args:
            username: Username.
            password: Plain text password.

        Returns:
            Tokens and the authenticated principal.

        Raises:
            InvalidCredentials: If the username is unknown or the password is wrong.
            AccountDisabled: If the credentials are right but the account is disabled.
        """
        principal = await self._repo.get_principal_by_username(
            username, auth_provider=AuthProvider.LOCAL.value
        )
        if not principal:
            raise InvalidCredentials()

        if not principal.password_hash:
            logger.warning("login_without_password_hash", principal_id=str(principal.id))
            raise InvalidCredentials()

        try:
            matches = verify_password(password, principal.password_hash)
        except HashingFailure:
            logger.warning("login_with_malformed_hash", principal_id=str(principal.id))
            raise InvalidCredentials() from None

        if not matches:
            raise InvalidCredentials()

        if not principal.is_active:
            logger.info("login_account_disabled", principal_id=str(principal.id))
            raise AccountDisabled()

        principal = await self._touch_last_login(principal)
        logger.info("principal_logged_in", principal_id=str(principal.id))
        return self._issue(principal)

    async def reconcile_oauth(self, identity: OAuthIdentity) -> AuthResult:
        """Map an external identity to exactly one principal and return tokens.

        An existing principal is matched on (email, provider) or
        (subject id, provider). Principals are never merged across providers.

        Args:
            identity: Identity asserted by a registered OAuth provider.

        Returns:
            Tokens and the matched or newly created principal.

        Raises:
            ValidationFailure: If the provider is unknown or the identity is incomplete.
            AccountDisabled: If the matched principal is disabled.
            DuplicateIdentity: If a new principal would collide with an existing one.
        """
        provider = self._providers.get(identity.provider).name
        if not identity.subject_id:
            raise ValidationFailure("OAuth identity has no subject id")

        existing = await self._repo.find_oauth_principal(
            provider, identity.email or None, identity.subject_id
        )
        if existing:
            if not existing.is_active:
                logger.info("oauth_login_account_disabled", principal_id=str(existing.id))
                raise AccountDisabled()
            principal = await self._touch_last_login(existing)
            logger.info(
                "oauth_principal_matched", principal_id=str(principal.id), provider=provider
            )
            return self._issue(principal)

        if not identity.email:
            raise ValidationFailure("OAuth identity has no email")
        email = self._validate_email(identity.email)
        username = await self._available_username(identity, email)
        role_ids = await self._default_roles.default_role_ids()

        principal = await self._repo.create_principal(
            username=username,
            email=email,
            first_name=identity.first_name,
            last_name=identity.last_name,
            auth_provider=provider,
            external_id=identity.subject_id,
            email_verified=True,
            role_ids=role_ids,
            last_login_at=self._clock(),
        )

        logger.info("oauth_principal_created", principal_id=str(principal.id), provider=provider)
        return self._issue(principal, created=True)

    async def refresh(self, token: str) -> AuthResult:
        """Exchange a valid token for a fresh token pair.

        Accepts access and refresh tokens. The principal is re-read so the
        new claims reflect current roles and organizations.

        Raises:
            InvalidToken: If the token is invalid or its principal no longer exists.
            PrincipalDisabled: If the principal has been disabled.
        """
        claims = decode_token(token, self._token_config, token_type=None, now=self._clock())

        principal = await self._repo.get_principal_by_id(claims.sub)
        if not principal:
            raise InvalidToken()
        if not principal.is_active:
            logger.info("refresh_account_disabled", principal_id=str(principal.id))
            raise PrincipalDisabled()

        return self._issue(principal)

    def validate(self, token: str) -> TokenClaims:
        """Validate an access token and return its claims."""
        return decode_token(token, self._token_config, now=self._clock())

    async def get_principal(self, principal_id: UUID) -> Principal:
        """Get a principal by ID.

        Raises:
            NotFound: If the principal does not exist.
        """
        principal = await self._repo.get_principal_by_id(principal_id)
        if not principal:
            raise NotFound("Principal not found")
        return principal

    async def set_active(self, principal_id: UUID, active: bool) -> PrincipalSummary:
        """Enable or disable a principal.

        Raises:
            NotFound: If the principal does not exist.
        """
        principal = await self._repo.update_principal(principal_id, is_active=active)
        if not principal:
            raise NotFound("Principal not found")
        logger.info("principal_active_changed", principal_id=str(principal_id), active=active)
        return principal.summary()

    async def set_password(self, principal_id: UUID, new_password: str) -> PrincipalSummary:
        """Replace a local principal's password without checking the old one.

        Raises:
            NotFound: If the principal does not exist.
            ValidationFailure: If the principal is not local or the password breaks policy.
        """
        principal = await self.get_principal(principal_id)
        return await self._store_password(principal, new_password)

    async def change_password(
        self, principal_id: UUID, current_password: str, new_password: str
    ) -> PrincipalSummary:
        """Replace a local principal's password after checking the current one.

        Raises:
            NotFound: If the principal does not exist.
            InvalidCredentials: If the current password is wrong.
            ValidationFailure: If the principal is not local or the password breaks policy.
        """
        principal = await self.get_principal(principal_id)
        if principal.auth_provider != AuthProvider.LOCAL.value or not principal.password_hash:
            raise ValidationFailure("Only local accounts have a password")
        try:
            matches = verify_password(current_password, principal.password_hash)
        except HashingFailure:
            logger.warning("password_change_with_malformed_hash", principal_id=str(principal.id))
            raise InvalidCredentials() from None
        if not matches:
            raise InvalidCredentials()
        return await self._store_password(principal, new_password)

    def available_providers(self) -> list[str]:
        """OAuth provider tags accepted by reconcile_oauth."""
        return self._providers.names()

    async def _available_username(self, identity: OAuthIdentity, email: str) -> str:
        # Display names are not unique; fall back to the email, then to a
        # name qualified with the provider subject id.
        display = (identity.display_name or "").strip()
        base = display or email
        candidates = [base, email, f"{base}-{identity.subject_id}"]
        for candidate in dict.fromkeys(candidates):
            if not await self._repo.get_principal_by_username(candidate):
                return candidate
        return candidates[-1]

    async def _store_password(self, principal: Principal, new_password: str) -> PrincipalSummary:
        if principal.auth_provider != AuthProvider.LOCAL.value:
            raise ValidationFailure("Only local accounts have a password")
        self._password_policy.check(new_password)
        password_hash_value = hash_password(new_password, rounds=self._bcrypt_rounds)
        updated = await self._repo.update_principal(principal.id, password_hash=password_hash_value)
        if not updated:
            raise NotFound("Principal not found")
        logger.info("principal_password_changed", principal_id=str(principal.id))
        return updated.summary()

    async def _touch_last_login(self, principal: Principal) -> Principal:
        now = self._clock()
        # last_login_at is strictly increasing per principal.
        if principal.last_login_at is not None and now <= principal.last_login_at:
            now = principal.last_login_at + timedelta(microseconds=1)
        updated = await self._repo.update_principal(principal.id, last_login_at=now)
        return updated or principal.model_copy(update={"last_login_at": now})

    def _issue(self, principal: Principal, created: bool = False) -> AuthResult:
        now = self._clock()
        access_token = create_access_token(principal, self._token_config, now=now)
        refresh_token = create_refresh_token(principal, self._token_config, now=now)
        expires_at = datetime.fromtimestamp(
            expiry_timestamp(now, self._token_config.access_ttl), tz=UTC
        )
        return AuthResult(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_at=expires_at,
            principal=principal.summary(),
            created=created,
        )

    @staticmethod
    def _validate_email(email: str) -> str:
        try:
            return _email_adapter.validate_python(email)
        except ValidationError:
            raise ValidationFailure("Invalid email address") from None
