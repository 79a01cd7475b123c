"""Tests for the identity service."""

from collections.abc import Callable
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from accessgate.core.auth.defaults import StaticDefaultRoleResolver
from accessgate.core.auth.jwt import TokenConfig, decode_token
from accessgate.core.auth.password import PasswordPolicy, hash_password
from accessgate.core.auth.providers import OAuthProviderRegistry
from accessgate.core.auth.service import IdentityService
from accessgate.core.auth.types import OAuthIdentity, Principal, TokenType
from accessgate.core.exceptions import (
    AccountDisabled,
    DuplicateIdentity,
    InvalidCredentials,
    InvalidToken,
    NotFound,
    StoreUnavailable,
    ValidationFailure,
)


@pytest.fixture
def mock_repo() -> MagicMock:
    """Create mock repository."""
    return MagicMock()


@pytest.fixture
def default_role_id() -> UUID:
    """ID of the default role."""
    return uuid4()


@pytest.fixture
def service(
    mock_repo: MagicMock,
    token_config: TokenConfig,
    providers: OAuthProviderRegistry,
    clock: Any,
    default_role_id: UUID,
) -> IdentityService:
    """Create service with mock repo."""
    return IdentityService(
        repo=mock_repo,
        token_config=token_config,
        default_roles=StaticDefaultRoleResolver([default_role_id]),
        providers=providers,
        bcrypt_rounds=4,
        clock=clock,
    )


class TestRegister:
    """Test local registration."""

    async def test_register_success(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
        default_role_id: UUID,
    ) -> None:
        """Should create the principal with the default role and return tokens."""
        created = make_principal(
            username="bob", email="bob@example.com", role_ids=[default_role_id]
        )
        mock_repo.find_principal_by_username_or_email = AsyncMock(return_value=None)
        mock_repo.create_principal = AsyncMock(return_value=created)

        result = await service.register("bob", "bob@example.com", "pw123")

        assert result.created is True
        assert result.principal.id == created.id
        kwargs = mock_repo.create_principal.call_args.kwargs
        assert kwargs["role_ids"] == [default_role_id]
        assert kwargs["email_verified"] is False
        assert kwargs["auth_provider"] == "local"
        assert kwargs["password_hash"].startswith("$2b$")
        assert kwargs["password_hash"] != "pw123"  # pragma: allowlist secret

    async def test_register_conflict(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Should raise DuplicateIdentity when username or email is taken."""
        mock_repo.find_principal_by_username_or_email = AsyncMock(return_value=make_principal())
        mock_repo.create_principal = AsyncMock()

        with pytest.raises(DuplicateIdentity):
            await service.register("alice", "other@example.com", "pw123")

        mock_repo.create_principal.assert_not_called()

    async def test_register_lost_race(
        self, service: IdentityService, mock_repo: MagicMock
    ) -> None:
        """A uniqueness violation on insert surfaces as DuplicateIdentity."""
        mock_repo.find_principal_by_username_or_email = AsyncMock(return_value=None)
        mock_repo.create_principal = AsyncMock(side_effect=DuplicateIdentity("users_email_key"))

        with pytest.raises(DuplicateIdentity, match="Username or email already exists"):
            await service.register("bob", "bob@example.com", "pw123")

    @pytest.mark.parametrize(
        ("username", "email", "password"),
        [
            ("", "bob@example.com", "pw123"),
            ("bob", "not-an-email", "pw123"),
            ("bob", "bob@example.com", ""),
        ],
    )
    async def test_register_validation(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        username: str,
        email: str,
        password: str,
    ) -> None:
        """Malformed input is rejected before touching the store."""
        mock_repo.find_principal_by_username_or_email = AsyncMock(return_value=None)

        with pytest.raises(ValidationFailure):
            await service.register(username, email, password)

        mock_repo.find_principal_by_username_or_email.assert_not_called()

    async def test_register_enforces_policy(
        self, mock_repo: MagicMock, token_config: TokenConfig
    ) -> None:
        """The configured password policy applies."""
        service = IdentityService(
            repo=mock_repo,
            token_config=token_config,
            default_roles=StaticDefaultRoleResolver(),
            password_policy=PasswordPolicy(min_length=12),
            bcrypt_rounds=4,
        )

        with pytest.raises(ValidationFailure):
            await service.register("bob", "bob@example.com", "short")


class TestLogin:
    """Test local login."""

    async def test_login_success(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
        token_config: TokenConfig,
        clock: Any,
    ) -> None:
        """Should return tokens and record the login."""
        principal = make_principal(password_hash=hash_password("correct", rounds=4))
        mock_repo.get_principal_by_username = AsyncMock(return_value=principal)
        mock_repo.update_principal = AsyncMock(
            side_effect=lambda pid, **kw: principal.model_copy(update=kw)
        )

        result = await service.login("alice", "correct")  # pragma: allowlist secret

        assert result.created is False
        assert result.principal.last_login_at == clock()
        claims = decode_token(result.access_token, token_config, now=clock())
        assert claims.sub == principal.id
        refresh = decode_token(
            result.refresh_token, token_config, token_type=TokenType.REFRESH, now=clock()
        )
        assert refresh.sub == principal.id
        mock_repo.get_principal_by_username.assert_awaited_once_with(
            "alice", auth_provider="local"
        )

    async def test_login_unknown_user(
        self, service: IdentityService, mock_repo: MagicMock
    ) -> None:
        """Unknown usernames fail like wrong passwords."""
        mock_repo.get_principal_by_username = AsyncMock(return_value=None)

        with pytest.raises(InvalidCredentials, match="Invalid credentials"):
            await service.login("nobody", "whatever")  # pragma: allowlist secret

    async def test_login_wrong_password(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Wrong password raises InvalidCredentials."""
        principal = make_principal(password_hash=hash_password("correct", rounds=4))
        mock_repo.get_principal_by_username = AsyncMock(return_value=principal)
        mock_repo.update_principal = AsyncMock()

        with pytest.raises(InvalidCredentials, match="Invalid credentials"):
            await service.login("alice", "wrong")  # pragma: allowlist secret

        mock_repo.update_principal.assert_not_called()

    async def test_login_without_hash(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """A record with no usable hash cannot log in."""
        mock_repo.get_principal_by_username = AsyncMock(return_value=make_principal())

        with pytest.raises(InvalidCredentials):
            await service.login("alice", "anything")  # pragma: allowlist secret

    async def test_login_malformed_hash(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """A malformed stored hash reads as invalid credentials."""
        principal = make_principal(password_hash="garbage")  # pragma: allowlist secret
        mock_repo.get_principal_by_username = AsyncMock(return_value=principal)

        with pytest.raises(InvalidCredentials):
            await service.login("alice", "anything")  # pragma: allowlist secret

    async def test_login_disabled(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Correct credentials on a disabled account raise AccountDisabled."""
        principal = make_principal(
            password_hash=hash_password("correct", rounds=4), is_active=False
        )
        mock_repo.get_principal_by_username = AsyncMock(return_value=principal)

        with pytest.raises(AccountDisabled):
            await service.login("alice", "correct")  # pragma: allowlist secret

    async def test_login_store_failure_propagates(
        self, service: IdentityService, mock_repo: MagicMock
    ) -> None:
        """Store failures are not retried or remapped."""
        mock_repo.get_principal_by_username = AsyncMock(side_effect=StoreUnavailable())

        with pytest.raises(StoreUnavailable):
            await service.login("alice", "correct")  # pragma: allowlist secret

        assert mock_repo.get_principal_by_username.await_count == 1

    async def test_last_login_strictly_increases(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
        clock: Any,
    ) -> None:
        """A login within the same clock tick still moves last-login forward."""
        principal = make_principal(
            password_hash=hash_password("correct", rounds=4), last_login_at=clock()
        )
        mock_repo.get_principal_by_username = AsyncMock(return_value=principal)
        mock_repo.update_principal = AsyncMock(return_value=None)

        result = await service.login("alice", "correct")  # pragma: allowlist secret

        assert result.principal.last_login_at == clock() + timedelta(microseconds=1)


class TestReconcileOAuth:
    """Test OAuth reconciliation."""

    async def test_existing_principal_matched(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """An existing (provider, subject) principal is reused."""
        principal = make_principal(auth_provider="google", external_id="sub-1")
        mock_repo.find_oauth_principal = AsyncMock(return_value=principal)
        mock_repo.update_principal = AsyncMock(
            side_effect=lambda pid, **kw: principal.model_copy(update=kw)
        )
        mock_repo.create_principal = AsyncMock()

        result = await service.reconcile_oauth(
            OAuthIdentity(provider="google", subject_id="sub-1", email="alice@example.com")
        )

        assert result.created is False
        assert result.principal.id == principal.id
        mock_repo.create_principal.assert_not_called()
        mock_repo.find_oauth_principal.assert_awaited_once_with(
            "google", "alice@example.com", "sub-1"
        )

    async def test_new_principal_created(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
        default_role_id: UUID,
    ) -> None:
        """An unknown identity creates a verified principal for the provider."""
        mock_repo.find_oauth_principal = AsyncMock(return_value=None)
        mock_repo.get_principal_by_username = AsyncMock(return_value=None)
        mock_repo.create_principal = AsyncMock(
            return_value=make_principal(auth_provider="github", external_id="42")
        )

        result = await service.reconcile_oauth(
            OAuthIdentity(
                provider="github",
                subject_id="42",
                email="octo@example.com",
                display_name="octocat",
            )
        )

        assert result.created is True
        kwargs = mock_repo.create_principal.call_args.kwargs
        assert kwargs["username"] == "octocat"
        assert kwargs["email_verified"] is True
        assert kwargs["auth_provider"] == "github"
        assert kwargs["external_id"] == "42"
        assert kwargs["role_ids"] == [default_role_id]
        assert kwargs.get("password_hash") is None

    async def test_username_falls_back_to_email(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Without a display name the email becomes the username."""
        mock_repo.find_oauth_principal = AsyncMock(return_value=None)
        mock_repo.get_principal_by_username = AsyncMock(return_value=None)
        mock_repo.create_principal = AsyncMock(return_value=make_principal())

        await service.reconcile_oauth(
            OAuthIdentity(provider="google", subject_id="s", email="x@example.com")
        )

        assert mock_repo.create_principal.call_args.kwargs["username"] == "x@example.com"

    @pytest.mark.parametrize(
        ("taken", "expected"),
        [
            ({"John Smith"}, "john2@example.com"),
            ({"John Smith", "john2@example.com"}, "John Smith-g-2"),
        ],
    )
    async def test_taken_display_name(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
        taken: set[str],
        expected: str,
    ) -> None:
        """A taken display name falls back to the email, then to a subject-qualified name."""

        async def lookup(username: str, auth_provider: str | None = None) -> Principal | None:
            return make_principal(username=username) if username in taken else None

        mock_repo.find_oauth_principal = AsyncMock(return_value=None)
        mock_repo.get_principal_by_username = AsyncMock(side_effect=lookup)
        mock_repo.create_principal = AsyncMock(return_value=make_principal())

        await service.reconcile_oauth(
            OAuthIdentity(
                provider="google",
                subject_id="g-2",
                email="john2@example.com",
                display_name="John Smith",
            )
        )

        assert mock_repo.create_principal.call_args.kwargs["username"] == expected

    async def test_unknown_provider(self, service: IdentityService, mock_repo: MagicMock) -> None:
        """Providers outside the registry are rejected."""
        mock_repo.find_oauth_principal = AsyncMock()

        with pytest.raises(ValidationFailure):
            await service.reconcile_oauth(
                OAuthIdentity(provider="gitlab", subject_id="s", email="x@example.com")
            )

        mock_repo.find_oauth_principal.assert_not_called()

    async def test_new_principal_needs_email(
        self, service: IdentityService, mock_repo: MagicMock
    ) -> None:
        """A new principal cannot be created without an email."""
        mock_repo.find_oauth_principal = AsyncMock(return_value=None)

        with pytest.raises(ValidationFailure):
            await service.reconcile_oauth(OAuthIdentity(provider="google", subject_id="s"))

    async def test_disabled_principal(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """A matched but disabled principal raises AccountDisabled."""
        mock_repo.find_oauth_principal = AsyncMock(
            return_value=make_principal(auth_provider="google", is_active=False)
        )

        with pytest.raises(AccountDisabled):
            await service.reconcile_oauth(
                OAuthIdentity(provider="google", subject_id="s", email="alice@example.com")
            )


class TestRefresh:
    """Test token refresh."""

    async def test_refresh_reissues_from_current_state(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
        token_config: TokenConfig,
        clock: Any,
    ) -> None:
        """The new pair reflects the principal as stored now."""
        principal = make_principal()
        first = service._issue(principal)
        org_id = uuid4()
        mock_repo.get_principal_by_id = AsyncMock(
            return_value=principal.model_copy(update={"organization_ids": [org_id]})
        )

        clock.advance(minutes=5)
        result = await service.refresh(first.refresh_token)

        claims = decode_token(result.access_token, token_config, now=clock())
        assert claims.orgs == [org_id]
        assert claims.exp > decode_token(first.access_token, token_config, now=clock()).exp

    async def test_refresh_disabled(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """A disabled principal cannot refresh."""
        principal = make_principal()
        token = service._issue(principal).refresh_token
        mock_repo.get_principal_by_id = AsyncMock(
            return_value=principal.model_copy(update={"is_active": False})
        )

        with pytest.raises(AccountDisabled):
            await service.refresh(token)

    async def test_refresh_deleted_principal(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """A token for a principal that no longer exists is invalid."""
        token = service._issue(make_principal()).refresh_token
        mock_repo.get_principal_by_id = AsyncMock(return_value=None)

        with pytest.raises(InvalidToken):
            await service.refresh(token)

    async def test_refresh_garbage(self, service: IdentityService) -> None:
        """Malformed tokens are rejected without a store lookup."""
        with pytest.raises(InvalidToken):
            await service.refresh("not.a.token")


class TestPrincipalAdministration:
    """Test set_active and get_principal."""

    async def test_set_active(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Disabling returns the updated summary."""
        principal = make_principal(is_active=False)
        mock_repo.update_principal = AsyncMock(return_value=principal)

        summary = await service.set_active(principal.id, False)

        assert summary.is_active is False
        mock_repo.update_principal.assert_awaited_once_with(principal.id, is_active=False)

    async def test_set_active_missing(
        self, service: IdentityService, mock_repo: MagicMock
    ) -> None:
        """Unknown principals raise NotFound."""
        mock_repo.update_principal = AsyncMock(return_value=None)

        with pytest.raises(NotFound):
            await service.set_active(uuid4(), True)

    async def test_get_principal_missing(
        self, service: IdentityService, mock_repo: MagicMock
    ) -> None:
        """Unknown principals raise NotFound."""
        mock_repo.get_principal_by_id = AsyncMock(return_value=None)

        with pytest.raises(NotFound):
            await service.get_principal(uuid4())

    async def test_set_password_stores_new_hash(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Only the bcrypt digest of the new password reaches the store."""
        principal = make_principal(password_hash=hash_password("old", rounds=4))
        mock_repo.get_principal_by_id = AsyncMock(return_value=principal)
        mock_repo.update_principal = AsyncMock(return_value=principal)

        await service.set_password(principal.id, "newpw")  # pragma: allowlist secret

        stored = mock_repo.update_principal.await_args.kwargs["password_hash"]
        assert stored.startswith("$2")
        assert stored != "newpw"  # pragma: allowlist secret

    async def test_change_password_malformed_hash(
        self,
        service: IdentityService,
        mock_repo: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """A malformed stored hash reads as invalid credentials."""
        principal = make_principal(password_hash="garbage")  # pragma: allowlist secret
        mock_repo.get_principal_by_id = AsyncMock(return_value=principal)
        mock_repo.update_principal = AsyncMock()

        with pytest.raises(InvalidCredentials):
            await service.change_password(principal.id, "old", "new")  # pragma: allowlist secret
        mock_repo.update_principal.assert_not_awaited()
