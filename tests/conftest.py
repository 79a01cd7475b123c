"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import pytest
from accessgate.adapters.auth.memory import InMemoryAuthStore
from accessgate.core.auth.defaults import StoreDefaultRoleResolver
from accessgate.core.auth.jwt import TokenConfig
from accessgate.core.auth.providers import OAuthProviderConfig, OAuthProviderRegistry
from accessgate.core.auth.service import IdentityService
from accessgate.core.auth.types import Organization, Principal
from accessgate.core.rbac.types import Role

TEST_SECRET = "test-secret-key-that-is-at-least-32-bytes-long"  # pragma: allowlist secret


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at a whole second."""
    return FakeClock()


@pytest.fixture
def token_config() -> TokenConfig:
    """Token configuration with a test secret."""
    return TokenConfig(secret=TEST_SECRET)


@pytest.fixture
def providers() -> OAuthProviderRegistry:
    """Registry with google and github configured."""
    return OAuthProviderRegistry(
        [
            OAuthProviderConfig(name="google", client_id="g-id", client_secret="g-secret"),
            OAuthProviderConfig(name="github", client_id="gh-id", client_secret="gh-secret"),
        ]
    )


@pytest.fixture
def store(clock: FakeClock) -> InMemoryAuthStore:
    """Empty in-memory store."""
    return InMemoryAuthStore(clock=clock)


@pytest.fixture
async def default_role(store: InMemoryAuthStore) -> Role:
    """The system-default role assigned to new principals."""
    return await store.create_role(
        name="user", description="Default role", is_system_default=True
    )


@pytest.fixture
def identity_service(
    store: InMemoryAuthStore,
    token_config: TokenConfig,
    providers: OAuthProviderRegistry,
    clock: FakeClock,
) -> IdentityService:
    """Identity service over the in-memory store."""
    return IdentityService(
        repo=store,
        token_config=token_config,
        default_roles=StoreDefaultRoleResolver(store),
        providers=providers,
        bcrypt_rounds=4,
        clock=clock,
    )


@pytest.fixture
def make_principal() -> Callable[..., Principal]:
    """Factory for principal models."""

    def _make(**overrides: Any) -> Principal:
        now = datetime(2026, 1, 1, tzinfo=UTC)
        fields: dict[str, Any] = {
            "id": uuid4(),
            "username": "alice",
            "email": "alice@example.com",
            "password_hash": None,
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return Principal(**fields)

    return _make


@pytest.fixture
def make_org() -> Callable[..., Organization]:
    """Factory for organization models."""

    def _make(**overrides: Any) -> Organization:
        now = datetime(2026, 1, 1, tzinfo=UTC)
        fields: dict[str, Any] = {
            "id": uuid4(),
            "name": "Acme",
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return Organization(**fields)

    return _make
