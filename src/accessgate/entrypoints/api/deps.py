"""Dependency injection and application lifespan management."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import Request

from accessgate.adapters.auth.postgres import PostgresAuthStore
from accessgate.adapters.db.app_db import AppDatabase
from accessgate.core.auth.defaults import StoreDefaultRoleResolver
from accessgate.core.auth.jwt import TokenConfig
from accessgate.core.auth.password import PasswordPolicy
from accessgate.core.auth.providers import OAuthProviderConfig, OAuthProviderRegistry
from accessgate.core.auth.service import IdentityService
from accessgate.core.auth.types import AuthProvider
from accessgate.core.identity.organizations import OrganizationService
from accessgate.core.identity.principals import PrincipalService
from accessgate.core.rbac.access import AccessResolver
from accessgate.core.rbac.role_service import RoleService

if TYPE_CHECKING:
    from fastapi import FastAPI

    from accessgate.core.auth.repository import AuthRepository, RBACRepository

logger = structlog.get_logger()

_OAUTH_PROVIDERS = (AuthProvider.GOOGLE.value, AuthProvider.GITHUB.value)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings:
    """Application settings loaded from environment."""

    def __init__(self) -> None:
        """Load settings from environment variables."""
        self.database_url = os.getenv("DATABASE_URL", "postgresql://localhost:5432/accessgate")
        self.create_schema = _env_bool("CREATE_SCHEMA", "true")

        # Tokens
        self.jwt_secret_key = os.getenv("JWT_SECRET_KEY", "")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.access_token_expire_minutes = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
        self.refresh_token_expire_days = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

        # Passwords
        self.bcrypt_rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))
        self.password_min_length = int(os.getenv("PASSWORD_MIN_LENGTH", "1"))
        self.password_require_complexity = _env_bool("PASSWORD_REQUIRE_COMPLEXITY")

        self.default_role_name = os.getenv("DEFAULT_ROLE_NAME", "user")
        self.cors_allow_origins = [
            origin.strip()
            for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
            if origin.strip()
        ]

        # OAuth clients, keyed by provider tag
        self.oauth: dict[str, dict[str, str]] = {
            provider: {
                "client_id": os.getenv(f"{provider.upper()}_CLIENT_ID", ""),
                "client_secret": os.getenv(f"{provider.upper()}_CLIENT_SECRET", ""),
                "callback_url": os.getenv(f"{provider.upper()}_CALLBACK_URL", ""),
            }
            for provider in _OAUTH_PROVIDERS
        }

    def token_config(self) -> TokenConfig:
        """Signing configuration for issued tokens."""
        return TokenConfig(
            secret=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
            access_ttl=timedelta(minutes=self.access_token_expire_minutes),
            refresh_ttl=timedelta(days=self.refresh_token_expire_days),
        )

    def password_policy(self) -> PasswordPolicy:
        """Rules applied to new local passwords."""
        return PasswordPolicy(
            min_length=self.password_min_length,
            require_complexity=self.password_require_complexity,
        )

    def provider_registry(self) -> OAuthProviderRegistry:
        """Registry of the OAuth providers with client credentials set."""
        registry = OAuthProviderRegistry()
        for name, client in self.oauth.items():
            config = OAuthProviderConfig(name=name, **client)
            if config.is_configured:
                registry.register(config)
        return registry


settings = Settings()


def configure_services(app: FastAPI, store: Any, config: Settings) -> None:
    """Build the services over a store and attach them to app state.

    Args:
        app: Application whose state receives the services.
        store: Object implementing both AuthRepository and RBACRepository.
        config: Settings to build from.
    """
    auth_repo: AuthRepository = store
    rbac_repo: RBACRepository = store

    app.state.auth_store = store
    app.state.identity_service = IdentityService(
        repo=auth_repo,
        token_config=config.token_config(),
        default_roles=StoreDefaultRoleResolver(rbac_repo, role_name=config.default_role_name),
        providers=config.provider_registry(),
        password_policy=config.password_policy(),
        bcrypt_rounds=config.bcrypt_rounds,
    )
    app.state.access_resolver = AccessResolver(rbac_repo)
    app.state.role_service = RoleService(rbac_repo)
    app.state.organization_service = OrganizationService(auth_repo)
    app.state.principal_service = PrincipalService(auth_repo, rbac_repo)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - setup and teardown.

    This context manager handles:
    - Database connection pool setup
    - Schema creation and default role seeding
    - Service construction
    """
    app_db = AppDatabase(settings.database_url)
    await app_db.connect()

    store = PostgresAuthStore(app_db)
    if settings.create_schema:
        await store.create_schema()

    app.state.app_db = app_db
    configure_services(app, store, settings)
    await app.state.role_service.seed_default_roles()
    logger.info("accessgate_started", providers=app.state.identity_service.available_providers())

    yield

    await app_db.close()


def get_identity_service(request: Request) -> IdentityService:
    """Get identity service from app state."""
    service: IdentityService = request.app.state.identity_service
    return service


def get_access_resolver(request: Request) -> AccessResolver:
    """Get access resolver from app state."""
    resolver: AccessResolver = request.app.state.access_resolver
    return resolver


def get_organization_service(request: Request) -> OrganizationService:
    """Get organization service from app state."""
    service: OrganizationService = request.app.state.organization_service
    return service


def get_role_service(request: Request) -> RoleService:
    """Get role service from app state."""
    service: RoleService = request.app.state.role_service
    return service


def get_principal_service(request: Request) -> PrincipalService:
    """Get principal service from app state."""
    service: PrincipalService = request.app.state.principal_service
    return service
