"""Tests for principal administration routes."""

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from accessgate.core.auth.types import Principal, TokenClaims, TokenType
from accessgate.core.exceptions import NotFound, ValidationFailure
from accessgate.core.identity.principals import PrincipalPage
from accessgate.core.rbac.types import AccessDecision, Role
from accessgate.entrypoints.api.deps import (
    get_access_resolver,
    get_identity_service,
    get_principal_service,
)
from accessgate.entrypoints.api.errors import install_error_handlers
from accessgate.entrypoints.api.middleware.jwt_auth import verify_jwt
from accessgate.entrypoints.api.routes.principals import router
from fastapi import FastAPI
from fastapi.testclient import TestClient


@pytest.fixture
def mock_principal_service() -> MagicMock:
    """Create mock principal service."""
    return MagicMock()


@pytest.fixture
def mock_identity_service() -> MagicMock:
    """Create mock identity service."""
    return MagicMock()


@pytest.fixture
def mock_resolver() -> MagicMock:
    """Resolver that grants every check by default."""
    resolver = MagicMock()
    resolver.check_access = AsyncMock(
        return_value=AccessDecision(allowed=True, explanation="Granted by permission '*:*'")
    )
    return resolver


@pytest.fixture
def client(
    mock_principal_service: MagicMock,
    mock_identity_service: MagicMock,
    mock_resolver: MagicMock,
) -> TestClient:
    """Create test client with auth, resolver and services overridden."""
    claims = TokenClaims(
        ver=1,
        typ=TokenType.ACCESS,
        sub=uuid4(),
        username="admin",
        email="admin@example.com",
        roles=[uuid4()],
        orgs=[],
        iat=0,
        exp=60,
    )
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(router)
    app.dependency_overrides[verify_jwt] = lambda: claims
    app.dependency_overrides[get_access_resolver] = lambda: mock_resolver
    app.dependency_overrides[get_principal_service] = lambda: mock_principal_service
    app.dependency_overrides[get_identity_service] = lambda: mock_identity_service
    return TestClient(app)


class TestListPrincipals:
    """Test GET /principals."""

    def test_page(
        self,
        client: TestClient,
        mock_principal_service: MagicMock,
        mock_resolver: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Returns items with the total and checks user:read in the org context."""
        org_id = uuid4()
        principal = make_principal(password_hash="$2b$04$hash")  # pragma: allowlist secret
        mock_principal_service.list_principals = AsyncMock(
            return_value=PrincipalPage(items=[principal.summary()], total=7)
        )

        response = client.get(
            "/principals", params={"org_id": str(org_id), "offset": 5, "limit": 1}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 7
        assert "password_hash" not in data["items"][0]
        mock_principal_service.list_principals.assert_awaited_once_with(
            org_id, offset=5, limit=1
        )
        assert mock_resolver.check_access.call_args.args[1:] == ("user", "read", org_id)

    def test_bad_limit(self, client: TestClient, mock_principal_service: MagicMock) -> None:
        """Out-of-range paging is 422."""
        mock_principal_service.list_principals = AsyncMock(
            side_effect=ValidationFailure("Limit must be between 1 and 200")
        )

        response = client.get("/principals", params={"limit": 0})

        assert response.status_code == 422

    def test_get_missing(self, client: TestClient, mock_principal_service: MagicMock) -> None:
        """Unknown principals are 404."""
        mock_principal_service.get_principal = AsyncMock(
            side_effect=NotFound("Principal not found")
        )

        response = client.get(f"/principals/{uuid4()}")

        assert response.status_code == 404


class TestAccountAdministration:
    """Test activation, email verification and password reset."""

    def test_disable(
        self,
        client: TestClient,
        mock_identity_service: MagicMock,
        mock_resolver: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Disabling goes through the identity service with user:update."""
        principal = make_principal(is_active=False)
        mock_identity_service.set_active = AsyncMock(return_value=principal.summary())

        response = client.put(f"/principals/{principal.id}/active", json={"active": False})

        assert response.status_code == 200
        assert response.json()["is_active"] is False
        mock_identity_service.set_active.assert_awaited_once_with(principal.id, False)
        assert mock_resolver.check_access.call_args.args[1:3] == ("user", "update")

    def test_verify_email(
        self,
        client: TestClient,
        mock_principal_service: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Marks the email verified."""
        principal = make_principal(email_verified=True)
        mock_principal_service.verify_email = AsyncMock(return_value=principal.summary())

        response = client.post(f"/principals/{principal.id}/verify-email")

        assert response.json()["email_verified"] is True

    def test_set_password(
        self,
        client: TestClient,
        mock_identity_service: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """The new password is forwarded and never echoed."""
        principal = make_principal()
        mock_identity_service.set_password = AsyncMock(return_value=principal.summary())

        response = client.post(
            f"/principals/{principal.id}/password",
            json={"password": "newpw"},  # pragma: allowlist secret
        )

        assert response.status_code == 200
        assert "newpw" not in response.text
        mock_identity_service.set_password.assert_awaited_once_with(
            principal.id, "newpw"  # pragma: allowlist secret
        )

    def test_forbidden(
        self,
        client: TestClient,
        mock_identity_service: MagicMock,
        mock_resolver: MagicMock,
    ) -> None:
        """Callers without user:update get 403."""
        mock_resolver.check_access = AsyncMock(
            return_value=AccessDecision(allowed=False, explanation="No roles apply")
        )
        mock_identity_service.set_active = AsyncMock()

        response = client.put(f"/principals/{uuid4()}/active", json={"active": False})

        assert response.status_code == 403
        mock_identity_service.set_active.assert_not_called()


class TestPrincipalRoles:
    """Test role grant routes."""

    def test_list(self, client: TestClient, mock_principal_service: MagicMock) -> None:
        """Lists held roles."""
        role = Role(id=uuid4(), name="viewer")
        mock_principal_service.list_roles = AsyncMock(return_value=[role])

        response = client.get(f"/principals/{uuid4()}/roles")

        assert [r["name"] for r in response.json()] == ["viewer"]

    def test_add(
        self,
        client: TestClient,
        mock_principal_service: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Grants one role."""
        role_id = uuid4()
        principal = make_principal(role_ids=[role_id])
        mock_principal_service.add_role = AsyncMock(return_value=principal.summary())

        response = client.post(
            f"/principals/{principal.id}/roles", json={"role_id": str(role_id)}
        )

        assert response.json()["role_ids"] == [str(role_id)]
        mock_principal_service.add_role.assert_awaited_once_with(principal.id, role_id)

    def test_remove(
        self,
        client: TestClient,
        mock_principal_service: MagicMock,
        make_principal: Callable[..., Principal],
    ) -> None:
        """Revokes one role."""
        principal, role_id = make_principal(), uuid4()
        mock_principal_service.remove_role = AsyncMock(return_value=principal.summary())

        response = client.delete(f"/principals/{principal.id}/roles/{role_id}")

        assert response.status_code == 200
        mock_principal_service.remove_role.assert_awaited_once_with(principal.id, role_id)

    def test_remove_not_held(
        self, client: TestClient, mock_principal_service: MagicMock
    ) -> None:
        """Revoking a role that is not held is 404."""
        mock_principal_service.remove_role = AsyncMock(
            side_effect=NotFound("Principal does not hold this role")
        )

        response = client.delete(f"/principals/{uuid4()}/roles/{uuid4()}")

        assert response.status_code == 404
