"""Tests for access resolution."""

from uuid import uuid4

import pytest
from accessgate.adapters.auth.memory import InMemoryAuthStore
from accessgate.core.auth.types import TokenClaims, TokenType
from accessgate.core.rbac.access import AccessResolver
from accessgate.core.rbac.types import WILDCARD


@pytest.fixture
def resolver(store: InMemoryAuthStore) -> AccessResolver:
    """Resolver over the in-memory store."""
    return AccessResolver(store)


class TestResolvePermissions:
    """Test effective permission resolution."""

    async def test_org_scoping(self, store: InMemoryAuthStore, resolver: AccessResolver) -> None:
        """Scoped permissions only appear in their own organization."""
        org_one, org_two = uuid4(), uuid4()
        p1 = await store.create_permission(
            name="user:read", resource="user", action="read", is_system_default=True
        )
        p2 = await store.create_permission(
            name="report:write", resource="report", action="write", organization_id=org_one
        )
        role = await store.create_role(name="R", permission_ids=[p1.id, p2.id])

        assert await resolver.resolve_permissions([role.id], org_one) == {p1, p2}
        assert await resolver.resolve_permissions([role.id], org_two) == {p1}
        assert await resolver.resolve_permissions([role.id]) == {p1}

    async def test_no_roles(self, resolver: AccessResolver) -> None:
        """An empty role set resolves to nothing."""
        assert await resolver.resolve_permissions([]) == frozenset()

    async def test_dangling_ids_skipped(
        self, store: InMemoryAuthStore, resolver: AccessResolver
    ) -> None:
        """Unknown role and permission IDs are ignored."""
        p1 = await store.create_permission(
            name="user:read", resource="user", action="read", is_system_default=True
        )
        role = await store.create_role(name="R", permission_ids=[p1.id, uuid4()])

        assert await resolver.resolve_permissions([uuid4(), role.id]) == {p1}
        assert await resolver.resolve_permissions([uuid4()]) == frozenset()

    async def test_union_across_roles(
        self, store: InMemoryAuthStore, resolver: AccessResolver
    ) -> None:
        """Permissions shared by several roles appear once."""
        p1 = await store.create_permission(
            name="user:read", resource="user", action="read", is_system_default=True
        )
        p2 = await store.create_permission(
            name="role:read", resource="role", action="read", is_system_default=True
        )
        r1 = await store.create_role(name="R1", permission_ids=[p1.id])
        r2 = await store.create_role(name="R2", permission_ids=[p1.id, p2.id])

        result = await resolver.resolve_permissions([r1.id, r2.id, r1.id])

        assert result == {p1, p2}

    async def test_role_from_other_org_ignored(
        self, store: InMemoryAuthStore, resolver: AccessResolver
    ) -> None:
        """Roles scoped to another organization do not contribute."""
        org_one, org_two = uuid4(), uuid4()
        p1 = await store.create_permission(
            name="user:read", resource="user", action="read", is_system_default=True
        )
        role = await store.create_role(name="R", permission_ids=[p1.id], organization_id=org_one)

        assert await resolver.resolve_permissions([role.id], org_one) == {p1}
        assert await resolver.resolve_permissions([role.id], org_two) == frozenset()

    async def test_resolve_for_claims(
        self, store: InMemoryAuthStore, resolver: AccessResolver
    ) -> None:
        """Token claims resolve through their role list."""
        p1 = await store.create_permission(
            name="user:read", resource="user", action="read", is_system_default=True
        )
        role = await store.create_role(name="R", permission_ids=[p1.id])
        claims = TokenClaims(
            ver=1,
            typ=TokenType.ACCESS,
            sub=uuid4(),
            username="alice",
            email="alice@example.com",
            roles=[role.id],
            orgs=[],
            iat=0,
            exp=60,
        )

        assert await resolver.resolve_for_principal(claims) == {p1}


class TestCheckAccess:
    """Test access decisions."""

    async def test_granted(self, store: InMemoryAuthStore, resolver: AccessResolver) -> None:
        """A matching permission grants access and is reported."""
        p1 = await store.create_permission(
            name="user:read", resource="user", action="read", is_system_default=True
        )
        role = await store.create_role(name="viewer", permission_ids=[p1.id])

        decision = await resolver.check_access([role.id], "user", "read")

        assert decision.allowed is True
        assert decision.matched_permission == p1
        assert decision.role_names == ["viewer"]
        assert decision.explanation == "Granted by permission 'user:read'"

    async def test_denied(self, store: InMemoryAuthStore, resolver: AccessResolver) -> None:
        """No matching permission denies with an explanation."""
        p1 = await store.create_permission(
            name="user:read", resource="user", action="read", is_system_default=True
        )
        role = await store.create_role(name="viewer", permission_ids=[p1.id])

        decision = await resolver.check_access([role.id], "user", "delete")

        assert decision.allowed is False
        assert decision.matched_permission is None
        assert decision.explanation == "No permission grants delete on user"

    async def test_no_roles(self, resolver: AccessResolver) -> None:
        """Without roles access is denied."""
        decision = await resolver.check_access([], "user", "read")

        assert decision.allowed is False
        assert decision.explanation == "No roles apply in this context"

    async def test_wildcard(self, store: InMemoryAuthStore, resolver: AccessResolver) -> None:
        """A (*, *) permission grants anything."""
        admin = await store.create_permission(
            name="*:*", resource=WILDCARD, action=WILDCARD, is_system_default=True
        )
        role = await store.create_role(name="admin", permission_ids=[admin.id])

        assert await resolver.has_permission([role.id], "organization", "delete")
        assert await resolver.has_permission([role.id], "anything", "at_all", uuid4())

    async def test_scoped_grant(self, store: InMemoryAuthStore, resolver: AccessResolver) -> None:
        """An org-scoped permission only grants inside its organization."""
        org_id = uuid4()
        scoped = await store.create_permission(
            name="report:write", resource="report", action="write", organization_id=org_id
        )
        role = await store.create_role(name="writer", permission_ids=[scoped.id])

        assert await resolver.has_permission([role.id], "report", "write", org_id)
        assert not await resolver.has_permission([role.id], "report", "write")
        assert not await resolver.has_permission([role.id], "report", "write", uuid4())
