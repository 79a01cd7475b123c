"""PostgreSQL implementation of AuthRepository and RBACRepository."""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog

from accessgate.adapters.db.app_db import AppDatabase, affected_rows
from accessgate.core.auth.types import Organization, Principal
from accessgate.core.exceptions import StoreUnavailable
from accessgate.core.rbac.types import Permission, Role

logger = structlog.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS principals (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    email_verified BOOLEAN NOT NULL DEFAULT FALSE,
    role_ids UUID[] NOT NULL DEFAULT '{}',
    organization_ids UUID[] NOT NULL DEFAULT '{}',
    auth_provider TEXT NOT NULL DEFAULT 'local',
    external_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    last_login_at TIMESTAMPTZ,
    CONSTRAINT principals_provider_subject_key UNIQUE (auth_provider, external_id),
    CONSTRAINT principals_local_password_check
        CHECK (auth_provider <> 'local' OR password_hash IS NOT NULL)
);

CREATE INDEX IF NOT EXISTS principals_organization_ids_idx
    ON principals USING GIN (organization_ids);

CREATE TABLE IF NOT EXISTS organizations (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name TEXT NOT NULL UNIQUE,
    description TEXT NOT NULL DEFAULT '',
    domain TEXT UNIQUE,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    admin_ids UUID[] NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS permissions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    resource TEXT NOT NULL,
    action TEXT NOT NULL,
    is_system_default BOOLEAN NOT NULL DEFAULT FALSE,
    organization_id UUID,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE UNIQUE INDEX IF NOT EXISTS permissions_resource_action_scope_key
    ON permissions (
        resource,
        action,
        COALESCE(organization_id, '00000000-0000-0000-0000-000000000000'::uuid)
    );

CREATE TABLE IF NOT EXISTS roles (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    permission_ids UUID[] NOT NULL DEFAULT '{}',
    is_system_default BOOLEAN NOT NULL DEFAULT FALSE,
    organization_id UUID,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""


def _build_update(fields: dict[str, Any], first_param: int = 2) -> tuple[list[str], list[Any]]:
    """Build SET clauses for the fields that are not None."""
    updates = []
    params: list[Any] = []
    param_idx = first_param
    for column, value in fields.items():
        if value is None:
            continue
        updates.append(f"{column} = ${param_idx}")
        params.append(value)
        param_idx += 1
    return updates, params


def _returned(row: dict[str, Any] | None, entity: str) -> dict[str, Any]:
    """Row from an INSERT ... RETURNING, which the database always yields."""
    if row is None:
        raise StoreUnavailable(f"Insert returned no {entity} row")
    return row


def _ordered(rows: list[dict[str, Any]], ids: list[UUID]) -> list[dict[str, Any]]:
    by_id = {row["id"]: row for row in rows}
    return [by_id[i] for i in ids if i in by_id]


class PostgresAuthStore:
    """PostgreSQL store for principals, organizations, roles and permissions.

    Set-valued columns are UUID arrays; membership changes use array
    operators in a single UPDATE so each call stays atomic.
    """

    def __init__(self, db: AppDatabase) -> None:
        """Initialize with database connection.

        Args:
            db: Application database instance.
        """
        self._db = db

    async def create_schema(self) -> None:
        """Create tables and constraints if they do not exist."""
        await self._db.execute(SCHEMA)
        logger.info("auth_schema_ready")

    def _row_to_principal(self, row: dict[str, Any]) -> Principal:
        """Convert database row to Principal model."""
        return Principal(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            first_name=row.get("first_name") or "",
            last_name=row.get("last_name") or "",
            password_hash=row.get("password_hash"),
            is_active=row.get("is_active", True),
            email_verified=row.get("email_verified", False),
            role_ids=list(row.get("role_ids") or []),
            organization_ids=list(row.get("organization_ids") or []),
            auth_provider=row.get("auth_provider") or "local",
            external_id=row.get("external_id"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_login_at=row.get("last_login_at"),
        )

    def _row_to_org(self, row: dict[str, Any]) -> Organization:
        """Convert database row to Organization model."""
        return Organization(
            id=row["id"],
            name=row["name"],
            description=row.get("description") or "",
            domain=row.get("domain"),
            is_active=row.get("is_active", True),
            admin_ids=list(row.get("admin_ids") or []),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_role(self, row: dict[str, Any]) -> Role:
        """Convert database row to Role."""
        return Role(
            id=row["id"],
            name=row["name"],
            description=row.get("description") or "",
            permission_ids=tuple(row.get("permission_ids") or ()),
            is_system_default=row.get("is_system_default", False),
            organization_id=row.get("organization_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def _row_to_permission(self, row: dict[str, Any]) -> Permission:
        """Convert database row to Permission."""
        return Permission(
            id=row["id"],
            name=row["name"],
            resource=row["resource"],
            action=row["action"],
            description=row.get("description") or "",
            is_system_default=row.get("is_system_default", False),
            organization_id=row.get("organization_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    # Principal lookups
    async def get_principal_by_id(self, principal_id: UUID) -> Principal | None:
        """Get principal by ID."""
        row = await self._db.fetch_one("SELECT * FROM principals WHERE id = $1", principal_id)
        return self._row_to_principal(row) if row else None

    async def get_principal_by_username(
        self, username: str, auth_provider: str | None = None
    ) -> Principal | None:
        """Get principal by username, optionally restricted to one provider."""
        if auth_provider is None:
            row = await self._db.fetch_one(
                "SELECT * FROM principals WHERE username = $1", username
            )
        else:
            row = await self._db.fetch_one(
                "SELECT * FROM principals WHERE username = $1 AND auth_provider = $2",
                username,
                auth_provider,
            )
        return self._row_to_principal(row) if row else None

    async def find_principal_by_username_or_email(
        self, username: str, email: str
    ) -> Principal | None:
        """Get any principal holding the username OR the email."""
        row = await self._db.fetch_one(
            "SELECT * FROM principals WHERE username = $1 OR email = $2 LIMIT 1",
            username,
            email,
        )
        return self._row_to_principal(row) if row else None

    async def find_oauth_principal(
        self, auth_provider: str, email: str | None, external_id: str
    ) -> Principal | None:
        """Get the principal matching (email, provider) OR (external id, provider)."""
        row = await self._db.fetch_one(
            """
            SELECT * FROM principals
            WHERE auth_provider = $1
              AND (external_id = $3 OR ($2::text IS NOT NULL AND email = $2))
            ORDER BY (external_id = $3) IS TRUE DESC
            LIMIT 1
            """,
            auth_provider,
            email,
            external_id,
        )
        return self._row_to_principal(row) if row else None

    # Principal mutations
    async def create_principal(
        self,
        username: str,
        email: str,
        password_hash: str | None = None,
        first_name: str = "",
        last_name: str = "",
        auth_provider: str = "local",
        external_id: str | None = None,
        email_verified: bool = False,
        role_ids: list[UUID] | None = None,
        last_login_at: datetime | None = None,
    ) -> Principal:
        """Insert a new principal with a generated ID."""
        row = await self._db.fetch_one(
            """
            INSERT INTO principals (
                username, email, password_hash, first_name, last_name,
                auth_provider, external_id, email_verified, role_ids, last_login_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::uuid[], $10)
            RETURNING *
            """,
            username,
            email,
            password_hash,
            first_name,
            last_name,
            auth_provider,
            external_id,
            email_verified,
            list(dict.fromkeys(role_ids or [])),
            last_login_at,
        )
        return self._row_to_principal(_returned(row, "principal"))

    async def update_principal(
        self,
        principal_id: UUID,
        first_name: str | None = None,
        last_name: str | None = None,
        password_hash: str | None = None,
        is_active: bool | None = None,
        email_verified: bool | None = None,
        last_login_at: datetime | None = None,
    ) -> Principal | None:
        """Update principal fields. Returns None if the principal is absent."""
        updates, params = _build_update(
            {
                "first_name": first_name,
                "last_name": last_name,
                "password_hash": password_hash,
                "is_active": is_active,
                "email_verified": email_verified,
                "last_login_at": last_login_at,
            }
        )
        if not updates:
            return await self.get_principal_by_id(principal_id)

        row = await self._db.fetch_one(
            f"""
            UPDATE principals SET {", ".join(updates)}, updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            principal_id,
            *params,
        )
        return self._row_to_principal(row) if row else None

    async def add_principal_organization(
        self, principal_id: UUID, org_id: UUID
    ) -> Principal | None:
        """Add an organization to the principal's set (no-op if present)."""
        row = await self._db.fetch_one(
            """
            UPDATE principals
            SET organization_ids = CASE
                    WHEN $2 = ANY(organization_ids) THEN organization_ids
                    ELSE array_append(organization_ids, $2)
                END,
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            principal_id,
            org_id,
        )
        return self._row_to_principal(row) if row else None

    async def remove_principal_organization(
        self, principal_id: UUID, org_id: UUID
    ) -> Principal | None:
        """Pull an organization from the principal's set."""
        row = await self._db.fetch_one(
            """
            UPDATE principals
            SET organization_ids = array_remove(organization_ids, $2), updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            principal_id,
            org_id,
        )
        return self._row_to_principal(row) if row else None

    async def add_principal_roles(
        self, principal_id: UUID, role_ids: list[UUID]
    ) -> Principal | None:
        """Union role IDs into the principal's role set, keeping order."""
        row = await self._db.fetch_one(
            """
            UPDATE principals
            SET role_ids = role_ids || ARRAY(
                    SELECT r FROM unnest($2::uuid[]) WITH ORDINALITY AS t(r, n)
                    WHERE NOT r = ANY(role_ids)
                    ORDER BY n
                ),
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            principal_id,
            list(dict.fromkeys(role_ids)),
        )
        return self._row_to_principal(row) if row else None

    async def remove_principal_role(self, principal_id: UUID, role_id: UUID) -> Principal | None:
        """Pull a role from the principal's role set."""
        row = await self._db.fetch_one(
            """
            UPDATE principals
            SET role_ids = array_remove(role_ids, $2), updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            principal_id,
            role_id,
        )
        return self._row_to_principal(row) if row else None

    async def add_organization_to_principals(
        self, principal_ids: list[UUID], org_id: UUID
    ) -> int:
        """Add an organization to several principals. Returns count modified."""
        status = await self._db.execute(
            """
            UPDATE principals
            SET organization_ids = array_append(organization_ids, $2), updated_at = now()
            WHERE id = ANY($1::uuid[]) AND NOT ($2 = ANY(organization_ids))
            """,
            list(principal_ids),
            org_id,
        )
        return affected_rows(status)

    async def remove_organization_from_principals(self, org_id: UUID) -> int:
        """Pull an organization from every principal. Returns count modified."""
        status = await self._db.execute(
            """
            UPDATE principals
            SET organization_ids = array_remove(organization_ids, $1), updated_at = now()
            WHERE $1 = ANY(organization_ids)
            """,
            org_id,
        )
        return affected_rows(status)

    async def list_organization_members(self, org_id: UUID) -> list[Principal]:
        """Get principals whose organization set contains org_id."""
        rows = await self._db.fetch_all(
            "SELECT * FROM principals WHERE $1 = ANY(organization_ids) ORDER BY created_at",
            org_id,
        )
        return [self._row_to_principal(row) for row in rows]

    async def list_principals(
        self, org_id: UUID | None = None, offset: int = 0, limit: int = 50
    ) -> list[Principal]:
        """Get a page of principals in creation order, optionally one organization's."""
        if org_id is None:
            rows = await self._db.fetch_all(
                "SELECT * FROM principals ORDER BY created_at, id OFFSET $1 LIMIT $2",
                offset,
                limit,
            )
        else:
            rows = await self._db.fetch_all(
                """
                SELECT * FROM principals WHERE $1 = ANY(organization_ids)
                ORDER BY created_at, id OFFSET $2 LIMIT $3
                """,
                org_id,
                offset,
                limit,
            )
        return [self._row_to_principal(row) for row in rows]

    async def count_principals(self, org_id: UUID | None = None) -> int:
        """Count principals, optionally only members of one organization."""
        if org_id is None:
            count = await self._db.fetch_value("SELECT COUNT(*) FROM principals")
        else:
            count = await self._db.fetch_value(
                "SELECT COUNT(*) FROM principals WHERE $1 = ANY(organization_ids)", org_id
            )
        return int(count or 0)

    # Organization operations
    async def get_org_by_id(self, org_id: UUID) -> Organization | None:
        """Get organization by ID."""
        row = await self._db.fetch_one("SELECT * FROM organizations WHERE id = $1", org_id)
        return self._row_to_org(row) if row else None

    async def get_org_by_name(self, name: str) -> Organization | None:
        """Get organization by name."""
        row = await self._db.fetch_one("SELECT * FROM organizations WHERE name = $1", name)
        return self._row_to_org(row) if row else None

    async def get_org_by_domain(self, domain: str) -> Organization | None:
        """Get organization by domain."""
        row = await self._db.fetch_one("SELECT * FROM organizations WHERE domain = $1", domain)
        return self._row_to_org(row) if row else None

    async def create_org(
        self,
        name: str,
        description: str = "",
        domain: str | None = None,
        admin_ids: list[UUID] | None = None,
    ) -> Organization:
        """Create a new organization."""
        row = await self._db.fetch_one(
            """
            INSERT INTO organizations (name, description, domain, admin_ids)
            VALUES ($1, $2, $3, $4::uuid[])
            RETURNING *
            """,
            name,
            description,
            domain,
            list(dict.fromkeys(admin_ids or [])),
        )
        return self._row_to_org(_returned(row, "organization"))

    async def update_org(
        self,
        org_id: UUID,
        name: str | None = None,
        description: str | None = None,
        domain: str | None = None,
        is_active: bool | None = None,
    ) -> Organization | None:
        """Update organization fields."""
        updates, params = _build_update(
            {"name": name, "description": description, "domain": domain, "is_active": is_active}
        )
        if not updates:
            return await self.get_org_by_id(org_id)

        row = await self._db.fetch_one(
            f"""
            UPDATE organizations SET {", ".join(updates)}, updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            org_id,
            *params,
        )
        return self._row_to_org(row) if row else None

    async def delete_org(self, org_id: UUID) -> bool:
        """Delete an organization. Returns False if it did not exist."""
        status = await self._db.execute("DELETE FROM organizations WHERE id = $1", org_id)
        return affected_rows(status) > 0

    async def add_org_admin(self, org_id: UUID, principal_id: UUID) -> Organization | None:
        """Add a principal to the organization's admin set."""
        row = await self._db.fetch_one(
            """
            UPDATE organizations
            SET admin_ids = CASE
                    WHEN $2 = ANY(admin_ids) THEN admin_ids
                    ELSE array_append(admin_ids, $2)
                END,
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            org_id,
            principal_id,
        )
        return self._row_to_org(row) if row else None

    async def remove_org_admin(self, org_id: UUID, principal_id: UUID) -> Organization | None:
        """Pull a principal from the organization's admin set."""
        row = await self._db.fetch_one(
            """
            UPDATE organizations
            SET admin_ids = array_remove(admin_ids, $2), updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            org_id,
            principal_id,
        )
        return self._row_to_org(row) if row else None

    # Role operations
    async def get_role_by_id(self, role_id: UUID) -> Role | None:
        """Get role by ID."""
        row = await self._db.fetch_one("SELECT * FROM roles WHERE id = $1", role_id)
        return self._row_to_role(row) if row else None

    async def get_roles_by_ids(self, role_ids: list[UUID]) -> list[Role]:
        """Get the roles that exist among role_ids, in the given order."""
        if not role_ids:
            return []
        rows = await self._db.fetch_all(
            "SELECT * FROM roles WHERE id = ANY($1::uuid[])", list(role_ids)
        )
        return [self._row_to_role(row) for row in _ordered(rows, role_ids)]

    async def get_default_role(self, name: str) -> Role | None:
        """Get the system-default role with this name."""
        row = await self._db.fetch_one(
            "SELECT * FROM roles WHERE name = $1 AND is_system_default LIMIT 1", name
        )
        return self._row_to_role(row) if row else None

    async def find_role_by_name(self, name: str, organization_id: UUID | None) -> Role | None:
        """Get a role with this name in the same scope or among system defaults."""
        row = await self._db.fetch_one(
            """
            SELECT * FROM roles
            WHERE name = $1
              AND (is_system_default OR organization_id IS NOT DISTINCT FROM $2)
            LIMIT 1
            """,
            name,
            organization_id,
        )
        return self._row_to_role(row) if row else None

    async def create_role(
        self,
        name: str,
        description: str = "",
        permission_ids: list[UUID] | None = None,
        organization_id: UUID | None = None,
        is_system_default: bool = False,
    ) -> Role:
        """Create a new role."""
        row = await self._db.fetch_one(
            """
            INSERT INTO roles
                (name, description, permission_ids, organization_id, is_system_default)
            VALUES ($1, $2, $3::uuid[], $4, $5)
            RETURNING *
            """,
            name,
            description,
            list(dict.fromkeys(permission_ids or [])),
            organization_id,
            is_system_default,
        )
        return self._row_to_role(_returned(row, "role"))

    async def add_role_permissions(self, role_id: UUID, permission_ids: list[UUID]) -> Role | None:
        """Union permission IDs into the role."""
        row = await self._db.fetch_one(
            """
            UPDATE roles
            SET permission_ids = permission_ids || ARRAY(
                    SELECT p FROM unnest($2::uuid[]) WITH ORDINALITY AS t(p, n)
                    WHERE NOT p = ANY(permission_ids)
                    ORDER BY n
                ),
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            role_id,
            list(dict.fromkeys(permission_ids)),
        )
        return self._row_to_role(row) if row else None

    async def remove_role_permissions(
        self, role_id: UUID, permission_ids: list[UUID]
    ) -> Role | None:
        """Pull permission IDs from the role."""
        row = await self._db.fetch_one(
            """
            UPDATE roles
            SET permission_ids = ARRAY(
                    SELECT p FROM unnest(permission_ids) WITH ORDINALITY AS t(p, n)
                    WHERE NOT p = ANY($2::uuid[])
                    ORDER BY n
                ),
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            role_id,
            list(permission_ids),
        )
        return self._row_to_role(row) if row else None

    async def list_roles(self, organization_id: UUID | None = None) -> list[Role]:
        """Get every role, or the roles that apply in one organization."""
        if organization_id is None:
            rows = await self._db.fetch_all("SELECT * FROM roles ORDER BY name, id")
        else:
            rows = await self._db.fetch_all(
                """
                SELECT * FROM roles
                WHERE organization_id IS NULL OR organization_id = $1
                ORDER BY name, id
                """,
                organization_id,
            )
        return [self._row_to_role(row) for row in rows]

    async def update_role(
        self, role_id: UUID, name: str | None = None, description: str | None = None
    ) -> Role | None:
        """Update role fields. Returns None if the role is absent."""
        updates, params = _build_update({"name": name, "description": description})
        if not updates:
            return await self.get_role_by_id(role_id)

        row = await self._db.fetch_one(
            f"""
            UPDATE roles SET {", ".join(updates)}, updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            role_id,
            *params,
        )
        return self._row_to_role(row) if row else None

    async def delete_role(self, role_id: UUID) -> bool:
        """Delete a role. Returns False if it did not exist."""
        status = await self._db.execute("DELETE FROM roles WHERE id = $1", role_id)
        return affected_rows(status) > 0

    async def count_roles(self, is_system_default: bool | None = None) -> int:
        """Count roles, optionally filtered on the system-default flag."""
        if is_system_default is None:
            count = await self._db.fetch_value("SELECT COUNT(*) FROM roles")
        else:
            count = await self._db.fetch_value(
                "SELECT COUNT(*) FROM roles WHERE is_system_default = $1", is_system_default
            )
        return int(count or 0)

    # Permission operations
    async def get_permissions_by_ids(self, permission_ids: list[UUID]) -> list[Permission]:
        """Get the permissions that exist among permission_ids, in the given order."""
        if not permission_ids:
            return []
        rows = await self._db.fetch_all(
            "SELECT * FROM permissions WHERE id = ANY($1::uuid[])", list(permission_ids)
        )
        return [self._row_to_permission(row) for row in _ordered(rows, permission_ids)]

    async def get_permission(
        self, resource: str, action: str, organization_id: UUID | None
    ) -> Permission | None:
        """Get permission by its unique (resource, action, scope) key."""
        row = await self._db.fetch_one(
            """
            SELECT * FROM permissions
            WHERE resource = $1 AND action = $2
              AND organization_id IS NOT DISTINCT FROM $3
            """,
            resource,
            action,
            organization_id,
        )
        return self._row_to_permission(row) if row else None

    async def list_permissions(self, resource: str | None = None) -> list[Permission]:
        """Get all permissions, optionally only those on one resource."""
        if resource is None:
            rows = await self._db.fetch_all(
                "SELECT * FROM permissions ORDER BY resource, action"
            )
        else:
            rows = await self._db.fetch_all(
                "SELECT * FROM permissions WHERE resource = $1 ORDER BY action", resource
            )
        return [self._row_to_permission(row) for row in rows]

    async def delete_permission(self, permission_id: UUID) -> bool:
        """Delete a permission. Returns False if it did not exist."""
        status = await self._db.execute("DELETE FROM permissions WHERE id = $1", permission_id)
        return affected_rows(status) > 0

    async def create_permission(
        self,
        name: str,
        resource: str,
        action: str,
        description: str = "",
        organization_id: UUID | None = None,
        is_system_default: bool = False,
    ) -> Permission:
        """Create a new permission."""
        row = await self._db.fetch_one(
            """
            INSERT INTO permissions (
                name, resource, action, description, organization_id, is_system_default
            )
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
            """,
            name,
            resource,
            action,
            description,
            organization_id,
            is_system_default,
        )
        return self._row_to_permission(_returned(row, "permission"))
