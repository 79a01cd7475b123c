"""Default role resolution for new principals."""

from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import UUID

from accessgate.core.rbac.types import DefaultRoleName

if TYPE_CHECKING:
    from accessgate.core.auth.repository import RBACRepository


@runtime_checkable
class DefaultRoleResolver(Protocol):
    """Decides which roles a newly created principal receives."""

    async def default_role_ids(self) -> list[UUID]:
        """Role IDs to attach to a new principal. Empty when there is none."""
        ...


class StaticDefaultRoleResolver:
    """Always returns a fixed list of role IDs."""

    def __init__(self, role_ids: list[UUID] | None = None) -> None:
        self._role_ids = list(role_ids or [])

    async def default_role_ids(self) -> list[UUID]:
        return list(self._role_ids)


class StoreDefaultRoleResolver:
    """Looks up the system-default role by name in the RBAC store."""

    def __init__(
        self,
        repo: "RBACRepository",
        role_name: str = DefaultRoleName.USER.value,
    ) -> None:
        """Initialize with the RBAC repository.

        Args:
            repo: Repository holding roles.
            role_name: Name of the system-default role to assign.
        """
        self._repo = repo
        self._role_name = role_name

    async def default_role_ids(self) -> list[UUID]:
        role = await self._repo.get_default_role(self._role_name)
        if role is None:
            return []
        return [role.id]
