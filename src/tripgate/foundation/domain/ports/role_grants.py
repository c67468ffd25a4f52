"""Port interface for role grants and scope restrictions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from tripgate.foundation.domain.org_value_objects import RoleType


@runtime_checkable
class RoleGrantPort(Protocol):
    """Port for the reads the scope engine and active-context store need."""

    def roles_on_org(self, user_id: UUID, org_id: UUID) -> set[RoleType]:
        """Return the roles ``user_id`` holds on ``org_id`` (empty if none)."""
        ...

    def scoped_school_ids(
        self,
        user_id: UUID,
        org_id: UUID,
        roles: Iterable[RoleType],
    ) -> list[UUID]:
        """Return school ids from every scope row for (user, org, role in roles).

        An empty list means no scope rows exist for any of the roles.
        """
        ...
