"""Role grant records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

    from tripgate.foundation.domain.org_value_objects import RoleType


@dataclass(frozen=True, slots=True)
class RoleGrant:
    """A (user, organization, role) grant.

    Attributes:
        user_id: Grantee.
        org_id: Organization the role is held on.
        role: ADMIN, FINANCE or STAFF.
        is_default: Whether this is the user's default organization.
        school_ids: Scope allow-list; empty means the full inherited set.
    """

    user_id: UUID
    org_id: UUID
    role: RoleType
    is_default: bool = False
    school_ids: tuple[UUID, ...] = ()
