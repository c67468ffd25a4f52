"""Effective school set of a user on their active organization.

Evaluation order:

1. The inherited set of the active organization. Empty: nothing.
2. The roles the user holds on the active organization. None: nothing.
3. The scope rows of those roles.
4. No scope rows: the whole inherited set.
5. Otherwise the inherited set intersected with the union of scoped ids.

Scopes narrow the inherited set and can never add to it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

    from tripgate.domain.tenancy.hierarchy import OrgHierarchyResolver
    from tripgate.foundation.domain.ports import RoleGrantPort

logger = logging.getLogger(__name__)


class ScopeEngine:
    """Combines hierarchy inheritance with role grants and scope rows.

    Args:
        hierarchy: Resolver for the inherited school set.
        grants: Role and scope reads.
    """

    def __init__(self, hierarchy: OrgHierarchyResolver, grants: RoleGrantPort) -> None:
        self._hierarchy = hierarchy
        self._grants = grants

    def effective_schools(
        self,
        user_id: UUID,
        tenant_id: UUID,
        active_org_id: UUID,
    ) -> frozenset[UUID]:
        base = self._hierarchy.resolve(tenant_id, active_org_id)
        if not base:
            return frozenset()

        roles = self._grants.roles_on_org(user_id, active_org_id)
        if not roles:
            return frozenset()

        scoped = self._grants.scoped_school_ids(user_id, active_org_id, roles)
        if not scoped:
            return base

        effective = base & frozenset(scoped)
        logger.debug(
            "effective_schools_scoped",
            extra={
                "user_id": str(user_id),
                "org_id": str(active_org_id),
                "inherited": len(base),
                "effective": len(effective),
            },
        )
        return effective
