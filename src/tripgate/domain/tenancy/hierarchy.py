"""Inherited school set of an organization.

The set of SCHOOLs an organization reaches depends only on its type:

- PARENT_ORG: the SCHOOLs in the tenant whose parent is the organization.
- BUS_COMPANY: the SCHOOLs linked by an active partnership in the tenant.
- SCHOOL (and any other type): the organization itself.

An organization that does not exist in the tenant reaches nothing. The
result is an ordinary set; empty is a valid answer.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tripgate.foundation.domain.org_value_objects import OrgType

if TYPE_CHECKING:
    from uuid import UUID

    from tripgate.foundation.domain.ports import OrgGraphPort

logger = logging.getLogger(__name__)


class OrgHierarchyResolver:
    """Resolves the SCHOOL ids reachable from an organization.

    Args:
        graph: Tenant-scoped organization graph reads.
    """

    def __init__(self, graph: OrgGraphPort) -> None:
        self._graph = graph

    def resolve(self, tenant_id: UUID, org_id: UUID) -> frozenset[UUID]:
        org_type = self._graph.org_type(tenant_id, org_id)
        if org_type is None:
            logger.debug(
                "hierarchy_org_outside_tenant",
                extra={"tenant_id": str(tenant_id), "org_id": str(org_id)},
            )
            return frozenset()
        if org_type is OrgType.PARENT_ORG:
            return frozenset(self._graph.child_school_ids(tenant_id, org_id))
        if org_type is OrgType.BUS_COMPANY:
            return frozenset(self._graph.partner_school_ids(tenant_id, org_id))
        return frozenset({org_id})
