"""Port interface for reading the organization hierarchy.

The hierarchy resolver needs three questions answered, always within one
tenant. Keeping them behind a protocol lets the resolver run against an
in-memory graph in tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from uuid import UUID

    from tripgate.foundation.domain.org_value_objects import OrgType


@runtime_checkable
class OrgGraphPort(Protocol):
    """Port for tenant-scoped organization graph reads."""

    def org_type(self, tenant_id: UUID, org_id: UUID) -> OrgType | None:
        """Return the type of ``org_id`` if it exists in ``tenant_id``, else None."""
        ...

    def child_school_ids(self, tenant_id: UUID, parent_org_id: UUID) -> set[UUID]:
        """Return ids of SCHOOL organizations in the tenant whose parent is ``parent_org_id``."""
        ...

    def partner_school_ids(self, tenant_id: UUID, bus_company_id: UUID) -> set[UUID]:
        """Return ids of SCHOOLs linked to the bus company by an *active* partnership."""
        ...
