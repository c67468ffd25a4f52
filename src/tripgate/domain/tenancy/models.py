"""Tenant, organization and partnership records with their creation rules.

Records are immutable snapshots of rows. The ``check_*`` functions hold
the structural invariants of the hierarchy and are called by the
repository inside the transaction that inserts the row.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from tripgate.foundation.domain.exceptions import ValidationError
from tripgate.foundation.domain.org_value_objects import OrgType

if TYPE_CHECKING:
    from uuid import UUID


@dataclass(frozen=True, slots=True)
class Tenant:
    """Isolation boundary. ``id`` and ``slug`` never change."""

    id: UUID
    slug: str
    name: str


@dataclass(frozen=True, slots=True)
class Organization:
    """A node in a tenant's hierarchy.

    Attributes:
        id: Organization id.
        tenant_id: Owning tenant.
        name: Display name.
        type: SCHOOL, BUS_COMPANY or PARENT_ORG.
        parent_id: Containing PARENT_ORG, if any.
    """

    id: UUID
    tenant_id: UUID
    name: str
    type: OrgType
    parent_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class Partnership:
    """Directed edge from a BUS_COMPANY to a SCHOOL within one tenant."""

    id: UUID
    tenant_id: UUID
    bus_company_id: UUID
    school_id: UUID
    active: bool = True


def check_parent(tenant_id: UUID, parent: Organization | None, parent_id: UUID) -> None:
    """Validate the parent of a new organization.

    Raises:
        ValidationError: Parent missing, in another tenant, or not a PARENT_ORG.
    """
    if parent is None or parent.tenant_id != tenant_id:
        raise ValidationError(
            "parent_id",
            "Parent organization must exist in the same tenant",
            parent_id=str(parent_id),
        )
    if parent.type is not OrgType.PARENT_ORG:
        raise ValidationError(
            "parent_id",
            "Parent organization must be a PARENT_ORG",
            parent_type=str(parent.type),
        )


def check_partnership(
    tenant_id: UUID,
    bus_company: Organization | None,
    school: Organization | None,
) -> None:
    """Validate the endpoints of a new partnership.

    Raises:
        ValidationError: An endpoint is missing, in another tenant, or of the wrong type.
    """
    for field, org, expected in (
        ("bus_company_id", bus_company, OrgType.BUS_COMPANY),
        ("school_id", school, OrgType.SCHOOL),
    ):
        if org is None or org.tenant_id != tenant_id:
            raise ValidationError(field, "Organization must exist in the partnership's tenant")
        if org.type is not expected:
            raise ValidationError(field, f"Organization must be a {expected}")
