"""Tenancy administration REST API.

Tenants, their organizations and bus-company partnerships. Every endpoint
requires the global ``admin`` role.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from tripgate.domain.tenancy.infrastructure import OrganizationRepository, TenantRepository
from tripgate.domain.tenancy.models import Organization, Partnership, Tenant
from tripgate.foundation.domain.exceptions import NotFoundError, ValidationError
from tripgate.foundation.domain.org_value_objects import OrgName, OrgType, TenantSlug
from tripgate.infra.auth.dependencies import require_role

router = APIRouter(
    prefix="/admin/tenants",
    tags=["tenancy"],
    dependencies=[Depends(require_role("admin"))],
)


def get_tenant_repository(request: Request) -> TenantRepository:
    return request.app.state.tenant_repository  # type: ignore[no-any-return]


def get_organization_repository(request: Request) -> OrganizationRepository:
    return request.app.state.organization_repository  # type: ignore[no-any-return]


TenantsDep = Annotated[TenantRepository, Depends(get_tenant_repository)]
OrganizationsDep = Annotated[OrganizationRepository, Depends(get_organization_repository)]


# -- Request / Response models ------------------------------------------------


class CreateTenantRequest(BaseModel):
    slug: str
    name: str


class TenantResponse(BaseModel):
    id: str
    slug: str
    name: str


class CreateOrganizationRequest(BaseModel):
    name: str
    type: OrgType
    parent_id: UUID | None = None


class OrganizationResponse(BaseModel):
    id: str
    tenant_id: str
    name: str
    type: OrgType
    parent_id: str | None


class CreatePartnershipRequest(BaseModel):
    bus_company_id: UUID
    school_id: UUID
    active: bool = True


class UpdatePartnershipRequest(BaseModel):
    active: bool


class PartnershipResponse(BaseModel):
    id: str
    tenant_id: str
    bus_company_id: str
    school_id: str
    active: bool


# -- Tenants ------------------------------------------------------------------


@router.post("", status_code=201)
def create_tenant(body: CreateTenantRequest, tenants: TenantsDep) -> TenantResponse:
    try:
        slug = TenantSlug(body.slug).value
        name = OrgName(body.name).value
    except ValueError as exc:
        raise ValidationError("tenant", str(exc)) from exc
    return _tenant_response(tenants.create(slug, name))


@router.get("")
def list_tenants(tenants: TenantsDep) -> list[TenantResponse]:
    return [_tenant_response(t) for t in tenants.list_all()]


# -- Organizations ------------------------------------------------------------


@router.post("/{tenant_id}/organizations", status_code=201)
def create_organization(
    tenant_id: UUID,
    body: CreateOrganizationRequest,
    tenants: TenantsDep,
    organizations: OrganizationsDep,
) -> OrganizationResponse:
    """Create an organization; a parent must be a PARENT_ORG in the same tenant."""
    _require_tenant(tenants, tenant_id)
    try:
        name = OrgName(body.name).value
    except ValueError as exc:
        raise ValidationError("name", str(exc)) from exc
    org = organizations.create(tenant_id, name, body.type, body.parent_id)
    return _org_response(org)


@router.get("/{tenant_id}/organizations")
def list_organizations(
    tenant_id: UUID,
    tenants: TenantsDep,
    organizations: OrganizationsDep,
) -> list[OrganizationResponse]:
    _require_tenant(tenants, tenant_id)
    return [_org_response(o) for o in organizations.list_for_tenant(tenant_id)]


# -- Partnerships -------------------------------------------------------------


@router.post("/{tenant_id}/partnerships", status_code=201)
def create_partnership(
    tenant_id: UUID,
    body: CreatePartnershipRequest,
    tenants: TenantsDep,
    organizations: OrganizationsDep,
) -> PartnershipResponse:
    """Link a BUS_COMPANY to a SCHOOL of the same tenant."""
    _require_tenant(tenants, tenant_id)
    partnership = organizations.create_partnership(
        tenant_id, body.bus_company_id, body.school_id, active=body.active
    )
    return _partnership_response(partnership)


@router.get("/{tenant_id}/partnerships")
def list_partnerships(
    tenant_id: UUID,
    tenants: TenantsDep,
    organizations: OrganizationsDep,
) -> list[PartnershipResponse]:
    _require_tenant(tenants, tenant_id)
    return [_partnership_response(p) for p in organizations.list_partnerships(tenant_id)]


@router.patch("/{tenant_id}/partnerships/{partnership_id}")
def update_partnership(
    tenant_id: UUID,
    partnership_id: UUID,
    body: UpdatePartnershipRequest,
    organizations: OrganizationsDep,
) -> PartnershipResponse:
    """Activate or deactivate a partnership."""
    partnership = organizations.set_partnership_active(tenant_id, partnership_id, body.active)
    return _partnership_response(partnership)


# -- Helpers ------------------------------------------------------------------


def _require_tenant(tenants: TenantRepository, tenant_id: UUID) -> Tenant:
    tenant = tenants.get(tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant", tenant_id)
    return tenant


def _tenant_response(tenant: Tenant) -> TenantResponse:
    return TenantResponse(id=str(tenant.id), slug=tenant.slug, name=tenant.name)


def _org_response(org: Organization) -> OrganizationResponse:
    return OrganizationResponse(
        id=str(org.id),
        tenant_id=str(org.tenant_id),
        name=org.name,
        type=org.type,
        parent_id=str(org.parent_id) if org.parent_id else None,
    )


def _partnership_response(partnership: Partnership) -> PartnershipResponse:
    return PartnershipResponse(
        id=str(partnership.id),
        tenant_id=str(partnership.tenant_id),
        bus_company_id=str(partnership.bus_company_id),
        school_id=str(partnership.school_id),
        active=partnership.active,
    )
