"""Access REST API: identity query, active organization, role grants.

Grant administration requires ADMIN on some organization in the target
organization's tenant, or the global ``admin`` role.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from tripgate.domain.access.active_context import set_active_org_cookie
from tripgate.domain.access.dependencies import (
    ActiveContextDep,
    ActiveOrganization,
    EffectiveSchools,
    OrganizationsDep,
    RoleGrantsDep,
    get_active_org_id,
)
from tripgate.domain.access.infrastructure import RoleGrantRepository
from tripgate.domain.access.models import RoleGrant
from tripgate.domain.identity.router import UserDirectoryDep
from tripgate.domain.tenancy.infrastructure import OrganizationRepository
from tripgate.foundation.domain.exceptions import ForbiddenError, NotFoundError
from tripgate.foundation.domain.org_value_objects import OrgType, RoleType
from tripgate.foundation.domain.principal import Principal
from tripgate.infra.auth.dependencies import AuthConfig, CurrentPrincipal, require_role

router = APIRouter(tags=["access"])

GLOBAL_ADMIN_ROLE = "admin"


# -- Request / Response models ------------------------------------------------


class MeUser(BaseModel):
    id: str
    email: str
    name: str
    role: str | None


class Membership(BaseModel):
    org_id: str
    name: str
    type: OrgType
    role: RoleType


class MeResponse(BaseModel):
    user: MeUser
    orgs: list[Membership]
    active_org_id: str | None
    default_org_id: str | None


class SelectOrganizationRequest(BaseModel):
    org_id: UUID


class EffectiveSchoolsResponse(BaseModel):
    active_org_id: str
    school_ids: list[str]


class GrantRequest(BaseModel):
    user_id: UUID
    org_id: UUID
    role: RoleType
    is_default: bool = False


class GrantResponse(BaseModel):
    user_id: str
    org_id: str
    role: RoleType
    is_default: bool
    school_ids: list[str] = Field(default_factory=list)


class ReplaceScopesRequest(BaseModel):
    user_id: UUID
    org_id: UUID
    role: RoleType
    school_ids: list[UUID]


class ScopesResponse(BaseModel):
    school_ids: list[str]


# -- Identity and active organization -----------------------------------------


@router.get("/me")
def me(
    principal: CurrentPrincipal,
    active_org_id: Annotated[UUID | None, Depends(get_active_org_id)],
    grants: RoleGrantsDep,
    organizations: OrganizationsDep,
) -> MeResponse:
    """Resolved identity, organization memberships and the active organization."""
    user_grants = grants.grants_for_user(principal.user_id)
    orgs = organizations.get_many(list({g.org_id for g in user_grants}))
    memberships = [
        Membership(
            org_id=str(g.org_id),
            name=orgs[g.org_id].name,
            type=orgs[g.org_id].type,
            role=g.role,
        )
        for g in user_grants
        if g.org_id in orgs
    ]
    member_of = {g.org_id for g in user_grants}
    default_org_id = next((g.org_id for g in user_grants if g.is_default), None)
    return MeResponse(
        user=MeUser(
            id=str(principal.user_id),
            email=principal.email,
            name=principal.display_name,
            role=principal.roles[0] if principal.roles else None,
        ),
        orgs=memberships,
        active_org_id=str(active_org_id) if active_org_id in member_of else None,
        default_org_id=str(default_org_id) if default_org_id else None,
    )


@router.post("/session/active-organization", status_code=204)
def select_active_organization(
    body: SelectOrganizationRequest,
    principal: CurrentPrincipal,
    store: ActiveContextDep,
    settings: AuthConfig,
) -> Response:
    """Select the active organization; the caller must hold a role on it."""
    token = store.select(principal.user_id, body.org_id)
    response = Response(status_code=204)
    set_active_org_cookie(response, token, settings)
    return response


@router.get("/me/schools")
def effective_schools(
    org: ActiveOrganization,
    schools: EffectiveSchools,
) -> EffectiveSchoolsResponse:
    """School ids the caller may act on under the active organization."""
    return EffectiveSchoolsResponse(
        active_org_id=str(org.id),
        school_ids=sorted(str(s) for s in schools),
    )


# -- Grant administration -----------------------------------------------------


@router.post("/admin/user-roles", status_code=201)
def grant_role(
    body: GrantRequest,
    principal: CurrentPrincipal,
    grants: RoleGrantsDep,
    organizations: OrganizationsDep,
    directory: UserDirectoryDep,
) -> GrantResponse:
    _require_tenant_admin(principal, body.org_id, organizations, grants)
    if directory.get_by_id(body.user_id) is None:
        raise NotFoundError("User", body.user_id)
    grant = grants.grant(body.user_id, body.org_id, body.role, is_default=body.is_default)
    return _grant_response(grant)


@router.delete("/admin/user-roles")
def revoke_role(
    body: GrantRequest,
    principal: CurrentPrincipal,
    grants: RoleGrantsDep,
    organizations: OrganizationsDep,
) -> dict[str, bool]:
    """Remove a grant together with its scope rows."""
    _require_tenant_admin(principal, body.org_id, organizations, grants)
    grants.revoke(body.user_id, body.org_id, body.role)
    return {"ok": True}


@router.get("/admin/user-role-scopes")
def list_scopes(
    principal: CurrentPrincipal,
    grants: RoleGrantsDep,
    organizations: OrganizationsDep,
    user_id: Annotated[UUID, Query()],
    org_id: Annotated[UUID, Query()],
    role: Annotated[RoleType, Query()],
) -> ScopesResponse:
    _require_tenant_admin(principal, org_id, organizations, grants)
    return ScopesResponse(school_ids=[str(s) for s in grants.list_scopes(user_id, org_id, role)])


@router.put("/admin/user-role-scopes")
def replace_scopes(
    body: ReplaceScopesRequest,
    principal: CurrentPrincipal,
    grants: RoleGrantsDep,
    organizations: OrganizationsDep,
) -> ScopesResponse:
    """Replace the whole scope set of a grant. An empty list lifts the restriction."""
    _require_tenant_admin(principal, body.org_id, organizations, grants)
    stored = grants.replace_scopes(body.user_id, body.org_id, body.role, body.school_ids)
    return ScopesResponse(school_ids=[str(s) for s in stored])


@router.get(
    "/admin/users/{user_id}/grants",
    dependencies=[Depends(require_role(GLOBAL_ADMIN_ROLE))],
)
def list_user_grants(user_id: UUID, grants: RoleGrantsDep) -> list[GrantResponse]:
    return [_grant_response(g) for g in grants.grants_for_user(user_id)]


# -- Helpers ------------------------------------------------------------------


def _require_tenant_admin(
    principal: Principal,
    org_id: UUID,
    organizations: OrganizationRepository,
    grants: RoleGrantRepository,
) -> None:
    org = organizations.get_any(org_id)
    if org is None:
        raise NotFoundError("Organization", org_id)
    if GLOBAL_ADMIN_ROLE in principal.roles:
        return
    if not grants.is_tenant_admin(principal.user_id, org.tenant_id):
        raise ForbiddenError("Tenant administrator role required", tenant_id=str(org.tenant_id))


def _grant_response(grant: RoleGrant) -> GrantResponse:
    return GrantResponse(
        user_id=str(grant.user_id),
        org_id=str(grant.org_id),
        role=grant.role,
        is_default=grant.is_default,
        school_ids=[str(s) for s in grant.school_ids],
    )
