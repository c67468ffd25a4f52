"""FastAPI dependencies for org-scoped routes.

Usage:
    from tripgate.domain.access.dependencies import EffectiveSchools

    @router.get("/trips")
    def list_trips(schools: EffectiveSchools):
        ...  # filter by school ids
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request

from tripgate.domain.access.active_context import ActiveContextStore
from tripgate.domain.access.infrastructure import RoleGrantRepository
from tripgate.domain.access.scope_engine import ScopeEngine
from tripgate.domain.tenancy.infrastructure import OrganizationRepository
from tripgate.domain.tenancy.models import Organization
from tripgate.foundation.domain.exceptions import NoActiveOrganizationError
from tripgate.infra.auth.dependencies import AuthConfig, CurrentPrincipal


def get_role_grants(request: Request) -> RoleGrantRepository:
    return request.app.state.role_grants  # type: ignore[no-any-return]


def get_scope_engine(request: Request) -> ScopeEngine:
    return request.app.state.scope_engine  # type: ignore[no-any-return]


def get_active_context_store(request: Request) -> ActiveContextStore:
    return request.app.state.active_context  # type: ignore[no-any-return]


def get_organizations(request: Request) -> OrganizationRepository:
    return request.app.state.organization_repository  # type: ignore[no-any-return]


RoleGrantsDep = Annotated[RoleGrantRepository, Depends(get_role_grants)]
ScopeEngineDep = Annotated[ScopeEngine, Depends(get_scope_engine)]
ActiveContextDep = Annotated[ActiveContextStore, Depends(get_active_context_store)]
OrganizationsDep = Annotated[OrganizationRepository, Depends(get_organizations)]


def get_active_org_id(
    request: Request,
    principal: CurrentPrincipal,
    store: ActiveContextDep,
    settings: AuthConfig,
) -> UUID | None:
    """The caller's selected organization id, or None. Never writes."""
    return store.read(request.cookies.get(settings.active_org_cookie_name), principal.user_id)


def get_active_organization(
    org_id: Annotated[UUID | None, Depends(get_active_org_id)],
    organizations: OrganizationsDep,
) -> Organization:
    """The selected organization record.

    Raises:
        NoActiveOrganizationError: Nothing selected, or the organization is gone.
    """
    if org_id is None:
        raise NoActiveOrganizationError()
    org = organizations.get_any(org_id)
    if org is None:
        raise NoActiveOrganizationError()
    return org


ActiveOrganization = Annotated[Organization, Depends(get_active_organization)]


def get_effective_schools(
    principal: CurrentPrincipal,
    org: ActiveOrganization,
    engine: ScopeEngineDep,
) -> frozenset[UUID]:
    """School ids the caller may act on under the active organization."""
    return engine.effective_schools(principal.user_id, org.tenant_id, org.id)


EffectiveSchools = Annotated[frozenset[UUID], Depends(get_effective_schools)]
