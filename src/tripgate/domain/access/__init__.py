"""Tripgate Domain Access -- role grants, scopes, active organization."""

from tripgate.domain.access.active_context import ActiveContextStore, set_active_org_cookie
from tripgate.domain.access.dependencies import ActiveOrganization, EffectiveSchools
from tripgate.domain.access.infrastructure import RoleGrantRepository
from tripgate.domain.access.models import RoleGrant
from tripgate.domain.access.scope_engine import ScopeEngine

__all__ = [
    "ActiveContextStore",
    "ActiveOrganization",
    "EffectiveSchools",
    "RoleGrant",
    "RoleGrantRepository",
    "ScopeEngine",
    "set_active_org_cookie",
]
