"""Tripgate Domain Tenancy -- tenants, organization hierarchy, partnerships."""

from tripgate.domain.tenancy.hierarchy import OrgHierarchyResolver
from tripgate.domain.tenancy.infrastructure import OrganizationRepository, TenantRepository
from tripgate.domain.tenancy.models import Organization, Partnership, Tenant

__all__ = [
    "OrgHierarchyResolver",
    "Organization",
    "OrganizationRepository",
    "Partnership",
    "Tenant",
    "TenantRepository",
]
