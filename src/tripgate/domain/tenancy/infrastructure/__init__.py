"""Tenancy persistence adapters."""

from tripgate.domain.tenancy.infrastructure.organization_repository import (
    OrganizationRepository,
)
from tripgate.domain.tenancy.infrastructure.tenant_repository import TenantRepository

__all__ = [
    "OrganizationRepository",
    "TenantRepository",
]
