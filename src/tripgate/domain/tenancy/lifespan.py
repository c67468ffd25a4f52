"""Tenancy lifespan hook: tables, repositories and the hierarchy resolver."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from tripgate.domain.tenancy.hierarchy import OrgHierarchyResolver
from tripgate.domain.tenancy.infrastructure import OrganizationRepository, TenantRepository
from tripgate.foundation.application import LIFESPAN_PRIORITY_TENANCY, LifespanContribution

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


def _ensure_tables(session_factory: Any) -> None:
    TenantRepository.ensure_table_exists(session_factory)
    OrganizationRepository.ensure_table_exists(session_factory)


@asynccontextmanager
async def _tenancy_lifespan(app: Any) -> AsyncIterator[None]:
    session_factory = app.state.database.get_sync_session_factory()
    await asyncio.to_thread(_ensure_tables, session_factory)

    organizations = OrganizationRepository(session_factory)
    app.state.tenant_repository = TenantRepository(session_factory)
    app.state.organization_repository = organizations
    app.state.hierarchy_resolver = OrgHierarchyResolver(organizations)
    logger.info("tenancy_lifespan_started")
    yield


lifespan_contribution = LifespanContribution(
    hook=_tenancy_lifespan,
    priority=LIFESPAN_PRIORITY_TENANCY,
)
