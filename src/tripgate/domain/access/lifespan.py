"""Access lifespan hook: grant tables, scope engine and active-context store.

Runs after identity (110) and tenancy (115); the grant tables reference
``users`` and ``organizations``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from tripgate.domain.access.active_context import ActiveContextStore
from tripgate.domain.access.infrastructure import RoleGrantRepository
from tripgate.domain.access.scope_engine import ScopeEngine
from tripgate.foundation.application import LIFESPAN_PRIORITY_ACCESS, LifespanContribution
from tripgate.infra.auth.settings import get_auth_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _access_lifespan(app: Any) -> AsyncIterator[None]:
    settings = get_auth_settings()
    session_factory = app.state.database.get_sync_session_factory()
    await asyncio.to_thread(RoleGrantRepository.ensure_table_exists, session_factory)

    grants = RoleGrantRepository(session_factory)
    app.state.role_grants = grants
    app.state.scope_engine = ScopeEngine(app.state.hierarchy_resolver, grants)
    app.state.active_context = ActiveContextStore(
        grants,
        secret=settings.session_secret,
        ttl_seconds=settings.session_ttl_seconds,
    )
    logger.info("access_lifespan_started")
    yield


lifespan_contribution = LifespanContribution(
    hook=_access_lifespan,
    priority=LIFESPAN_PRIORITY_ACCESS,
)
