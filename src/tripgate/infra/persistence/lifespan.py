"""Persistence lifespan hook.

Startup creates the :class:`DatabaseManager`, stores it on
``app.state.database`` and runs a ``SELECT 1`` check so a wrong
connection string fails the start. Shutdown disposes every pool.

Priority 75: after observability (50), before auth (100) and the
domain hooks that build repositories on top of the manager.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from tripgate.foundation.application import (
    LIFESPAN_PRIORITY_PERSISTENCE,
    LifespanContribution,
)
from tripgate.infra.persistence.database import DatabaseManager, get_database_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _persistence_lifespan(app: Any) -> AsyncIterator[None]:
    manager = DatabaseManager(get_database_settings())
    try:
        async with manager.get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info(
            "persistence_lifespan_started",
            extra={"host": manager.settings.host, "database": manager.settings.name},
        )
        app.state.database = manager
        yield
    finally:
        await manager.dispose()
        logger.info("persistence_lifespan_stopped")


lifespan_contribution = LifespanContribution(
    hook=_persistence_lifespan,
    priority=LIFESPAN_PRIORITY_PERSISTENCE,
)
