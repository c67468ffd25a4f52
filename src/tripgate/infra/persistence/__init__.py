"""Tripgate Infra Persistence -- database settings, engines, lifespan."""

from tripgate.infra.persistence.database import (
    DatabaseManager,
    DatabaseSettings,
    get_database_settings,
)
from tripgate.infra.persistence.lifespan import lifespan_contribution

__all__ = [
    "DatabaseManager",
    "DatabaseSettings",
    "get_database_settings",
    "lifespan_contribution",
]
