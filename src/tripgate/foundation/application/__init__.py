"""Tripgate Foundation Application -- principal context and assembly contracts."""

from tripgate.foundation.application.context import (
    NoRequestContextError,
    clear_principal_context,
    get_current_principal,
    get_optional_principal,
    set_principal_context,
)
from tripgate.foundation.application.contributions import (
    LIFESPAN_PRIORITY_ACCESS,
    LIFESPAN_PRIORITY_AUTH,
    LIFESPAN_PRIORITY_IDENTITY,
    LIFESPAN_PRIORITY_OBSERVABILITY,
    LIFESPAN_PRIORITY_PERSISTENCE,
    LIFESPAN_PRIORITY_TENANCY,
    MIDDLEWARE_PRIORITY_OUTERMOST,
    MIDDLEWARE_PRIORITY_SECURITY,
    ErrorHandlerContribution,
    LifespanContribution,
    MiddlewareContribution,
    by_priority,
)
from tripgate.foundation.application.discovery import (
    DiscoveredContribution,
    discover,
)

__all__ = [
    "LIFESPAN_PRIORITY_ACCESS",
    "LIFESPAN_PRIORITY_AUTH",
    "LIFESPAN_PRIORITY_IDENTITY",
    "LIFESPAN_PRIORITY_OBSERVABILITY",
    "LIFESPAN_PRIORITY_PERSISTENCE",
    "LIFESPAN_PRIORITY_TENANCY",
    "MIDDLEWARE_PRIORITY_OUTERMOST",
    "MIDDLEWARE_PRIORITY_SECURITY",
    "DiscoveredContribution",
    "ErrorHandlerContribution",
    "LifespanContribution",
    "MiddlewareContribution",
    "NoRequestContextError",
    "by_priority",
    "clear_principal_context",
    "discover",
    "get_current_principal",
    "get_optional_principal",
    "set_principal_context",
]
