"""Auth lifespan hook: builds verifiers and outbound clients at startup.

Priority 100 runs after observability (50) and persistence (75). Every
enabled strategy is validated here, so a missing secret or issuer stops
the application before it serves a request.

Startup stores on ``app.state``:
    auth_settings, key_resolver, token_verifiers, session_issuer,
    and (when delegation is configured) obo_client and graph_client.

The identity lifespan combines ``token_verifiers`` with the user
directory into ``app.state.authenticator``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from tripgate.foundation.application import LIFESPAN_PRIORITY_AUTH, LifespanContribution
from tripgate.foundation.domain.principal import TokenStrategy
from tripgate.infra.auth.delegation import GraphClient, OnBehalfOfClient
from tripgate.infra.auth.jwks import KeySetResolver
from tripgate.infra.auth.session import SessionTokenIssuer
from tripgate.infra.auth.settings import get_auth_settings
from tripgate.infra.auth.verifier import build_verifiers

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _auth_lifespan(app: Any) -> AsyncIterator[None]:
    """Manage auth collaborators across the application lifecycle.

    Raises:
        ValueError: If an enabled strategy lacks required configuration.
    """
    settings = get_auth_settings()
    resolver = KeySetResolver(
        max_entries=settings.jwks_cache_max_entries,
        ttl=settings.jwks_cache_ttl,
        fetch_timeout=settings.jwks_fetch_timeout,
    )
    obo_client: OnBehalfOfClient | None = None
    graph_client: GraphClient | None = None

    try:
        try:
            verifiers = await build_verifiers(settings, resolver)
        except ValueError:
            logger.exception("auth_configuration_invalid")
            raise

        app.state.auth_settings = settings
        app.state.key_resolver = resolver
        app.state.token_verifiers = verifiers
        app.state.session_issuer = SessionTokenIssuer.from_settings(settings)

        if TokenStrategy.DELEGATED in verifiers:
            obo_client = OnBehalfOfClient.from_settings(settings)
            graph_client = GraphClient(settings.graph_base_url, timeout=settings.exchange_timeout)
            app.state.obo_client = obo_client
            app.state.graph_client = graph_client

        logger.info(
            "auth_lifespan_started",
            extra={
                "strategies": [str(s) for s in verifiers],
                "bearer_strategy": str(settings.bearer_strategy),
            },
        )
        yield
    finally:
        if graph_client is not None:
            await graph_client.aclose()
        if obo_client is not None:
            await obo_client.aclose()
        await resolver.aclose()
        logger.info("auth_lifespan_stopped")


lifespan_contribution = LifespanContribution(
    hook=_auth_lifespan,
    priority=LIFESPAN_PRIORITY_AUTH,
)
