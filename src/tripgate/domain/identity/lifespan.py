"""Identity lifespan hook.

Runs after persistence (75) and auth (100): ensures the ``users`` table,
then builds the user directory, the identity resolver and the
:class:`Authenticator` that the credential middleware reads from
``app.state.authenticator``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from tripgate.domain.identity.identity_resolver import IdentityPolicy, IdentityResolver
from tripgate.domain.identity.infrastructure.user_repository import UserRepository
from tripgate.domain.identity.password_auth import PasswordAuthService
from tripgate.foundation.application import LIFESPAN_PRIORITY_IDENTITY, LifespanContribution
from tripgate.infra.auth.authenticator import Authenticator
from tripgate.infra.auth.settings import get_auth_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _identity_lifespan(app: Any) -> AsyncIterator[None]:
    settings = get_auth_settings()
    session_factory = app.state.database.get_sync_session_factory()
    await asyncio.to_thread(UserRepository.ensure_table_exists, session_factory)

    directory = UserRepository(session_factory)
    policy = (
        IdentityPolicy.AUTO_PROVISION if settings.auto_provision else IdentityPolicy.REJECT_UNKNOWN
    )
    resolver = IdentityResolver(directory, policy=policy, default_role=settings.default_user_role)

    app.state.user_directory = directory
    app.state.identity_resolver = resolver
    app.state.password_auth = PasswordAuthService(directory)
    app.state.authenticator = Authenticator(app.state.token_verifiers, resolver)
    logger.info("identity_lifespan_started", extra={"policy": str(policy)})
    yield
    logger.info("identity_lifespan_stopped")


lifespan_contribution = LifespanContribution(
    hook=_identity_lifespan,
    priority=LIFESPAN_PRIORITY_IDENTITY,
)
