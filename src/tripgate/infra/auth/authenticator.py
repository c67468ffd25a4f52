"""Credential authentication: verification followed by identity resolution.

:class:`Authenticator` is the single entry point used by the credential
middleware and the delegated-assertion dependency. The caller names the
strategy (from configuration and from where the credential arrived); the
authenticator never tries strategies in turn.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from tripgate.foundation.domain.exceptions import UnverifiedConfigurationError
from tripgate.foundation.domain.principal import Principal

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tripgate.foundation.domain.principal import TokenStrategy, VerifiedClaims
    from tripgate.foundation.domain.user_value_objects import UserRecord
    from tripgate.infra.auth.verifier import TokenVerifier

logger = logging.getLogger(__name__)


class IdentityResolverProtocol(Protocol):
    """Maps verified claims to an internal user record."""

    def resolve(self, claims: VerifiedClaims) -> UserRecord: ...


@dataclass(frozen=True, slots=True)
class Authentication:
    """Outcome of a successful authentication.

    Attributes:
        principal: Principal exposed to handlers.
        claims: Verified claims of the credential.
        user: Resolved internal user record.
    """

    principal: Principal
    claims: VerifiedClaims
    user: UserRecord


class Authenticator:
    """Verifies a credential with its strategy and resolves the local user.

    Args:
        verifiers: Verifier per enabled strategy (built at startup).
        identity_resolver: Resolver backed by the user directory.
    """

    def __init__(
        self,
        verifiers: Mapping[TokenStrategy, TokenVerifier],
        identity_resolver: IdentityResolverProtocol,
    ) -> None:
        self._verifiers = dict(verifiers)
        self._identity_resolver = identity_resolver

    @property
    def strategies(self) -> frozenset[TokenStrategy]:
        return frozenset(self._verifiers)

    async def verify(self, raw: str, strategy: TokenStrategy) -> VerifiedClaims:
        """Verify ``raw`` with the verifier for ``strategy``.

        Raises:
            UnverifiedConfigurationError: No verifier is configured for ``strategy``.
            TokenVerificationError: Verification failed.
        """
        verifier = self._verifiers.get(strategy)
        if verifier is None:
            raise UnverifiedConfigurationError(
                "No verifier configured for strategy", {"strategy": str(strategy)}
            )
        return await verifier.verify(raw)

    async def authenticate(self, raw: str, strategy: TokenStrategy) -> Authentication:
        """Verify ``raw`` and resolve the internal user it names.

        The user directory is synchronous, so resolution runs in a worker thread.

        Raises:
            TokenVerificationError: Verification failed.
            NoLocalAccountError: A session token names a user that no longer exists.
            ProvisioningDisabledError: An external identity is unknown and
                auto-provisioning is off.
        """
        claims = await self.verify(raw, strategy)
        user = await asyncio.to_thread(self._identity_resolver.resolve, claims)
        principal = Principal(
            subject=claims.subject,
            user_id=user.id,
            email=user.email,
            display_name=user.display_name,
            roles=(user.role,) if user.role else (),
            strategy=strategy,
        )
        logger.debug(
            "credential_authenticated",
            extra={"strategy": str(strategy), "user_id": str(user.id)},
        )
        return Authentication(principal=principal, claims=claims, user=user)
