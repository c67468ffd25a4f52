"""FastAPI dependency functions for authentication and authorization.

Provides Depends()-compatible functions for injecting the principal and
the auth collaborators built by the auth lifespan.

Usage:
    from tripgate.infra.auth.dependencies import CurrentPrincipal, require_role

    @router.post("/admin/tenants")
    def create_tenant(
        _: Annotated[None, Depends(require_role("admin"))],
        principal: CurrentPrincipal,
    ):
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import Depends, Request

from tripgate.foundation.application.context import (
    get_current_principal as _get_principal_from_context,
)
from tripgate.foundation.domain.exceptions import (
    AccountNotApprovedError,
    AuthorizationError,
    DelegationError,
    NoLocalAccountError,
    ProvisioningDisabledError,
    TokenVerificationError,
    UnverifiedConfigurationError,
)
from tripgate.foundation.domain.principal import Principal, TokenStrategy
from tripgate.infra.auth.authenticator import Authenticator
from tripgate.infra.auth.session import SessionTokenIssuer
from tripgate.infra.auth.settings import AuthSettings, get_auth_settings

if TYPE_CHECKING:
    from collections.abc import Callable

    from tripgate.foundation.domain.principal import VerifiedClaims
    from tripgate.foundation.domain.user_value_objects import UserRecord

logger = logging.getLogger(__name__)


def get_current_principal(request: Request) -> Principal:
    """FastAPI dependency that returns the authenticated principal.

    Reads ``request.state.principal`` set by CredentialAuthMiddleware, then
    the principal ContextVar.

    Raises:
        NoRequestContextError: If called outside an authenticated request.
    """
    principal = getattr(request.state, "principal", None)
    if isinstance(principal, Principal):
        return principal
    return _get_principal_from_context()


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def get_request_auth_settings(request: Request) -> AuthSettings:
    """Settings loaded by the auth lifespan, or from the environment."""
    settings = getattr(request.app.state, "auth_settings", None)
    return settings if isinstance(settings, AuthSettings) else get_auth_settings()


AuthConfig = Annotated[AuthSettings, Depends(get_request_auth_settings)]


def require_role(role: str) -> Callable[..., None]:
    """Factory returning a dependency that enforces a global user role.

    Args:
        role: Required role string (case-sensitive), e.g. ``"admin"``.
    """

    def _check_role(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> None:
        if role not in principal.roles:
            raise AuthorizationError(
                f"Required role '{role}' not found in principal roles",
                context={
                    "required_role": role,
                    "principal_id": principal.subject,
                },
            )

    return _check_role


def _from_state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        msg = f"app.state.{name} is not initialized; is the auth lifespan registered?"
        raise RuntimeError(msg)
    return value


def get_authenticator(request: Request) -> Authenticator:
    return _from_state(request, "authenticator")  # type: ignore[no-any-return]


def get_session_issuer(request: Request) -> SessionTokenIssuer:
    return _from_state(request, "session_issuer")  # type: ignore[no-any-return]


AuthenticatorDep = Annotated[Authenticator, Depends(get_authenticator)]
SessionIssuerDep = Annotated[SessionTokenIssuer, Depends(get_session_issuer)]


def bearer_token(request: Request) -> str:
    """Return the raw bearer token, or raise a 401 token verification error."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise TokenVerificationError("Bearer token is required")
    return token.strip()


@dataclass(frozen=True, slots=True)
class DelegatedIdentity:
    """A verified delegated assertion and the local user it maps to.

    Attributes:
        assertion: Raw assertion, used once for the on-behalf-of exchange.
        claims: Verified claims of the assertion.
        user: Local user record.
    """

    assertion: str
    claims: VerifiedClaims
    user: UserRecord

    def __repr__(self) -> str:
        return f"DelegatedIdentity(subject={self.claims.subject!r}, user_id={self.user.id})"


async def get_delegated_identity(
    request: Request,
    authenticator: AuthenticatorDep,
) -> DelegatedIdentity:
    """Verify the bearer assertion on a delegation route.

    Failures are raised as :class:`DelegationError` so the route answers with
    the ``{error, details}`` envelope. Verification failures share one 401.
    """
    try:
        assertion = bearer_token(request)
        authentication = await authenticator.authenticate(assertion, TokenStrategy.DELEGATED)
    except UnverifiedConfigurationError as exc:
        logger.warning(
            "delegated_assertion_unverifiable",
            extra={"reason": exc.reason, **exc.context},
        )
        raise DelegationError(
            "Authentication temporarily unavailable", status_code=503
        ) from exc
    except TokenVerificationError as exc:
        logger.info("delegated_assertion_rejected", extra={"reason": exc.reason})
        raise DelegationError("Token validation failed", status_code=401) from exc
    except (NoLocalAccountError, ProvisioningDisabledError) as exc:
        raise DelegationError(
            "No local account", {"email": exc.context.get("email")}, status_code=403
        ) from exc
    except AccountNotApprovedError as exc:
        raise DelegationError(
            "Account not approved", {"status": exc.status}, status_code=403
        ) from exc

    request.state.principal = authentication.principal
    return DelegatedIdentity(
        assertion=assertion,
        claims=authentication.claims,
        user=authentication.user,
    )


DelegatedAssertion = Annotated[DelegatedIdentity, Depends(get_delegated_identity)]
