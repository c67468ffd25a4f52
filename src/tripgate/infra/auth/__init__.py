"""Tripgate Infra Auth -- token verification, key sets, sessions, delegation.

Provides the per-strategy token verifiers, the bounded JWKS key cache,
session token issuance, the on-behalf-of exchange and Graph client, the
credential middleware, and FastAPI dependencies for authentication.
"""

from tripgate.infra.auth.authenticator import Authentication, Authenticator
from tripgate.infra.auth.delegation import (
    DelegatedToken,
    GraphClient,
    GraphResponse,
    OnBehalfOfClient,
)
from tripgate.infra.auth.dependencies import (
    CurrentPrincipal,
    DelegatedAssertion,
    get_current_principal,
    require_role,
)
from tripgate.infra.auth.jwks import KeySetResolver
from tripgate.infra.auth.lifespan import lifespan_contribution
from tripgate.infra.auth.middleware.credential_auth import CredentialAuthMiddleware
from tripgate.infra.auth.session import (
    SessionTokenIssuer,
    clear_session_cookies,
    set_session_cookie,
)
from tripgate.infra.auth.settings import AuthSettings, get_auth_settings
from tripgate.infra.auth.verifier import (
    DelegatedVerifier,
    LocalSessionVerifier,
    RemoteKeyVerifier,
    TokenVerifier,
    build_verifiers,
)

__all__ = [
    "AuthSettings",
    "Authentication",
    "Authenticator",
    "CredentialAuthMiddleware",
    "CurrentPrincipal",
    "DelegatedAssertion",
    "DelegatedToken",
    "DelegatedVerifier",
    "GraphClient",
    "GraphResponse",
    "KeySetResolver",
    "LocalSessionVerifier",
    "OnBehalfOfClient",
    "RemoteKeyVerifier",
    "SessionTokenIssuer",
    "TokenVerifier",
    "build_verifiers",
    "clear_session_cookies",
    "get_auth_settings",
    "get_current_principal",
    "lifespan_contribution",
    "require_role",
    "set_session_cookie",
]
