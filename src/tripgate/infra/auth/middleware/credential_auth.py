"""Credential authentication middleware for application routes.

Accepts either ``Authorization: Bearer <token>`` or the signed session
cookie. The bearer header wins when both are present and is verified with
the configured bearer strategy; the cookie is always a local session token.

On success the resolved :class:`Principal` is placed in the principal
ContextVar and on ``request.state``. Every verification failure gets the
same 401 response; the internal reason code only goes to the log.

Middleware position in stack (LIFO registration order):
  Request -> RequestId -> CredentialAuth -> CORS -> Route

Design decisions:
- BaseHTTPMiddleware, returning problem responses directly because
  exceptions raised in ``dispatch`` do not reach the app's exception handlers.
- ``/ms`` routes are excluded: they carry a delegated assertion that the
  delegation dependency verifies instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from tripgate.foundation.application.context import (
    clear_principal_context,
    set_principal_context,
)
from tripgate.foundation.application.contributions import (
    MIDDLEWARE_PRIORITY_SECURITY,
    MiddlewareContribution,
)
from tripgate.foundation.domain.exceptions import (
    AccountNotApprovedError,
    NoLocalAccountError,
    ProvisioningDisabledError,
    TokenVerificationError,
    UnverifiedConfigurationError,
)
from tripgate.foundation.domain.principal import TokenStrategy
from tripgate.infra.auth.settings import get_auth_settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.requests import Request
    from starlette.responses import Response

    from tripgate.infra.auth.authenticator import Authenticator
    from tripgate.infra.auth.settings import AuthSettings

logger = logging.getLogger(__name__)

_DEFAULT_EXCLUDED_PREFIXES = (
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/ms",
    "/auth/login",
    "/auth/register",
    "/auth/session",
)

_PROBLEM_MEDIA_TYPE = "application/problem+json"

_TITLES = {
    401: "Unauthorized",
    403: "Forbidden",
    503: "Service Unavailable",
}


class CredentialAuthMiddleware(BaseHTTPMiddleware):
    """Authenticates bearer tokens and session cookies.

    Error flow:
    - No credential -> 401 (missing_token)
    - Authorization header without Bearer scheme -> 401 (invalid_format)
    - Any verification failure -> 401 (invalid_token), reason logged
    - Session user no longer exists -> 401 (account_not_found)
    - Unknown external identity, provisioning off -> 403 (provisioning_disabled)
    - Account pending approval or rejected -> 403 (account_not_approved)
    - Key set unreachable or strategy not configured -> 503 (service_unavailable)
    """

    def __init__(
        self,
        app: Any,
        settings: AuthSettings | None = None,
        excluded_prefixes: tuple[str, ...] | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: ASGI application (passed by Starlette).
            settings: Auth settings. Defaults to :func:`get_auth_settings`.
            excluded_prefixes: Path prefixes that skip authentication.
        """
        super().__init__(app)
        self._settings = settings if settings is not None else get_auth_settings()
        self._excluded_prefixes = (
            excluded_prefixes if excluded_prefixes is not None else _DEFAULT_EXCLUDED_PREFIXES
        )

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        path = request.url.path
        if request.method == "OPTIONS" or any(
            path.startswith(prefix) for prefix in self._excluded_prefixes
        ):
            return await call_next(request)

        credential = self._extract_credential(request)
        if isinstance(credential, JSONResponse):
            return credential
        raw, strategy = credential

        authenticator: Authenticator | None = getattr(request.app.state, "authenticator", None)
        if authenticator is None:
            return self._auth_error(
                request, 503, "service_unavailable", "Authentication service not configured"
            )

        try:
            authentication = await authenticator.authenticate(raw, strategy)
        except UnverifiedConfigurationError as exc:
            logger.warning(
                "credential_verification_unavailable",
                extra={"strategy": str(strategy), "reason": exc.reason, **exc.context},
            )
            return self._auth_error(
                request,
                503,
                "service_unavailable",
                "Authentication temporarily unavailable",
            )
        except TokenVerificationError as exc:
            logger.info(
                "credential_verification_failed",
                extra={"strategy": str(strategy), "reason": exc.reason, "path": path},
            )
            return self._auth_error(request, 401, "invalid_token", "Token validation failed")
        except NoLocalAccountError:
            return self._auth_error(request, 401, "account_not_found", "No local account")
        except ProvisioningDisabledError:
            return self._auth_error(request, 403, "provisioning_disabled", "No local account")
        except AccountNotApprovedError:
            return self._auth_error(
                request, 403, "account_not_approved", "Account not approved"
            )

        request.state.principal = authentication.principal
        request.state.verified_claims = authentication.claims
        principal_token = set_principal_context(authentication.principal)
        try:
            return await call_next(request)
        finally:
            clear_principal_context(principal_token)

    def _extract_credential(self, request: Request) -> tuple[str, TokenStrategy] | JSONResponse:
        """Return the raw credential and its strategy, or an error response."""
        auth_header = request.headers.get("Authorization", "")
        if auth_header:
            scheme, _, token = auth_header.partition(" ")
            if scheme.lower() != "bearer":
                return self._auth_error(
                    request,
                    401,
                    "invalid_format",
                    "Authorization header must use Bearer scheme",
                )
            token = token.strip()
            if not token:
                return self._auth_error(request, 401, "invalid_format", "Bearer token is empty")
            return token, self._settings.bearer_strategy

        cookie = request.cookies.get(self._settings.session_cookie_name)
        if cookie:
            return cookie, TokenStrategy.LOCAL_SESSION

        return self._auth_error(request, 401, "missing_token", "Authentication required")

    def _auth_error(
        self,
        request: Request,
        status_code: int,
        error_code: str,
        message: str,
    ) -> JSONResponse:
        """Build an RFC 7807 problem response, with WWW-Authenticate on 401."""
        logger.info(
            "auth_validation_failed",
            extra={
                "error_code": error_code,
                "path": request.url.path,
                "method": request.method,
            },
        )

        headers: dict[str, str] = {}
        if status_code == 401:
            headers["WWW-Authenticate"] = f'Bearer realm="API", error="{error_code}"'

        return JSONResponse(
            status_code=status_code,
            content={
                "type": f"/errors/{error_code.replace('_', '-')}",
                "title": _TITLES.get(status_code, "Error"),
                "status": status_code,
                "detail": message,
                "error_code": error_code.upper(),
                "instance": str(request.url.path),
            },
            media_type=_PROBLEM_MEDIA_TYPE,
            headers=headers,
        )


contribution = MiddlewareContribution(
    middleware_class=CredentialAuthMiddleware,
    priority=MIDDLEWARE_PRIORITY_SECURITY,
)
