"""Local session token issuance and session cookies.

Session tokens are HS256 JWTs signed with ``AUTH_SESSION_SECRET`` and
verified by :class:`~tripgate.infra.auth.verifier.LocalSessionVerifier`.
They carry ``sub`` (internal user id), ``email`` and ``name`` so the
verifier's claim extraction works without a second lookup.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import jwt as pyjwt

if TYPE_CHECKING:
    from starlette.responses import Response

    from tripgate.foundation.domain.user_value_objects import UserRecord
    from tripgate.infra.auth.settings import AuthSettings


class SessionTokenIssuer:
    """Signs session tokens for internal users.

    Args:
        secret: HMAC signing secret.
        issuer: ``iss`` value.
        audience: ``aud`` value.
        ttl_seconds: Token lifetime.
    """

    algorithm = "HS256"

    def __init__(self, *, secret: str, issuer: str, audience: str, ttl_seconds: int) -> None:
        if not secret:
            raise ValueError("A session secret is required")
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: AuthSettings) -> SessionTokenIssuer:
        return cls(
            secret=settings.session_secret,
            issuer=settings.session_issuer,
            audience=settings.session_audience,
            ttl_seconds=settings.session_ttl_seconds,
        )

    def issue(self, user: UserRecord, *, now: float | None = None) -> str:
        """Return a signed session token for ``user``."""
        issued_at = int(now if now is not None else time.time())
        payload: dict[str, Any] = {
            "sub": str(user.id),
            "email": user.email,
            "name": user.display_name,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return pyjwt.encode(payload, self._secret, algorithm=self.algorithm)


def set_session_cookie(response: Response, token: str, settings: AuthSettings) -> None:
    """Attach the session token as an httpOnly cookie."""
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path="/",
    )


def clear_session_cookies(response: Response, settings: AuthSettings) -> None:
    """Remove the session and active-organization cookies."""
    for name in (settings.session_cookie_name, settings.active_org_cookie_name):
        response.delete_cookie(
            key=name,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
        )
