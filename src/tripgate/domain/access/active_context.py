"""Active-organization selection stored as a signed cookie.

The cookie holds an HS256 token naming the user and the selected
organization. The server trusts the value only when the signature is
valid and the token belongs to the requesting user, so a cookie copied
from another session reads as no selection.

Selecting requires a role on the organization. Reading never writes.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING
from uuid import UUID

import jwt as pyjwt

from tripgate.foundation.domain.exceptions import ForbiddenError

if TYPE_CHECKING:
    from starlette.responses import Response

    from tripgate.foundation.domain.ports import RoleGrantPort
    from tripgate.infra.auth.settings import AuthSettings

logger = logging.getLogger(__name__)

_AUDIENCE = "tripgate:active-org"


class ActiveContextStore:
    """Issues and reads active-organization tokens.

    Args:
        grants: Role reads used to check membership.
        secret: HMAC key (the session secret).
        ttl_seconds: Lifetime of a selection.
    """

    algorithm = "HS256"

    def __init__(self, grants: RoleGrantPort, *, secret: str, ttl_seconds: int) -> None:
        if not secret:
            raise ValueError("A signing secret is required")
        self._grants = grants
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def select(self, user_id: UUID, org_id: UUID, *, now: float | None = None) -> str:
        """Return a signed selection of ``org_id`` for ``user_id``.

        Raises:
            ForbiddenError: The user holds no role on the organization.
        """
        if not self._grants.roles_on_org(user_id, org_id):
            logger.info(
                "active_org_selection_denied",
                extra={"user_id": str(user_id), "org_id": str(org_id)},
            )
            raise ForbiddenError("Not a member of this organization", org_id=str(org_id))
        issued_at = int(now if now is not None else time.time())
        return pyjwt.encode(
            {
                "sub": str(user_id),
                "org": str(org_id),
                "aud": _AUDIENCE,
                "iat": issued_at,
                "exp": issued_at + self.ttl_seconds,
            },
            self._secret,
            algorithm=self.algorithm,
        )

    def read(self, token: str | None, user_id: UUID) -> UUID | None:
        """Return the selected organization, or None when absent or not trusted."""
        if not token:
            return None
        try:
            payload = pyjwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                audience=_AUDIENCE,
                options={"require": ["sub", "org", "exp"]},
            )
            org_id = UUID(payload["org"])
        except (pyjwt.InvalidTokenError, ValueError) as exc:
            logger.info("active_org_cookie_rejected", extra={"error": type(exc).__name__})
            return None
        if payload["sub"] != str(user_id):
            logger.info("active_org_cookie_user_mismatch", extra={"user_id": str(user_id)})
            return None
        return org_id


def set_active_org_cookie(response: Response, token: str, settings: AuthSettings) -> None:
    """Attach the selection as an httpOnly, same-site cookie."""
    response.set_cookie(
        key=settings.active_org_cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path="/",
    )
