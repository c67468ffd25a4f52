"""Request-scoped principal context.

A ContextVar carries the authenticated :class:`Principal` from the
credential middleware to handlers and services without explicit parameter
passing. The middleware sets it after identity resolution and resets it
in a ``finally`` block.

Usage:
    from tripgate.foundation.application.context import get_current_principal

    principal = get_current_principal()  # Raises if no principal context
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextvars import Token

    from tripgate.foundation.domain.principal import Principal


class NoRequestContextError(RuntimeError):
    """Raised when the principal is read outside an authenticated request."""

    def __init__(self) -> None:
        super().__init__(
            "No principal context available. "
            "Ensure this code is called within a request that passed credential middleware."
        )


_principal_context: ContextVar[Principal | None] = ContextVar("principal_context", default=None)


def set_principal_context(principal: Principal) -> Token[Principal | None]:
    """Set the authenticated principal for the current request.

    Args:
        principal: Principal built from verified claims and the user record.

    Returns:
        Token for resetting the context.
    """
    return _principal_context.set(principal)


def clear_principal_context(token: Token[Principal | None]) -> None:
    """Reset the principal context using the token from :func:`set_principal_context`."""
    _principal_context.reset(token)


def get_current_principal() -> Principal:
    """Get the authenticated principal from request context.

    Raises:
        NoRequestContextError: If called outside an authenticated request.
    """
    principal = _principal_context.get()
    if principal is None:
        raise NoRequestContextError()
    return principal


def get_optional_principal() -> Principal | None:
    """Get the authenticated principal if available, or None."""
    return _principal_context.get()
