"""What a tripgate package adds to the assembled application.

Packages declare middleware, lifespan hooks and error handlers as the
dataclasses below and publish them under entry points. The app factory
orders them with :func:`by_priority`. Nothing here imports a web
framework.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterable

MIDDLEWARE_PRIORITY_MIN = 0
MIDDLEWARE_PRIORITY_MAX = 499
MIDDLEWARE_PRIORITY_DEFAULT = 400

# Middleware bands: lower runs first (outermost).
MIDDLEWARE_PRIORITY_OUTERMOST = 10
MIDDLEWARE_PRIORITY_SECURITY = 150

# Lifespan hooks start in ascending order and stop in reverse.
LIFESPAN_PRIORITY_OBSERVABILITY = 50
LIFESPAN_PRIORITY_PERSISTENCE = 75
LIFESPAN_PRIORITY_AUTH = 100
LIFESPAN_PRIORITY_IDENTITY = 110
LIFESPAN_PRIORITY_TENANCY = 115
LIFESPAN_PRIORITY_ACCESS = 120
LIFESPAN_PRIORITY_DEFAULT = 500


class _Prioritized(Protocol):
    @property
    def priority(self) -> int: ...


P = TypeVar("P", bound=_Prioritized)


def by_priority(contributions: Iterable[P]) -> list[P]:
    """Contributions in ascending priority; equal priorities keep their order."""
    return sorted(contributions, key=lambda c: c.priority)


@dataclass(frozen=True, slots=True)
class MiddlewareContribution:
    """A middleware class plus the keyword arguments to install it with.

    ``priority`` must lie in [0, 499]. Bands: 0-99 outermost (request id,
    logging), 100-199 security (credential auth), 200-299 request context.
    """

    middleware_class: type[Any]
    priority: int = MIDDLEWARE_PRIORITY_DEFAULT
    kwargs: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not MIDDLEWARE_PRIORITY_MIN <= self.priority <= MIDDLEWARE_PRIORITY_MAX:
            msg = (
                f"Middleware priority must be between {MIDDLEWARE_PRIORITY_MIN} "
                f"and {MIDDLEWARE_PRIORITY_MAX}, got {self.priority}"
            )
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class ErrorHandlerContribution:
    """Maps ``exception_class`` to an async ``(Request, exc) -> Response`` handler."""

    exception_class: type[BaseException]
    handler: Any

    def __post_init__(self) -> None:
        if not callable(self.handler):
            msg = f"Handler for {self.exception_class.__name__} is not callable"
            raise TypeError(msg)


@dataclass(frozen=True, slots=True)
class LifespanContribution:
    """An ``(app) -> AsyncContextManager[None]`` factory and its start order.

    The domain hooks read collaborators that earlier hooks put on
    ``app.state``: persistence (75) before auth (100) before identity,
    tenancy and access (110-120).
    """

    hook: Any
    priority: int = LIFESPAN_PRIORITY_DEFAULT

    def __post_init__(self) -> None:
        if not callable(self.hook):
            msg = f"Lifespan hook {self.hook!r} is not callable"
            raise TypeError(msg)
        if self.priority < 0:
            msg = f"Lifespan priority must be non-negative, got {self.priority}"
            raise ValueError(msg)

    @classmethod
    def wrap(cls, value: Any) -> LifespanContribution:
        """Return ``value`` itself, or a default-priority contribution for a bare hook."""
        return value if isinstance(value, cls) else cls(hook=value)
