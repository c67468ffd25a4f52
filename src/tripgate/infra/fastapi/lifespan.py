"""Lifespan composition for the tripgate app factory."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING, Any

from tripgate.foundation.application import by_priority

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Sequence

    from fastapi import FastAPI

    from tripgate.foundation.application import LifespanContribution

logger = logging.getLogger(__name__)


def compose_lifespan(
    hooks: Sequence[LifespanContribution],
) -> Callable[[FastAPI], Any]:
    """Combine lifespan hooks into one FastAPI ``lifespan``.

    Hooks enter in ascending priority and exit in reverse order. If a hook
    fails during startup, the hooks already entered are exited before the
    error propagates.
    """
    ordered = by_priority(hooks)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for contribution in ordered:
                logger.debug(
                    "lifespan_hook_entering",
                    extra={"priority": contribution.priority, "hook": repr(contribution.hook)},
                )
                await stack.enter_async_context(contribution.hook(app))
            yield

    return lifespan
