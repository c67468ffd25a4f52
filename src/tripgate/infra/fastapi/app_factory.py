"""FastAPI application factory with entry-point discovery.

:func:`create_app` assembles the application from the contributions that
installed packages declare under the ``tripgate.*`` entry-point groups,
plus any passed explicitly (tests pass fakes this way).
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, FastAPI
from starlette.middleware.cors import CORSMiddleware

from tripgate.foundation.application import (
    ErrorHandlerContribution,
    LifespanContribution,
    MiddlewareContribution,
    by_priority,
    discover,
)
from tripgate.infra.fastapi.lifespan import compose_lifespan
from tripgate.infra.fastapi.settings import AppSettings

logger = logging.getLogger(__name__)

GROUP_ROUTERS = "tripgate.routers"
GROUP_MIDDLEWARE = "tripgate.middleware"
GROUP_ERROR_HANDLERS = "tripgate.error_handlers"
GROUP_LIFESPAN = "tripgate.lifespan"


def create_app(
    settings: AppSettings | None = None,
    *,
    extra_routers: list[APIRouter] | None = None,
    extra_middleware: list[MiddlewareContribution] | None = None,
    extra_lifespan_hooks: list[LifespanContribution] | None = None,
    extra_error_handlers: list[ErrorHandlerContribution] | None = None,
    exclude_groups: frozenset[str] | None = None,
    exclude_names: frozenset[str] | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Application settings. If ``None``, loaded from environment.
        extra_routers: Routers to include beyond the discovered ones.
        extra_middleware: Middleware beyond the discovered ones.
        extra_lifespan_hooks: Lifespan hooks beyond the discovered ones.
        extra_error_handlers: Error handlers beyond the discovered ones.
        exclude_groups: Entry-point groups to skip entirely.
        exclude_names: Entry-point names to skip in every group.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or AppSettings()
    skip_groups = exclude_groups if exclude_groups is not None else settings.exclude_groups
    skip_names = exclude_names if exclude_names is not None else settings.exclude_entry_points

    def _discovered(
        group: str, expect: type | tuple[type, ...] | None = None
    ) -> list[tuple[str, Any]]:
        if group in skip_groups:
            return []
        found = discover(group, exclude_names=skip_names, expect=expect)
        return [(c.name, c.value) for c in found]

    # Lifespan hooks
    lifespan_hooks = list(extra_lifespan_hooks or [])
    lifespan_hooks.extend(
        LifespanContribution.wrap(value) for _, value in _discovered(GROUP_LIFESPAN)
    )

    app = FastAPI(
        title=settings.title,
        version=settings.version,
        description=settings.description,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        debug=settings.debug,
        lifespan=compose_lifespan(lifespan_hooks),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allow_origins,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
        expose_headers=settings.cors.expose_headers,
    )

    # Middleware: add in reverse priority so the lowest priority is outermost.
    middleware = by_priority(
        [
            *(extra_middleware or []),
            *(value for _, value in _discovered(GROUP_MIDDLEWARE, MiddlewareContribution)),
        ]
    )
    for mw in reversed(middleware):
        app.add_middleware(mw.middleware_class, **mw.kwargs)
        logger.debug(
            "middleware_registered",
            extra={"middleware": mw.middleware_class.__name__, "priority": mw.priority},
        )

    # Error handlers: a contribution, or a register(app) callable.
    error_handlers = list(extra_error_handlers or [])
    for name, value in _discovered(GROUP_ERROR_HANDLERS):
        if isinstance(value, ErrorHandlerContribution):
            error_handlers.append(value)
        elif callable(value):
            value(app)
        else:
            logger.warning("error_handler_entry_point_ignored", extra={"name": name})
    for eh in error_handlers:
        app.add_exception_handler(eh.exception_class, eh.handler)

    routers = list(extra_routers or [])
    routers.extend(value for _, value in _discovered(GROUP_ROUTERS, APIRouter))
    for router in routers:
        app.include_router(router)

    logger.info(
        "app_created",
        extra={
            "routers": len(routers),
            "middleware": len(middleware),
            "lifespan_hooks": len(lifespan_hooks),
        },
    )
    return app
