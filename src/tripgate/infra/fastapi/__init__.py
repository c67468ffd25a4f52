"""Tripgate Infra FastAPI -- app factory, error handlers, middleware, health."""

from tripgate.infra.fastapi.app_factory import create_app
from tripgate.infra.fastapi.error_handlers import (
    ProblemDetail,
    register_exception_handlers,
)
from tripgate.infra.fastapi.lifespan import compose_lifespan
from tripgate.infra.fastapi.middleware.request_id import (
    RequestIdMiddleware,
    get_request_id,
)
from tripgate.infra.fastapi.settings import AppSettings, CORSSettings

__all__ = [
    "AppSettings",
    "CORSSettings",
    "ProblemDetail",
    "RequestIdMiddleware",
    "compose_lifespan",
    "create_app",
    "get_request_id",
    "register_exception_handlers",
]
