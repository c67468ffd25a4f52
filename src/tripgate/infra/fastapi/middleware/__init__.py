"""Middleware components for the tripgate FastAPI integration."""

from tripgate.infra.fastapi.middleware.request_id import (
    RequestIdMiddleware,
    get_request_id,
)

__all__ = [
    "RequestIdMiddleware",
    "get_request_id",
]
