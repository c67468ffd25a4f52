"""RFC 7807 Problem Details exception handlers for FastAPI.

Domain exceptions become ``application/problem+json`` responses, with two
deliberate shapes:

- Token verification failures all render one identical 401 body
  (``INVALID_TOKEN``, "Token validation failed"). The internal reason
  (``signature_invalid``, ``issuer_mismatch``, ...) is logged only.
  An unreachable key set renders 503 instead, since the client may retry.
- Delegation failures render ``{"error": ..., "details": ...}`` with the
  upstream detail intact, so the caller can show it to the user.

Usage:
    from tripgate.infra.fastapi.error_handlers import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tripgate.foundation.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DelegationError,
    DomainError,
    NotFoundError,
    TokenVerificationError,
    UnverifiedConfigurationError,
    ValidationError,
)
from tripgate.infra.fastapi.middleware.request_id import get_request_id

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"

TOKEN_INVALID_DETAIL = "Token validation failed"


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details response model.

    ``error_code``, ``context`` and ``correlation_id`` are extension fields;
    ``correlation_id`` is only set on 5xx responses.
    """

    type: str = Field(..., examples=["/errors/not-found", "/errors/invalid-token"])
    title: str = Field(..., examples=["Resource Not Found", "Unauthorized"])
    status: int = Field(..., ge=400, le=599)
    detail: str
    instance: str | None = None
    error_code: str | None = Field(default=None, examples=["NOT_A_MEMBER", "INVALID_TOKEN"])
    context: dict[str, Any] | None = None
    correlation_id: str | None = None


_SENSITIVE_KEYS = frozenset(
    {"password", "secret", "token", "assertion", "authorization", "credential", "client_secret"}
)

_SENSITIVE_PATTERNS = [
    (re.compile(r"postgresql(\+\w+)?://[^@]*@[^/\s]*"), "postgresql://[REDACTED]@[REDACTED]"),
    (
        re.compile(r"(password|secret|token)\s*=\s*['\"]?[^'\"\s]+['\"]?", re.IGNORECASE),
        r"\1=[REDACTED]",
    ),
    (re.compile(r"Bearer\s+[A-Za-z0-9\-_.]+"), "Bearer [REDACTED]"),
]


def _problem_response(problem: ProblemDetail) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type=PROBLEM_MEDIA_TYPE,
    )


def _correlation_id() -> str:
    return get_request_id() or "unknown"


def _sanitize_context(context: dict[str, Any] | None) -> dict[str, Any] | None:
    """Drop sensitive keys and make values JSON-safe."""
    if not context:
        return None
    sanitized = {
        key: _sanitize_value(value)
        for key, value in context.items()
        if key.lower() not in _SENSITIVE_KEYS
    }
    return sanitized or None


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str):
        for pattern, replacement in _SENSITIVE_PATTERNS:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, dict):
        return _sanitize_context(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_sanitize_value(v) for v in value]
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


def _simple_handler(status: int, title: str, slug: str) -> Any:
    """Build a handler that renders ``exc`` with a fixed status and type."""

    async def handler(request: Request, exc: DomainError) -> JSONResponse:
        problem = ProblemDetail(
            type=f"/errors/{slug}",
            title=title,
            status=status,
            detail=str(exc.message),
            instance=str(request.url.path),
            error_code=exc.error_code,
            context=_sanitize_context(exc.context),
        )
        return _problem_response(problem)

    handler.__name__ = f"{slug.replace('-', '_')}_handler"
    return handler


not_found_handler = _simple_handler(404, "Resource Not Found", "not-found")
validation_error_handler = _simple_handler(422, "Validation Error", "validation-error")
conflict_error_handler = _simple_handler(409, "Conflict", "conflict")
domain_error_handler = _simple_handler(400, "Bad Request", "domain-error")


async def token_verification_handler(
    request: Request,
    exc: TokenVerificationError,
) -> JSONResponse:
    """Render every token verification failure as the same 401.

    The response never names the failed stage; the log does.
    """
    logger.info(
        "token_verification_failed",
        extra={"reason": exc.reason, "path": str(request.url.path)},
    )
    problem = ProblemDetail(
        type="/errors/invalid-token",
        title="Unauthorized",
        status=401,
        detail=TOKEN_INVALID_DETAIL,
        instance=str(request.url.path),
        error_code="INVALID_TOKEN",
    )
    response = _problem_response(problem)
    response.headers["WWW-Authenticate"] = 'Bearer realm="API", error="invalid_token"'
    return response


async def unverified_configuration_handler(
    request: Request,
    exc: UnverifiedConfigurationError,
) -> JSONResponse:
    """Render an unreachable or unusable key set as a retryable 503."""
    logger.warning(
        "token_verification_unavailable",
        extra={"reason": exc.reason, "path": str(request.url.path), **exc.context},
    )
    problem = ProblemDetail(
        type="/errors/service-unavailable",
        title="Service Unavailable",
        status=503,
        detail="Authentication temporarily unavailable",
        instance=str(request.url.path),
        error_code="SERVICE_UNAVAILABLE",
        correlation_id=_correlation_id(),
    )
    response = _problem_response(problem)
    response.headers["Retry-After"] = "5"
    return response


async def authentication_error_handler(
    request: Request,
    exc: AuthenticationError,
) -> JSONResponse:
    """Translate AuthenticationError to 401 with WWW-Authenticate (RFC 6750)."""
    problem = ProblemDetail(
        type=f"/errors/{exc.error_code.lower().replace('_', '-')}",
        title="Unauthorized",
        status=401,
        detail=exc.message,
        instance=str(request.url.path),
        error_code=exc.error_code,
    )
    response = _problem_response(problem)
    response.headers["WWW-Authenticate"] = f'Bearer realm="API", error="{exc.auth_error}"'
    return response


async def authorization_error_handler(
    request: Request,
    exc: AuthorizationError,
) -> JSONResponse:
    """Translate AuthorizationError (not a member, missing role) to 403."""
    problem = ProblemDetail(
        type="/errors/forbidden",
        title="Forbidden",
        status=403,
        detail=exc.message,
        instance=str(request.url.path),
        error_code=exc.error_code,
        context=_sanitize_context(exc.context),
    )
    return _problem_response(problem)


async def delegation_error_handler(
    request: Request,
    exc: DelegationError,
) -> JSONResponse:
    """Render delegation failures with the ``{error, details}`` envelope.

    ``details`` is the upstream payload, passed through unmodified.
    """
    logger.info(
        "delegation_failed",
        extra={
            "error_code": exc.error_code,
            "status": exc.status_code,
            "path": str(request.url.path),
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "details": exc.details},
    )


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Translate FastAPI request validation errors to 422."""
    errors = [
        {
            "loc": list(error.get("loc", [])),
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    problem = ProblemDetail(
        type="/errors/request-validation-error",
        title="Request Validation Error",
        status=422,
        detail="Request validation failed",
        instance=str(request.url.path),
        error_code="REQUEST_VALIDATION_ERROR",
        context={"errors": errors},
    )
    return _problem_response(problem)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all: log the exception, return a sanitized 500 with a correlation id.

    In debug mode the exception type and message are included.
    """
    correlation_id = _correlation_id()
    logger.exception(
        "unhandled_exception",
        extra={
            "correlation_id": correlation_id,
            "path": str(request.url.path),
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
    )

    if getattr(request.app, "debug", False):
        detail = f"{type(exc).__name__}: {exc}"
        context: dict[str, Any] | None = {"exception_type": type(exc).__name__}
    else:
        detail = "An internal error occurred. Please contact support with the correlation ID."
        context = None

    problem = ProblemDetail(
        type="/errors/internal-error",
        title="Internal Server Error",
        status=500,
        detail=detail,
        instance=str(request.url.path),
        error_code="INTERNAL_ERROR",
        context=context,
        correlation_id=correlation_id,
    )
    return _problem_response(problem)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on ``app``.

    Starlette resolves a handler by walking the exception's MRO, so the
    token verification handlers take precedence over the generic
    authentication handler, and every specific handler over ``DomainError``.
    """
    handlers: list[tuple[type[BaseException], Any]] = [
        (UnverifiedConfigurationError, unverified_configuration_handler),
        (TokenVerificationError, token_verification_handler),
        (AuthenticationError, authentication_error_handler),
        (AuthorizationError, authorization_error_handler),
        (DelegationError, delegation_error_handler),
        (NotFoundError, not_found_handler),
        (ValidationError, validation_error_handler),
        (ConflictError, conflict_error_handler),
        (DomainError, domain_error_handler),
        (RequestValidationError, request_validation_handler),
        (Exception, unhandled_exception_handler),
    ]
    for exception_class, handler in handlers:
        app.add_exception_handler(exception_class, handler)
