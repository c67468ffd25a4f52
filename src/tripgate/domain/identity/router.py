"""Identity REST API: sessions, password accounts, account approval.

``/auth/session``, ``/auth/login`` and ``/auth/register`` are reachable
without a session; the credential middleware skips them. Approval
endpoints require the global ``admin`` role.
"""

from __future__ import annotations

import asyncio
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from tripgate.domain.identity.infrastructure.user_repository import UserRepository
from tripgate.domain.identity.password_auth import PasswordAuthService
from tripgate.foundation.domain.exceptions import NotFoundError, ValidationError
from tripgate.foundation.domain.org_value_objects import UserStatus
from tripgate.foundation.domain.principal import TokenStrategy
from tripgate.foundation.domain.user_value_objects import UserRecord
from tripgate.infra.auth.dependencies import (
    AuthConfig,
    AuthenticatorDep,
    SessionIssuerDep,
    bearer_token,
    require_role,
)
from tripgate.infra.auth.session import clear_session_cookies, set_session_cookie

router = APIRouter(tags=["identity"])


def get_user_directory(request: Request) -> UserRepository:
    return request.app.state.user_directory  # type: ignore[no-any-return]


def get_password_auth(request: Request) -> PasswordAuthService:
    return request.app.state.password_auth  # type: ignore[no-any-return]


UserDirectoryDep = Annotated[UserRepository, Depends(get_user_directory)]
PasswordAuthDep = Annotated[PasswordAuthService, Depends(get_password_auth)]
AdminOnly = Depends(require_role("admin"))


# -- Request / Response models ------------------------------------------------


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    status: str


class SessionResponse(BaseModel):
    ok: bool = True
    user: UserResponse


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str
    name: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class MessageResponse(BaseModel):
    message: str


# -- Sessions -----------------------------------------------------------------


@router.post("/auth/session")
async def exchange_for_session(
    request: Request,
    response: Response,
    authenticator: AuthenticatorDep,
    issuer: SessionIssuerDep,
    settings: AuthConfig,
    strategy: TokenStrategy = TokenStrategy.REMOTE_OIDC,
) -> SessionResponse:
    """Exchange a verified external bearer token for a session cookie."""
    if not strategy.is_identity_authority:
        raise ValidationError("strategy", "Session tokens cannot be exchanged for a session")
    authentication = await authenticator.authenticate(bearer_token(request), strategy)
    set_session_cookie(response, issuer.issue(authentication.user), settings)
    return SessionResponse(user=_user_response(authentication.user))


@router.post("/auth/logout")
def logout(response: Response, settings: AuthConfig) -> dict[str, bool]:
    """Clear the session and active-organization cookies."""
    clear_session_cookies(response, settings)
    return {"ok": True}


# -- Password accounts --------------------------------------------------------


@router.post("/auth/register", status_code=201)
async def register(body: RegisterRequest, service: PasswordAuthDep) -> MessageResponse:
    """Create a password account awaiting approval."""
    await asyncio.to_thread(service.register, body.email, body.password, body.name)
    return MessageResponse(message="User created. Wait for approval.")


@router.post("/auth/login")
async def login(
    body: LoginRequest,
    response: Response,
    service: PasswordAuthDep,
    issuer: SessionIssuerDep,
    settings: AuthConfig,
) -> SessionResponse:
    """Check a password and set the session cookie for an approved account."""
    user = await asyncio.to_thread(service.authenticate, body.email, body.password)
    set_session_cookie(response, issuer.issue(user), settings)
    return SessionResponse(user=_user_response(user))


# -- Approval -----------------------------------------------------------------


@router.get("/admin/users/pending", dependencies=[AdminOnly])
def list_pending_users(directory: UserDirectoryDep) -> list[UserResponse]:
    """List accounts waiting for approval, oldest first."""
    return [_user_response(u) for u in directory.list_by_status(UserStatus.PENDING)]


@router.post("/admin/users/{user_id}/approve", dependencies=[AdminOnly])
def approve_user(user_id: UUID, directory: UserDirectoryDep) -> UserResponse:
    return _set_status(directory, user_id, UserStatus.APPROVED)


@router.post("/admin/users/{user_id}/reject", dependencies=[AdminOnly])
def reject_user(user_id: UUID, directory: UserDirectoryDep) -> UserResponse:
    return _set_status(directory, user_id, UserStatus.REJECTED)


# -- Helpers ------------------------------------------------------------------


def _set_status(directory: UserRepository, user_id: UUID, status: UserStatus) -> UserResponse:
    user = directory.set_status(user_id, status)
    if user is None:
        raise NotFoundError("User", user_id)
    return _user_response(user)


def _user_response(user: UserRecord) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        email=user.email,
        name=user.display_name,
        role=user.role,
        status=str(user.status),
    )
