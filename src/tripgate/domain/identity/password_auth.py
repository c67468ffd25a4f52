"""Password registration and login for locally managed accounts.

Registration creates a ``pending`` account; an administrator approves it
before the password can be used. Hashes are bcrypt.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import bcrypt

from tripgate.foundation.domain.exceptions import (
    AccountNotApprovedError,
    AuthenticationError,
    ValidationError,
)
from tripgate.foundation.domain.org_value_objects import UserStatus
from tripgate.foundation.domain.user_value_objects import DEFAULT_USER_ROLE, Email

if TYPE_CHECKING:
    from tripgate.foundation.domain.user_value_objects import UserRecord

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
# bcrypt only reads the first 72 bytes.
MAX_PASSWORD_BYTES = 72


class PasswordAccountStore(Protocol):
    def get_by_email(self, email: str) -> UserRecord | None: ...

    def create_pending(
        self, email: str, display_name: str, password_hash: str, role: str
    ) -> UserRecord: ...


class PasswordAuthService:
    """Registers password accounts and checks login credentials.

    Args:
        store: User store (``UserRepository`` in production).
        rounds: bcrypt cost factor.
    """

    def __init__(self, store: PasswordAccountStore, *, rounds: int = 12) -> None:
        self._store = store
        self._rounds = rounds

    def register(self, email: str, password: str, display_name: str = "") -> UserRecord:
        """Create a pending account.

        Raises:
            ValidationError: Invalid email or unacceptable password.
            ConflictError: Email already registered.
        """
        try:
            normalized = Email(email).value
        except ValueError as exc:
            raise ValidationError("email", str(exc)) from exc
        encoded = _check_password(password)

        password_hash = bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode()
        user = self._store.create_pending(
            normalized, display_name.strip() or normalized, password_hash, DEFAULT_USER_ROLE
        )
        logger.info("password_account_registered", extra={"user_id": str(user.id)})
        return user

    def authenticate(self, email: str, password: str) -> UserRecord:
        """Return the approved user whose password matches.

        Raises:
            AuthenticationError: Unknown email or wrong password (same message).
            AccountNotApprovedError: Correct password, account not approved.
        """
        user = self._store.get_by_email(email.strip().lower())
        if user is None or not user.password_hash or not _matches(password, user.password_hash):
            logger.info("password_login_failed")
            raise AuthenticationError(
                "Invalid credentials",
                auth_error="invalid_request",
                error_code="INVALID_CREDENTIALS",
            )
        if user.status is not UserStatus.APPROVED:
            raise AccountNotApprovedError(str(user.id), str(user.status))
        return user


def _check_password(password: str) -> bytes:
    encoded = password.encode("utf-8")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("password", f"must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError("password", f"must be at most {MAX_PASSWORD_BYTES} bytes")
    return encoded


def _matches(password: str, password_hash: str) -> bool:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("password_hash_unreadable")
        return False
