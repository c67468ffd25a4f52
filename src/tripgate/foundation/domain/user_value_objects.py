"""User record and user value objects.

Immutable, validated domain primitives. All validation occurs at construction.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tripgate.foundation.domain.org_value_objects import UserStatus

if TYPE_CHECKING:
    from uuid import UUID

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DEFAULT_USER_ROLE = "school_staff"


@dataclass(frozen=True, slots=True)
class Email:
    """Validated, lowercased email address.

    Raises:
        ValueError: If email is empty, invalid, or exceeds 255 chars.
    """

    value: str

    def __post_init__(self) -> None:
        normalized = self.value.strip().lower()
        if not normalized:
            msg = "Email cannot be empty"
            raise ValueError(msg)
        if len(normalized) > 255:
            msg = f"Email too long: {len(normalized)} chars (max 255)"
            raise ValueError(msg)
        if not _EMAIL_PATTERN.match(normalized):
            msg = f"Invalid email format: '{self.value}'"
            raise ValueError(msg)
        object.__setattr__(self, "value", normalized)


@dataclass(frozen=True, slots=True)
class UserRecord:
    """Global user record, keyed by email across tenants.

    Attributes:
        id: Internal user id.
        email: Lowercased email (unique).
        display_name: Name shown in the UI.
        role: Global role string (``admin``, ``school_staff``, ...).
        status: Approval status; only ``approved`` users may password-login.
        legacy_user_id: Identifier of a linked legacy record, if any.
        password_hash: bcrypt hash for password login, if set.
    """

    id: UUID
    email: str
    display_name: str
    role: str = DEFAULT_USER_ROLE
    status: UserStatus = UserStatus.APPROVED
    legacy_user_id: str | None = None
    password_hash: str | None = None
