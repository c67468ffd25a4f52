"""Value objects for tenants, organizations and role grants.

Immutable, validated domain primitives. All validation occurs at
construction time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum


class OrgType(StrEnum):
    """Organization node types in the tenant hierarchy.

    Uses StrEnum for native JSON serialization.
    """

    SCHOOL = "SCHOOL"
    BUS_COMPANY = "BUS_COMPANY"
    PARENT_ORG = "PARENT_ORG"


class RoleType(StrEnum):
    """Roles a user can hold on an organization."""

    ADMIN = "ADMIN"
    FINANCE = "FINANCE"
    STAFF = "STAFF"


class UserStatus(StrEnum):
    """Account approval states for password-registered users."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


_SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")


@dataclass(frozen=True, slots=True)
class TenantSlug:
    """Validated tenant slug (immutable after creation).

    Format: lowercase alphanumeric + hyphens, 2-63 chars.
    Must start and end with alphanumeric character.

    Raises:
        ValueError: If slug does not meet format or length requirements.
    """

    value: str

    def __post_init__(self) -> None:
        if len(self.value) < 2:
            msg = f"Tenant slug too short: '{self.value}' (min 2 chars)"
            raise ValueError(msg)
        if len(self.value) > 63:
            msg = f"Tenant slug too long: '{self.value}' (max 63 chars)"
            raise ValueError(msg)
        if not _SLUG_PATTERN.match(self.value):
            msg = (
                f"Invalid tenant slug '{self.value}': must be lowercase "
                "alphanumeric with hyphens, starting and ending with alphanumeric"
            )
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class OrgName:
    """Validated organization or tenant display name (1-255 chars, stripped).

    Raises:
        ValueError: If name is empty, whitespace-only, or exceeds 255 chars.
    """

    value: str

    def __post_init__(self) -> None:
        stripped = self.value.strip()
        if not stripped:
            msg = "Name cannot be empty"
            raise ValueError(msg)
        if len(stripped) > 255:
            msg = f"Name too long: {len(stripped)} chars (max 255)"
            raise ValueError(msg)
        object.__setattr__(self, "value", stripped)
