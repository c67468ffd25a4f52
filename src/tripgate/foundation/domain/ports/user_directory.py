"""Port interface for the global user directory.

Lets identity resolution look up and upsert users without coupling to
SQLAlchemy. ``UserRepository`` in ``tripgate.domain.identity`` is the
production implementation; tests use an in-memory fake.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from uuid import UUID

    from tripgate.foundation.domain.user_value_objects import UserRecord


@runtime_checkable
class UserDirectoryPort(Protocol):
    """Port for reading and upserting global user records."""

    def get_by_id(self, user_id: UUID) -> UserRecord | None:
        """Return the user with this internal id, or None."""
        ...

    def get_by_email(self, email: str) -> UserRecord | None:
        """Return the user with this (lowercased) email, or None."""
        ...

    def get_by_legacy_id(self, legacy_user_id: str) -> UserRecord | None:
        """Return the user linked to a legacy record id, or None."""
        ...

    def upsert_by_email(self, email: str, display_name: str, role: str) -> UserRecord:
        """Create the user or refresh its display name. Idempotent.

        Args:
            email: Lowercased email, the upsert key.
            display_name: Name to store; overwrites the current one.
            role: Role given to a newly created record only.

        Returns:
            The resulting record. Repeated calls return the same id.
        """
        ...
