"""Repository for the global ``users`` table.

Sync repository implementing :class:`UserDirectoryPort`. Email is the
upsert key: concurrent upserts of the same email converge on one row,
and the last writer's display name wins.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import text

from tripgate.foundation.domain.exceptions import ConflictError
from tripgate.foundation.domain.org_value_objects import UserStatus
from tripgate.foundation.domain.user_value_objects import UserRecord

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY,
    email VARCHAR(255) NOT NULL UNIQUE,
    display_name VARCHAR(255) NOT NULL DEFAULT '',
    role VARCHAR(50) NOT NULL DEFAULT 'school_staff',
    status VARCHAR(20) NOT NULL DEFAULT 'approved',
    legacy_user_id VARCHAR(64) UNIQUE,
    password_hash TEXT,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
)
"""

_COLUMNS = "id, email, display_name, role, status, legacy_user_id, password_hash"


def _to_record(row: Any) -> UserRecord:
    m = row._mapping
    return UserRecord(
        id=m["id"] if isinstance(m["id"], UUID) else UUID(str(m["id"])),
        email=m["email"],
        display_name=m["display_name"],
        role=m["role"],
        status=UserStatus(m["status"]),
        legacy_user_id=m["legacy_user_id"],
        password_hash=m["password_hash"],
    )


class UserRepository:
    """Read and upsert access to global user records.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def ensure_table_exists(cls, session_factory: Callable[[], Session]) -> None:
        """Create the ``users`` table if missing. Called by the identity lifespan."""
        with session_factory() as session:
            session.execute(text(_CREATE_TABLE_SQL))
            session.commit()
        logger.info("users_table_ensured")

    def _fetch_one(self, where: str, params: dict[str, Any]) -> UserRecord | None:
        with self._session_factory() as session:
            row = session.execute(
                text(f"SELECT {_COLUMNS} FROM users WHERE {where}"),
                params,
            ).fetchone()
        return _to_record(row) if row else None

    def get_by_id(self, user_id: UUID) -> UserRecord | None:
        return self._fetch_one("id = :id", {"id": str(user_id)})

    def get_by_email(self, email: str) -> UserRecord | None:
        return self._fetch_one("email = :email", {"email": email.lower()})

    def get_by_legacy_id(self, legacy_user_id: str) -> UserRecord | None:
        return self._fetch_one("legacy_user_id = :legacy", {"legacy": legacy_user_id})

    def upsert_by_email(self, email: str, display_name: str, role: str) -> UserRecord:
        """INSERT ... ON CONFLICT (email) DO UPDATE, returning the row.

        ``role`` only applies when the row is created.
        """
        with self._session_factory() as session:
            row = session.execute(
                text(f"""
                    INSERT INTO users (id, email, display_name, role, status)
                    VALUES (:id, :email, :display_name, :role, 'approved')
                    ON CONFLICT (email) DO UPDATE SET
                        display_name = EXCLUDED.display_name,
                        updated_at = NOW()
                    RETURNING {_COLUMNS}
                """),
                {
                    "id": str(uuid4()),
                    "email": email.lower(),
                    "display_name": display_name,
                    "role": role,
                },
            ).fetchone()
            session.commit()
        return _to_record(row)

    def create_pending(
        self,
        email: str,
        display_name: str,
        password_hash: str,
        role: str,
    ) -> UserRecord:
        """Insert a password account awaiting approval.

        Raises:
            ConflictError: If the email is already registered.
        """
        with self._session_factory() as session:
            row = session.execute(
                text(f"""
                    INSERT INTO users (id, email, display_name, role, status, password_hash)
                    VALUES (:id, :email, :display_name, :role, 'pending', :password_hash)
                    ON CONFLICT (email) DO NOTHING
                    RETURNING {_COLUMNS}
                """),
                {
                    "id": str(uuid4()),
                    "email": email.lower(),
                    "display_name": display_name,
                    "role": role,
                    "password_hash": password_hash,
                },
            ).fetchone()
            session.commit()
        if row is None:
            raise ConflictError("Email already exists", email=email.lower())
        return _to_record(row)

    def list_by_status(self, status: UserStatus) -> list[UserRecord]:
        with self._session_factory() as session:
            rows = session.execute(
                text(
                    f"SELECT {_COLUMNS} FROM users "
                    "WHERE status = :status ORDER BY created_at ASC"
                ),
                {"status": str(status)},
            ).fetchall()
        return [_to_record(r) for r in rows]

    def set_status(self, user_id: UUID, status: UserStatus) -> UserRecord | None:
        with self._session_factory() as session:
            row = session.execute(
                text(f"""
                    UPDATE users SET status = :status, updated_at = NOW()
                    WHERE id = :id
                    RETURNING {_COLUMNS}
                """),
                {"id": str(user_id), "status": str(status)},
            ).fetchone()
            session.commit()
        return _to_record(row) if row else None
