"""Repository for ``user_roles`` and ``user_role_scopes``.

Implements :class:`RoleGrantPort`. Revoking a role and replacing a scope
set each run in a single transaction: either every row changes or none.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import text

from tripgate.domain.access.models import RoleGrant
from tripgate.foundation.domain.exceptions import NotFoundError, ValidationError
from tripgate.foundation.domain.org_value_objects import RoleType

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_CREATE_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS user_roles (
        id UUID PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES users (id),
        org_id UUID NOT NULL REFERENCES organizations (id),
        role VARCHAR(20) NOT NULL CHECK (role IN ('ADMIN', 'FINANCE', 'STAFF')),
        is_default BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        UNIQUE (user_id, org_id, role)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_role_scopes (
        user_id UUID NOT NULL,
        org_id UUID NOT NULL,
        role VARCHAR(20) NOT NULL,
        school_id UUID NOT NULL REFERENCES organizations (id),
        PRIMARY KEY (user_id, org_id, role, school_id),
        FOREIGN KEY (user_id, org_id, role)
            REFERENCES user_roles (user_id, org_id, role) ON DELETE CASCADE
    )
    """,
)


def _uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class RoleGrantRepository:
    """Role grants, scope allow-lists and membership reads.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def ensure_table_exists(cls, session_factory: Callable[[], Session]) -> None:
        """Create grant tables. Requires ``users`` and ``organizations``."""
        with session_factory() as session:
            for statement in _CREATE_STATEMENTS:
                session.execute(text(statement))
            session.commit()
        logger.info("role_grant_tables_ensured")

    # -- Grants ---------------------------------------------------------------

    def grant(
        self,
        user_id: UUID,
        org_id: UUID,
        role: RoleType,
        *,
        is_default: bool = False,
    ) -> RoleGrant:
        """Create the grant, or keep it if it exists.

        ``is_default`` clears the flag on the user's other grants in the
        same transaction.
        """
        params = {"user": str(user_id), "org": str(org_id), "role": str(role)}
        with self._session_factory() as session:
            if is_default:
                session.execute(
                    text(
                        "UPDATE user_roles SET is_default = FALSE "
                        "WHERE user_id = :user AND NOT (org_id = :org AND role = :role)"
                    ),
                    params,
                )
            row = session.execute(
                text(
                    "INSERT INTO user_roles (id, user_id, org_id, role, is_default) "
                    "VALUES (:id, :user, :org, :role, :is_default) "
                    "ON CONFLICT (user_id, org_id, role) DO UPDATE SET "
                    "is_default = user_roles.is_default OR EXCLUDED.is_default "
                    "RETURNING is_default"
                ),
                {**params, "id": str(uuid4()), "is_default": is_default},
            ).fetchone()
            session.commit()
        logger.info(
            "role_granted",
            extra={"user_id": str(user_id), "org_id": str(org_id), "role": str(role)},
        )
        return RoleGrant(user_id=user_id, org_id=org_id, role=role, is_default=bool(row[0]))

    def revoke(self, user_id: UUID, org_id: UUID, role: RoleType) -> None:
        """Delete a grant and its scope rows together.

        Raises:
            NotFoundError: The grant does not exist.
        """
        params = {"user": str(user_id), "org": str(org_id), "role": str(role)}
        with self._session_factory() as session:
            session.execute(
                text(
                    "DELETE FROM user_role_scopes "
                    "WHERE user_id = :user AND org_id = :org AND role = :role"
                ),
                params,
            )
            deleted = session.execute(
                text(
                    "DELETE FROM user_roles "
                    "WHERE user_id = :user AND org_id = :org AND role = :role "
                    "RETURNING id"
                ),
                params,
            ).fetchone()
            if deleted is None:
                session.rollback()
                raise NotFoundError("UserRole", f"{user_id}/{org_id}/{role}")
            session.commit()
        logger.info(
            "role_revoked",
            extra={"user_id": str(user_id), "org_id": str(org_id), "role": str(role)},
        )

    def grants_for_user(self, user_id: UUID) -> list[RoleGrant]:
        """Every grant of ``user_id`` with its scope school ids."""
        with self._session_factory() as session:
            roles = session.execute(
                text(
                    "SELECT org_id, role, is_default FROM user_roles "
                    "WHERE user_id = :user ORDER BY created_at"
                ),
                {"user": str(user_id)},
            ).fetchall()
            scopes = session.execute(
                text(
                    "SELECT org_id, role, school_id FROM user_role_scopes "
                    "WHERE user_id = :user ORDER BY school_id"
                ),
                {"user": str(user_id)},
            ).fetchall()

        by_grant: dict[tuple[UUID, str], list[UUID]] = defaultdict(list)
        for org_id, role, school_id in scopes:
            by_grant[(_uuid(org_id), role)].append(_uuid(school_id))
        return [
            RoleGrant(
                user_id=user_id,
                org_id=_uuid(org_id),
                role=RoleType(role),
                is_default=bool(is_default),
                school_ids=tuple(by_grant.get((_uuid(org_id), role), ())),
            )
            for org_id, role, is_default in roles
        ]

    def is_tenant_admin(self, user_id: UUID, tenant_id: UUID) -> bool:
        """Whether the user holds ADMIN on any organization of the tenant."""
        with self._session_factory() as session:
            row = session.execute(
                text(
                    "SELECT 1 FROM user_roles r "
                    "JOIN organizations o ON o.id = r.org_id "
                    "WHERE r.user_id = :user AND r.role = 'ADMIN' AND o.tenant_id = :tenant "
                    "LIMIT 1"
                ),
                {"user": str(user_id), "tenant": str(tenant_id)},
            ).fetchone()
        return row is not None

    # -- Scopes ---------------------------------------------------------------

    def list_scopes(self, user_id: UUID, org_id: UUID, role: RoleType) -> list[UUID]:
        with self._session_factory() as session:
            rows = session.execute(
                text(
                    "SELECT school_id FROM user_role_scopes "
                    "WHERE user_id = :user AND org_id = :org AND role = :role "
                    "ORDER BY school_id"
                ),
                {"user": str(user_id), "org": str(org_id), "role": str(role)},
            ).fetchall()
        return [_uuid(r[0]) for r in rows]

    def replace_scopes(
        self,
        user_id: UUID,
        org_id: UUID,
        role: RoleType,
        school_ids: Iterable[UUID],
    ) -> list[UUID]:
        """Replace the scope set of a grant. An empty set removes every restriction.

        Each school must be a SCHOOL in the tenant of ``org_id``. Nothing is
        written unless every check passes.

        Raises:
            NotFoundError: The grant does not exist.
            ValidationError: A school id is not a SCHOOL of the organization's tenant.
        """
        wanted = sorted(set(school_ids), key=str)
        params = {"user": str(user_id), "org": str(org_id), "role": str(role)}
        with self._session_factory() as session:
            grant = session.execute(
                text(
                    "SELECT o.tenant_id FROM user_roles r "
                    "JOIN organizations o ON o.id = r.org_id "
                    "WHERE r.user_id = :user AND r.org_id = :org AND r.role = :role "
                    "FOR UPDATE OF r"
                ),
                params,
            ).fetchone()
            if grant is None:
                session.rollback()
                raise NotFoundError("UserRole", f"{user_id}/{org_id}/{role}")

            if wanted:
                valid = {
                    _uuid(r[0])
                    for r in session.execute(
                        text(
                            "SELECT id FROM organizations "
                            "WHERE id = ANY(:ids) AND tenant_id = :tenant AND type = 'SCHOOL'"
                        ),
                        {"ids": [str(s) for s in wanted], "tenant": str(grant[0])},
                    ).fetchall()
                }
                invalid = [str(s) for s in wanted if s not in valid]
                if invalid:
                    session.rollback()
                    raise ValidationError(
                        "school_ids",
                        "Every scoped id must be a SCHOOL in the organization's tenant",
                        invalid=invalid,
                    )

            session.execute(
                text(
                    "DELETE FROM user_role_scopes "
                    "WHERE user_id = :user AND org_id = :org AND role = :role"
                ),
                params,
            )
            if wanted:
                session.execute(
                    text(
                        "INSERT INTO user_role_scopes (user_id, org_id, role, school_id) "
                        "VALUES (:user, :org, :role, :school)"
                    ),
                    [{**params, "school": str(s)} for s in wanted],
                )
            session.commit()
        logger.info(
            "role_scopes_replaced",
            extra={**params, "count": len(wanted)},
        )
        return wanted

    # -- RoleGrantPort --------------------------------------------------------

    def roles_on_org(self, user_id: UUID, org_id: UUID) -> set[RoleType]:
        with self._session_factory() as session:
            rows = session.execute(
                text("SELECT role FROM user_roles WHERE user_id = :user AND org_id = :org"),
                {"user": str(user_id), "org": str(org_id)},
            ).fetchall()
        return {RoleType(r[0]) for r in rows}

    def scoped_school_ids(
        self,
        user_id: UUID,
        org_id: UUID,
        roles: Iterable[RoleType],
    ) -> list[UUID]:
        role_names = [str(r) for r in roles]
        if not role_names:
            return []
        with self._session_factory() as session:
            rows = session.execute(
                text(
                    "SELECT school_id FROM user_role_scopes "
                    "WHERE user_id = :user AND org_id = :org AND role = ANY(:roles)"
                ),
                {"user": str(user_id), "org": str(org_id), "roles": role_names},
            ).fetchall()
        return [_uuid(r[0]) for r in rows]
