"""Repository for ``organizations`` and ``partnerships``.

Implements :class:`OrgGraphPort` for the hierarchy resolver. Every query
is filtered by ``tenant_id``; a row in another tenant is treated as absent.

Creation checks and inserts run in the same session so the parent or
partnership endpoints are read and written under one transaction.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import text

from tripgate.domain.tenancy.models import (
    Organization,
    Partnership,
    check_parent,
    check_partnership,
)
from tripgate.foundation.domain.exceptions import NotFoundError
from tripgate.foundation.domain.org_value_objects import OrgType

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_CREATE_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS organizations (
        id UUID PRIMARY KEY,
        tenant_id UUID NOT NULL REFERENCES tenants (id),
        name VARCHAR(255) NOT NULL,
        type VARCHAR(20) NOT NULL
            CHECK (type IN ('SCHOOL', 'BUS_COMPANY', 'PARENT_ORG')),
        parent_id UUID REFERENCES organizations (id),
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_organizations_tenant_parent
        ON organizations (tenant_id, parent_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS partnerships (
        id UUID PRIMARY KEY,
        tenant_id UUID NOT NULL REFERENCES tenants (id),
        bus_company_id UUID NOT NULL REFERENCES organizations (id),
        school_id UUID NOT NULL REFERENCES organizations (id),
        active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        UNIQUE (tenant_id, bus_company_id, school_id)
    )
    """,
)

_ORG_COLUMNS = "id, tenant_id, name, type, parent_id"
_PARTNERSHIP_COLUMNS = "id, tenant_id, bus_company_id, school_id, active"


def _uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _to_org(row: Any) -> Organization:
    return Organization(
        id=_uuid(row[0]),
        tenant_id=_uuid(row[1]),
        name=row[2],
        type=OrgType(row[3]),
        parent_id=_uuid(row[4]) if row[4] is not None else None,
    )


def _to_partnership(row: Any) -> Partnership:
    return Partnership(
        id=_uuid(row[0]),
        tenant_id=_uuid(row[1]),
        bus_company_id=_uuid(row[2]),
        school_id=_uuid(row[3]),
        active=bool(row[4]),
    )


def _fetch_org(session: Session, tenant_id: UUID, org_id: UUID) -> Organization | None:
    row = session.execute(
        text(f"SELECT {_ORG_COLUMNS} FROM organizations WHERE id = :id AND tenant_id = :tenant"),
        {"id": str(org_id), "tenant": str(tenant_id)},
    ).fetchone()
    return _to_org(row) if row else None


class OrganizationRepository:
    """Tenant-scoped organization graph storage.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def ensure_table_exists(cls, session_factory: Callable[[], Session]) -> None:
        """Create ``organizations`` and ``partnerships``. Requires ``tenants``."""
        with session_factory() as session:
            for statement in _CREATE_STATEMENTS:
                session.execute(text(statement))
            session.commit()
        logger.info("organization_tables_ensured")

    # -- Organizations --------------------------------------------------------

    def get(self, tenant_id: UUID, org_id: UUID) -> Organization | None:
        with self._session_factory() as session:
            return _fetch_org(session, tenant_id, org_id)

    def get_any(self, org_id: UUID) -> Organization | None:
        """Look an organization up without knowing its tenant."""
        with self._session_factory() as session:
            row = session.execute(
                text(f"SELECT {_ORG_COLUMNS} FROM organizations WHERE id = :id"),
                {"id": str(org_id)},
            ).fetchone()
        return _to_org(row) if row else None

    def get_many(self, org_ids: list[UUID]) -> dict[UUID, Organization]:
        if not org_ids:
            return {}
        with self._session_factory() as session:
            rows = session.execute(
                text(f"SELECT {_ORG_COLUMNS} FROM organizations WHERE id = ANY(:ids)"),
                {"ids": [str(i) for i in org_ids]},
            ).fetchall()
        return {org.id: org for org in map(_to_org, rows)}

    def list_for_tenant(self, tenant_id: UUID) -> list[Organization]:
        with self._session_factory() as session:
            rows = session.execute(
                text(
                    f"SELECT {_ORG_COLUMNS} FROM organizations "
                    "WHERE tenant_id = :tenant ORDER BY type, name"
                ),
                {"tenant": str(tenant_id)},
            ).fetchall()
        return [_to_org(r) for r in rows]

    def create(
        self,
        tenant_id: UUID,
        name: str,
        org_type: OrgType,
        parent_id: UUID | None = None,
    ) -> Organization:
        """Insert an organization.

        Raises:
            ValidationError: The parent is absent, in another tenant, or not a PARENT_ORG.
        """
        with self._session_factory() as session:
            if parent_id is not None:
                check_parent(tenant_id, _fetch_org(session, tenant_id, parent_id), parent_id)
            row = session.execute(
                text(
                    "INSERT INTO organizations (id, tenant_id, name, type, parent_id) "
                    "VALUES (:id, :tenant, :name, :type, :parent) "
                    f"RETURNING {_ORG_COLUMNS}"
                ),
                {
                    "id": str(uuid4()),
                    "tenant": str(tenant_id),
                    "name": name,
                    "type": str(org_type),
                    "parent": str(parent_id) if parent_id else None,
                },
            ).fetchone()
            session.commit()
        org = _to_org(row)
        logger.info(
            "organization_created",
            extra={"org_id": str(org.id), "tenant_id": str(tenant_id), "type": str(org_type)},
        )
        return org

    # -- Partnerships ---------------------------------------------------------

    def create_partnership(
        self,
        tenant_id: UUID,
        bus_company_id: UUID,
        school_id: UUID,
        *,
        active: bool = True,
    ) -> Partnership:
        """Link a bus company to a school. Re-linking an existing pair sets ``active``.

        Raises:
            ValidationError: An endpoint is missing, in another tenant, or of the wrong type.
        """
        with self._session_factory() as session:
            check_partnership(
                tenant_id,
                _fetch_org(session, tenant_id, bus_company_id),
                _fetch_org(session, tenant_id, school_id),
            )
            row = session.execute(
                text(
                    "INSERT INTO partnerships "
                    "(id, tenant_id, bus_company_id, school_id, active) "
                    "VALUES (:id, :tenant, :bus, :school, :active) "
                    "ON CONFLICT (tenant_id, bus_company_id, school_id) "
                    "DO UPDATE SET active = EXCLUDED.active "
                    f"RETURNING {_PARTNERSHIP_COLUMNS}"
                ),
                {
                    "id": str(uuid4()),
                    "tenant": str(tenant_id),
                    "bus": str(bus_company_id),
                    "school": str(school_id),
                    "active": active,
                },
            ).fetchone()
            session.commit()
        return _to_partnership(row)

    def set_partnership_active(
        self, tenant_id: UUID, partnership_id: UUID, active: bool
    ) -> Partnership:
        """Toggle a partnership.

        Raises:
            NotFoundError: No such partnership in the tenant.
        """
        with self._session_factory() as session:
            row = session.execute(
                text(
                    "UPDATE partnerships SET active = :active "
                    "WHERE id = :id AND tenant_id = :tenant "
                    f"RETURNING {_PARTNERSHIP_COLUMNS}"
                ),
                {"id": str(partnership_id), "tenant": str(tenant_id), "active": active},
            ).fetchone()
            session.commit()
        if row is None:
            raise NotFoundError("Partnership", partnership_id)
        logger.info(
            "partnership_toggled",
            extra={"partnership_id": str(partnership_id), "active": active},
        )
        return _to_partnership(row)

    def list_partnerships(self, tenant_id: UUID) -> list[Partnership]:
        with self._session_factory() as session:
            rows = session.execute(
                text(
                    f"SELECT {_PARTNERSHIP_COLUMNS} FROM partnerships "
                    "WHERE tenant_id = :tenant ORDER BY created_at"
                ),
                {"tenant": str(tenant_id)},
            ).fetchall()
        return [_to_partnership(r) for r in rows]

    # -- OrgGraphPort ---------------------------------------------------------

    def org_type(self, tenant_id: UUID, org_id: UUID) -> OrgType | None:
        org = self.get(tenant_id, org_id)
        return org.type if org else None

    def child_school_ids(self, tenant_id: UUID, parent_org_id: UUID) -> set[UUID]:
        with self._session_factory() as session:
            rows = session.execute(
                text(
                    "SELECT id FROM organizations "
                    "WHERE tenant_id = :tenant AND parent_id = :parent AND type = 'SCHOOL'"
                ),
                {"tenant": str(tenant_id), "parent": str(parent_org_id)},
            ).fetchall()
        return {_uuid(r[0]) for r in rows}

    def partner_school_ids(self, tenant_id: UUID, bus_company_id: UUID) -> set[UUID]:
        with self._session_factory() as session:
            rows = session.execute(
                text(
                    "SELECT p.school_id FROM partnerships p "
                    "JOIN organizations o "
                    "  ON o.id = p.school_id AND o.tenant_id = p.tenant_id "
                    "WHERE p.tenant_id = :tenant AND p.bus_company_id = :bus "
                    "  AND p.active AND o.type = 'SCHOOL'"
                ),
                {"tenant": str(tenant_id), "bus": str(bus_company_id)},
            ).fetchall()
        return {_uuid(r[0]) for r in rows}
