"""Repository for the ``tenants`` table.

Sync repository. Control-plane only: tenants are created by global
administrators and never renamed by slug.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import text

from tripgate.domain.tenancy.models import Tenant
from tripgate.foundation.domain.exceptions import ConflictError

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS tenants (
    id UUID PRIMARY KEY,
    slug VARCHAR(63) NOT NULL UNIQUE,
    name VARCHAR(255) NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
)
"""


def _to_tenant(row: Any) -> Tenant:
    return Tenant(id=UUID(str(row[0])), slug=row[1], name=row[2])


class TenantRepository:
    """Read/create access to tenants.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def ensure_table_exists(cls, session_factory: Callable[[], Session]) -> None:
        with session_factory() as session:
            session.execute(text(_CREATE_TABLE_SQL))
            session.commit()
        logger.info("tenants_table_ensured")

    def get(self, tenant_id: UUID) -> Tenant | None:
        with self._session_factory() as session:
            row = session.execute(
                text("SELECT id, slug, name FROM tenants WHERE id = :id"),
                {"id": str(tenant_id)},
            ).fetchone()
        return _to_tenant(row) if row else None

    def get_by_slug(self, slug: str) -> Tenant | None:
        with self._session_factory() as session:
            row = session.execute(
                text("SELECT id, slug, name FROM tenants WHERE slug = :slug"),
                {"slug": slug},
            ).fetchone()
        return _to_tenant(row) if row else None

    def list_all(self) -> list[Tenant]:
        with self._session_factory() as session:
            rows = session.execute(
                text("SELECT id, slug, name FROM tenants ORDER BY created_at ASC")
            ).fetchall()
        return [_to_tenant(r) for r in rows]

    def create(self, slug: str, name: str) -> Tenant:
        """Insert a tenant.

        Raises:
            ConflictError: If the slug is taken.
        """
        with self._session_factory() as session:
            row = session.execute(
                text(
                    "INSERT INTO tenants (id, slug, name) VALUES (:id, :slug, :name) "
                    "ON CONFLICT (slug) DO NOTHING "
                    "RETURNING id, slug, name"
                ),
                {"id": str(uuid4()), "slug": slug, "name": name},
            ).fetchone()
            session.commit()
        if row is None:
            raise ConflictError("Tenant slug already exists", slug=slug)
        tenant = _to_tenant(row)
        logger.info("tenant_created", extra={"tenant_id": str(tenant.id), "slug": slug})
        return tenant
