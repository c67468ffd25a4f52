"""Unit tests for TenantRepository and OrganizationRepository with a mock session_factory."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from tripgate.domain.tenancy.infrastructure import OrganizationRepository, TenantRepository
from tripgate.domain.tenancy.models import Organization, Partnership, Tenant
from tripgate.foundation.domain.exceptions import ConflictError, NotFoundError, ValidationError
from tripgate.foundation.domain.org_value_objects import OrgType

TENANT = uuid4()


def _result(rows: list[tuple[Any, ...]] | None = None) -> MagicMock:
    result = MagicMock()
    rows = rows or []
    result.fetchone.return_value = rows[0] if rows else None
    result.fetchall.return_value = rows
    return result


def _make_session_factory(*results: list[tuple[Any, ...]] | None) -> tuple[Any, MagicMock]:
    """Session factory whose successive execute() calls return ``results`` in order."""
    mock_session = MagicMock()
    if results:
        mock_session.execute.side_effect = [_result(rows) for rows in results]
    else:
        mock_session.execute.return_value = _result()

    @contextmanager
    def factory():  # type: ignore[no-untyped-def]
        yield mock_session

    return factory, mock_session


def _sql(mock_session: MagicMock, index: int = -1) -> str:
    return str(mock_session.execute.call_args_list[index].args[0].text)


def _params(mock_session: MagicMock, index: int = -1) -> Any:
    return mock_session.execute.call_args_list[index].args[1]


@pytest.mark.unit
class TestTenantRepository:
    def test_get_missing(self) -> None:
        factory, _ = _make_session_factory()
        assert TenantRepository(factory).get(uuid4()) is None

    def test_create(self) -> None:
        factory, session = _make_session_factory([(str(TENANT), "north", "North")])

        tenant = TenantRepository(factory).create("north", "North")

        assert tenant == Tenant(TENANT, "north", "North")
        assert "ON CONFLICT (slug) DO NOTHING" in _sql(session)
        session.commit.assert_called_once()

    def test_taken_slug(self) -> None:
        factory, _ = _make_session_factory(None)
        with pytest.raises(ConflictError, match="slug"):
            TenantRepository(factory).create("north", "North")

    def test_list_all(self) -> None:
        other = uuid4()
        factory, _ = _make_session_factory([(TENANT, "north", "North"), (other, "south", "S")])
        assert [t.slug for t in TenantRepository(factory).list_all()] == ["north", "south"]


@pytest.mark.unit
class TestCreateOrganization:
    def test_under_parent(self) -> None:
        parent_id, org_id = uuid4(), uuid4()
        factory, session = _make_session_factory(
            [(parent_id, TENANT, "District", "PARENT_ORG", None)],
            [(org_id, TENANT, "School", "SCHOOL", parent_id)],
        )

        org = OrganizationRepository(factory).create(TENANT, "School", OrgType.SCHOOL, parent_id)

        assert org == Organization(org_id, TENANT, "School", OrgType.SCHOOL, parent_id)
        assert _params(session, 0) == {"id": str(parent_id), "tenant": str(TENANT)}
        assert _params(session, 1)["parent"] == str(parent_id)
        session.commit.assert_called_once()

    def test_parent_of_wrong_type_inserts_nothing(self) -> None:
        parent_id = uuid4()
        factory, session = _make_session_factory([(parent_id, TENANT, "A school", "SCHOOL", None)])

        with pytest.raises(ValidationError, match="PARENT_ORG"):
            OrganizationRepository(factory).create(TENANT, "S", OrgType.SCHOOL, parent_id)

        assert session.execute.call_count == 1
        session.commit.assert_not_called()

    def test_parent_in_other_tenant_is_absent(self) -> None:
        factory, session = _make_session_factory(None)

        with pytest.raises(ValidationError, match="same tenant"):
            OrganizationRepository(factory).create(TENANT, "S", OrgType.SCHOOL, uuid4())
        session.commit.assert_not_called()

    def test_top_level_skips_parent_lookup(self) -> None:
        org_id = uuid4()
        factory, session = _make_session_factory([(org_id, TENANT, "Buses", "BUS_COMPANY", None)])

        OrganizationRepository(factory).create(TENANT, "Buses", OrgType.BUS_COMPANY)

        assert session.execute.call_count == 1
        assert _params(session)["parent"] is None


@pytest.mark.unit
class TestPartnerships:
    def test_relinking_upserts_active_flag(self) -> None:
        bus, school, link = uuid4(), uuid4(), uuid4()
        factory, session = _make_session_factory(
            [(bus, TENANT, "Buses", "BUS_COMPANY", None)],
            [(school, TENANT, "School", "SCHOOL", None)],
            [(link, TENANT, bus, school, False)],
        )

        partnership = OrganizationRepository(factory).create_partnership(
            TENANT, bus, school, active=False
        )

        assert partnership == Partnership(link, TENANT, bus, school, False)
        sql = _sql(session)
        assert "ON CONFLICT (tenant_id, bus_company_id, school_id)" in sql
        assert "DO UPDATE SET active = EXCLUDED.active" in sql
        session.commit.assert_called_once()

    def test_endpoint_of_wrong_type(self) -> None:
        bus, school = uuid4(), uuid4()
        factory, session = _make_session_factory(
            [(bus, TENANT, "Buses", "BUS_COMPANY", None)],
            [(school, TENANT, "District", "PARENT_ORG", None)],
        )

        with pytest.raises(ValidationError, match="school_id"):
            OrganizationRepository(factory).create_partnership(TENANT, bus, school)
        assert session.execute.call_count == 2

    def test_toggle_missing(self) -> None:
        factory, _ = _make_session_factory(None)
        with pytest.raises(NotFoundError):
            OrganizationRepository(factory).set_partnership_active(TENANT, uuid4(), False)


@pytest.mark.unit
class TestOrgGraph:
    def test_get_many_without_ids_skips_the_query(self) -> None:
        factory, session = _make_session_factory()
        assert OrganizationRepository(factory).get_many([]) == {}
        session.execute.assert_not_called()

    def test_child_schools(self) -> None:
        a, b, parent = uuid4(), uuid4(), uuid4()
        factory, session = _make_session_factory([(a,), (str(b),)])

        assert OrganizationRepository(factory).child_school_ids(TENANT, parent) == {a, b}
        assert "type = 'SCHOOL'" in _sql(session)
        assert _params(session) == {"tenant": str(TENANT), "parent": str(parent)}

    def test_partner_schools_only_follow_active_links(self) -> None:
        school = uuid4()
        factory, session = _make_session_factory([(school,)])

        assert OrganizationRepository(factory).partner_school_ids(TENANT, uuid4()) == {school}
        sql = _sql(session)
        assert "p.active" in sql
        assert "o.tenant_id = p.tenant_id" in sql

    def test_org_type_outside_tenant(self) -> None:
        factory, _ = _make_session_factory(None)
        assert OrganizationRepository(factory).org_type(TENANT, uuid4()) is None
