"""Unit tests for user and organization value objects."""

from __future__ import annotations

from uuid import uuid4

import pytest

from tripgate.foundation.domain.org_value_objects import OrgType, RoleType, UserStatus
from tripgate.foundation.domain.principal import Principal, TokenStrategy, VerifiedClaims
from tripgate.foundation.domain.user_value_objects import DEFAULT_USER_ROLE, Email, UserRecord


@pytest.mark.unit
class TestEmail:
    def test_normalizes(self) -> None:
        assert Email("  Teacher@School.ORG ").value == "teacher@school.org"

    @pytest.mark.parametrize("raw", ["", "   ", "no-at-sign", "a@b", "a b@c.org"])
    def test_rejects_invalid(self, raw: str) -> None:
        with pytest.raises(ValueError):
            Email(raw)

    def test_rejects_too_long(self) -> None:
        with pytest.raises(ValueError, match="too long"):
            Email("a" * 250 + "@x.org")


@pytest.mark.unit
class TestUserRecord:
    def test_defaults(self) -> None:
        record = UserRecord(id=uuid4(), email="a@b.co", display_name="A")
        assert record.role == DEFAULT_USER_ROLE
        assert record.status is UserStatus.APPROVED
        assert record.password_hash is None


@pytest.mark.unit
class TestEnums:
    def test_string_values(self) -> None:
        assert OrgType.BUS_COMPANY == "BUS_COMPANY"
        assert RoleType("FINANCE") is RoleType.FINANCE
        assert UserStatus.PENDING == "pending"


@pytest.mark.unit
class TestPrincipal:
    def test_only_local_session_is_not_an_identity_authority(self) -> None:
        authorities = {s for s in TokenStrategy if s.is_identity_authority}
        assert authorities == {
            TokenStrategy.REMOTE_OIDC,
            TokenStrategy.THIRD_PARTY,
            TokenStrategy.DELEGATED,
        }

    def test_claims_equality_ignores_raw(self) -> None:
        fields = {
            "subject": "s",
            "email": "a@b.co",
            "display_name": "A",
            "issuer": "https://id.example.com",
            "strategy": TokenStrategy.REMOTE_OIDC,
        }
        assert VerifiedClaims(**fields, raw={"x": 1}) == VerifiedClaims(**fields, raw={})

    def test_principal_is_frozen(self) -> None:
        principal = Principal(subject="s", user_id=uuid4(), email="a@b.co")
        with pytest.raises(AttributeError):
            principal.email = "other@b.co"  # type: ignore[misc]
