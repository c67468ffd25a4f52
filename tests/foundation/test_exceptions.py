"""Unit tests for the domain exception hierarchy."""

from __future__ import annotations

import pytest

from tripgate.foundation.domain.exceptions import (
    AudienceMismatchError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DelegationError,
    DomainError,
    DownstreamError,
    ExchangeDeniedError,
    ForbiddenError,
    NoActiveOrganizationError,
    NoLocalAccountError,
    NotFoundError,
    ProvisioningDisabledError,
    ScopeNotConsentedError,
    SignatureInvalidError,
    TokenExpiredError,
    TokenVerificationError,
    UnverifiedConfigurationError,
    UpstreamUnavailableError,
    ValidationError,
)


@pytest.mark.unit
class TestDomainError:
    def test_str_includes_context(self) -> None:
        exc = DomainError("Operation failed", context={"org_id": "123"})
        assert str(exc) == "Operation failed (org_id=123)"

    def test_str_without_context(self) -> None:
        assert str(DomainError("plain")) == "plain"

    def test_repr(self) -> None:
        assert repr(DomainError("x")) == "DomainError('x', context={})"

    def test_not_found_message(self) -> None:
        exc = NotFoundError("Organization", "abc", tenant_id="t1")
        assert exc.message == "Organization not found: abc"
        assert exc.context == {
            "resource_type": "Organization",
            "resource_id": "abc",
            "tenant_id": "t1",
        }

    def test_validation_error_fields(self) -> None:
        exc = ValidationError("parent_id", "wrong tenant")
        assert exc.field == "parent_id"
        assert "wrong tenant" in exc.message

    def test_conflict_prefix(self) -> None:
        assert ConflictError("Email already exists").message == "Conflict: Email already exists"


@pytest.mark.unit
class TestTokenVerificationFamily:
    @pytest.mark.parametrize(
        ("cls", "reason"),
        [
            (SignatureInvalidError, "signature_invalid"),
            (TokenExpiredError, "token_expired"),
            (AudienceMismatchError, "audience_mismatch"),
            (UnverifiedConfigurationError, "unverified_configuration"),
        ],
    )
    def test_same_public_code_distinct_reason(
        self, cls: type[TokenVerificationError], reason: str
    ) -> None:
        exc = cls("detail")
        assert isinstance(exc, AuthenticationError)
        assert exc.error_code == "INVALID_TOKEN"
        assert exc.auth_error == "invalid_token"
        assert exc.reason == reason

    def test_no_local_account(self) -> None:
        exc = NoLocalAccountError("user-1")
        assert exc.error_code == "ACCOUNT_NOT_FOUND"
        assert exc.context["subject"] == "user-1"


@pytest.mark.unit
class TestAuthorizationFamily:
    def test_forbidden_context(self) -> None:
        exc = ForbiddenError("Not a member of this organization", org_id="o1")
        assert isinstance(exc, AuthorizationError)
        assert exc.context == {"org_id": "o1"}

    def test_provisioning_disabled_keeps_email(self) -> None:
        exc = ProvisioningDisabledError("a@b.co")
        assert isinstance(exc, AuthorizationError)
        assert exc.email == "a@b.co"

    def test_no_active_organization(self) -> None:
        exc = NoActiveOrganizationError()
        assert exc.message == "Select an organization first"
        assert not isinstance(exc, AuthorizationError)


@pytest.mark.unit
class TestDelegationFamily:
    @pytest.mark.parametrize(
        ("cls", "status"),
        [
            (DelegationError, 502),
            (ExchangeDeniedError, 403),
            (ScopeNotConsentedError, 403),
            (UpstreamUnavailableError, 503),
            (DownstreamError, 502),
        ],
    )
    def test_default_status(self, cls: type[DelegationError], status: int) -> None:
        assert cls("failed").status_code == status

    def test_status_override_is_per_instance(self) -> None:
        exc = DownstreamError("Graph GET /me failed", {"error": "x"}, status_code=404)
        assert exc.status_code == 404
        assert exc.details == {"error": "x"}
        assert DownstreamError.status_code == 502
