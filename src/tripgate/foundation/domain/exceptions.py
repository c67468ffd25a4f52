"""Domain exception hierarchy for type-safe error handling.

Every error raised by tripgate derives from :class:`DomainError` and carries
a machine-readable ``error_code`` plus a structured ``context`` dict used
for logging. The HTTP layer maps each family to a status code; see
``tripgate.infra.fastapi.error_handlers``.

Families:
    - Token verification (401, collapsed to one external response):
      :class:`TokenVerificationError` and its subclasses.
    - Identity resolution: :class:`NoLocalAccountError`,
      :class:`ProvisioningDisabledError`.
    - Authorization (403): :class:`AuthorizationError`, :class:`ForbiddenError`.
    - Delegation: :class:`DelegationError` and its subclasses, rendered with
      the ``{error, details}`` envelope.

Example:
    >>> from tripgate.foundation.domain.exceptions import NotFoundError
    >>> raise NotFoundError("Organization", "7f0c...")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from uuid import UUID

__all__ = [
    "AudienceMismatchError",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "DelegationError",
    "DomainError",
    "DownstreamError",
    "ExchangeDeniedError",
    "ForbiddenError",
    "IssuerMismatchError",
    "MalformedTokenError",
    "NoActiveOrganizationError",
    "NoLocalAccountError",
    "NotFoundError",
    "ProvisioningDisabledError",
    "ScopeNotConsentedError",
    "SignatureInvalidError",
    "TokenExpiredError",
    "TokenVerificationError",
    "UnknownSigningKeyError",
    "UnverifiedConfigurationError",
    "UpstreamUnavailableError",
    "ValidationError",
]


class DomainError(Exception):
    """Base class for all domain errors.

    Attributes:
        error_code: Machine-readable error code for client handling.
        message: Human-readable error description.
        context: Structured debugging information (ids, field names).

    Example:
        >>> raise DomainError("Operation failed", context={"org_id": "123"})
        DomainError: Operation failed (org_id=123)
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Initialize domain error with message and optional context.

        Args:
            message: Human-readable error description.
            context: Structured debugging information. Keys should be snake_case.
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """String representation including context for logging."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class NotFoundError(DomainError):
    """Raised when a requested resource does not exist. Maps to HTTP 404.

    Attributes:
        resource_type: Type of missing resource.
        resource_id: Identifier of missing resource.
    """

    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        resource_type: str,
        resource_id: UUID | str,
        **extra_context: Any,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type} not found: {resource_id}"
        context = {
            "resource_type": resource_type,
            "resource_id": str(resource_id),
            **extra_context,
        }
        super().__init__(message, context)


class ValidationError(DomainError):
    """Raised when input fails a domain rule. Maps to HTTP 422.

    Use for invariants such as "parent organization must share the tenant",
    not for request schema errors (those come from Pydantic).

    Attributes:
        field: Field path that failed validation.
        reason: Human-readable validation failure reason.

    Example:
        >>> raise ValidationError("parent_org_id", "Parent belongs to another tenant")
        ValidationError: Validation failed for 'parent_org_id': Parent belongs to another tenant
    """

    error_code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        field: str,
        reason: str,
        **extra_context: Any,
    ) -> None:
        self.field = field
        self.reason = reason
        message = f"Validation failed for '{field}': {reason}"
        context = {
            "field": field,
            "reason": reason,
            **extra_context,
        }
        super().__init__(message, context)


class ConflictError(DomainError):
    """Raised when an operation conflicts with current state. Maps to HTTP 409.

    Attributes:
        reason: Description of the conflict.
    """

    error_code: str = "CONFLICT"

    def __init__(
        self,
        reason: str,
        **context: Any,
    ) -> None:
        self.reason = reason
        message = f"Conflict: {reason}"
        super().__init__(message, context)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthenticationError(DomainError):
    """Raised when authentication fails (missing, expired, invalid credential).

    Maps to HTTP 401 Unauthorized. All 401 responses MUST include a
    WWW-Authenticate header per RFC 6750.

    Attributes:
        error_code: Machine-readable error code (e.g., "MISSING_TOKEN").
        auth_error: RFC 6750 error code for WWW-Authenticate header.

    Example:
        >>> raise AuthenticationError("Authorization header is required",
        ...     auth_error="invalid_request", error_code="MISSING_TOKEN")
    """

    error_code: str = "AUTHENTICATION_ERROR"

    def __init__(
        self,
        message: str,
        auth_error: str = "invalid_token",
        error_code: str = "AUTHENTICATION_ERROR",
        context: dict[str, Any] | None = None,
    ) -> None:
        self.auth_error = auth_error
        self.error_code = error_code
        super().__init__(message, context)


class TokenVerificationError(AuthenticationError):
    """Base class for failures while verifying a credential.

    Subclasses differ only in ``reason``, which is written to logs. At the
    HTTP boundary every subclass renders the same 401 body so a caller
    cannot tell which stage rejected the token.

    Attributes:
        reason: snake_case reason code for logs.
    """

    reason: str = "invalid_token"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            auth_error="invalid_token",
            error_code="INVALID_TOKEN",
            context=context,
        )


class MalformedTokenError(TokenVerificationError):
    """Token cannot be parsed, or lacks a claim every strategy needs (email, sub)."""

    reason = "malformed_token"


class UnknownSigningKeyError(TokenVerificationError):
    """The key id is absent from the issuer's key set, even after a refresh."""

    reason = "unknown_signing_key"


class SignatureInvalidError(TokenVerificationError):
    """Signature check failed, or the header algorithm is not allowed."""

    reason = "signature_invalid"


class TokenExpiredError(TokenVerificationError):
    """``exp`` is in the past or ``nbf`` is in the future."""

    reason = "token_expired"


class IssuerMismatchError(TokenVerificationError):
    """``iss`` does not exactly match any accepted issuer."""

    reason = "issuer_mismatch"


class AudienceMismatchError(TokenVerificationError):
    """``aud`` does not contain the configured audience."""

    reason = "audience_mismatch"


class UnverifiedConfigurationError(TokenVerificationError):
    """Verification could not run: key set unreachable, timed out, or unusable.

    Maps to HTTP 503. The condition is transient and the client may retry;
    it is never treated as a permanent deny.
    """

    reason = "unverified_configuration"


# ---------------------------------------------------------------------------
# Identity resolution
# ---------------------------------------------------------------------------


class NoLocalAccountError(AuthenticationError):
    """A verified credential has no matching internal user record.

    For session tokens this means the record was removed after issuance.
    Maps to HTTP 401 with error code ``ACCOUNT_NOT_FOUND`` so clients
    re-authenticate instead of retrying.
    """

    def __init__(self, subject: str, **context: Any) -> None:
        self.subject = subject
        super().__init__(
            "No local account for this credential",
            auth_error="invalid_token",
            error_code="ACCOUNT_NOT_FOUND",
            context={"subject": subject, **context},
        )


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class AuthorizationError(DomainError):
    """Raised when an authenticated principal lacks required permissions.

    Maps to HTTP 403 Forbidden.
    """

    error_code: str = "AUTHORIZATION_ERROR"


class ForbiddenError(AuthorizationError):
    """The principal holds no role on the organization it tried to use.

    Example:
        >>> raise ForbiddenError("Not a member of this organization", org_id="...")
    """

    error_code: str = "NOT_A_MEMBER"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, context)


class NoActiveOrganizationError(DomainError):
    """An org-scoped operation ran before an organization was selected. Maps to 400."""

    error_code: str = "NO_ACTIVE_ORGANIZATION"

    def __init__(self) -> None:
        super().__init__("Select an organization first")


class ProvisioningDisabledError(AuthorizationError):
    """An external identity is unknown locally and auto-provisioning is off."""

    error_code: str = "PROVISIONING_DISABLED"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("No local account", {"email": email})


class AccountNotApprovedError(AuthorizationError):
    """The user exists but an administrator has not approved it, or rejected it."""

    error_code: str = "ACCOUNT_NOT_APPROVED"

    def __init__(self, user_id: str, status: str) -> None:
        self.status = status
        super().__init__("Account not approved", {"user_id": user_id, "status": status})


# ---------------------------------------------------------------------------
# Delegation
# ---------------------------------------------------------------------------


class DelegationError(DomainError):
    """Base class for on-behalf-of exchange and downstream API failures.

    Rendered as ``{"error": message, "details": details}`` so the calling
    layer keeps the upstream detail for user-facing messages.

    Attributes:
        status_code: HTTP status returned to the caller.
        details: Upstream error payload or description, passed through intact.
    """

    error_code: str = "DELEGATION_ERROR"
    status_code: int = 502

    def __init__(
        self,
        message: str,
        details: Any = None,
        *,
        status_code: int | None = None,
        **context: Any,
    ) -> None:
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message, context)


class ExchangeDeniedError(DelegationError):
    """The identity platform rejected the assertion (invalid_grant, bad client)."""

    error_code: str = "EXCHANGE_DENIED"
    status_code: int = 403


class ScopeNotConsentedError(DelegationError):
    """The user or tenant has not consented to one of the requested scopes."""

    error_code: str = "SCOPE_NOT_CONSENTED"
    status_code: int = 403


class UpstreamUnavailableError(DelegationError):
    """The token endpoint failed with 5xx, timed out, or was unreachable."""

    error_code: str = "UPSTREAM_UNAVAILABLE"
    status_code: int = 503


class DownstreamError(DelegationError):
    """The downstream API answered with a non-success status.

    ``status_code`` is the downstream status, passed through unchanged.
    """

    error_code: str = "DOWNSTREAM_ERROR"
