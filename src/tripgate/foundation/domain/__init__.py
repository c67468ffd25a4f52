"""Tripgate Foundation Domain -- pure Python domain primitives.

Exceptions, the principal and verified-claims value objects, organization
and user value objects, and the port interfaces implemented by the
persistence layer.
"""

from tripgate.foundation.domain.exceptions import (
    AccountNotApprovedError,
    AudienceMismatchError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DelegationError,
    DomainError,
    DownstreamError,
    ExchangeDeniedError,
    ForbiddenError,
    IssuerMismatchError,
    MalformedTokenError,
    NoActiveOrganizationError,
    NoLocalAccountError,
    NotFoundError,
    ProvisioningDisabledError,
    ScopeNotConsentedError,
    SignatureInvalidError,
    TokenExpiredError,
    TokenVerificationError,
    UnknownSigningKeyError,
    UnverifiedConfigurationError,
    UpstreamUnavailableError,
    ValidationError,
)
from tripgate.foundation.domain.org_value_objects import (
    OrgName,
    OrgType,
    RoleType,
    TenantSlug,
    UserStatus,
)
from tripgate.foundation.domain.ports import (
    OrgGraphPort,
    RoleGrantPort,
    UserDirectoryPort,
)
from tripgate.foundation.domain.principal import Principal, TokenStrategy, VerifiedClaims
from tripgate.foundation.domain.user_value_objects import (
    DEFAULT_USER_ROLE,
    Email,
    UserRecord,
)

__all__ = [
    "DEFAULT_USER_ROLE",
    "AccountNotApprovedError",
    "AudienceMismatchError",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "DelegationError",
    "DomainError",
    "DownstreamError",
    "Email",
    "ExchangeDeniedError",
    "ForbiddenError",
    "IssuerMismatchError",
    "MalformedTokenError",
    "NoActiveOrganizationError",
    "NoLocalAccountError",
    "NotFoundError",
    "OrgGraphPort",
    "OrgName",
    "OrgType",
    "Principal",
    "ProvisioningDisabledError",
    "RoleGrantPort",
    "RoleType",
    "ScopeNotConsentedError",
    "SignatureInvalidError",
    "TenantSlug",
    "TokenExpiredError",
    "TokenStrategy",
    "TokenVerificationError",
    "UnknownSigningKeyError",
    "UnverifiedConfigurationError",
    "UpstreamUnavailableError",
    "UserDirectoryPort",
    "UserRecord",
    "UserStatus",
    "ValidationError",
    "VerifiedClaims",
]
