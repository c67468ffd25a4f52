"""Map verified claims to an internal user record.

Two kinds of credential source:

- Local session tokens were issued by us, so the record must already
  exist. The subject is the internal user id; a legacy numeric id is
  followed through ``legacy_user_id`` and then the email. Nothing is
  written. A missing record raises :class:`NoLocalAccountError`.
- External sources (OIDC, third-party provider, delegated assertion) are
  authoritative for identity. A known email has its display name refreshed
  when it changed. An unknown email is created with the default role under
  :attr:`IdentityPolicy.AUTO_PROVISION`, otherwise rejected with
  :class:`ProvisioningDisabledError`.

Either way only approved records authenticate; a pending or rejected
record raises :class:`AccountNotApprovedError`. The email upsert is the
only mutation and is safe to retry.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import UUID

from tripgate.foundation.domain.exceptions import (
    AccountNotApprovedError,
    NoLocalAccountError,
    ProvisioningDisabledError,
)
from tripgate.foundation.domain.org_value_objects import UserStatus
from tripgate.foundation.domain.user_value_objects import DEFAULT_USER_ROLE

if TYPE_CHECKING:
    from tripgate.foundation.domain.ports import UserDirectoryPort
    from tripgate.foundation.domain.principal import VerifiedClaims
    from tripgate.foundation.domain.user_value_objects import UserRecord

logger = logging.getLogger(__name__)


class IdentityPolicy(StrEnum):
    """What to do with a verified external identity that has no local record."""

    REJECT_UNKNOWN = "reject_unknown"
    AUTO_PROVISION = "auto_provision"


class IdentityResolver:
    """Resolves verified claims to a :class:`UserRecord`.

    Args:
        directory: User directory (repository or in-memory fake).
        policy: Handling of unknown external identities.
        default_role: Global role given to auto-provisioned users.
    """

    def __init__(
        self,
        directory: UserDirectoryPort,
        policy: IdentityPolicy = IdentityPolicy.REJECT_UNKNOWN,
        default_role: str = DEFAULT_USER_ROLE,
    ) -> None:
        self._directory = directory
        self._policy = policy
        self._default_role = default_role

    @property
    def policy(self) -> IdentityPolicy:
        return self._policy

    def resolve(self, claims: VerifiedClaims) -> UserRecord:
        """Return the user for ``claims``.

        Raises:
            NoLocalAccountError: Session token for a user that no longer exists.
            ProvisioningDisabledError: Unknown external identity, provisioning off.
            AccountNotApprovedError: The record is pending approval or rejected.
        """
        if not claims.strategy.is_identity_authority:
            user = self._resolve_local(claims)
        else:
            user = self._resolve_external(claims)
        if user.status is not UserStatus.APPROVED:
            logger.info(
                "identity_not_approved",
                extra={"user_id": str(user.id), "status": str(user.status)},
            )
            raise AccountNotApprovedError(str(user.id), str(user.status))
        return user

    def _resolve_local(self, claims: VerifiedClaims) -> UserRecord:
        user: UserRecord | None = None
        try:
            user = self._directory.get_by_id(UUID(claims.subject))
        except ValueError:
            user = self._directory.get_by_legacy_id(claims.subject)
            if user is None and claims.email:
                user = self._directory.get_by_email(claims.email)
                if user is not None:
                    logger.info(
                        "legacy_session_linked_by_email",
                        extra={"legacy_subject": claims.subject, "user_id": str(user.id)},
                    )

        if user is None:
            logger.info("session_user_missing", extra={"subject": claims.subject})
            raise NoLocalAccountError(claims.subject)
        return user

    def _resolve_external(self, claims: VerifiedClaims) -> UserRecord:
        existing = self._directory.get_by_email(claims.email)
        if existing is not None:
            if claims.display_name and existing.display_name != claims.display_name:
                return self._directory.upsert_by_email(
                    claims.email, claims.display_name, existing.role
                )
            return existing

        if self._policy is not IdentityPolicy.AUTO_PROVISION:
            logger.info(
                "identity_rejected_unknown",
                extra={"strategy": str(claims.strategy), "issuer": claims.issuer},
            )
            raise ProvisioningDisabledError(claims.email)

        user = self._directory.upsert_by_email(
            claims.email, claims.display_name, self._default_role
        )
        logger.info(
            "user_provisioned",
            extra={"user_id": str(user.id), "strategy": str(claims.strategy)},
        )
        return user
