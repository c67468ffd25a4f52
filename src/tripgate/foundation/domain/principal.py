"""Verified claims and the authenticated principal.

Pure domain objects with no external dependencies. Immutable (frozen
dataclasses). ``VerifiedClaims`` is what a token verifier returns;
``Principal`` is what request handlers see after identity resolution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from uuid import UUID


class TokenStrategy(StrEnum):
    """Closed set of credential verification strategies.

    The strategy for a credential is chosen from configuration and from
    where the credential arrived (cookie or bearer header), never by
    trying each strategy in turn.
    """

    LOCAL_SESSION = "local_session"
    REMOTE_OIDC = "remote_oidc"
    THIRD_PARTY = "third_party"
    DELEGATED = "delegated"

    @property
    def is_identity_authority(self) -> bool:
        """Whether tokens of this strategy may create or update user records."""
        return self is not TokenStrategy.LOCAL_SESSION


@dataclass(frozen=True, slots=True)
class VerifiedClaims:
    """Normalized claim set produced by a successful verification.

    Attributes:
        subject: ``sub`` claim, unchanged.
        email: Lowercased email from the first non-empty configured claim path.
        display_name: Display name from the configured paths, falling back to email.
        issuer: ``iss`` claim.
        strategy: Strategy that verified the token.
        raw: Full decoded claim dict.
    """

    subject: str
    email: str
    display_name: str
    issuer: str
    strategy: TokenStrategy
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated user performing a request.

    Attributes:
        subject: ``sub`` of the credential that authenticated the request.
        user_id: Internal user record id.
        email: Email on the user record.
        display_name: Display name on the user record.
        roles: Global role strings from the user record (e.g. ``admin``).
        strategy: Strategy that verified the credential.
    """

    subject: str
    user_id: UUID
    email: str
    display_name: str = ""
    roles: tuple[str, ...] = ()
    strategy: TokenStrategy = TokenStrategy.LOCAL_SESSION
