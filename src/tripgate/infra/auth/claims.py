"""Unverified envelope parsing and declarative claim lookup.

Nothing in this module trusts the token: :func:`decode_envelope` only reads
the header and payload so the verifier can pick an algorithm and a key.
Claim paths are plain data (``"user_metadata.full_name"``) evaluated in a
fixed order; a path joined with ``+`` concatenates several claims with a
space (``"given_name+family_name"``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jwt as pyjwt

from tripgate.foundation.domain.exceptions import MalformedTokenError
from tripgate.foundation.domain.user_value_objects import Email

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


@dataclass(frozen=True, slots=True)
class Envelope:
    """Header and claims of a token, read without verification.

    Attributes:
        header: JOSE header (``alg``, ``kid``, ``typ``).
        claims: Payload claims. Untrusted until verified.
    """

    header: dict[str, Any]
    claims: dict[str, Any]

    @property
    def algorithm(self) -> str:
        return str(self.header.get("alg", ""))

    @property
    def key_id(self) -> str | None:
        kid = self.header.get("kid")
        return str(kid) if kid else None

    @property
    def issuer(self) -> str:
        return str(self.claims.get("iss", ""))


def decode_envelope(raw: str) -> Envelope:
    """Parse a compact JWT into an :class:`Envelope` without verifying it.

    Raises:
        MalformedTokenError: If the string is not a decodable JWT.
    """
    if not raw or raw.count(".") != 2:
        raise MalformedTokenError("Token is not a compact JWT")
    try:
        header = pyjwt.get_unverified_header(raw)
        claims = pyjwt.decode(raw, options={"verify_signature": False})
    except pyjwt.InvalidTokenError as exc:
        raise MalformedTokenError("Token is malformed", {"detail": str(exc)}) from exc
    return Envelope(header=dict(header), claims=dict(claims))


def lookup_claim(claims: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted claim path, returning None when any segment is missing.

    Example:
        >>> lookup_claim({"user_metadata": {"name": "Ada"}}, "user_metadata.name")
        'Ada'
    """
    current: Any = claims
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return None
        current = current[segment]
    return current


def _evaluate(claims: Mapping[str, Any], path: str) -> str:
    if "+" in path:
        parts = [_evaluate(claims, p.strip()) for p in path.split("+")]
        return " ".join(p for p in parts if p)
    value = lookup_claim(claims, path)
    if isinstance(value, str):
        return value.strip()
    return ""


def first_claim(claims: Mapping[str, Any], paths: Sequence[str]) -> str:
    """Return the first non-empty string found along ``paths``, or ``""``."""
    for path in paths:
        value = _evaluate(claims, path)
        if value:
            return value
    return ""


def extract_email(claims: Mapping[str, Any], paths: Sequence[str]) -> str:
    """Return the lowercased email from the first non-empty claim path.

    Raises:
        MalformedTokenError: If no path yields a value, or the value is not an email.
    """
    candidate = first_claim(claims, paths)
    if not candidate:
        raise MalformedTokenError("Token carries no email claim", {"paths": list(paths)})
    try:
        return Email(candidate).value
    except ValueError as exc:
        raise MalformedTokenError("Token email claim is not an email address") from exc


def extract_display_name(claims: Mapping[str, Any], paths: Sequence[str], email: str) -> str:
    """Return the display name from ``paths``, falling back to ``email``."""
    return first_claim(claims, paths) or email
