"""Tripgate Domain Identity -- user directory, identity resolution, password accounts."""

from tripgate.domain.identity.identity_resolver import IdentityPolicy, IdentityResolver
from tripgate.domain.identity.infrastructure import UserRepository
from tripgate.domain.identity.password_auth import PasswordAuthService

__all__ = [
    "IdentityPolicy",
    "IdentityResolver",
    "PasswordAuthService",
    "UserRepository",
]
