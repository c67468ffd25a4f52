"""Identity persistence adapters."""

from tripgate.domain.identity.infrastructure.user_repository import UserRepository

__all__ = ["UserRepository"]
