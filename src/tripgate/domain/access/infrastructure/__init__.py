"""Access persistence adapters."""

from tripgate.domain.access.infrastructure.role_grant_repository import RoleGrantRepository

__all__ = ["RoleGrantRepository"]
