"""Port interfaces (protocols) implemented by infrastructure repositories."""

from tripgate.foundation.domain.ports.org_graph import OrgGraphPort
from tripgate.foundation.domain.ports.role_grants import RoleGrantPort
from tripgate.foundation.domain.ports.user_directory import UserDirectoryPort

__all__ = [
    "OrgGraphPort",
    "RoleGrantPort",
    "UserDirectoryPort",
]
