"""Tripgate Domain Delegation -- Graph API calls on behalf of the signed-in user."""

from tripgate.domain.delegation.router import router

__all__ = ["router"]
