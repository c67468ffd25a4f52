"""Authentication middleware."""

from tripgate.infra.auth.middleware.credential_auth import CredentialAuthMiddleware

__all__ = ["CredentialAuthMiddleware"]
