"""Authentication configuration settings.

Loaded from environment variables with the AUTH_ prefix. One settings
object covers every verification strategy; :meth:`AuthSettings.validate_strategy`
checks that the fields a strategy needs are present so the auth lifespan
can fail fast at startup.

Environment Variables (selection):
    AUTH_SESSION_SECRET: HMAC secret for locally issued session tokens
    AUTH_BEARER_STRATEGY: Strategy applied to bearer tokens on app routes
    AUTH_OIDC_ISSUER: External OIDC issuer URL
    AUTH_OIDC_AUDIENCE: Expected audience for OIDC tokens
    AUTH_THIRD_PARTY_URL: Base URL of the third-party auth provider
    AUTH_GRAPH_CLIENT_ID / AUTH_GRAPH_CLIENT_SECRET: On-behalf-of client
    AUTH_AUTO_PROVISION: Create unknown external users on first sight
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from tripgate.foundation.domain.principal import TokenStrategy
from tripgate.foundation.domain.user_value_objects import DEFAULT_USER_ROLE

_GRAPH_KEYS_URL = "https://login.microsoftonline.com/common/discovery/v2.0/keys"


def _split_list(v: Any) -> Any:
    if isinstance(v, str):
        return [s.strip() for s in v.split(",") if s.strip()]
    return v


class AuthSettings(BaseSettings):
    """Authentication configuration loaded from environment variables.

    Example:
        >>> settings = AuthSettings(session_secret="s3cret")
        >>> settings.bearer_strategy
        <TokenStrategy.LOCAL_SESSION: 'local_session'>
        >>> settings.third_party_issuer
        ''
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Local session tokens
    session_secret: str = Field(
        default="",
        repr=False,
        description="HMAC secret used to sign and verify session tokens",
    )
    session_issuer: str = Field(default="tripgate", description="iss of session tokens")
    session_audience: str = Field(default="tripgate", description="aud of session tokens")
    session_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        ge=60,
        description="Lifetime of issued session tokens",
    )
    session_cookie_name: str = Field(default="session")
    active_org_cookie_name: str = Field(default="active_org")
    cookie_secure: bool = Field(default=False, description="Set the Secure cookie flag")
    cookie_samesite: Literal["lax", "strict", "none"] = Field(default="lax")

    bearer_strategy: TokenStrategy = Field(
        default=TokenStrategy.LOCAL_SESSION,
        description="Strategy used for Authorization: Bearer tokens on application routes",
    )

    # External OIDC
    oidc_issuer: str = Field(default="", description="OIDC issuer URL")
    oidc_audience: str = Field(default="", description="Expected OIDC audience (optional)")
    oidc_jwks_uri: str = Field(default="", description="Explicit JWKS URI (skips discovery)")
    oidc_algorithms: Annotated[list[str], NoDecode] = Field(default=["RS256", "RS512"])
    oidc_email_claims: Annotated[list[str], NoDecode] = Field(
        default=["email", "preferred_username", "upn"],
        description="Ordered claim paths (dotted) searched for the email",
    )
    oidc_name_claims: Annotated[list[str], NoDecode] = Field(
        default=["name", "given_name+family_name"],
        description="Ordered claim paths searched for the display name; a+b joins claims",
    )

    # Third-party auth provider
    third_party_url: str = Field(default="", description="Base URL of the auth provider")
    third_party_audience: str = Field(default="authenticated")
    third_party_email_claims: Annotated[list[str], NoDecode] = Field(default=["email"])
    third_party_name_claims: Annotated[list[str], NoDecode] = Field(
        default=["user_metadata.name", "user_metadata.full_name"],
    )

    # Delegated Graph tokens and on-behalf-of exchange
    graph_tenant_id: str = Field(default="common")
    graph_client_id: str = Field(default="")
    graph_client_secret: str = Field(default="", repr=False)
    graph_audience: str = Field(default="", description="Expected aud of delegated assertions")
    graph_jwks_uri: str = Field(default=_GRAPH_KEYS_URL)
    graph_authority: str = Field(default="https://login.microsoftonline.com")
    graph_base_url: str = Field(default="https://graph.microsoft.com/v1.0")
    graph_default_scopes: Annotated[list[str], NoDecode] = Field(
        default=["https://graph.microsoft.com/User.Read"],
        description="Scopes requested for the Graph profile call",
    )
    graph_email_claims: Annotated[list[str], NoDecode] = Field(
        default=["preferred_username", "upn", "email", "unique_name"],
    )
    graph_name_claims: Annotated[list[str], NoDecode] = Field(default=["name"])
    graph_consent_redirect_uri: str = Field(default="")

    # Identity resolution
    auto_provision: bool = Field(
        default=False,
        description="Create local users for unknown external identities",
    )
    default_user_role: str = Field(default=DEFAULT_USER_ROLE)

    # Remote key sets and outbound calls
    jwks_cache_ttl: int = Field(default=600, ge=30, le=86400)
    jwks_cache_max_entries: int = Field(default=64, ge=1, le=1000)
    jwks_fetch_timeout: float = Field(default=5.0, gt=0, le=60)
    exchange_timeout: float = Field(default=10.0, gt=0, le=120)

    @field_validator(
        "oidc_algorithms",
        "oidc_email_claims",
        "oidc_name_claims",
        "third_party_email_claims",
        "third_party_name_claims",
        "graph_default_scopes",
        "graph_email_claims",
        "graph_name_claims",
        mode="before",
    )
    @classmethod
    def _parse_comma_separated(cls, v: Any) -> Any:
        return _split_list(v)

    @property
    def third_party_issuer(self) -> str:
        """Issuer of third-party tokens (``{url}/auth/v1``), or empty."""
        if not self.third_party_url:
            return ""
        return f"{self.third_party_url.rstrip('/')}/auth/v1"

    @property
    def third_party_jwks_uri(self) -> str:
        """Key-set URL of the third-party provider, or empty."""
        issuer = self.third_party_issuer
        return f"{issuer}/.well-known/jwks.json" if issuer else ""

    @property
    def token_endpoint(self) -> str:
        """On-behalf-of token endpoint for the configured Graph tenant."""
        authority = self.graph_authority.rstrip("/")
        return f"{authority}/{self.graph_tenant_id}/oauth2/v2.0/token"

    def enabled_strategies(self) -> list[TokenStrategy]:
        """Strategies that have enough configuration to be built.

        The local session strategy and the bearer strategy are always
        included so that a misconfiguration of either is reported.
        """
        enabled = {TokenStrategy.LOCAL_SESSION, self.bearer_strategy}
        if self.oidc_issuer:
            enabled.add(TokenStrategy.REMOTE_OIDC)
        if self.third_party_url:
            enabled.add(TokenStrategy.THIRD_PARTY)
        if self.graph_client_id or self.graph_audience:
            enabled.add(TokenStrategy.DELEGATED)
        return sorted(enabled)

    def validate_strategy(self, strategy: TokenStrategy) -> None:
        """Check that ``strategy`` has its required configuration.

        Raises:
            ValueError: Naming the missing environment variable.
        """
        if strategy is TokenStrategy.LOCAL_SESSION:
            if not self.session_secret:
                raise ValueError("AUTH_SESSION_SECRET is required for session tokens")
            if len(self.session_secret) < 32:
                raise ValueError("AUTH_SESSION_SECRET must be at least 32 characters")
        elif strategy is TokenStrategy.REMOTE_OIDC:
            if not self.oidc_issuer:
                raise ValueError("AUTH_OIDC_ISSUER is required for OIDC bearer tokens")
            if not self.oidc_issuer.startswith("https://") and not self.oidc_issuer.startswith(
                "http://"
            ):
                raise ValueError("AUTH_OIDC_ISSUER must be a valid HTTP(S) URL")
            if not self.oidc_email_claims:
                raise ValueError("AUTH_OIDC_EMAIL_CLAIMS must name at least one claim")
        elif strategy is TokenStrategy.THIRD_PARTY:
            if not self.third_party_url:
                raise ValueError("AUTH_THIRD_PARTY_URL is required for third-party tokens")
        elif strategy is TokenStrategy.DELEGATED:
            if not self.graph_audience:
                raise ValueError("AUTH_GRAPH_AUDIENCE is required for delegated tokens")
            if not self.graph_client_id or not self.graph_client_secret:
                raise ValueError(
                    "AUTH_GRAPH_CLIENT_ID and AUTH_GRAPH_CLIENT_SECRET are required "
                    "for on-behalf-of exchange"
                )


@lru_cache(maxsize=1)
def get_auth_settings() -> AuthSettings:
    """Get singleton AuthSettings instance.

    Clear cache with ``get_auth_settings.cache_clear()`` for testing.
    """
    return AuthSettings()
