"""Token verifiers, one per credential strategy.

Every verifier runs the same pipeline:

1. Read the envelope without trusting it.
2. Reject an algorithm outside the strategy's allow-list.
3. For remote strategies, reject an issuer outside the accepted set
   before any key fetch, then resolve the key (shared secret or JWKS).
4. Verify signature, ``exp``, ``nbf`` and audience with PyJWT, then
   compare ``iss`` exactly against the accepted issuers.
5. Extract email and display name along the strategy's claim paths.

PyJWT exceptions are translated into the typed
:class:`~tripgate.foundation.domain.exceptions.TokenVerificationError`
family; nothing else escapes ``verify``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import jwt as pyjwt

from tripgate.foundation.domain.exceptions import (
    AudienceMismatchError,
    IssuerMismatchError,
    MalformedTokenError,
    SignatureInvalidError,
    TokenExpiredError,
)
from tripgate.foundation.domain.principal import TokenStrategy, VerifiedClaims
from tripgate.infra.auth.claims import (
    Envelope,
    decode_envelope,
    extract_display_name,
    extract_email,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from tripgate.infra.auth.jwks import KeySetResolver
    from tripgate.infra.auth.settings import AuthSettings

logger = logging.getLogger(__name__)

LOCAL_ALGORITHMS: tuple[str, ...] = ("HS256",)
REMOTE_ALGORITHMS: tuple[str, ...] = ("RS256", "RS512")

# Graph tenants that accept any directory tenant id.
_MULTI_TENANT_AUTHORITIES = frozenset({"common", "organizations", "consumers"})


class TokenVerifier:
    """Base verifier. Subclasses supply the key and the accepted issuers.

    Args:
        strategy: Strategy this verifier implements.
        algorithms: Allow-list of JOSE ``alg`` values.
        audience: Expected ``aud``; empty disables the audience check.
        email_claims: Ordered claim paths for the email.
        name_claims: Ordered claim paths for the display name.
        leeway: Clock skew tolerance in seconds for ``exp``/``nbf``.
    """

    def __init__(
        self,
        *,
        strategy: TokenStrategy,
        algorithms: Sequence[str],
        audience: str = "",
        email_claims: Sequence[str] = ("email",),
        name_claims: Sequence[str] = ("name",),
        leeway: int = 0,
    ) -> None:
        if not algorithms:
            raise ValueError("At least one algorithm must be allowed")
        self.strategy = strategy
        self.algorithms = tuple(algorithms)
        self._audience = audience
        self._email_claims = tuple(email_claims)
        self._name_claims = tuple(name_claims)
        self._leeway = leeway

    async def verify(self, raw: str) -> VerifiedClaims:
        """Verify ``raw`` and return its normalized claims.

        Raises:
            TokenVerificationError: One of its subclasses, naming the failed stage.
        """
        envelope = decode_envelope(raw)
        if envelope.algorithm not in self.algorithms:
            raise SignatureInvalidError(
                "Token algorithm is not allowed",
                {"alg": envelope.algorithm, "strategy": str(self.strategy)},
            )

        key = await self.resolve_key(envelope)
        claims = self._decode(raw, key, envelope.algorithm)

        issuer = str(claims.get("iss", ""))
        if issuer not in self.accepted_issuers(claims):
            raise IssuerMismatchError("Token issuer is not accepted", {"iss": issuer})

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise MalformedTokenError("Token carries no subject")

        email = extract_email(claims, self._email_claims)
        display_name = extract_display_name(claims, self._name_claims, email)
        return VerifiedClaims(
            subject=subject,
            email=email,
            display_name=display_name,
            issuer=issuer,
            strategy=self.strategy,
            raw=claims,
        )

    async def resolve_key(self, envelope: Envelope) -> Any:
        """Return the key that verifies ``envelope``'s signature."""
        raise NotImplementedError

    def accepted_issuers(self, claims: Mapping[str, Any]) -> frozenset[str]:
        """Return the exact ``iss`` values this verifier accepts for ``claims``."""
        raise NotImplementedError

    def _decode(self, raw: str, key: Any, algorithm: str) -> dict[str, Any]:
        options: dict[str, Any] = {
            "require": ["exp", "sub"],
            "verify_aud": bool(self._audience),
            "verify_iss": False,
        }
        try:
            return pyjwt.decode(
                raw,
                key,
                algorithms=[algorithm],
                audience=self._audience or None,
                options=options,
                leeway=self._leeway,
            )
        except (pyjwt.ExpiredSignatureError, pyjwt.ImmatureSignatureError) as exc:
            raise TokenExpiredError("Token is expired or not yet valid") from exc
        except pyjwt.InvalidAudienceError as exc:
            raise AudienceMismatchError(
                "Token audience is not accepted", {"expected": self._audience}
            ) from exc
        except pyjwt.InvalidSignatureError as exc:
            raise SignatureInvalidError("Token signature verification failed") from exc
        except (pyjwt.InvalidAlgorithmError, pyjwt.InvalidKeyError) as exc:
            raise SignatureInvalidError("Token key does not match its algorithm") from exc
        except pyjwt.MissingRequiredClaimError as exc:
            raise MalformedTokenError(
                "Token is missing a required claim", {"claim": exc.claim}
            ) from exc
        except pyjwt.InvalidTokenError as exc:
            raise MalformedTokenError("Token is malformed", {"detail": str(exc)}) from exc


class LocalSessionVerifier(TokenVerifier):
    """Verifies HS256 session tokens issued by :class:`SessionTokenIssuer`."""

    def __init__(self, *, secret: str, issuer: str, audience: str, leeway: int = 0) -> None:
        if not secret:
            raise ValueError("A session secret is required")
        super().__init__(
            strategy=TokenStrategy.LOCAL_SESSION,
            algorithms=LOCAL_ALGORITHMS,
            audience=audience,
            email_claims=("email",),
            name_claims=("name",),
            leeway=leeway,
        )
        self._secret = secret
        self._issuers = frozenset({issuer})

    async def resolve_key(self, envelope: Envelope) -> Any:
        return self._secret

    def accepted_issuers(self, claims: Mapping[str, Any]) -> frozenset[str]:
        return self._issuers


class RemoteKeyVerifier(TokenVerifier):
    """Verifies RS256/RS512 tokens whose keys come from a remote JWKS.

    Used for external OIDC and third-party provider tokens.

    Args:
        resolver: Shared :class:`KeySetResolver`.
        jwks_uri: Key-set endpoint of the issuer.
        issuer: Exact expected ``iss``.
    """

    def __init__(
        self,
        *,
        strategy: TokenStrategy,
        resolver: KeySetResolver,
        jwks_uri: str,
        issuer: str,
        audience: str = "",
        algorithms: Sequence[str] = REMOTE_ALGORITHMS,
        email_claims: Sequence[str] = ("email",),
        name_claims: Sequence[str] = ("name",),
        leeway: int = 0,
    ) -> None:
        if any(alg.startswith("HS") for alg in algorithms):
            raise ValueError("Symmetric algorithms are not allowed for remote keys")
        super().__init__(
            strategy=strategy,
            algorithms=algorithms,
            audience=audience,
            email_claims=email_claims,
            name_claims=name_claims,
            leeway=leeway,
        )
        self._resolver = resolver
        self._jwks_uri = jwks_uri
        self._issuers = frozenset({issuer})

    @property
    def jwks_uri(self) -> str:
        return self._jwks_uri

    async def resolve_key(self, envelope: Envelope) -> Any:
        if envelope.issuer not in self.accepted_issuers(envelope.claims):
            raise IssuerMismatchError(
                "Token issuer is not accepted", {"iss": envelope.issuer}
            )
        signing_key = await self._resolver.get_key(
            self._jwks_uri, self._cache_issuer(envelope), envelope.key_id
        )
        return signing_key.key

    def _cache_issuer(self, envelope: Envelope) -> str:
        return envelope.issuer

    def accepted_issuers(self, claims: Mapping[str, Any]) -> frozenset[str]:
        return self._issuers


class DelegatedVerifier(RemoteKeyVerifier):
    """Verifies delegated Graph assertions before an on-behalf-of exchange.

    The issuer embeds the directory tenant (``tid``); both v1
    (``https://sts.windows.net/{tid}/``) and v2
    (``https://login.microsoftonline.com/{tid}/v2.0``) forms are accepted.
    When ``tenant_id`` names a single directory, ``tid`` must equal it.
    """

    def __init__(
        self,
        *,
        resolver: KeySetResolver,
        jwks_uri: str,
        tenant_id: str,
        audience: str,
        email_claims: Sequence[str],
        name_claims: Sequence[str],
        leeway: int = 0,
    ) -> None:
        if not audience:
            raise ValueError("An audience is required for delegated assertions")
        super().__init__(
            strategy=TokenStrategy.DELEGATED,
            resolver=resolver,
            jwks_uri=jwks_uri,
            issuer="",
            audience=audience,
            algorithms=("RS256",),
            email_claims=email_claims,
            name_claims=name_claims,
            leeway=leeway,
        )
        self._tenant_id = tenant_id

    def accepted_issuers(self, claims: Mapping[str, Any]) -> frozenset[str]:
        tid = claims.get("tid")
        if not isinstance(tid, str) or not tid:
            return frozenset()
        if self._tenant_id not in _MULTI_TENANT_AUTHORITIES and tid != self._tenant_id:
            return frozenset()
        return frozenset(
            {
                f"https://sts.windows.net/{tid}/",
                f"https://login.microsoftonline.com/{tid}/v2.0",
            }
        )

    def _cache_issuer(self, envelope: Envelope) -> str:
        # One key set serves every directory tenant.
        return self._jwks_uri


async def build_verifiers(
    settings: AuthSettings,
    resolver: KeySetResolver,
) -> dict[TokenStrategy, TokenVerifier]:
    """Construct a verifier for every enabled strategy.

    Raises:
        ValueError: If an enabled strategy lacks required configuration.
    """
    verifiers: dict[TokenStrategy, TokenVerifier] = {}
    for strategy in settings.enabled_strategies():
        settings.validate_strategy(strategy)

        if strategy is TokenStrategy.LOCAL_SESSION:
            verifiers[strategy] = LocalSessionVerifier(
                secret=settings.session_secret,
                issuer=settings.session_issuer,
                audience=settings.session_audience,
            )
        elif strategy is TokenStrategy.REMOTE_OIDC:
            jwks_uri = settings.oidc_jwks_uri or await resolver.discover_jwks_uri(
                settings.oidc_issuer
            )
            verifiers[strategy] = RemoteKeyVerifier(
                strategy=strategy,
                resolver=resolver,
                jwks_uri=jwks_uri,
                issuer=settings.oidc_issuer,
                audience=settings.oidc_audience,
                algorithms=settings.oidc_algorithms,
                email_claims=settings.oidc_email_claims,
                name_claims=settings.oidc_name_claims,
            )
        elif strategy is TokenStrategy.THIRD_PARTY:
            verifiers[strategy] = RemoteKeyVerifier(
                strategy=strategy,
                resolver=resolver,
                jwks_uri=settings.third_party_jwks_uri,
                issuer=settings.third_party_issuer,
                audience=settings.third_party_audience,
                email_claims=settings.third_party_email_claims,
                name_claims=settings.third_party_name_claims,
            )
        elif strategy is TokenStrategy.DELEGATED:
            verifiers[strategy] = DelegatedVerifier(
                resolver=resolver,
                jwks_uri=settings.graph_jwks_uri,
                tenant_id=settings.graph_tenant_id,
                audience=settings.graph_audience,
                email_claims=settings.graph_email_claims,
                name_claims=settings.graph_name_claims,
            )

        logger.info("token_verifier_built", extra={"strategy": str(strategy)})
    return verifiers
