"""Tests for the per-strategy token verifiers."""

from __future__ import annotations

import time
from typing import Any
from uuid import uuid4

import jwt as pyjwt
import pytest
from jwt import PyJWK

from tripgate.foundation.domain.exceptions import (
    AudienceMismatchError,
    IssuerMismatchError,
    MalformedTokenError,
    SignatureInvalidError,
    TokenExpiredError,
    UnknownSigningKeyError,
)
from tripgate.foundation.domain.principal import TokenStrategy
from tripgate.foundation.domain.user_value_objects import UserRecord
from tripgate.infra.auth.session import SessionTokenIssuer
from tripgate.infra.auth.settings import AuthSettings
from tripgate.infra.auth.verifier import (
    DelegatedVerifier,
    LocalSessionVerifier,
    RemoteKeyVerifier,
    build_verifiers,
)

SECRET = "test-session-secret-0123456789abcdef"
ISSUER = "https://id.example.com"
TENANT = "0b7c3f5e-1111-2222-3333-444455556666"


class _StaticKeys:
    """Key resolver returning one fixed key and recording every lookup."""

    def __init__(self, jwk: dict[str, Any]) -> None:
        self.key = PyJWK(jwk)
        self.calls: list[tuple[str, str, str | None]] = []
        self.discovered: list[str] = []

    async def get_key(self, jwks_uri: str, issuer: str, kid: str | None) -> PyJWK:
        self.calls.append((jwks_uri, issuer, kid))
        if kid not in (None, self.key.key_id):
            raise UnknownSigningKeyError("Signing key not found", {"kid": kid})
        return self.key

    async def discover_jwks_uri(self, issuer: str) -> str:
        self.discovered.append(issuer)
        return f"{issuer}/.well-known/jwks.json"


def _local_verifier(**overrides: Any) -> LocalSessionVerifier:
    options = {"secret": SECRET, "issuer": "tripgate", "audience": "tripgate", **overrides}
    return LocalSessionVerifier(**options)


def _issue(**overrides: Any) -> str:
    user = UserRecord(id=uuid4(), email="ada@example.com", display_name="Ada")
    options = {"secret": SECRET, "issuer": "tripgate", "audience": "tripgate", "ttl_seconds": 600}
    return SessionTokenIssuer(**{**options, **overrides}).issue(user)


@pytest.mark.unit
class TestLocalSessionVerifier:
    @pytest.mark.asyncio
    async def test_valid_token_returns_subject_unchanged(self) -> None:
        user = UserRecord(id=uuid4(), email="Ada@Example.com", display_name="Ada")
        issuer = SessionTokenIssuer(
            secret=SECRET, issuer="tripgate", audience="tripgate", ttl_seconds=600
        )

        claims = await _local_verifier().verify(issuer.issue(user))

        assert claims.subject == str(user.id)
        assert claims.email == "ada@example.com"
        assert claims.display_name == "Ada"
        assert claims.strategy is TokenStrategy.LOCAL_SESSION

    @pytest.mark.asyncio
    async def test_wrong_secret_is_signature_invalid(self) -> None:
        token = _issue(secret="another-secret-of-at-least-32-characters")
        with pytest.raises(SignatureInvalidError):
            await _local_verifier().verify(token)

    @pytest.mark.asyncio
    async def test_unsigned_token_is_rejected_by_algorithm(self) -> None:
        now = int(time.time())
        token = pyjwt.encode(
            {"sub": "u", "email": "a@b.co", "iss": "tripgate", "aud": "tripgate", "exp": now + 60},
            None,
            algorithm="none",
        )
        with pytest.raises(SignatureInvalidError):
            await _local_verifier().verify(token)

    @pytest.mark.asyncio
    async def test_rs256_token_is_rejected_by_algorithm(self, sign_rs256: Any) -> None:
        with pytest.raises(SignatureInvalidError):
            await _local_verifier().verify(sign_rs256(email="a@b.co"))

    @pytest.mark.asyncio
    async def test_expired_token(self) -> None:
        user = UserRecord(id=uuid4(), email="ada@example.com", display_name="Ada")
        issuer = SessionTokenIssuer(
            secret=SECRET, issuer="tripgate", audience="tripgate", ttl_seconds=60
        )
        token = issuer.issue(user, now=time.time() - 3600)
        with pytest.raises(TokenExpiredError):
            await _local_verifier().verify(token)

    @pytest.mark.asyncio
    async def test_issuer_must_match_exactly(self) -> None:
        with pytest.raises(IssuerMismatchError):
            await _local_verifier(issuer="tripgate/").verify(_issue())

    @pytest.mark.asyncio
    async def test_audience_mismatch(self) -> None:
        with pytest.raises(AudienceMismatchError):
            await _local_verifier(audience="someone-else").verify(_issue())

    @pytest.mark.asyncio
    async def test_missing_email_is_malformed(self) -> None:
        now = int(time.time())
        token = pyjwt.encode(
            {"sub": "u", "iss": "tripgate", "aud": "tripgate", "exp": now + 60},
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(MalformedTokenError):
            await _local_verifier().verify(token)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["", "not-a-jwt", "a.b.c"])
    async def test_garbage_is_malformed(self, raw: str) -> None:
        with pytest.raises(MalformedTokenError):
            await _local_verifier().verify(raw)

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError, match="secret"):
            LocalSessionVerifier(secret="", issuer="tripgate", audience="tripgate")


@pytest.mark.unit
class TestRemoteKeyVerifier:
    def _verifier(self, keys: _StaticKeys, **overrides: Any) -> RemoteKeyVerifier:
        options: dict[str, Any] = {
            "strategy": TokenStrategy.REMOTE_OIDC,
            "resolver": keys,
            "jwks_uri": f"{ISSUER}/jwks",
            "issuer": ISSUER,
            "email_claims": ("email", "preferred_username"),
            "name_claims": ("name", "given_name+family_name"),
            **overrides,
        }
        return RemoteKeyVerifier(**options)

    @pytest.mark.asyncio
    async def test_valid_token(self, rsa_jwk: dict[str, Any], sign_rs256: Any) -> None:
        keys = _StaticKeys(rsa_jwk)
        token = sign_rs256(
            preferred_username="Grace@Example.com", given_name="Grace", family_name="Hopper"
        )

        claims = await self._verifier(keys).verify(token)

        assert claims.subject == "ext-1"
        assert claims.email == "grace@example.com"
        assert claims.display_name == "Grace Hopper"
        assert claims.issuer == ISSUER
        assert keys.calls == [(f"{ISSUER}/jwks", ISSUER, "test-key")]

    @pytest.mark.asyncio
    async def test_display_name_falls_back_to_email(
        self, rsa_jwk: dict[str, Any], sign_rs256: Any
    ) -> None:
        claims = await self._verifier(_StaticKeys(rsa_jwk)).verify(sign_rs256(email="x@y.io"))
        assert claims.display_name == "x@y.io"

    @pytest.mark.asyncio
    async def test_foreign_issuer_rejected_before_key_fetch(
        self, rsa_jwk: dict[str, Any], sign_rs256: Any
    ) -> None:
        keys = _StaticKeys(rsa_jwk)
        token = sign_rs256(iss="https://evil.example.com", email="a@b.co")

        with pytest.raises(IssuerMismatchError):
            await self._verifier(keys).verify(token)
        assert keys.calls == []

    @pytest.mark.asyncio
    async def test_symmetric_token_rejected_without_fetch(self, rsa_jwk: dict[str, Any]) -> None:
        keys = _StaticKeys(rsa_jwk)
        now = int(time.time())
        token = pyjwt.encode(
            {"iss": ISSUER, "sub": "s", "email": "a@b.co", "exp": now + 60},
            SECRET,
            algorithm="HS256",
        )

        with pytest.raises(SignatureInvalidError):
            await self._verifier(keys).verify(token)
        assert keys.calls == []

    @pytest.mark.asyncio
    async def test_unknown_kid_propagates(self, rsa_jwk: dict[str, Any], sign_rs256: Any) -> None:
        with pytest.raises(UnknownSigningKeyError):
            await self._verifier(_StaticKeys(rsa_jwk)).verify(
                sign_rs256(kid="rotated", email="a@b.co")
            )

    @pytest.mark.asyncio
    async def test_audience_checked_when_configured(
        self, rsa_jwk: dict[str, Any], sign_rs256: Any
    ) -> None:
        verifier = self._verifier(_StaticKeys(rsa_jwk), audience="api://tripgate")
        with pytest.raises(AudienceMismatchError):
            await verifier.verify(sign_rs256(aud="api://other", email="a@b.co"))

    def test_symmetric_algorithms_not_allowed(self, rsa_jwk: dict[str, Any]) -> None:
        with pytest.raises(ValueError, match="Symmetric"):
            self._verifier(_StaticKeys(rsa_jwk), algorithms=("HS256",))


@pytest.mark.unit
class TestDelegatedVerifier:
    def _verifier(self, keys: _StaticKeys, tenant_id: str = "common") -> DelegatedVerifier:
        return DelegatedVerifier(
            resolver=keys,
            jwks_uri="https://login.example.com/keys",
            tenant_id=tenant_id,
            audience="api://tripgate",
            email_claims=("preferred_username", "upn"),
            name_claims=("name",),
        )

    def test_accepts_v1_and_v2_issuers(self, rsa_jwk: dict[str, Any]) -> None:
        issuers = self._verifier(_StaticKeys(rsa_jwk)).accepted_issuers({"tid": TENANT})
        assert issuers == {
            f"https://sts.windows.net/{TENANT}/",
            f"https://login.microsoftonline.com/{TENANT}/v2.0",
        }

    def test_single_tenant_rejects_other_directories(self, rsa_jwk: dict[str, Any]) -> None:
        verifier = self._verifier(_StaticKeys(rsa_jwk), tenant_id=TENANT)
        assert verifier.accepted_issuers({"tid": "another-tenant"}) == frozenset()

    def test_missing_tid_accepts_nothing(self, rsa_jwk: dict[str, Any]) -> None:
        assert self._verifier(_StaticKeys(rsa_jwk)).accepted_issuers({}) == frozenset()

    @pytest.mark.asyncio
    async def test_valid_assertion(self, rsa_jwk: dict[str, Any], sign_rs256: Any) -> None:
        keys = _StaticKeys(rsa_jwk)
        token = sign_rs256(
            iss=f"https://login.microsoftonline.com/{TENANT}/v2.0",
            aud="api://tripgate",
            tid=TENANT,
            upn="Teacher@School.org",
            name="Ms Teacher",
        )

        claims = await self._verifier(keys).verify(token)

        assert claims.strategy is TokenStrategy.DELEGATED
        assert claims.email == "teacher@school.org"
        # One key set serves every directory, cached under the key-set URL.
        assert keys.calls[0][1] == "https://login.example.com/keys"

    def test_audience_required(self, rsa_jwk: dict[str, Any]) -> None:
        with pytest.raises(ValueError, match="audience"):
            DelegatedVerifier(
                resolver=_StaticKeys(rsa_jwk),
                jwks_uri="https://login.example.com/keys",
                tenant_id="common",
                audience="",
                email_claims=("upn",),
                name_claims=("name",),
            )


@pytest.mark.unit
class TestBuildVerifiers:
    @pytest.mark.asyncio
    async def test_session_only(self, rsa_jwk: dict[str, Any]) -> None:
        settings = AuthSettings(_env_file=None, session_secret=SECRET)
        verifiers = await build_verifiers(settings, _StaticKeys(rsa_jwk))
        assert set(verifiers) == {TokenStrategy.LOCAL_SESSION}

    @pytest.mark.asyncio
    async def test_oidc_discovers_jwks_uri(self, rsa_jwk: dict[str, Any]) -> None:
        keys = _StaticKeys(rsa_jwk)
        settings = AuthSettings(_env_file=None, session_secret=SECRET, oidc_issuer=ISSUER)

        verifiers = await build_verifiers(settings, keys)

        remote = verifiers[TokenStrategy.REMOTE_OIDC]
        assert isinstance(remote, RemoteKeyVerifier)
        assert remote.jwks_uri == f"{ISSUER}/.well-known/jwks.json"
        assert keys.discovered == [ISSUER]

    @pytest.mark.asyncio
    async def test_explicit_jwks_uri_skips_discovery(self, rsa_jwk: dict[str, Any]) -> None:
        keys = _StaticKeys(rsa_jwk)
        settings = AuthSettings(
            _env_file=None,
            session_secret=SECRET,
            oidc_issuer=ISSUER,
            oidc_jwks_uri=f"{ISSUER}/keys",
        )

        verifiers = await build_verifiers(settings, keys)

        remote = verifiers[TokenStrategy.REMOTE_OIDC]
        assert isinstance(remote, RemoteKeyVerifier)
        assert remote.jwks_uri == f"{ISSUER}/keys"
        assert keys.discovered == []

    @pytest.mark.asyncio
    async def test_missing_secret_fails_fast(self, rsa_jwk: dict[str, Any]) -> None:
        settings = AuthSettings(_env_file=None, session_secret="")
        with pytest.raises(ValueError, match="AUTH_SESSION_SECRET"):
            await build_verifiers(settings, _StaticKeys(rsa_jwk))

    @pytest.mark.asyncio
    async def test_delegated_needs_client_credentials(self, rsa_jwk: dict[str, Any]) -> None:
        settings = AuthSettings(
            _env_file=None, session_secret=SECRET, graph_audience="api://tripgate"
        )
        with pytest.raises(ValueError, match="AUTH_GRAPH_CLIENT_ID"):
            await build_verifiers(settings, _StaticKeys(rsa_jwk))
