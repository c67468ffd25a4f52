"""Unit tests for the on-behalf-of exchange client and the Graph client."""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from tripgate.foundation.domain.exceptions import (
    DownstreamError,
    ExchangeDeniedError,
    ScopeNotConsentedError,
    UpstreamUnavailableError,
)
from tripgate.infra.auth.delegation import DelegatedToken, GraphClient, OnBehalfOfClient

TOKEN_ENDPOINT = "https://login.example.com/contoso/oauth2/v2.0/token"


def _obo(handler: Any, **kwargs: Any) -> OnBehalfOfClient:
    return OnBehalfOfClient(
        token_endpoint=TOKEN_ENDPOINT,
        client_id="client-id",
        client_secret="client-secret",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


def _graph(handler: Any) -> GraphClient:
    return GraphClient(
        "https://graph.example.com/v1.0",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


TOKEN = DelegatedToken(
    access_token="graph-at", expires_in=3600, scope="User.Read", token_type="Bearer"
)


@pytest.mark.unit
class TestOnBehalfOfExchange:
    @pytest.mark.asyncio
    async def test_posts_jwt_bearer_grant(self) -> None:
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
            return httpx.Response(
                200, json={"access_token": "graph-at", "expires_in": "3599", "scope": "User.Read"}
            )

        token = await _obo(handler).exchange(["User.Read", "Mail.Send"], "assertion-jwt")

        assert seen["grant_type"] == "urn:ietf:params:oauth:grant-type:jwt-bearer"
        assert seen["requested_token_use"] == "on_behalf_of"
        assert seen["assertion"] == "assertion-jwt"
        assert seen["scope"] == "User.Read Mail.Send"
        assert token.access_token == "graph-at"
        assert token.expires_in == 3599

    @pytest.mark.asyncio
    async def test_token_is_not_in_repr(self) -> None:
        token = await _obo(
            lambda request: httpx.Response(200, json={"access_token": "very-secret"})
        ).exchange(["User.Read"], "a")
        assert "very-secret" not in repr(token)

    @pytest.mark.asyncio
    async def test_consent_required(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={
                    "error": "invalid_grant",
                    "error_description": "AADSTS65001: The user has not consented",
                },
            )

        with pytest.raises(ScopeNotConsentedError) as exc_info:
            await _obo(handler).exchange(["Mail.Send"], "a")
        assert exc_info.value.status_code == 403
        assert "AADSTS65001" in exc_info.value.details["error_description"]

    @pytest.mark.asyncio
    async def test_invalid_grant_is_denied(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "x"})

        with pytest.raises(ExchangeDeniedError) as exc_info:
            await _obo(handler).exchange(["User.Read"], "a")
        assert exc_info.value.details["error"] == "invalid_grant"

    @pytest.mark.asyncio
    async def test_server_error_is_upstream_unavailable(self) -> None:
        with pytest.raises(UpstreamUnavailableError):
            await _obo(lambda request: httpx.Response(502)).exchange(["User.Read"], "a")

    @pytest.mark.asyncio
    async def test_single_attempt_on_timeout(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectTimeout("slow", request=request)

        with pytest.raises(UpstreamUnavailableError):
            await _obo(handler).exchange(["User.Read"], "a")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_non_json_success_body(self) -> None:
        client = _obo(lambda request: httpx.Response(200, text="<html>sign in</html>"))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.exchange(["User.Read"], "a")

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "Token exchange failed"
        assert exc_info.value.details == "The identity platform returned no usable token"

    @pytest.mark.asyncio
    async def test_success_body_without_access_token(self) -> None:
        client = _obo(lambda request: httpx.Response(200, json={"token_type": "Bearer"}))

        with pytest.raises(UpstreamUnavailableError):
            await client.exchange(["User.Read"], "a")


@pytest.mark.unit
class TestAdminConsentUrl:
    def test_builds_v2_admin_consent_link(self) -> None:
        client = OnBehalfOfClient(
            token_endpoint=TOKEN_ENDPOINT,
            client_id="client-id",
            client_secret="s",
            authority="https://login.example.com/",
            consent_redirect_uri="https://app.example.com/consented",
        )

        url = urlparse(client.admin_consent_url("contoso"))
        query = parse_qs(url.query)

        assert url.path == "/contoso/v2.0/adminconsent"
        assert query["client_id"] == ["client-id"]
        assert query["scope"] == [".default"]
        assert query["redirect_uri"] == ["https://app.example.com/consented"]

    def test_explicit_redirect_wins(self) -> None:
        client = OnBehalfOfClient(token_endpoint=TOKEN_ENDPOINT, client_id="c", client_secret="s")
        query = parse_qs(urlparse(client.admin_consent_url(redirect_uri="https://x/cb")).query)
        assert query["redirect_uri"] == ["https://x/cb"]


@pytest.mark.unit
class TestGraphClient:
    @pytest.mark.asyncio
    async def test_sends_delegated_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer graph-at"
            assert request.url.path == "/v1.0/me"
            return httpx.Response(200, json={"displayName": "Ada"})

        result = await _graph(handler).get("/me", TOKEN)

        assert result.status_code == 200
        assert result.body == {"displayName": "Ada"}
        assert result.media_type == "application/json"

    @pytest.mark.asyncio
    async def test_text_body_kept_as_text(self) -> None:
        client = _graph(
            lambda request: httpx.Response(
                200, text="plain", headers={"Content-Type": "text/plain"}
            )
        )

        result = await client.get("/me/photo/$value", TOKEN)

        assert result.body == "plain"
        assert (result.media_type or "").startswith("text/plain")

    @pytest.mark.asyncio
    async def test_empty_body(self) -> None:
        result = await _graph(lambda request: httpx.Response(202)).post("/me/sendMail", TOKEN, {})
        assert result.status_code == 202
        assert result.body is None

    @pytest.mark.asyncio
    async def test_downstream_status_passed_through(self) -> None:
        body = {"error": {"code": "ErrorItemNotFound"}}
        client = _graph(lambda request: httpx.Response(404, json=body))

        with pytest.raises(DownstreamError) as exc_info:
            await client.get("/me/events/x", TOKEN)
        assert exc_info.value.status_code == 404
        assert exc_info.value.details == body
