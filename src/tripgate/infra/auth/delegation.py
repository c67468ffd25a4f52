"""On-behalf-of token exchange and the downstream Graph client.

:class:`OnBehalfOfClient` trades a verified delegated assertion for a
Graph access token. The exchange is a single attempt: the assertion may be
single-use upstream, so nothing retries. The returned token is never
cached or stored; callers use it for one downstream call and drop it.

:class:`GraphClient` performs that call and raises
:class:`~tripgate.foundation.domain.exceptions.DownstreamError` with the
downstream status and body on any non-2xx response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from tripgate.foundation.domain.exceptions import (
    DownstreamError,
    ExchangeDeniedError,
    ScopeNotConsentedError,
    UpstreamUnavailableError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tripgate.infra.auth.settings import AuthSettings

logger = logging.getLogger(__name__)

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
_DEFAULT_TIMEOUT = 10.0

# Token endpoint errors that mean "ask the user or an admin to consent".
_CONSENT_ERRORS = frozenset({"consent_required", "interaction_required"})
_CONSENT_ERROR_CODES = ("AADSTS65001",)


@dataclass(frozen=True, slots=True)
class DelegatedToken:
    """Downstream access token obtained on behalf of the user.

    Attributes:
        access_token: Bearer token for the downstream API.
        expires_in: Lifetime in seconds as reported by the token endpoint.
        scope: Space-separated scopes actually granted.
        token_type: Always "Bearer".
    """

    access_token: str
    expires_in: int
    scope: str
    token_type: str

    def __repr__(self) -> str:
        return f"DelegatedToken(scope={self.scope!r}, expires_in={self.expires_in})"


class OnBehalfOfClient:
    """Async client for the OAuth 2.0 on-behalf-of token exchange.

    If ``client`` is provided it is reused and the caller closes it;
    otherwise an internal client is created lazily and closed by :meth:`aclose`.

    Args:
        token_endpoint: Token URL of the identity platform tenant.
        client_id: Confidential client id.
        client_secret: Confidential client secret.
        authority: Authority base URL, used for admin-consent links.
        timeout: HTTP timeout in seconds.
        client: Optional shared ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        *,
        token_endpoint: str,
        client_id: str,
        client_secret: str,
        authority: str = "https://login.microsoftonline.com",
        consent_redirect_uri: str = "",
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token_endpoint = token_endpoint
        self._client_id = client_id
        self._client_secret = client_secret
        self._authority = authority.rstrip("/")
        self._consent_redirect_uri = consent_redirect_uri
        self._timeout = timeout
        self._external_client = client is not None
        self._client: httpx.AsyncClient | None = client

    @classmethod
    def from_settings(
        cls, settings: AuthSettings, client: httpx.AsyncClient | None = None
    ) -> OnBehalfOfClient:
        return cls(
            token_endpoint=settings.token_endpoint,
            client_id=settings.graph_client_id,
            client_secret=settings.graph_client_secret,
            authority=settings.graph_authority,
            consent_redirect_uri=settings.graph_consent_redirect_uri,
            timeout=settings.exchange_timeout,
            client=client,
        )

    async def exchange(self, scopes: Sequence[str], assertion: str) -> DelegatedToken:
        """Exchange ``assertion`` for a token carrying ``scopes``.

        Raises:
            ScopeNotConsentedError: Consent is missing for a requested scope.
            ExchangeDeniedError: The platform rejected the assertion or client.
            UpstreamUnavailableError: 5xx, timeout, or network failure.
        """
        data = {
            "grant_type": _JWT_BEARER_GRANT,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "assertion": assertion,
            "scope": " ".join(scopes),
            "requested_token_use": "on_behalf_of",
        }
        client = self._get_client()
        try:
            response = await client.post(
                self._token_endpoint,
                data=data,
                headers={"Content-Type": _FORM_CONTENT_TYPE},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise _classify_exchange_failure(exc.response, scopes) from exc
        except httpx.TimeoutException as exc:
            logger.warning("obo_exchange_timeout", extra={"scopes": list(scopes)})
            raise UpstreamUnavailableError(
                "Token exchange timed out", "The identity platform did not respond in time"
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("obo_exchange_unreachable", extra={"error": str(exc)})
            raise UpstreamUnavailableError("Token exchange failed", str(exc)) from exc

        try:
            body = response.json()
            raw_expires_in = body.get("expires_in")
            token = DelegatedToken(
                access_token=str(body["access_token"]),
                expires_in=int(str(raw_expires_in)) if raw_expires_in is not None else 3600,
                scope=str(body.get("scope", " ".join(scopes))),
                token_type=str(body.get("token_type", "Bearer")),
            )
        except (ValueError, KeyError, AttributeError) as exc:
            logger.warning(
                "obo_exchange_malformed_response",
                extra={"status": response.status_code, "scopes": list(scopes)},
            )
            raise UpstreamUnavailableError(
                "Token exchange failed", "The identity platform returned no usable token"
            ) from exc
        logger.info("obo_exchange_succeeded", extra={"scopes": list(scopes)})
        return token

    def admin_consent_url(self, tenant: str = "common", redirect_uri: str | None = None) -> str:
        """Build the URL a tenant admin opens to pre-approve every configured permission.

        Args:
            tenant: Directory tenant id, or ``common`` for multi-tenant apps.
            redirect_uri: Where the platform returns after consent; defaults
                to the configured redirect.
        """
        params = {"client_id": self._client_id, "scope": ".default", "state": "admin-consent"}
        redirect = redirect_uri or self._consent_redirect_uri
        if redirect:
            params["redirect_uri"] = redirect
        return f"{self._authority}/{tenant}/v2.0/adminconsent?{urlencode(params)}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the internal client if we own it."""
        if self._client is not None and not self._external_client:
            await self._client.aclose()
            self._client = None


def _classify_exchange_failure(
    response: httpx.Response, scopes: Sequence[str]
) -> ExchangeDeniedError | ScopeNotConsentedError | UpstreamUnavailableError:
    body = _json_or_empty(response)
    error = str(body.get("error", "unknown"))
    description = str(body.get("error_description", response.reason_phrase))
    details = {"error": error, "error_description": description}
    logger.warning(
        "obo_exchange_failed",
        extra={"status": response.status_code, "error": error, "scopes": list(scopes)},
    )

    if response.status_code >= 500:
        return UpstreamUnavailableError("Token exchange failed", details)
    if error in _CONSENT_ERRORS or any(code in description for code in _CONSENT_ERROR_CODES):
        return ScopeNotConsentedError("Consent required for requested scopes", details)
    return ExchangeDeniedError("Token exchange denied", details)


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    if not response.headers.get("content-type", "").startswith("application/json"):
        return {}
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@dataclass(frozen=True, slots=True)
class GraphResponse:
    """Successful downstream response, passed back verbatim.

    Attributes:
        status_code: Downstream HTTP status (2xx).
        body: Decoded JSON body, the raw text of a non-JSON body, or None
            for empty bodies.
        media_type: Downstream ``Content-Type``, if any.
    """

    status_code: int
    body: Any
    media_type: str | None = None


class GraphClient:
    """Thin async client for the downstream Graph API.

    Args:
        base_url: API root (e.g. ``https://graph.microsoft.com/v1.0``).
        timeout: HTTP timeout in seconds.
        client: Optional shared ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._external_client = client is not None
        self._client: httpx.AsyncClient | None = client

    async def get(self, path: str, token: DelegatedToken) -> GraphResponse:
        return await self.request("GET", path, token)

    async def post(self, path: str, token: DelegatedToken, payload: Any) -> GraphResponse:
        return await self.request("POST", path, token, payload)

    async def request(
        self,
        method: str,
        path: str,
        token: DelegatedToken,
        payload: Any = None,
    ) -> GraphResponse:
        """Call ``{base_url}{path}`` with the delegated token.

        Raises:
            DownstreamError: Non-2xx response; carries the downstream status and body.
            UpstreamUnavailableError: Timeout or network failure.
        """
        client = self._get_client()
        try:
            response = await client.request(
                method,
                f"{self._base_url}{path}",
                json=payload,
                headers={"Authorization": f"Bearer {token.access_token}"},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailableError(
                f"Graph {method} {path} timed out", "The downstream API did not respond in time"
            ) from exc
        except httpx.TransportError as exc:
            raise UpstreamUnavailableError(f"Graph {method} {path} failed", str(exc)) from exc

        body = _decode_body(response)
        if not response.is_success:
            logger.info(
                "graph_request_failed",
                extra={"method": method, "path": path, "status": response.status_code},
            )
            raise DownstreamError(
                f"Graph {method} {path} failed",
                body,
                status_code=response.status_code,
            )
        return GraphResponse(
            status_code=response.status_code,
            body=body,
            media_type=response.headers.get("Content-Type"),
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the internal client if we own it."""
        if self._client is not None and not self._external_client:
            await self._client.aclose()
            self._client = None


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
