"""Remote key-set resolution with a bounded, age-evicting cache.

:class:`KeySetResolver` returns the public key that verifies a token,
given the issuer's JWKS URI, the issuer and the token's ``kid``:

- Keys are cached per ``(issuer, kid)`` in a ``cachetools.TTLCache`` of at
  most ``max_entries`` entries; entries older than ``ttl`` seconds expire.
- A miss fetches the key set once. Concurrent misses for the same issuer
  wait on one lock and re-check the cache, so an unknown kid costs one
  fetch however many requests carry it.
- The requested key is taken from the fetched set itself, so a key set
  larger than the cache still verifies every key it publishes.
- Fetch failures and timeouts raise :class:`UnverifiedConfigurationError`;
  a kid still absent after a successful fetch raises
  :class:`UnknownSigningKeyError`.
- The cache is only written after a fetch completes and parses, with no
  ``await`` in between, so a cancelled request leaves it untouched.

Lifecycle: created once in the auth lifespan, stored on ``app.state``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx
from cachetools import TTLCache  # type: ignore[import-untyped]
from jwt import PyJWK, PyJWKSet
from jwt.exceptions import PyJWKError, PyJWKSetError

from tripgate.foundation.domain.exceptions import (
    UnknownSigningKeyError,
    UnverifiedConfigurationError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_DISCOVERY_PATH = "/.well-known/openid-configuration"
_FALLBACK_JWKS_PATH = "/.well-known/jwks.json"


class KeySetResolver:
    """Bounded TTL cache of signing keys fetched from remote JWKS endpoints.

    Args:
        max_entries: Maximum number of cached ``(issuer, kid)`` keys.
        ttl: Seconds a fetched key stays valid in the cache.
        fetch_timeout: Timeout for one key-set HTTP request.
        client: Optional shared ``httpx.AsyncClient`` (caller owns it).
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        *,
        max_entries: int = 64,
        ttl: float = 600.0,
        fetch_timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._fetch_timeout = fetch_timeout
        self._external_client = client is not None
        self._client: httpx.AsyncClient | None = client
        self._cache: TTLCache[tuple[str, str], PyJWK] = TTLCache(
            maxsize=max_entries, ttl=ttl, timer=clock
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self.fetch_count = 0

    async def get_key(self, jwks_uri: str, issuer: str, kid: str | None) -> PyJWK:
        """Return the verification key for ``kid`` from ``issuer``'s key set.

        Args:
            jwks_uri: Key-set endpoint to fetch on a miss.
            issuer: Issuer the token claims; part of the cache key.
            kid: Key id from the token header. ``None`` matches a key set
                containing exactly one signing key.

        Raises:
            UnknownSigningKeyError: The key set has no key with this id.
            UnverifiedConfigurationError: The key set could not be fetched.
        """
        cache_key = (issuer, kid or "")
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(issuer, asyncio.Lock())
        async with lock:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

            keys = await self._fetch(jwks_uri)
            signing_keys = [
                k for k in keys if getattr(k, "public_key_use", None) in (None, "sig")
            ]
            key = _select(signing_keys, kid)
            if key is None:
                logger.info(
                    "jwks_unknown_kid",
                    extra={"issuer": issuer, "kid": kid, "jwks_uri": jwks_uri},
                )
                raise UnknownSigningKeyError(
                    "Signing key not found in issuer key set",
                    {"issuer": issuer, "kid": kid},
                )

            for other in signing_keys:
                if other.key_id and other is not key:
                    self._cache[(issuer, other.key_id)] = other
            # Requested key last: capacity eviction drops the oldest entries first
            self._cache[cache_key] = key
            return key

    async def _fetch(self, jwks_uri: str) -> list[PyJWK]:
        """Fetch and parse a key set. Single attempt, bounded by ``fetch_timeout``."""
        client = self._get_client()
        self.fetch_count += 1
        try:
            response = await client.get(jwks_uri, timeout=self._fetch_timeout)
            response.raise_for_status()
            body = response.json()
            if not isinstance(body, dict):
                raise ValueError("JWKS body is not a JSON object")
            key_set = PyJWKSet.from_dict(body)
        except httpx.TimeoutException as exc:
            logger.warning("jwks_fetch_timeout", extra={"jwks_uri": jwks_uri})
            raise UnverifiedConfigurationError(
                "Key set fetch timed out", {"jwks_uri": jwks_uri}
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "jwks_fetch_failed",
                extra={"jwks_uri": jwks_uri, "error": str(exc)},
            )
            raise UnverifiedConfigurationError(
                "Key set fetch failed", {"jwks_uri": jwks_uri}
            ) from exc
        except (ValueError, PyJWKError, PyJWKSetError) as exc:
            logger.warning(
                "jwks_parse_failed",
                extra={"jwks_uri": jwks_uri, "error": str(exc)},
            )
            raise UnverifiedConfigurationError(
                "Key set response is not a usable JWKS", {"jwks_uri": jwks_uri}
            ) from exc

        logger.debug(
            "jwks_fetched",
            extra={"jwks_uri": jwks_uri, "key_count": len(key_set.keys)},
        )
        return list(key_set.keys)

    async def discover_jwks_uri(self, issuer: str) -> str:
        """Resolve an issuer's JWKS URI via OIDC discovery.

        Falls back to ``{issuer}/.well-known/jwks.json`` when the discovery
        document is unreachable, names another issuer, or lacks ``jwks_uri``.
        The fallback is logged; per-request fetches report real failures.
        """
        issuer = issuer.rstrip("/")
        fallback = f"{issuer}{_FALLBACK_JWKS_PATH}"
        discovery_url = f"{issuer}{_DISCOVERY_PATH}"
        client = self._get_client()
        try:
            resp = await client.get(discovery_url, timeout=self._fetch_timeout)
            resp.raise_for_status()
            doc: dict[str, Any] = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.warning(
                "oidc_discovery_failed",
                extra={"url": discovery_url, "fallback": fallback},
                exc_info=True,
            )
            return fallback

        discovered_issuer = str(doc.get("issuer", "")).rstrip("/")
        if discovered_issuer != issuer:
            logger.warning(
                "oidc_discovery_issuer_mismatch",
                extra={"expected": issuer, "discovered": discovered_issuer},
            )
            return fallback

        jwks_uri = doc.get("jwks_uri")
        if not jwks_uri:
            logger.warning("oidc_discovery_no_jwks_uri", extra={"issuer": issuer})
            return fallback

        logger.info("oidc_discovery_success", extra={"jwks_uri": jwks_uri})
        return str(jwks_uri)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the internal client if this resolver created it."""
        if self._client is not None and not self._external_client:
            await self._client.aclose()
            self._client = None


def _select(signing_keys: list[PyJWK], kid: str | None) -> PyJWK | None:
    """Pick the key a token names, or the only key when it names none."""
    if kid is None:
        return signing_keys[0] if len(signing_keys) == 1 else None
    return next((k for k in signing_keys if k.key_id == kid), None)
