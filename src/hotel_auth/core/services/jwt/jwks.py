from abc import ABC, abstractmethod
from typing import Any

import httpx
from cachetools import TTLCache
from loguru import logger

from src.hotel_auth.core.errors import (
    ExternalProviderError,
    ExternalProviderErrorKind,
)


class JWKSCache(ABC):
    @abstractmethod
    def get_jwks(self, jwks_uri: str) -> dict[str, Any]:
        """
        Get cached JWKS for the given endpoint.

        Returns:
            JWKS dictionary, empty when nothing is cached
        """
        raise NotImplementedError

    @abstractmethod
    def set_jwks(self, jwks_uri: str, jwks: dict[str, Any]) -> None:
        """Cache JWKS for the given endpoint."""
        raise NotImplementedError

    @abstractmethod
    def clear_jwks_cache(self) -> None:
        """Clear the JWKS cache."""
        raise NotImplementedError


class JWKSCacheInMemory(JWKSCache):
    def __init__(self, maxsize: int = 10, ttl: int = 3600) -> None:
        self._cache: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=maxsize, ttl=ttl)

    def get_jwks(self, jwks_uri: str) -> dict[str, Any]:
        return self._cache.get(jwks_uri, {})

    def set_jwks(self, jwks_uri: str, jwks: dict[str, Any]) -> None:
        self._cache[jwks_uri] = jwks

    def clear_jwks_cache(self) -> None:
        self._cache.clear()


class JwksService:
    """Fetches and caches a provider's signing keys."""

    def __init__(self, cache: JWKSCache, timeout_seconds: float = 5.0) -> None:
        self._cache = cache
        self._timeout = timeout_seconds

    async def fetch_jwks(self, jwks_uri: str) -> dict[str, Any]:
        """Return the JWKS document, from cache when possible.

        Raises:
            ExternalProviderError: (unavailable) when the endpoint cannot be read
        """
        if not jwks_uri:
            raise ExternalProviderError(
                ExternalProviderErrorKind.UNAVAILABLE, "No JWKS URI configured"
            )

        jwks = self._cache.get_jwks(jwks_uri)
        if jwks:
            return jwks

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(jwks_uri)
                resp.raise_for_status()
                jwks = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.bind(jwks_uri=jwks_uri, error=str(exc)).warning("JWKS fetch failed")
            raise ExternalProviderError(
                ExternalProviderErrorKind.UNAVAILABLE, f"Failed to fetch JWKS: {exc}"
            ) from exc

        self._cache.set_jwks(jwks_uri, jwks)
        return jwks
