"""
Address -> coordinates with an in-memory TTL cache.

- Cache key is the normalized address (lower-cased, whitespace collapsed).
- Failures are cached too, so a bad address (or a failing endpoint) is not
  hammered again until the entry expires.
- Expired entries are evicted lazily on lookup.
- geocode_many() is strictly sequential with a fixed delay between requests;
  this is the client-level rate limit, separate from the scheduler's pacing.
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

import requests

from .coords import is_valid
from .errors import TransportError
from .google.client import (
    STATUS_INVALID_REQUEST,
    STATUS_OK,
    STATUS_OVER_QUERY_LIMIT,
    STATUS_REQUEST_DENIED,
    STATUS_ZERO_RESULTS,
    GeocodeResponse,
)
from .models import Coordinates, ErrorKind, GeocodeResult

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SEC = 3600.0
DEFAULT_REQUEST_DELAY_SEC = 0.2

_STATUS_KINDS: Dict[str, ErrorKind] = {
    STATUS_OK: ErrorKind.OK,
    STATUS_ZERO_RESULTS: ErrorKind.NO_RESULTS,
    STATUS_OVER_QUERY_LIMIT: ErrorKind.QUOTA_EXCEEDED,
    STATUS_REQUEST_DENIED: ErrorKind.REQUEST_DENIED,
    STATUS_INVALID_REQUEST: ErrorKind.INVALID_REQUEST,
}

_STATUS_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.NO_RESULTS: "Address not found. Please check the address format.",
    ErrorKind.QUOTA_EXCEEDED: "Geocoding quota exceeded. Please try again later.",
    ErrorKind.REQUEST_DENIED: "Geocoding request denied. Please check API key configuration.",
    ErrorKind.INVALID_REQUEST: "Invalid geocoding request. Address may be malformed.",
}

_WS = re.compile(r"\s+")


def normalize_address(address: str) -> str:
    return _WS.sub(" ", (address or "").strip().lower())


@dataclass
class _CacheEntry:
    result: GeocodeResult
    created_at: float


class GeocodeCache:
    def __init__(self, ttl_sec: float = DEFAULT_CACHE_TTL_SEC, clock: Callable[[], float] = time.monotonic):
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, address: str) -> Optional[GeocodeResult]:
        key = normalize_address(address)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.created_at < self.ttl_sec:
                return entry.result
            del self._entries[key]
            return None

    def put(self, address: str, result: GeocodeResult) -> None:
        key = normalize_address(address)
        with self._lock:
            self._entries[key] = _CacheEntry(result=result, created_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            ok = sum(1 for e in self._entries.values() if e.result.success)
            return {"size": len(self._entries), "success_count": ok, "failure_count": len(self._entries) - ok}


def response_to_result(response: GeocodeResponse, address: str) -> GeocodeResult:
    """Map a provider response onto a GeocodeResult; only OK with valid coordinates succeeds."""
    kind = _STATUS_KINDS.get(response.status, ErrorKind.UNKNOWN)
    if kind is not ErrorKind.OK:
        msg = _STATUS_MESSAGES.get(kind) or response.error_message or "Unknown geocoding error occurred."
        return GeocodeResult.failure(address, kind, msg)

    if not response.candidates:
        return GeocodeResult.failure(address, ErrorKind.UNKNOWN, "Invalid response structure from Geocoding API.")

    first = response.candidates[0]
    if not is_valid(first.lat, first.lng):
        return GeocodeResult.failure(
            address,
            ErrorKind.INVALID_COORDINATES,
            f"Invalid coordinates received: lat={first.lat}, lng={first.lng}",
        )
    return GeocodeResult.ok(address, Coordinates(first.lat, first.lng), first.formatted_address)


class GeocodeClient:
    """
    Async front for a blocking geocode provider (anything with .geocode(address) -> GeocodeResponse).
    """

    def __init__(
        self,
        provider,
        *,
        cache: Optional[GeocodeCache] = None,
        cache_ttl_sec: float = DEFAULT_CACHE_TTL_SEC,
        request_delay_sec: float = DEFAULT_REQUEST_DELAY_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.cache = cache if cache is not None else GeocodeCache(ttl_sec=cache_ttl_sec)
        self.request_delay_sec = request_delay_sec
        self._sleep = sleep

    async def geocode(self, address: str) -> GeocodeResult:
        if not address or not address.strip():
            logger.error("[GEOCODE] Empty address provided")
            return GeocodeResult.failure(address or "", ErrorKind.INVALID_INPUT, "Empty address provided")

        cached = self.cache.get(address)
        if cached is not None:
            logger.debug("[GEOCODE] cache hit for %r (success=%s)", address, cached.success)
            return cached

        try:
            response = await asyncio.to_thread(self.provider.geocode, address)
            result = response_to_result(response, address)
        except (TransportError, requests.RequestException, OSError) as e:
            logger.error("[GEOCODE] Exception for %r: %s", address, e)
            result = GeocodeResult.failure(address, ErrorKind.TRANSPORT, str(e))

        # failures are cached too; the address is retried only after TTL expiry
        self.cache.put(address, result)
        if not result.success:
            logger.warning("[GEOCODE] Failed for %r: %s (%s)", address, result.error, result.error_kind.value)
        return result

    async def geocode_coordinates(self, address: str) -> Optional[Coordinates]:
        result = await self.geocode(address)
        return result.coordinates if result.success else None

    async def geocode_many(self, addresses: List[str]) -> List[GeocodeResult]:
        results: List[GeocodeResult] = []
        for i, address in enumerate(addresses):
            results.append(await self.geocode(address))
            if i < len(addresses) - 1:
                await self._sleep(self.request_delay_sec)
        return results

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> Dict[str, int]:
        return self.cache.stats()

    def estimated_requests_per_second(self) -> float:
        if self.request_delay_sec <= 0:
            return float("inf")
        return 1.0 / self.request_delay_sec
