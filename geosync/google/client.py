import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from ..errors import TransportError


logger = logging.getLogger(__name__)


class GoogleApiError(TransportError):
    """Raised when a Google Maps call fails at the transport level (network, HTTP, bad JSON)."""
    pass


# === Environment / constants ===

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
HTTP_TIMEOUT = 12

STATUS_OK = "OK"
STATUS_ZERO_RESULTS = "ZERO_RESULTS"
STATUS_OVER_QUERY_LIMIT = "OVER_QUERY_LIMIT"
STATUS_REQUEST_DENIED = "REQUEST_DENIED"
STATUS_INVALID_REQUEST = "INVALID_REQUEST"
STATUS_UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class GeocodeCandidate:
    lat: float
    lng: float
    formatted_address: Optional[str] = None


@dataclass
class GeocodeResponse:
    """Provider answer: a Google status string plus parsed candidates (only on OK)."""
    status: str
    candidates: List[GeocodeCandidate] = field(default_factory=list)
    error_message: Optional[str] = None


def _parse_candidates(results) -> List[GeocodeCandidate]:
    out: List[GeocodeCandidate] = []
    for r in results or []:
        if not isinstance(r, dict):
            continue
        loc = (r.get("geometry") or {}).get("location") or {}
        try:
            lat = float(loc["lat"])
            lng = float(loc["lng"])
        except (KeyError, TypeError, ValueError):
            logger.warning("[geocode] Skipping candidate with malformed location: %r", loc)
            continue
        out.append(GeocodeCandidate(lat=lat, lng=lng, formatted_address=r.get("formatted_address")))
    return out


class GoogleGeocoder:
    """
    Thin wrapper around the Geocoding REST endpoint.

    One request per call, no retries: quota handling belongs to the caller
    (GeocodeClient caches failures, the scheduler paces batches).
    Blocking; run it via asyncio.to_thread from async code.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        url: str = GEOCODE_URL,
        timeout: int = HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = (api_key if api_key is not None else os.getenv("GOOGLE_MAPS_API_KEY") or "").strip()
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _require_key(self) -> str:
        if not self.api_key:
            raise GoogleApiError(
                "GOOGLE_MAPS_API_KEY is not set in the environment. "
                "Add it to .env (Geocoding API must be enabled for the key)."
            )
        return self.api_key

    def geocode(self, address: str) -> GeocodeResponse:
        params: Dict[str, str] = {"address": address, "key": self._require_key()}
        try:
            resp = self.session.get(
                self.url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            raise GoogleApiError(f"[geocode] HTTP error: {e}") from e
        except ValueError as e:
            raise GoogleApiError(f"[geocode] Malformed JSON from Geocoding API: {e}") from e

        status = str((data or {}).get("status") or STATUS_UNKNOWN_ERROR)
        candidates = _parse_candidates((data or {}).get("results")) if status == STATUS_OK else []
        return GeocodeResponse(
            status=status,
            candidates=candidates,
            error_message=(data or {}).get("error_message"),
        )
