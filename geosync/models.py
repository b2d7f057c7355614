from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


LOCATION_STATUSES: Tuple[str, ...] = (
    "Prospect",
    "Customer",
    "Follow-up",
    "Not interested",
    "Revisit",
)

DEFAULT_STATUS = "Prospect"

MAX_NOTES_LENGTH = 500


def is_valid_status(value: Optional[str]) -> bool:
    return value in LOCATION_STATUSES


class ErrorKind(str, Enum):
    """Structured failure classes shared by the geocoder, the store and the scheduler."""

    OK = "ok"
    INVALID_INPUT = "invalid_input"
    INVALID_COORDINATES = "invalid_coordinates"
    NOT_FOUND = "not_found"
    INVALID_STATUS = "invalid_status"
    RATE_LIMITED = "rate_limited"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"

    # Geocoding provider statuses
    NO_RESULTS = "no_results"
    QUOTA_EXCEEDED = "quota_exceeded"
    REQUEST_DENIED = "request_denied"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass
class Location:
    """
    One row of the Locations worksheet.

    `id` is the worksheet row number (row 1 is the header, so ids start at 2).
    Downstream writes address the row directly by this number.
    """
    id: int
    company_name: str
    address: str
    status: str = DEFAULT_STATUS
    notes: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    follow_up_date: Optional[str] = None  # ISO YYYY-MM-DD

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if self.lat is None or self.lng is None:
            return None
        return Coordinates(self.lat, self.lng)


@dataclass
class LocationUpdate:
    """
    Partial update for a location. `None` means "leave the cell alone".

    follow_up_date="" clears the cell.
    """
    status: Optional[str] = None
    notes: Optional[str] = None
    follow_up_date: Optional[str] = None

    def is_empty(self) -> bool:
        return self.status is None and self.notes is None and self.follow_up_date is None


@dataclass(frozen=True)
class GeocodeResult:
    """
    Outcome of geocoding one address.

    success=True always carries validated coordinates; failures carry an
    error_kind and a human-readable error string instead.
    """
    success: bool
    original_address: str
    coordinates: Optional[Coordinates] = None
    formatted_address: Optional[str] = None
    error_kind: ErrorKind = ErrorKind.OK
    error: Optional[str] = None

    @classmethod
    def ok(cls, address: str, coordinates: Coordinates, formatted_address: Optional[str] = None) -> "GeocodeResult":
        return cls(
            success=True,
            original_address=address,
            coordinates=coordinates,
            formatted_address=formatted_address,
        )

    @classmethod
    def failure(cls, address: str, kind: ErrorKind, error: str) -> "GeocodeResult":
        return cls(success=False, original_address=address, error_kind=kind, error=error)
