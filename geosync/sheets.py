# geosync/sheets.py: Locations sheet I/O (parse rows, partial updates, coordinate writes with backoff)
from __future__ import annotations

import asyncio
import logging
import os
import re
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import gspread
import requests
from gspread.exceptions import APIError, WorksheetNotFound

from .config import DEFAULT_COLUMNS, SHEET_HEADERS, Settings
from .coords import is_valid
from .errors import (
    InvalidCoordinates,
    InvalidInput,
    InvalidStatus,
    LocationNotFound,
    RateLimited,
    SheetsError,
    TransportError,
)
from .models import (
    DEFAULT_STATUS,
    LOCATION_STATUSES,
    MAX_NOTES_LENGTH,
    ErrorKind,
    Location,
    LocationUpdate,
    is_valid_status,
)

logger = logging.getLogger(__name__)

HEADER_ROW = 1
FIRST_DATA_ROW = 2

MAX_RETRIES_DEFAULT = 5
RETRY_BASE_DEFAULT = 1.0

_RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded"}

# --------------------------- connect / worksheet ---------------------------

def connect(cred_path: str, spreadsheet_id: str):
    cred_path = (cred_path or "").strip()
    if not cred_path or not os.path.isfile(cred_path):
        raise FileNotFoundError(f"Service account JSON not found: {cred_path}")
    logger.debug("[SHEETS] Using service account: %s", cred_path)
    logger.debug("[SHEETS] Opening spreadsheet: %s", spreadsheet_id)
    gc = gspread.service_account(filename=cred_path)
    return gc.open_by_key(spreadsheet_id)


def _norm(s: str): return (s or "").strip().lower()
def _headers(ws):  return [h.strip() for h in (ws.row_values(HEADER_ROW) or [])]


def open_worksheet(book, preferred_title: str, required_headers=None):
    """
    Open a worksheet by exact title, case-insensitive title,
    or (if required_headers provided) by matching header set.
    """
    try:
        ws = book.worksheet(preferred_title)
        logger.debug("[SHEETS] Found worksheet by exact name: %r", ws.title)
        return ws
    except WorksheetNotFound:
        pass

    for ws in book.worksheets():  # case-insensitive
        if _norm(ws.title) == _norm(preferred_title):
            return ws

    if required_headers:
        need = set(map(_norm, required_headers))
        for ws in book.worksheets():
            have = set(map(_norm, _headers(ws)))
            if need.issubset(have):
                logger.info("[SHEETS] Using worksheet %r (matched headers)", ws.title)
                return ws

    raise WorksheetNotFound(
        f"Worksheet '{preferred_title}' not found. "
        f"Available: {[ws.title for ws in book.worksheets()]}"
    )

# --------------------------- row parsing ---------------------------

_ISO_RX = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SLASH_RX = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_TEXT_DATE_FORMATS = ("%Y/%m/%d", "%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%d %b %Y")


def to_iso_date(raw: Any) -> Optional[str]:
    """
    Normalize a sheet date to YYYY-MM-DD.

    Accepts ISO dates as-is, US MM/DD/YYYY, ISO datetimes and a few textual
    forms. Returns None for blanks and anything unparseable.
    """
    s = str(raw or "").strip()
    if not s:
        return None
    if _ISO_RX.match(s):
        return s
    m = _SLASH_RX.match(s)
    if m:
        month, day, year = m.groups()
        try:
            return date(int(year), int(month), int(day)).isoformat()
        except ValueError:
            logger.warning("[SHEETS] Unable to parse date: %s", s)
            return None
    try:
        return datetime.fromisoformat(s.replace("Z", "")).date().isoformat()
    except ValueError:
        pass
    for fmt in _TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    logger.warning("[SHEETS] Unable to parse date: %s", s)
    return None


def _col_index(letter: str) -> int:
    """Convert A1 column letter(s) to a 0-based index."""
    n = 0
    for ch in letter.strip().upper():
        n = n * 26 + (ord(ch) - 64)
    return n - 1


def _col_letter(n: int) -> str:
    """Convert 1-based column index to A1 letter(s)."""
    s = ""
    while n:
        n, r = divmod(n - 1, 26)
        s = chr(65 + r) + s
    return s


def _parse_float(s: str) -> Optional[float]:
    s = (s or "").strip().replace(",", "")
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def parse_row(values: List[Any], row_number: int, columns: Optional[Dict[str, str]] = None) -> Optional[Location]:
    """
    Parse one worksheet row into a Location, or None if the row is unusable.

    Rows without a company name or address are dropped. Bad status falls back
    to the default; bad coordinates become None (i.e. need geocoding).
    """
    columns = columns or DEFAULT_COLUMNS
    cells = ["" if v is None else str(v) for v in (values or [])]

    def cell(field: str) -> str:
        idx = _col_index(columns[field])
        return cells[idx] if idx < len(cells) else ""

    company_name = cell("company_name").strip()
    address = cell("address").strip()
    if not company_name or not address:
        logger.warning("[SHEETS] Skipping row %d: missing company name or address", row_number)
        return None

    status = cell("status").strip()
    if not is_valid_status(status):
        if status:
            logger.warning("[SHEETS] Row %d: invalid status %r, using %s", row_number, status, DEFAULT_STATUS)
        status = DEFAULT_STATUS

    lat_raw, lng_raw = cell("lat"), cell("lng")
    lat, lng = _parse_float(lat_raw), _parse_float(lng_raw)
    if (lat_raw.strip() or lng_raw.strip()) and not is_valid(lat, lng):
        logger.warning("[SHEETS] Row %d: invalid coordinates (%s, %s); will need geocoding", row_number, lat_raw, lng_raw)
        lat, lng = None, None

    return Location(
        id=row_number,
        company_name=company_name,
        address=address,
        status=status,
        notes=cell("notes").strip(),
        lat=lat,
        lng=lng,
        follow_up_date=to_iso_date(cell("follow_up_date")),
    )

# --------------------------- error classification ---------------------------

def classify_api_error(e: APIError) -> ErrorKind:
    """Map a gspread APIError onto RATE_LIMITED / NOT_FOUND / UNKNOWN using the structured error body."""
    resp = getattr(e, "response", None)
    code = getattr(e, "code", None)
    if not isinstance(code, int) or code <= 0:
        code = getattr(resp, "status_code", None)

    err = getattr(e, "error", None)
    if not isinstance(err, dict):
        try:
            err = (resp.json() or {}).get("error") or {}
        except (AttributeError, TypeError, ValueError):
            err = {}
    if not isinstance(err, dict):
        err = {}

    status = str(err.get("status") or "")
    reasons = {str(d.get("reason")) for d in (err.get("errors") or []) if isinstance(d, dict)}

    if code == 429 or status == "RESOURCE_EXHAUSTED" or reasons & _RATE_LIMIT_REASONS:
        return ErrorKind.RATE_LIMITED
    if code == 404 or status == "NOT_FOUND":
        return ErrorKind.NOT_FOUND
    return ErrorKind.UNKNOWN

# --------------------------- store ---------------------------

class LocationStore:
    """
    Async adapter over one Locations worksheet.

    Row number == Location.id. The worksheet object only needs get(),
    row_values() and batch_update() (a gspread.Worksheet, or a fake in tests).
    Only update_coordinates() retries, and only on rate limiting.
    """

    def __init__(
        self,
        worksheet,
        *,
        columns: Optional[Dict[str, str]] = None,
        max_retries: int = MAX_RETRIES_DEFAULT,
        retry_base_sec: float = RETRY_BASE_DEFAULT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ws = worksheet
        self.columns = dict(columns or DEFAULT_COLUMNS)
        self.max_retries = max(0, int(max_retries))
        self.retry_base_sec = retry_base_sec
        self._sleep = sleep
        last_col = max(_col_index(c) for c in self.columns.values()) + 1
        self.data_range = f"A{FIRST_DATA_ROW}:{_col_letter(last_col)}"

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocationStore":
        book = connect(settings.sheets_cred, settings.sheet_id)
        ws = open_worksheet(book, settings.sheet_name, SHEET_HEADERS[:2])
        return cls(
            ws,
            columns=settings.columns,
            max_retries=settings.max_retries,
            retry_base_sec=settings.retry_base_sec,
        )

    def _cell(self, field: str, row: int) -> str:
        return f"{self.columns[field]}{row}"

    async def _call(self, label: str, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except APIError as e:
            kind = classify_api_error(e)
            if kind is ErrorKind.RATE_LIMITED:
                raise RateLimited(f"Sheets {label} rate limited: {e}") from e
            if kind is ErrorKind.NOT_FOUND:
                raise LocationNotFound(f"Sheets {label}: not found: {e}") from e
            raise SheetsError(f"Sheets {label} failed: {e}") from e
        except requests.RequestException as e:
            raise TransportError(f"Sheets {label} transport error: {e}") from e

    # --------------------- reads ---------------------

    async def fetch_all(self) -> List[Location]:
        rows = await self._call("get", self.ws.get, self.data_range) or []
        if not rows:
            logger.info("[SHEETS] No data found in sheet")
            return []
        locations: List[Location] = []
        for i, row in enumerate(rows):
            loc = parse_row(row, i + FIRST_DATA_ROW, self.columns)
            if loc is not None:
                locations.append(loc)
        logger.info("[SHEETS] Loaded %d locations (%d rows)", len(locations), len(rows))
        return locations

    async def _read_row(self, location_id: int) -> List[Any]:
        if not isinstance(location_id, int) or location_id < FIRST_DATA_ROW:
            raise LocationNotFound(f"Location with ID {location_id} not found")
        row = await self._call("row_values", self.ws.row_values, location_id)
        if not row or not any(str(v).strip() for v in row):
            raise LocationNotFound(f"Location with ID {location_id} not found")
        return row

    async def fetch_one(self, location_id: int) -> Location:
        row = await self._read_row(location_id)
        loc = parse_row(row, location_id, self.columns)
        if loc is None:
            raise LocationNotFound(f"Row {location_id} does not hold a valid location")
        return loc

    async def count_rows(self) -> int:
        rows = await self._call("get", self.ws.get, self.data_range) or []
        return len(rows)

    async def validate_access(self) -> bool:
        """Read the header row; raises the classified error if the sheet is unreachable."""
        header = await self._call("row_values", self.ws.row_values, HEADER_ROW)
        if not header:
            raise SheetsError("Header row is empty; is this the Locations worksheet?")
        logger.info("[SHEETS] Access validated (headers=%s)", header)
        return True

    # --------------------- writes ---------------------

    @staticmethod
    def _validate_update(update: LocationUpdate) -> None:
        if update.is_empty():
            raise InvalidInput("At least one field (status, notes, or follow_up_date) must be provided")
        if update.status is not None and not is_valid_status(update.status):
            raise InvalidStatus(
                f"Invalid status value: {update.status}. Must be one of: {', '.join(LOCATION_STATUSES)}"
            )
        if update.notes is not None and len(update.notes) > MAX_NOTES_LENGTH:
            raise InvalidInput(f"Notes must be {MAX_NOTES_LENGTH} characters or less")
        if update.follow_up_date:
            if not _ISO_RX.match(update.follow_up_date):
                raise InvalidInput("Follow-up date must be in YYYY-MM-DD format")
            try:
                date.fromisoformat(update.follow_up_date)
            except ValueError as e:
                raise InvalidInput("Follow-up date must be a valid date") from e

    async def update_fields(self, location_id: int, update: LocationUpdate) -> Location:
        """
        Write only the supplied fields, then re-read the row.

        The returned Location is parsed from the sheet after the write, not
        echoed from the input.
        """
        self._validate_update(update)
        await self._read_row(location_id)

        data = []
        if update.status is not None:
            data.append({"range": self._cell("status", location_id), "values": [[update.status]]})
        if update.notes is not None:
            data.append({"range": self._cell("notes", location_id), "values": [[update.notes]]})
        if update.follow_up_date is not None:
            data.append({"range": self._cell("follow_up_date", location_id), "values": [[update.follow_up_date]]})

        await self._call("batch_update", self.ws.batch_update, data, value_input_option="RAW")
        logger.info("[SHEETS] Updated location %d: %s", location_id, [d["range"] for d in data])

        row = await self._call("row_values", self.ws.row_values, location_id)
        loc = parse_row(row or [], location_id, self.columns)
        if loc is None:
            raise SheetsError(f"Failed to parse updated location {location_id}")
        return loc

    async def update_coordinates(self, location_id: int, lat: float, lng: float) -> None:
        """
        Write lat/lng for one row.

        Invalid coordinates fail fast. Rate-limited writes are retried up to
        max_retries times, sleeping retry_base_sec * 2**n (1, 2, 4, 8, 16s);
        anything else propagates immediately.
        """
        if not is_valid(lat, lng):
            raise InvalidCoordinates(
                f"Invalid coordinates: ({lat}, {lng}). "
                "Latitude must be between -90 and 90, longitude between -180 and 180."
            )
        if not isinstance(location_id, int) or location_id < FIRST_DATA_ROW:
            raise LocationNotFound(f"Location with ID {location_id} not found")

        data = [
            {"range": self._cell("lat", location_id), "values": [[lat]]},
            {"range": self._cell("lng", location_id), "values": [[lng]]},
        ]
        for attempt in range(self.max_retries + 1):
            try:
                await self._call("batch_update", self.ws.batch_update, data, value_input_option="RAW")
                logger.info("[SHEETS] Updated coordinates for location %d", location_id)
                return
            except RateLimited as e:
                if attempt >= self.max_retries:
                    raise RateLimited(
                        f"Failed to update coordinates for location {location_id} "
                        f"after {self.max_retries} retries: {e}"
                    ) from e
                wait = self.retry_base_sec * (2 ** attempt)
                logger.warning(
                    "[RETRY %d/%d] Rate limit hit for location %d. Retrying in %.1fs",
                    attempt + 1, self.max_retries, location_id, wait,
                )
                await self._sleep(wait)
