# tests/conftest.py
import asyncio
import json
import re

import pytest
from gspread.exceptions import APIError

from geosync.config import SHEET_HEADERS
from geosync.google.client import GeocodeCandidate, GeocodeResponse
from geosync.models import Coordinates, GeocodeResult
from geosync.sheets import _col_index

_A1 = re.compile(r"^([A-Z]+)(\d+)$")


class FakeClock:
    """Monotonic clock whose sleep() just advances time."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, sec):
        self.sleeps.append(sec)
        self.now += sec
        await asyncio.sleep(0)


class FakeWorksheet:
    """The slice of gspread.Worksheet the store uses: get / row_values / batch_update."""

    def __init__(self, rows, header=None):
        self.header = list(header or SHEET_HEADERS)
        self.rows = [list(r) for r in rows]
        self.batch_calls = []
        self.batch_errors = []  # popped per batch_update call; None means succeed

    def get(self, rng):
        return [list(r) for r in self.rows]

    def row_values(self, n):
        if n == 1:
            return list(self.header)
        i = n - 2
        if 0 <= i < len(self.rows):
            return list(self.rows[i])
        return []

    def batch_update(self, data, value_input_option=None):
        self.batch_calls.append(data)
        if self.batch_errors:
            err = self.batch_errors.pop(0)
            if err is not None:
                raise err
        for d in data:
            m = _A1.match(d["range"])
            col, i = _col_index(m.group(1)), int(m.group(2)) - 2
            while len(self.rows) <= i:
                self.rows.append([])
            row = self.rows[i]
            while len(row) <= col:
                row.append("")
            row[col] = d["values"][0][0]
        return {"totalUpdatedCells": len(data)}


class FakeResponse:
    def __init__(self, code, status, message="", reason=None):
        self.status_code = code
        self._body = {
            "error": {
                "code": code,
                "message": message,
                "status": status,
                "errors": [{"reason": reason}] if reason else [],
            }
        }
        self.text = json.dumps(self._body)

    def json(self):
        return json.loads(self.text)


def api_error(code=429, status="RESOURCE_EXHAUSTED", message="Quota exceeded for quota metric 'Write requests'", reason=None):
    return APIError(FakeResponse(code, status, message, reason))


def ok_response(lat, lng, formatted="somewhere"):
    return GeocodeResponse(status="OK", candidates=[GeocodeCandidate(lat, lng, formatted)])


class FakeProvider:
    """Blocking provider double: address -> GeocodeResponse or exception."""

    def __init__(self, answers=None, default=None):
        self.answers = dict(answers or {})
        self.default = default if default is not None else ok_response(40.7128, -74.006)
        self.calls = []

    def geocode(self, address):
        self.calls.append(address)
        ans = self.answers.get(address, self.default)
        if isinstance(ans, Exception):
            raise ans
        return ans


class StubGeocoder:
    """Async geocoder double for scheduler tests."""

    def __init__(self, results=None):
        self.results = dict(results or {})
        self.calls = []

    async def geocode(self, address):
        self.calls.append(address)
        r = self.results.get(address)
        if isinstance(r, Exception):
            raise r
        if r is None:
            r = GeocodeResult.ok(address, Coordinates(40.7128, -74.006))
        return r


def row(name, address, status="Prospect", notes="", lat="", lng="", follow_up=""):
    return [name, address, status, notes, lat, lng, follow_up]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def five_rows():
    # rows 2..6; only row 3 already has coordinates
    return [
        row("Acme Bakery", "1 Main St, Springfield"),
        row("Bolt Hardware", "2 Oak Ave, Springfield", lat="39.78", lng="-89.65"),
        row("Cedar Cafe", "3 Pine Rd, Springfield", lat="0", lng="0"),
        row("Delta Dental", "4 Elm St, Springfield"),
        row("Echo Electric", "5 Birch Ln, Springfield"),
    ]
