# tests/test_service.py
import pytest

from geosync.errors import InvalidStatus, LocationNotFound
from geosync.google.health import health_probe
from geosync.models import Coordinates, ErrorKind, GeocodeResult, LocationUpdate
from geosync.scheduler import BackfillScheduler
from geosync.service import LocationService
from geosync.sheets import LocationStore

from conftest import FakeWorksheet, StubGeocoder, api_error, row


def make_service(rows, clock, geocoder=None):
    ws = FakeWorksheet(rows)
    store = LocationStore(ws, sleep=clock.sleep)
    sched = BackfillScheduler(store, geocoder or StubGeocoder(), reschedule=False, clock=clock, sleep=clock.sleep)
    return LocationService(store, sched), ws


@pytest.mark.asyncio
async def test_list_locations_returns_fresh_coordinates(clock, five_rows):
    service, ws = make_service(five_rows, clock)

    locs = await service.list_locations()

    assert [l.id for l in locs] == [2, 3, 4, 5, 6]
    by_id = {l.id: l for l in locs}
    assert by_id[2].coordinates == Coordinates(40.7128, -74.006)
    assert by_id[3].coordinates == Coordinates(39.78, -89.65)
    # only the first batch is filled in by this request
    assert by_id[6].lat is None


@pytest.mark.asyncio
async def test_list_locations_survives_a_busy_scheduler(clock, five_rows):
    service, ws = make_service(five_rows, clock)
    service.scheduler.lock.in_progress = True

    locs = await service.list_locations()

    assert len(locs) == 5
    assert ws.batch_calls == []


@pytest.mark.asyncio
async def test_update_location(clock, five_rows):
    service, ws = make_service(five_rows, clock)

    loc = await service.update_location(2, LocationUpdate(status="Follow-up", follow_up_date="2025-01-15"))

    assert loc.status == "Follow-up"
    assert loc.follow_up_date == "2025-01-15"
    assert loc.company_name == "Acme Bakery"


@pytest.mark.asyncio
async def test_update_location_errors(clock, five_rows):
    service, ws = make_service(five_rows, clock)

    with pytest.raises(LocationNotFound):
        await service.update_location(0, LocationUpdate(status="Customer"))
    with pytest.raises(LocationNotFound):
        await service.update_location(42, LocationUpdate(status="Customer"))
    with pytest.raises(InvalidStatus):
        await service.update_location(2, LocationUpdate(status="Lost"))


@pytest.mark.asyncio
async def test_health_probe(clock, five_rows):
    service, ws = make_service(five_rows, clock)

    status = await health_probe(service.scheduler.geocoder, service.store)
    assert status == {"google_maps": "ok", "sheets": "ok"}

    denied = GeocodeResult.failure("x", ErrorKind.REQUEST_DENIED, "Geocoding request denied. Please check API key configuration.")
    geocoder = StubGeocoder({"1600 Amphitheatre Parkway, Mountain View, CA": denied})

    def boom(n):
        raise api_error(404, "NOT_FOUND", "Requested entity was not found.")
    ws.row_values = boom

    status = await health_probe(geocoder, service.store)
    assert status["google_maps"].startswith("error: request_denied")
    assert status["sheets"].startswith("error:")
