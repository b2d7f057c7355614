from __future__ import annotations

import logging
from typing import List

from .config import Settings
from .coords import is_suspicious
from .errors import LocationNotFound
from .geocoding import GeocodeClient
from .google.client import GoogleGeocoder
from .models import Location, LocationUpdate
from .scheduler import BackfillScheduler
from .sheets import LocationStore

logger = logging.getLogger(__name__)


class LocationService:
    """
    Request-facing entry point.

    list_locations() triggers one backfill pass inline for the first batch;
    the scheduler hands any remaining rows to its own deferred passes.
    """

    def __init__(self, store: LocationStore, scheduler: BackfillScheduler):
        self.store = store
        self.scheduler = scheduler

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocationService":
        settings.require()
        store = LocationStore.from_settings(settings)
        geocoder = GeocodeClient(
            GoogleGeocoder(settings.google_maps_api_key, timeout=settings.http_timeout),
            cache_ttl_sec=settings.cache_ttl_sec,
            request_delay_sec=settings.geocode_delay_sec,
        )
        return cls(store, BackfillScheduler.from_settings(settings, store, geocoder))

    async def list_locations(self) -> List[Location]:
        locations = await self.store.fetch_all()
        report = await self.scheduler.run_backfill_pass(locations)

        # reflect what this request's pass just wrote
        for loc in locations:
            coords = report.updated.get(loc.id)
            if coords is not None:
                loc.lat, loc.lng = coords.lat, coords.lng

        suspicious = [
            loc for loc in locations
            if loc.lat is not None and loc.lng is not None and is_suspicious(loc.lat, loc.lng)
        ]
        if suspicious:
            logger.warning("[API] Found %d locations with suspicious coordinates (likely bad addresses)", len(suspicious))
            for loc in suspicious[:5]:
                logger.warning("  - Location %d: %s at (%s, %s) - Address: %r", loc.id, loc.company_name, loc.lat, loc.lng, loc.address)

        logger.info("[API] Returning %d locations (%s)", len(locations), report.outcome.value)
        return locations

    async def update_location(self, location_id: int, update: LocationUpdate) -> Location:
        if not isinstance(location_id, int) or location_id < 1:
            raise LocationNotFound(f"Invalid location ID {location_id!r}. Must be a positive integer.")
        return await self.store.update_fields(location_id, update)
