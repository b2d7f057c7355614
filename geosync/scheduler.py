"""
Backfill scheduler: fill in missing coordinates a few rows at a time.

One pass:
  Evaluating -> (Skipped | Acquiring -> Running) -> Idle

- Evaluating: read all rows, keep the ones with missing coordinates. None -> done.
- Skip guards, in order: another pass holds the lock; less than
  min_interval_sec since the last acquisition.
- Running: geocode + write the first batch_size rows, one at a time, sleeping
  update_delay_sec between rows. A failing row is logged and left queued.
- If rows remain, a follow-up pass is deferred by min_interval_sec.

Lock state lives on the scheduler instance (one per process / service), not
in module globals. run_backfill_pass() never raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .coords import is_missing, is_suspicious
from .errors import GeoSyncError
from .models import Coordinates, Location

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 3
DEFAULT_MIN_INTERVAL_SEC = 5.0
DEFAULT_UPDATE_DELAY_SEC = 1.0


class PassState(str, Enum):
    """State of the lock holder; evaluating and skipped passes never touch it."""
    IDLE = "idle"
    ACQUIRING = "acquiring"
    RUNNING = "running"


class PassOutcome(str, Enum):
    DONE = "done"                  # nothing missing
    SKIPPED_BUSY = "skipped_busy"
    SKIPPED_INTERVAL = "skipped_interval"
    RAN = "ran"
    FAILED = "failed"              # evaluation itself failed (e.g. sheet unreachable)


@dataclass
class LockState:
    in_progress: bool = False
    last_run_at: Optional[float] = None


@dataclass
class PassReport:
    outcome: PassOutcome
    missing: int = 0
    attempted: List[int] = field(default_factory=list)
    updated: Dict[int, Coordinates] = field(default_factory=dict)
    skipped: List[int] = field(default_factory=list)
    errors: Dict[int, str] = field(default_factory=dict)
    remaining: int = 0
    rescheduled: bool = False


def needs_geocode(loc: Location) -> bool:
    return is_missing(loc.lat, loc.lng)


class BackfillScheduler:
    def __init__(
        self,
        store,
        geocoder,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        min_interval_sec: float = DEFAULT_MIN_INTERVAL_SEC,
        update_delay_sec: float = DEFAULT_UPDATE_DELAY_SEC,
        reschedule: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.geocoder = geocoder
        self.batch_size = max(1, int(batch_size))
        self.min_interval_sec = min_interval_sec
        self.update_delay_sec = update_delay_sec
        self.reschedule = reschedule
        self.lock = LockState()
        self.state = PassState.IDLE
        self._clock = clock
        self._sleep = sleep
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings, store, geocoder) -> "BackfillScheduler":
        return cls(
            store,
            geocoder,
            batch_size=settings.batch_size,
            min_interval_sec=settings.min_interval_sec,
            update_delay_sec=settings.update_delay_sec,
        )

    # --------------------- lock ---------------------

    def _skip_reason(self, now: float) -> Optional[PassOutcome]:
        if self.lock.in_progress:
            return PassOutcome.SKIPPED_BUSY
        last = self.lock.last_run_at
        if last is not None and now - last < self.min_interval_sec:
            return PassOutcome.SKIPPED_INTERVAL
        return None

    @asynccontextmanager
    async def _acquire(self, now: float):
        # check-and-set happens with no await in between, so it is atomic on the loop
        self.state = PassState.ACQUIRING
        self.lock.in_progress = True
        if self.lock.last_run_at is None or now > self.lock.last_run_at:
            self.lock.last_run_at = now
        try:
            self.state = PassState.RUNNING
            yield
        finally:
            self.lock.in_progress = False
            self.state = PassState.IDLE

    # --------------------- pass ---------------------

    async def run_backfill_pass(self, locations: Optional[List[Location]] = None) -> PassReport:
        """
        Run one pass. `locations` lets a caller that already read the sheet skip the re-read.
        Never raises; failures are logged and reported.
        """
        try:
            return await self._run_pass(locations)
        except Exception:
            logger.exception("[BACKFILL] Fatal error in backfill pass")
            return PassReport(outcome=PassOutcome.FAILED)

    async def _run_pass(self, locations: Optional[List[Location]]) -> PassReport:
        try:
            if locations is None:
                locations = await self.store.fetch_all()
        except GeoSyncError as e:
            logger.error("[BACKFILL] Could not read locations: %s", e)
            return PassReport(outcome=PassOutcome.FAILED)

        missing = [loc for loc in locations if needs_geocode(loc)]
        if not missing:
            logger.info("[BACKFILL] No locations need geocoding")
            return PassReport(outcome=PassOutcome.DONE)

        now = self._clock()
        reason = self._skip_reason(now)
        if reason is PassOutcome.SKIPPED_BUSY:
            logger.info("[BACKFILL] Geocoding already in progress, skipping. %d locations still need coordinates.", len(missing))
        elif reason is PassOutcome.SKIPPED_INTERVAL:
            wait = self.min_interval_sec - (now - (self.lock.last_run_at or now))
            logger.info(
                "[BACKFILL] Too soon since last batch; wait %.1fs. %d locations still need coordinates.",
                wait, len(missing),
            )
        if reason is not None:
            return PassReport(outcome=reason, missing=len(missing), remaining=len(missing))

        batch = missing[: self.batch_size]
        report = PassReport(outcome=PassOutcome.RAN, missing=len(missing))
        async with self._acquire(now):
            logger.info("[BACKFILL] Processing %d of %d locations", len(batch), len(missing))
            await self._run_batch(batch, report)

        report.remaining = len(missing) - len(batch)
        if report.remaining > 0:
            ids = [loc.id for loc in missing[len(batch):]]
            logger.info(
                "[BACKFILL] %d locations remaining (%s%s)",
                report.remaining, ", ".join(map(str, ids[:10])), "..." if len(ids) > 10 else "",
            )
            if self.reschedule:
                self._schedule_next()
                report.rescheduled = True
        else:
            logger.info("[BACKFILL] All locations in this queue have been processed")
        return report

    async def _run_batch(self, batch: List[Location], report: PassReport) -> None:
        for i, loc in enumerate(batch):
            report.attempted.append(loc.id)
            try:
                await self._process_one(loc, report)
            except Exception as e:
                # one bad row must not stop the batch
                logger.error(
                    "[BACKFILL] Error geocoding location %d (%s) - Address: %r - Error: %s",
                    loc.id, loc.company_name, loc.address, e,
                )
                report.errors[loc.id] = str(e)
            if i < len(batch) - 1:
                await self._sleep(self.update_delay_sec)

    async def _process_one(self, loc: Location, report: PassReport) -> None:
        result = await self.geocoder.geocode(loc.address)
        if not result.success or result.coordinates is None:
            logger.warning(
                "[BACKFILL] Failed to geocode location %d: %s - Address: %r (%s)",
                loc.id, loc.company_name, loc.address, result.error_kind.value,
            )
            report.skipped.append(loc.id)
            return

        coords = result.coordinates
        if is_suspicious(coords.lat, coords.lng):
            logger.warning(
                "[BACKFILL] Suspicious coordinates (%s, %s) for location %d: %s - Address: %r",
                coords.lat, coords.lng, loc.id, loc.company_name, loc.address,
            )
            report.skipped.append(loc.id)
            return

        await self.store.update_coordinates(loc.id, coords.lat, coords.lng)
        report.updated[loc.id] = coords
        logger.info("[BACKFILL] Geocoded location %d: %s (%s, %s)", loc.id, loc.company_name, coords.lat, coords.lng)

    # --------------------- rescheduling ---------------------

    def _schedule_next(self) -> None:
        logger.info("[BACKFILL] Scheduling next batch in %.1fs", self.min_interval_sec)
        task = asyncio.create_task(self._deferred_pass(self.min_interval_sec))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deferred_pass(self, delay: float) -> None:
        await self._sleep(delay)
        await self.run_backfill_pass()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def wait_idle(self) -> None:
        """Wait until no deferred pass is queued (a drain settles)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def drain(self, max_passes: int = 200) -> List[PassReport]:
        """
        Run passes back to back (sleeping min_interval_sec between them) until
        nothing is left, evaluation fails, or max_passes is hit.
        """
        self.reschedule = False
        reports: List[PassReport] = []
        for _ in range(max(1, max_passes)):
            report = await self.run_backfill_pass()
            reports.append(report)
            if report.outcome in (PassOutcome.DONE, PassOutcome.FAILED):
                break
            if report.outcome is PassOutcome.RAN and report.remaining <= 0:
                break
            await self._sleep(self.min_interval_sec)
        return reports

    async def run_forever(self, poll_interval_sec: Optional[float] = None, stop: Optional[asyncio.Event] = None) -> None:
        """
        Periodic variant: evaluate -> process -> sleep, with the same guards.
        Self-rescheduling is off while this loop owns the cadence.
        """
        interval = poll_interval_sec if poll_interval_sec is not None else self.min_interval_sec
        self.reschedule = False
        while stop is None or not stop.is_set():
            report = await self.run_backfill_pass()
            if report.outcome is PassOutcome.DONE:
                logger.debug("[BACKFILL] idle; next check in %.1fs", interval)
            await self._sleep(interval)
