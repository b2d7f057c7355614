from __future__ import annotations

import json
from typing import Any, Dict

from prefect import flow, get_run_logger

from geosync.config import _env_int, load_settings
from geosync.service import LocationService


@flow(name="geocode-backfill", persist_result=False)
async def geocode_backfill_flow(max_passes: int = 0) -> Dict[str, Any]:
    """
    Prefect flow wrapper: drain missing coordinates from the Locations sheet.

    max_passes=0 uses GEOSYNC_MAX_PASSES (default 200) as the safety cap.
    """
    logger = get_run_logger()
    settings = load_settings()
    service = LocationService.from_settings(settings)
    cap = max_passes or _env_int("GEOSYNC_MAX_PASSES", 200)
    logger.info("Geocode backfill started (batch=%d interval=%.1fs cap=%d).",
                settings.batch_size, settings.min_interval_sec, cap)

    reports = await service.scheduler.drain(max_passes=cap)

    for n, r in enumerate(reports, 1):
        logger.info(json.dumps({
            "event": "geocode_backfill_pass",
            "pass": n,
            "outcome": r.outcome.value,
            "missing": r.missing,
            "updated": sorted(r.updated),
            "skipped": r.skipped,
            "errors": r.errors,
            "remaining": r.remaining,
        }, sort_keys=True, default=str))

    summary = {
        "event": "geocode_backfill_complete",
        "passes": len(reports),
        "updated": sum(len(r.updated) for r in reports),
        "skipped": sum(len(r.skipped) for r in reports),
        "errors": sum(len(r.errors) for r in reports),
        "remaining": reports[-1].remaining if reports else 0,
        "last_outcome": reports[-1].outcome.value if reports else None,
    }
    logger.info(json.dumps(summary, sort_keys=True))
    return summary


if __name__ == "__main__":
    import asyncio

    asyncio.run(geocode_backfill_flow())
