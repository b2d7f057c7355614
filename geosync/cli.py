# geosync/cli.py
import argparse
import asyncio
import sys

from .config import configure_logging, load_settings
from .errors import GeoSyncError
from .google.health import health_probe
from .models import LocationUpdate
from .service import LocationService


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="geosync", description="Locations sheet geocoding backfill")
    p.add_argument("--config", default="config/sheet.yaml", help="Path to sheet.yaml (optional)")
    p.add_argument("--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list", help="Print all locations (runs one backfill pass first)")

    b = sub.add_parser("backfill", help="Run one backfill pass")
    b.add_argument("--drain", action="store_true", help="Keep going (with pacing) until nothing is missing")

    u = sub.add_parser("update", help="Update status / notes / follow-up date of one row")
    u.add_argument("id", type=int, help="Row number of the location")
    u.add_argument("--status", default=None)
    u.add_argument("--notes", default=None)
    u.add_argument("--follow-up", dest="follow_up", default=None,
                   help="YYYY-MM-DD, or an empty string to clear")

    sub.add_parser("health", help="Probe the Geocoding API and the sheet")
    return p.parse_args(argv)


async def _run(args) -> int:
    settings = load_settings(args.config)
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    service = LocationService.from_settings(settings)

    if args.cmd == "list":
        # the process exits after printing; a deferred pass would be cancelled
        service.scheduler.reschedule = False
        for loc in await service.list_locations():
            lat = "" if loc.lat is None else f"{loc.lat:.6f}"
            lng = "" if loc.lng is None else f"{loc.lng:.6f}"
            print(f"{loc.id}\t{loc.company_name}\t{loc.status}\t{lat}\t{lng}\t{loc.address}")
        return 0

    if args.cmd == "backfill":
        if args.drain:
            reports = await service.scheduler.drain()
        else:
            service.scheduler.reschedule = False
            reports = [await service.scheduler.run_backfill_pass()]
        for report in reports:
            print(f"[BACKFILL] outcome={report.outcome.value} updated={len(report.updated)} remaining={report.remaining}")
        return 0

    if args.cmd == "update":
        loc = await service.update_location(
            args.id,
            LocationUpdate(status=args.status, notes=args.notes, follow_up_date=args.follow_up),
        )
        print(f"[OK] {loc.id} {loc.company_name}: status={loc.status} follow_up={loc.follow_up_date or ''}")
        return 0

    if args.cmd == "health":
        status = await health_probe(service.scheduler.geocoder, service.store)
        for k, v in status.items():
            print(f"{k}: {v}")
        return 0 if all(v == "ok" for v in status.values()) else 1

    return 2


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(_run(args))
    except GeoSyncError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
