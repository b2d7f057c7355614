from prefect.client.schemas.schedules import CronSchedule
from flows.geocode_backfill_flow import geocode_backfill_flow


if __name__ == "__main__":
    geocode_backfill_flow.deploy(
        name="geocode-backfill",
        work_pool_name="geosync-managed",
        tags=["locations", "geocoding"],
        schedule=CronSchedule(
            cron="*/30 7-20 * * *",  # every 30 min, business hours
            timezone="America/Toronto",
        ),
        description=(
            "Fill in missing lat/lng on the Locations sheet, "
            "3 rows per pass with 5s between passes."
        ),
        # Placeholder image; the process worker runs the flow from the checkout.
        image="geosync/geocode-backfill:placeholder",
    )
