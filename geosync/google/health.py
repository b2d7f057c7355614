from typing import Dict, Any

from ..errors import GeoSyncError

PROBE_ADDRESS = "1600 Amphitheatre Parkway, Mountain View, CA"


async def health_probe(geocoder, store) -> Dict[str, Any]:
    """
    Minimal health probe for the Geocoding API and the Locations sheet.

    Returns:
        dict: {"google_maps": "ok", "sheets": "ok"} on success, or an error description per key.
    """
    out: Dict[str, Any] = {}

    result = await geocoder.geocode(PROBE_ADDRESS)
    if result.success:
        out["google_maps"] = "ok"
    else:
        out["google_maps"] = f"error: {result.error_kind.value}: {result.error}"

    try:
        await store.validate_access()
        out["sheets"] = "ok"
    except GeoSyncError as e:
        out["sheets"] = f"error: {e}"
    except Exception as e:
        out["sheets"] = f"unexpected_error: {type(e).__name__}: {e}"

    return out
