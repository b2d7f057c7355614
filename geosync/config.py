"""
Configuration for geosync.

Sources, lowest to highest precedence:
- built-in defaults (sized for the low Sheets / Maps quotas)
- config/sheet.yaml (optional; ${VAR} references are expanded)
- environment variables (.env is loaded on import)

NOTE:
Secrets (API key, service account path) should live in the environment,
not in sheet.yaml.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

load_dotenv()

DEFAULT_CONFIG_PATH = "config/sheet.yaml"

# Column letters in the Locations worksheet, A..G.
DEFAULT_COLUMNS: Dict[str, str] = {
    "company_name": "A",
    "address": "B",
    "status": "C",
    "notes": "D",
    "lat": "E",
    "lng": "F",
    "follow_up_date": "G",
}

SHEET_HEADERS: List[str] = [
    "Company Name",
    "Address",
    "Status",
    "Notes",
    "Latitude",
    "Longitude",
    "Follow-up Date",
]


# -----------------------------
# Env helpers
# -----------------------------
def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)) or str(default))
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)) or str(default))
    except Exception:
        return default


def _expand_env(obj):
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj


def load_sheet_config(path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Read sheet.yaml if present. A missing file is an empty config, not an error."""
    if not path or not os.path.isfile(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return _expand_env(yaml.safe_load(f) or {})


@dataclass
class Settings:
    google_maps_api_key: str = ""
    sheets_cred: str = ""
    sheet_id: str = ""
    sheet_name: str = "Sheet1"
    columns: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLUMNS))

    # scheduler
    batch_size: int = 3
    min_interval_sec: float = 5.0
    update_delay_sec: float = 1.0

    # geocoder
    geocode_delay_sec: float = 0.2
    cache_ttl_sec: float = 3600.0
    http_timeout: int = 12

    # store writes
    max_retries: int = 5
    retry_base_sec: float = 1.0

    log_level: str = "INFO"

    def require(self) -> "Settings":
        missing = []
        if not self.google_maps_api_key:
            missing.append("GOOGLE_MAPS_API_KEY")
        if not self.sheets_cred:
            missing.append("GOOGLE_SHEETS_CRED")
        if not self.sheet_id:
            missing.append("SHEET_ID")
        if missing:
            raise ConfigError(
                f"Missing required settings: {', '.join(missing)}. "
                "Set them in the environment or a .env file next to the project."
            )
        return self


def load_settings(path: str = DEFAULT_CONFIG_PATH) -> Settings:
    cfg = load_sheet_config(path)
    backfill = cfg.get("backfill") or {}
    columns = dict(DEFAULT_COLUMNS)
    columns.update({k: str(v).strip().upper() for k, v in (cfg.get("columns") or {}).items()})

    yaml_sheet_id = str(cfg.get("spreadsheet_id") or "")
    if "${" in yaml_sheet_id:
        # unexpanded reference: the variable is not set
        yaml_sheet_id = ""

    s = Settings(
        google_maps_api_key=_env_str("GOOGLE_MAPS_API_KEY", "") or "",
        sheets_cred=_env_str("GOOGLE_SHEETS_CRED", "") or "",
        sheet_id=_env_str("SHEET_ID", yaml_sheet_id) or "",
        sheet_name=_env_str("SHEET_NAME", str(cfg.get("worksheet") or "Sheet1")) or "Sheet1",
        columns=columns,
        batch_size=int(backfill.get("batch_size", 3)),
        min_interval_sec=float(backfill.get("min_interval_sec", 5.0)),
        update_delay_sec=float(backfill.get("update_delay_sec", 1.0)),
        geocode_delay_sec=float(backfill.get("geocode_delay_sec", 0.2)),
        cache_ttl_sec=float(backfill.get("cache_ttl_sec", 3600)),
    )

    # env overrides
    s.batch_size = max(1, _env_int("GEOSYNC_BATCH_SIZE", s.batch_size))
    s.min_interval_sec = _env_float("GEOSYNC_MIN_INTERVAL_SEC", s.min_interval_sec)
    s.update_delay_sec = _env_float("GEOSYNC_UPDATE_DELAY_SEC", s.update_delay_sec)
    s.geocode_delay_sec = _env_float("GEOSYNC_GEOCODE_DELAY_SEC", s.geocode_delay_sec)
    s.cache_ttl_sec = _env_float("GEOSYNC_CACHE_TTL_SEC", s.cache_ttl_sec)
    s.max_retries = max(0, _env_int("GEOSYNC_MAX_RETRIES", s.max_retries))
    s.retry_base_sec = _env_float("GEOSYNC_RETRY_BASE_SEC", s.retry_base_sec)
    s.http_timeout = _env_int("GEOSYNC_HTTP_TIMEOUT", s.http_timeout)
    s.log_level = (_env_str("GEOSYNC_LOG_LEVEL", s.log_level) or "INFO").upper()
    return s


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s.%(msecs)03d %(levelname)s %(name)s %(message)s",
        datefmt="%H:%M:%S",
    )
