import os

from pydantic import BaseModel


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(f"SAFEHARBOR_{name}")
    if v is None:
        return default
    v = v.strip()
    return v or default


class Settings(BaseModel):
    # Restrictions are posted in local civil time, so every temporal check
    # happens in this zone.
    timezone: str = _env("TIMEZONE", "America/Los_Angeles")

    # Local snapshot files (GeoJSON/JSON). Missing optional files load as empty.
    zones_path: str = _env("ZONES_PATH", "data/parking_zones.geojson")
    alerts_path: str | None = _env("ALERTS_PATH")
    services_path: str | None = _env("SERVICES_PATH", "data/services.json")
    emergency_path: str | None = _env("EMERGENCY_PATH", "data/emergency_resources.json")

    # If the city publishes zones as GeoJSON, put the URL here; it wins over zones_path.
    zones_source_url: str | None = _env("ZONES_SOURCE_URL")
    source_timeout_s: float = float(_env("SOURCE_TIMEOUT_S", "15"))

    alert_radius_m: float = float(_env("ALERT_RADIUS_M", "50"))
    zone_search_radius_m: float = float(_env("ZONE_SEARCH_RADIUS_M", "200"))
    max_active_alerts: int = int(_env("MAX_ACTIVE_ALERTS", "20"))
    enforcement_alert_hours: float = float(_env("ENFORCEMENT_ALERT_HOURS", "2"))
    default_alert_hours: float = float(_env("DEFAULT_ALERT_HOURS", "24"))

    log_level: str = _env("LOG_LEVEL", "INFO")


settings = Settings()
