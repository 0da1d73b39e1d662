from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from functools import partial
from typing import Any, Iterable, Protocol

import requests
from pydantic import ValidationError

from safeharbor.errors import InvalidGeometry
from safeharbor.geo import bbox_distance_m, validate_polygon, within_radius
from safeharbor.models import (
    Coordinate,
    DailyWindow,
    EmergencyResource,
    ParkingAlert,
    ParkingZone,
    Polygon,
    ServicePOI,
    WeeklyWindow,
    ZoneRestrictions,
)
from safeharbor.temporal import parse_day, parse_window, to_local

logger = logging.getLogger(__name__)

_KNOWN_RESTRICTION_KEYS = {"max_days", "vehicle_type", "prohibited_hours", "permit_type", "enforced"}


class SnapshotSource(Protocol):
    def fetch_zones_near(self, point: Coordinate, radius_m: float) -> list[ParkingZone]: ...

    def fetch_alerts_near(
        self, point: Coordinate, radius_m: float, at: datetime
    ) -> list[ParkingAlert]: ...

    def fetch_services_near(
        self, point: Coordinate, radius_m: float, filters: dict[str, Any] | None = None
    ) -> list[ServicePOI]: ...


@dataclass(frozen=True)
class Snapshot:
    """Read-only view of everything the engine reads. Replace, never mutate."""

    zones: tuple[ParkingZone, ...] = ()
    alerts: tuple[ParkingAlert, ...] = ()
    services: tuple[ServicePOI, ...] = ()
    emergency: tuple[EmergencyResource, ...] = ()
    sources: tuple[str, ...] = field(default=())

    def fetch_zones_near(self, point: Coordinate, radius_m: float) -> list[ParkingZone]:
        # May over-return; the resolver does exact containment
        return [z for z in self.zones if bbox_distance_m(point, z.geometry) <= radius_m]

    def fetch_alerts_near(self, point: Coordinate, radius_m: float, at: datetime) -> list[ParkingAlert]:
        # Expired alerts are left in; the overlay filters by expiry
        return [a for a in self.alerts if within_radius(point, a.location, radius_m)]

    def fetch_services_near(
        self, point: Coordinate, radius_m: float, filters: dict[str, Any] | None = None
    ) -> list[ServicePOI]:
        filters = filters or {}
        category = filters.get("category")
        out: list[ServicePOI] = []
        for s in self.services:
            if category and s.category != category:
                continue
            if within_radius(point, s.location, radius_m):
                out.append(s)
        return out

    def with_alert(self, alert: ParkingAlert, now: datetime | None = None) -> Snapshot:
        """New snapshot with `alert` added; alerts expired by `now` are dropped."""
        kept = self.alerts if now is None else tuple(a for a in self.alerts if a.expires_at > now)
        return replace(self, alerts=kept + (alert,))


# ----------------------------
# Field helpers
# ----------------------------
def _try_parse_float(v: object) -> float | None:
    if v is None:
        return None
    if isinstance(v, (int, float)):
        return float(v)
    s = str(v).strip()
    if s == "":
        return None
    try:
        return float(s)
    except ValueError:
        return None


def _row_get(row: dict, keys: Iterable[str]) -> object | None:
    for k in keys:
        if k in row and row[k] not in (None, ""):
            return row[k]
    return None


def _as_dict(v: object) -> dict:
    # Source exports sometimes store nested objects as JSON strings
    if isinstance(v, dict):
        return v
    if isinstance(v, str) and v.strip():
        obj = json.loads(v)
        if isinstance(obj, dict):
            return obj
    return {}


def _parse_date(v: object) -> date | None:
    if v in (None, ""):
        return None
    if isinstance(v, date):
        return v
    return date.fromisoformat(str(v)[:10])


def _parse_timestamp(v: object, tz: str | None) -> datetime:
    # Never hand back a naive value; without a city zone, naive means UTC
    ts = datetime.fromisoformat(str(v))
    if ts.tzinfo is None:
        return to_local(ts, tz) if tz else ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_bool(v: object) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    if s in ("true", "t", "yes", "y", "1"):
        return True
    if s in ("false", "f", "no", "n", "0"):
        return False
    raise ValueError(f"Unrecognised boolean: {v!r}")


def _row_location(row: dict) -> Coordinate | None:
    lat = _try_parse_float(_row_get(row, ["lat", "latitude", "LAT", "Y"]))
    lng = _try_parse_float(_row_get(row, ["lng", "lon", "longitude", "LON", "X"]))
    if lat is None or lng is None:
        return None
    return Coordinate(lat=lat, lng=lng)


# ----------------------------
# Zones
# ----------------------------
def _parse_restrictions(raw: dict) -> ZoneRestrictions:
    prohibited = raw.get("prohibited_hours")
    window = None
    if isinstance(prohibited, str):
        start, end = parse_window(prohibited)
        window = DailyWindow(start=start, end=end)
    elif isinstance(prohibited, dict):
        window = DailyWindow.model_validate(prohibited)

    max_days = raw.get("max_days")
    enforced = raw.get("enforced")
    return ZoneRestrictions(
        max_days=int(max_days) if max_days is not None else None,
        vehicle_type=raw.get("vehicle_type"),
        prohibited_hours=window,
        permit_type=raw.get("permit_type"),
        enforced=_parse_bool(enforced) if enforced not in (None, "") else None,
        extra={k: v for k, v in raw.items() if k not in _KNOWN_RESTRICTION_KEYS},
    )


def _parse_street_cleaning(raw: dict) -> WeeklyWindow | None:
    if not raw:
        return None
    day = _row_get(raw, ["day", "day_of_week", "weekday"])
    if day is None:
        return None
    if "time" in raw:
        start, end = parse_window(str(raw["time"]))
    else:
        start, end = parse_window(f"{raw['start']}-{raw['end']}")
    return WeeklyWindow(day_of_week=parse_day(day), start=start, end=end)


def _time_limit(props: dict) -> int | None:
    v = _row_get(props, ["time_limit_minutes", "time_limit"])
    if v is None:
        v = _as_dict(props.get("time_limits")).get("minutes")
    f = _try_parse_float(v)
    return int(f) if f is not None else None


def _polygon_parts(geom: dict) -> list[list]:
    """Each part is a list of rings: outer first, holes after."""
    gtype = geom.get("type")
    coords = geom.get("coordinates")
    if gtype == "Polygon" and isinstance(coords, list) and coords:
        return [coords]
    if gtype == "MultiPolygon" and isinstance(coords, list):
        return [poly for poly in coords if isinstance(poly, list) and poly]
    return []


def _normalize_zones(props: dict, geom: dict, idx: int) -> list[ParkingZone]:
    zone_id = str(_row_get(props, ["id", "ID", "zone_id", "objectid", "OBJECTID"]) or idx)
    parts = _polygon_parts(geom)
    if not parts:
        raise InvalidGeometry(f"Zone {zone_id}: geometry must be a Polygon or MultiPolygon")

    base = {
        "zone_type": _row_get(props, ["zone_type", "ZONE_TYPE", "type"]),
        "restrictions": _parse_restrictions(_as_dict(props.get("restrictions"))),
        "time_limit_minutes": _time_limit(props),
        "street_cleaning": _parse_street_cleaning(_as_dict(props.get("street_cleaning"))),
        "effective_date": _parse_date(props.get("effective_date")),
        "expiry_date": _parse_date(props.get("expiry_date")),
        "notes": props.get("notes"),
    }

    zones: list[ParkingZone] = []
    for n, rings in enumerate(parts):
        polygon = validate_polygon(Polygon.from_geojson_rings(rings))
        part_id = zone_id if len(parts) == 1 else f"{zone_id}:{n}"
        zones.append(ParkingZone(id=part_id, geometry=polygon, **base))
    return zones


def parse_zones(obj: dict) -> list[ParkingZone]:
    if not isinstance(obj, dict) or "features" not in obj:
        raise ValueError("Parking zones must be a GeoJSON FeatureCollection")

    zones: list[ParkingZone] = []
    for idx, feat in enumerate(obj.get("features", [])):
        props = feat.get("properties", {}) if isinstance(feat, dict) else {}
        geom = feat.get("geometry", {}) if isinstance(feat, dict) else {}
        try:
            zones.extend(_normalize_zones(dict(props or {}), geom or {}, idx))
        except (ValueError, KeyError, TypeError) as e:
            # InvalidGeometry and pydantic's ValidationError are ValueErrors
            logger.warning("Skipping parking zone feature %d: %s", idx, e)
    return zones


# ----------------------------
# Alerts / services / emergency resources
# ----------------------------
def _normalize_alert(row: dict, idx: int, tz: str | None = None) -> ParkingAlert | None:
    loc = _row_location(row)
    if loc is None:
        return None
    return ParkingAlert(
        id=str(_row_get(row, ["id", "ID", "report_id"]) or idx),
        location=loc,
        alert_type=_row_get(row, ["alert_type", "type"]),
        description=row.get("description"),
        reported_by=row.get("reported_by"),
        created_at=_parse_timestamp(row["created_at"], tz),
        expires_at=_parse_timestamp(row["expires_at"], tz),
    )


def _normalize_service(row: dict, idx: int) -> ServicePOI | None:
    loc = _row_location(row)
    if loc is None:
        return None
    capacity = _try_parse_float(row.get("capacity"))
    available = _try_parse_float(row.get("current_availability"))
    return ServicePOI(
        id=str(_row_get(row, ["id", "ID", "objectid"]) or idx),
        name=str(_row_get(row, ["name", "NAME"]) or ""),
        category=str(_row_get(row, ["category", "CATEGORY"]) or "other"),
        location=loc,
        subcategory=row.get("subcategory"),
        address=row.get("address"),
        phone=row.get("phone"),
        capacity=int(capacity) if capacity is not None else None,
        current_availability=int(available) if available is not None else None,
        description=row.get("description"),
    )


def _normalize_emergency(row: dict, idx: int) -> EmergencyResource | None:
    loc = _row_location(row)
    if loc is None:
        return None
    return EmergencyResource(
        id=str(_row_get(row, ["id", "ID"]) or idx),
        name=str(row.get("name") or ""),
        type=row.get("type"),
        location=loc,
        phone=row.get("phone"),
        address=row.get("address"),
        available_24_7=_parse_bool(row.get("available_24_7") or False),
        description=row.get("description"),
    )


def _parse_rows(obj: object, normalize, what: str) -> list:
    if isinstance(obj, dict) and what in obj:
        obj = obj[what]
    if not isinstance(obj, list):
        raise ValueError(f"Unsupported JSON structure for {what}")

    out = []
    for idx, row in enumerate(obj):
        if not isinstance(row, dict):
            continue
        try:
            item = normalize(row, idx)
        except (ValueError, KeyError, ValidationError) as e:
            logger.warning("Skipping %s row %d: %s", what, idx, e)
            continue
        if item is not None:
            out.append(item)
    return out


def _read_json(path: str) -> object:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Snapshot file not found: {path}")
    ext = os.path.splitext(path)[1].lower()
    if ext not in (".json", ".geojson"):
        raise ValueError(f"Unsupported file extension: {ext} (expected .json/.geojson)")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def fetch_zones_from_url(url: str, timeout_s: float = 15.0) -> list[ParkingZone]:
    r = requests.get(url, timeout=timeout_s, headers={"Accept": "application/geo+json, application/json"})
    r.raise_for_status()
    return parse_zones(r.json())


def load_snapshot(
    zones_path: str | None = None,
    alerts_path: str | None = None,
    services_path: str | None = None,
    emergency_path: str | None = None,
    zones_source_url: str | None = None,
    timeout_s: float = 15.0,
    tz: str | None = None,
) -> Snapshot:
    """Build a snapshot from local files and/or a zones URL.

    The zones source is required; the others are optional and load empty
    when their path is unset or missing.
    """
    sources: list[str] = []

    if zones_source_url:
        zones = fetch_zones_from_url(zones_source_url, timeout_s)
        sources.append(zones_source_url)
    elif zones_path:
        zones = parse_zones(_read_json(zones_path))
        sources.append(zones_path)
    else:
        raise ValueError("No parking zone source configured")

    def optional(path: str | None, normalize, what: str) -> list:
        if not path:
            return []
        if not os.path.exists(path):
            logger.warning("No %s file at %s; continuing without it", what, path)
            return []
        sources.append(path)
        return _parse_rows(_read_json(path), normalize, what)

    return Snapshot(
        zones=tuple(zones),
        alerts=tuple(optional(alerts_path, partial(_normalize_alert, tz=tz), "alerts")),
        services=tuple(optional(services_path, _normalize_service, "services")),
        emergency=tuple(optional(emergency_path, _normalize_emergency, "resources")),
        sources=tuple(sources),
    )
