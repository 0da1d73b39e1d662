from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from safeharbor.alerts import active_alerts, apply_alerts, new_alert
from safeharbor.config import Settings
from safeharbor.config import settings as default_settings
from safeharbor.data_loader import SnapshotSource
from safeharbor.geo import validate_coordinate
from safeharbor.models import (
    AlertType,
    Coordinate,
    EmergencyResource,
    LegalityVerdict,
    ParkingAlert,
    ParkingZone,
    RankedItem,
)
from safeharbor.proximity import rank_by_proximity
from safeharbor.resolver import in_force, resolve, severity_rank
from safeharbor.temporal import to_local


def _now(tz: str) -> datetime:
    return datetime.now(ZoneInfo(tz))


def alert_lifetimes(settings: Settings) -> dict[AlertType, timedelta]:
    default = timedelta(hours=settings.default_alert_hours)
    return {
        AlertType.enforcement: timedelta(hours=settings.enforcement_alert_hours),
        AlertType.hazard: default,
        AlertType.safe: default,
    }


def check_legality(
    point: Coordinate,
    at: datetime | None = None,
    *,
    source: SnapshotSource,
    settings: Settings = default_settings,
) -> LegalityVerdict:
    """Zone verdict for `point` with nearby user reports layered on top.

    `at` defaults to now in the city's time zone.
    """
    validate_coordinate(point)
    at = to_local(at, settings.timezone) if at is not None else _now(settings.timezone)

    zones = source.fetch_zones_near(point, settings.zone_search_radius_m)
    verdict = resolve(point, at, zones, settings.timezone)

    alerts = source.fetch_alerts_near(point, settings.alert_radius_m, at)
    return apply_alerts(
        verdict,
        point,
        at,
        alerts,
        radius_m=settings.alert_radius_m,
        max_alerts=settings.max_active_alerts,
        tz=settings.timezone,
    )


def search_nearby(
    point: Coordinate,
    radius_m: float,
    limit: int,
    items: Iterable[Any],
) -> list[RankedItem]:
    return rank_by_proximity(point, items, radius_m, limit)


def find_services(
    point: Coordinate,
    *,
    source: SnapshotSource,
    radius_m: float = 5000,
    limit: int = 50,
    category: str | None = None,
) -> list[RankedItem]:
    validate_coordinate(point)
    filters = {"category": category} if category else None
    services = source.fetch_services_near(point, radius_m, filters)
    return search_nearby(point, radius_m, limit, services)


def nearest_emergency(
    point: Coordinate,
    resources: Iterable[EmergencyResource],
    resource_type: str = "all",
    limit: int = 10,
) -> list[RankedItem]:
    # No radius: the nearest help is useful however far away it is
    if resource_type != "all":
        resources = [r for r in resources if r.type == resource_type]
    return search_nearby(point, float("inf"), limit, resources)


def zones_near(
    point: Coordinate,
    *,
    source: SnapshotSource,
    radius_m: float = 1000,
    at: datetime | None = None,
    settings: Settings = default_settings,
) -> list[ParkingZone]:
    """Zones in force today whose extent comes within radius_m, most restrictive type first."""
    validate_coordinate(point)
    at = to_local(at, settings.timezone) if at is not None else _now(settings.timezone)
    zones = [z for z in source.fetch_zones_near(point, radius_m) if in_force(z, at.date())]
    return sorted(zones, key=lambda z: -severity_rank(z.zone_type))


def list_alerts(
    point: Coordinate,
    *,
    source: SnapshotSource,
    radius_m: float = 2000,
    at: datetime | None = None,
    settings: Settings = default_settings,
) -> list[RankedItem]:
    validate_coordinate(point)
    at = to_local(at, settings.timezone) if at is not None else _now(settings.timezone)
    candidates = source.fetch_alerts_near(point, radius_m, at)
    return active_alerts(
        point, at, candidates, radius_m, limit=settings.max_active_alerts, tz=settings.timezone
    )


def report_alert(
    location: Coordinate,
    alert_type: AlertType | str,
    description: str | None = None,
    reported_by: str | None = None,
    now: datetime | None = None,
    settings: Settings = default_settings,
) -> ParkingAlert:
    now = to_local(now, settings.timezone) if now is not None else _now(settings.timezone)
    return new_alert(
        location,
        alert_type,
        now,
        description=description,
        reported_by=reported_by,
        lifetimes=alert_lifetimes(settings),
    )
