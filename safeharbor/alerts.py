from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Iterable
from zoneinfo import ZoneInfo

from safeharbor.config import settings
from safeharbor.geo import validate_coordinate
from safeharbor.models import (
    AlertType,
    Coordinate,
    LegalityVerdict,
    ParkingAlert,
    RankedItem,
)
from safeharbor.proximity import rank_by_proximity
from safeharbor.temporal import to_local

logger = logging.getLogger(__name__)

DEFAULT_LIFETIMES: dict[AlertType, timedelta] = {
    AlertType.enforcement: timedelta(hours=2),
    AlertType.hazard: timedelta(hours=24),
    AlertType.safe: timedelta(hours=24),
}

MAX_ACTIVE_ALERTS = 20


def new_alert(
    location: Coordinate,
    alert_type: AlertType | str,
    now: datetime,
    description: str | None = None,
    reported_by: str | None = None,
    lifetimes: dict[AlertType, timedelta] | None = None,
) -> ParkingAlert:
    validate_coordinate(location)
    alert_type = AlertType(alert_type)
    lifetime = (lifetimes or DEFAULT_LIFETIMES)[alert_type]
    return ParkingAlert(
        id=uuid.uuid4().hex,
        location=location,
        alert_type=alert_type,
        description=description,
        reported_by=reported_by,
        created_at=now,
        expires_at=now + lifetime,
    )


def is_live(alert: ParkingAlert, at: datetime, tz: str | ZoneInfo | None = None) -> bool:
    # Naive timestamps on either side are city-local. Alerts reported after
    # `at` did not exist yet at that instant.
    zone = tz or settings.timezone
    at = to_local(at, zone)
    return to_local(alert.created_at, zone) <= at < to_local(alert.expires_at, zone)


def active_alerts(
    point: Coordinate,
    at: datetime,
    candidate_alerts: Iterable[ParkingAlert],
    radius_m: float,
    limit: int = MAX_ACTIVE_ALERTS,
    tz: str | ZoneInfo | None = None,
) -> list[RankedItem]:
    """Unexpired alerts within radius_m of point, nearest first."""
    live = [a for a in candidate_alerts if is_live(a, at, tz)]
    return rank_by_proximity(point, live, radius_m, limit)


def apply_alerts(
    verdict: LegalityVerdict,
    point: Coordinate,
    at: datetime,
    candidate_alerts: Iterable[ParkingAlert],
    radius_m: float,
    max_alerts: int = MAX_ACTIVE_ALERTS,
    tz: str | ZoneInfo | None = None,
) -> LegalityVerdict:
    """Layer user reports over a zone-derived verdict.

    Observed enforcement outranks static rules. A "safe" report never
    clears a restriction; it only turns "unknown" into "likely_safe".
    """
    candidates = list(candidate_alerts)
    # rank everything so an enforcement report past the cap still counts
    nearby = active_alerts(point, at, candidates, radius_m, limit=len(candidates), tz=tz)
    types = {r.item.alert_type for r in nearby}

    update: dict = {"active_alerts": tuple(r.item for r in nearby[:max_alerts])}
    if AlertType.enforcement in types:
        update["is_legal"] = False
        update["status"] = "restricted"
    elif AlertType.safe in types and verdict.is_legal is None:
        update["status"] = "likely_safe"

    if "is_legal" in update and verdict.is_legal is not False:
        logger.info("Enforcement reported near %s,%s; marking restricted", point.lat, point.lng)
    return verdict.model_copy(update=update)
