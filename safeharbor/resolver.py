from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable
from zoneinfo import ZoneInfo

from safeharbor.geo import point_in_polygon, validate_coordinate
from safeharbor.models import (
    Coordinate,
    DailyWindow,
    LegalityVerdict,
    ParkingZone,
    TemporalRule,
    WeeklyWindow,
    ZoneType,
)
from safeharbor.temporal import active_rules, describe_rule, to_local

logger = logging.getLogger(__name__)

# Higher = more restrictive
SEVERITY: dict[ZoneType, int] = {
    ZoneType.legal: 0,
    ZoneType.permit_only: 1,
    ZoneType.time_limited: 2,
    ZoneType.street_cleaning: 3,
    ZoneType.prohibited: 4,
}


def severity_rank(zone_type: ZoneType | str) -> int:
    return SEVERITY[ZoneType(zone_type)]


def _rule_severity(rule: TemporalRule) -> int:
    # Only a running street-cleaning window lifts a zone above its declared type
    if isinstance(rule, WeeklyWindow):
        return SEVERITY[ZoneType.street_cleaning]
    return SEVERITY[ZoneType.legal]


def _id_key(zone_id: str) -> tuple[int, int, str]:
    # numeric ids compare as numbers, everything else after them as text
    if zone_id.isdigit():
        return (0, int(zone_id), "")
    return (1, 0, zone_id)


def in_force(zone: ParkingZone, on: date) -> bool:
    if zone.effective_date is not None and zone.effective_date > on:
        return False
    if zone.expiry_date is not None and zone.expiry_date < on:
        return False
    return True


@dataclass(frozen=True)
class _Contribution:
    zone: ParkingZone
    restrictive: bool
    severity: int
    rule: TemporalRule | None

    def sort_key(self) -> tuple:
        limit = self.zone.time_limit_minutes
        return (
            -self.severity,
            limit if limit is not None else math.inf,
            _id_key(self.zone.id),
        )


def _contribution(zone: ParkingZone, at: datetime, tz: str | ZoneInfo) -> _Contribution | None:
    rules = active_rules(zone, at, tz)
    base = SEVERITY[zone.zone_type]

    if zone.zone_type is ZoneType.legal:
        # A legal zone only restricts while a posted window is running
        windows = [r for r in rules if isinstance(r, (DailyWindow, WeeklyWindow))]
        if not windows:
            return _Contribution(zone=zone, restrictive=False, severity=base, rule=None)
        rules = windows
    elif not rules:
        return None

    top = max(rules, key=_rule_severity)
    return _Contribution(
        zone=zone,
        restrictive=True,
        severity=max(base, _rule_severity(top)),
        rule=top,
    )


def resolve(
    point: Coordinate,
    at: datetime,
    candidate_zones: Iterable[ParkingZone],
    tz: str | ZoneInfo,
) -> LegalityVerdict:
    """Legality of parking at `point` at instant `at`, from static zones only."""
    validate_coordinate(point)
    local = to_local(at, tz)
    today = local.date()

    contributions: list[_Contribution] = []
    for zone in candidate_zones:
        if not in_force(zone, today):
            continue
        if not point_in_polygon(point, zone.geometry):
            continue
        c = _contribution(zone, local, tz)
        if c is not None:
            contributions.append(c)

    if not contributions:
        logger.debug("No zone information at %s,%s", point.lat, point.lng)
        return LegalityVerdict(is_legal=None, status="unknown", evaluated_at=local)

    restrictive = [c for c in contributions if c.restrictive]
    pool = restrictive or contributions
    winner = min(pool, key=_Contribution.sort_key)
    is_legal = not restrictive

    logger.debug(
        "Zone %s (%s) decides %s,%s: legal=%s",
        winner.zone.id,
        winner.zone.zone_type.value,
        point.lat,
        point.lng,
        is_legal,
    )
    return LegalityVerdict(
        is_legal=is_legal,
        status="safe" if is_legal else "restricted",
        zone_id=winner.zone.id,
        zone_type=winner.zone.zone_type,
        restrictions=winner.zone.restrictions,
        time_limit_minutes=winner.zone.time_limit_minutes,
        active_rule=describe_rule(winner.rule) if winner.rule is not None else None,
        evaluated_at=local,
    )
