from __future__ import annotations

import re
from datetime import datetime, time
from zoneinfo import ZoneInfo

from safeharbor.models import (
    DailyWindow,
    ParkingZone,
    TemporalRule,
    Unconditional,
    WeeklyWindow,
)

DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_WINDOW_RE = re.compile(
    r"^\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\s*[-–]\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\s*$",
    re.IGNORECASE,
)


def to_local(at: datetime, tz: str | ZoneInfo) -> datetime:
    """Express `at` in the city's civil time. Naive values are taken as already local."""
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    if at.tzinfo is None:
        return at.replace(tzinfo=zone)
    return at.astimezone(zone)


def _to_time(hour: str, minute: str | None, meridiem: str | None) -> time:
    h = int(hour)
    m = int(minute) if minute else 0
    if meridiem:
        meridiem = meridiem.lower()
        if not 1 <= h <= 12:
            raise ValueError(f"Bad 12-hour clock value: {hour}")
        if meridiem == "am":
            h = 0 if h == 12 else h
        else:
            h = 12 if h == 12 else h + 12
    if h == 24 and m == 0:
        # "22:00-24:00" style end of day
        return time(23, 59, 59, 999999)
    return time(h, m)


def parse_window(text: str) -> tuple[time, time]:
    """Parse "2:00-6:00", "22-6" or "8am-10am" into (start, end)."""
    m = _WINDOW_RE.match(text or "")
    if not m:
        raise ValueError(f"Unrecognised time window: {text!r}")
    start = _to_time(m.group(1), m.group(2), m.group(3))
    end = _to_time(m.group(4), m.group(5), m.group(6))
    return start, end


def parse_day(value: str | int) -> int:
    if isinstance(value, int):
        if not 0 <= value <= 6:
            raise ValueError(f"Day of week out of range: {value}")
        return value
    key = value.strip().lower()
    for idx, name in enumerate(DAYS):
        if key == name or (len(key) >= 3 and name.startswith(key)):
            return idx
    raise ValueError(f"Unrecognised day of week: {value!r}")


def _in_window(t: time, start: time, end: time) -> bool:
    if start == end:
        return False
    if start < end:
        return start <= t < end
    # crosses midnight
    return t >= start or t < end


def is_rule_active(rule: TemporalRule, at: datetime, tz: str | ZoneInfo) -> bool:
    local = to_local(at, tz)
    t = local.time()

    if isinstance(rule, Unconditional):
        return rule.active
    if isinstance(rule, DailyWindow):
        return _in_window(t, rule.start, rule.end)
    if isinstance(rule, WeeklyWindow):
        return local.weekday() == rule.day_of_week and rule.start <= t < rule.end
    raise TypeError(f"Unsupported temporal rule: {type(rule).__name__}")


def zone_rules(zone: ParkingZone) -> list[TemporalRule]:
    """Temporal rules attached to a zone; a zone with none is always on."""
    if zone.restrictions.enforced is False:
        return [Unconditional(active=False, label="not_enforced")]

    rules: list[TemporalRule] = []
    if zone.restrictions.prohibited_hours is not None:
        rules.append(zone.restrictions.prohibited_hours)
    if zone.street_cleaning is not None:
        rules.append(zone.street_cleaning)
    if not rules:
        rules.append(Unconditional(active=True))
    return rules


def active_rules(zone: ParkingZone, at: datetime, tz: str | ZoneInfo) -> list[TemporalRule]:
    return [r for r in zone_rules(zone) if is_rule_active(r, at, tz)]


def describe_rule(rule: TemporalRule) -> str:
    if isinstance(rule, Unconditional):
        return rule.label
    if isinstance(rule, WeeklyWindow):
        return f"{rule.label} {DAYS[rule.day_of_week]} {rule.start:%H:%M}-{rule.end:%H:%M}"
    return f"{rule.label} {rule.start:%H:%M}-{rule.end:%H:%M}"
