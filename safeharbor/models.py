from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    @classmethod
    def from_lnglat(cls, pair: list | tuple) -> Coordinate:
        # GeoJSON order is [lng, lat]
        return cls(lat=float(pair[1]), lng=float(pair[0]))


class Polygon(BaseModel):
    """Closed outer ring plus optional holes, in WGS84 degrees; containment treats it as planar."""

    model_config = ConfigDict(frozen=True)

    ring: tuple[Coordinate, ...]
    holes: tuple[tuple[Coordinate, ...], ...] = ()

    @classmethod
    def from_geojson_ring(cls, ring: list) -> Polygon:
        return cls(ring=tuple(Coordinate.from_lnglat(p) for p in ring))

    @classmethod
    def from_geojson_rings(cls, rings: list) -> Polygon:
        """GeoJSON Polygon coordinates: the outer ring first, then any holes."""
        outer, *holes = rings
        return cls(
            ring=tuple(Coordinate.from_lnglat(p) for p in outer),
            holes=tuple(tuple(Coordinate.from_lnglat(p) for p in h) for h in holes),
        )


# ----------------------------
# Temporal rules
# ----------------------------
class Unconditional(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["unconditional"] = "unconditional"
    active: bool = True
    label: str = "always"


class DailyWindow(BaseModel):
    """[start, end) every day; end <= start wraps past midnight."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["daily_window"] = "daily_window"
    start: time
    end: time
    label: str = "prohibited_hours"


class WeeklyWindow(BaseModel):
    """[start, end) on one day of the week (0 = Monday)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["weekly_window"] = "weekly_window"
    day_of_week: int = Field(ge=0, le=6)
    start: time
    end: time
    label: str = "street_cleaning"

    @model_validator(mode="after")
    def _check_order(self) -> WeeklyWindow:
        if self.start >= self.end:
            raise ValueError("weekly window start must be before end")
        return self


TemporalRule = Annotated[
    Union[Unconditional, DailyWindow, WeeklyWindow],
    Field(discriminator="kind"),
]


# ----------------------------
# Zones
# ----------------------------
class ZoneType(str, Enum):
    legal = "legal"
    time_limited = "time_limited"
    street_cleaning = "street_cleaning"
    prohibited = "prohibited"
    permit_only = "permit_only"


class ZoneRestrictions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_days: int | None = None
    vehicle_type: str | None = None
    prohibited_hours: DailyWindow | None = None
    permit_type: str | None = None
    # False switches the zone's restriction off regardless of time
    enforced: bool | None = None
    # Unrecognised fields from the source record, kept for display only
    extra: dict[str, Any] = Field(default_factory=dict)


class ParkingZone(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    zone_type: ZoneType
    geometry: Polygon
    restrictions: ZoneRestrictions = Field(default_factory=ZoneRestrictions)
    time_limit_minutes: int | None = None
    street_cleaning: WeeklyWindow | None = None
    effective_date: date | None = None
    expiry_date: date | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _check_dates(self) -> ParkingZone:
        if (
            self.effective_date is not None
            and self.expiry_date is not None
            and self.effective_date > self.expiry_date
        ):
            raise ValueError("effective_date must not be after expiry_date")
        return self


# ----------------------------
# Alerts
# ----------------------------
class AlertType(str, Enum):
    enforcement = "enforcement"
    hazard = "hazard"
    safe = "safe"


class ParkingAlert(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    location: Coordinate
    alert_type: AlertType
    description: str | None = None
    reported_by: str | None = None
    created_at: datetime
    expires_at: datetime


# ----------------------------
# Verdicts
# ----------------------------
VerdictStatus = Literal["safe", "restricted", "unknown", "likely_safe"]


class LegalityVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    # None means "no information", which is a normal answer
    is_legal: bool | None = None
    status: VerdictStatus = "unknown"
    zone_id: str | None = None
    zone_type: ZoneType | None = None
    restrictions: ZoneRestrictions | None = None
    time_limit_minutes: int | None = None
    active_rule: str | None = None
    active_alerts: tuple[ParkingAlert, ...] = ()
    evaluated_at: datetime


# ----------------------------
# Points of interest
# ----------------------------
class ServicePOI(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str
    location: Coordinate
    subcategory: str | None = None
    address: str | None = None
    phone: str | None = None
    capacity: int | None = None
    current_availability: int | None = None
    description: str | None = None


class EmergencyResource(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: Literal["shelter", "medical", "crisis"]
    location: Coordinate
    phone: str | None = None
    address: str | None = None
    available_24_7: bool = False
    description: str | None = None


class RankedItem(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    item: Any
    distance_m: float


# ----------------------------
# Request bodies
# ----------------------------
class NearbyQuery(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    radius_m: float = Field(default=5000, ge=100, le=50000)
    limit: int = Field(default=50, ge=1, le=50)
    category: str | None = None


class AlertReport(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    type: AlertType
    description: str | None = None
    reported_by: str | None = None
