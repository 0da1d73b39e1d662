"""Shared fixtures: a square zone near SF City Hall and local-time instants."""

from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from safeharbor.models import Coordinate, ParkingZone, Polygon

TZ = "America/Los_Angeles"

# 2024-01-02 is a Tuesday
TUESDAY = (2024, 1, 2)
WEDNESDAY = (2024, 1, 3)


def square(south: float, west: float, north: float, east: float) -> Polygon:
    return Polygon.from_geojson_ring(
        [[west, south], [east, south], [east, north], [west, north], [west, south]]
    )


SQUARE = square(37.7750, -122.4200, 37.7770, -122.4180)
INSIDE = Coordinate(lat=37.7760, lng=-122.4190)
OUTSIDE = Coordinate(lat=37.7900, lng=-122.4000)


@pytest.fixture
def project_root() -> Path:
    return Path(__file__).parent.parent


@pytest.fixture
def data_dir(project_root: Path) -> Path:
    return project_root / "data"


@pytest.fixture
def local_time():
    def make(day: tuple[int, int, int], hour: int, minute: int = 0, second: int = 0) -> datetime:
        return datetime(*day, hour, minute, second, tzinfo=ZoneInfo(TZ))

    return make


@pytest.fixture
def make_zone():
    def make(zone_id: str = "1", zone_type: str = "legal", geometry: Polygon = SQUARE, **kwargs) -> ParkingZone:
        return ParkingZone(id=zone_id, zone_type=zone_type, geometry=geometry, **kwargs)

    return make
