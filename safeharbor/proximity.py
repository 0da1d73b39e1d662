from __future__ import annotations

from typing import Any, Callable, Iterable

from safeharbor.geo import haversine_distance_m, validate_coordinate
from safeharbor.models import Coordinate, RankedItem


def _default_location(item: Any) -> Coordinate:
    return item.location


def rank_by_proximity(
    center: Coordinate,
    items: Iterable[Any],
    radius_m: float,
    limit: int,
    location: Callable[[Any], Coordinate] = _default_location,
) -> list[RankedItem]:
    """Items within radius_m of center, nearest first.

    Ties keep their input order (sorted() is stable).
    """
    validate_coordinate(center)
    if limit <= 0:
        return []

    rows: list[RankedItem] = []
    for item in items:
        d = haversine_distance_m(center, location(item))
        if d > radius_m:
            continue
        rows.append(RankedItem(item=item, distance_m=d))

    rows.sort(key=lambda r: r.distance_m)
    return rows[: int(limit)]
