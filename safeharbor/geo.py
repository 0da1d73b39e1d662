from __future__ import annotations

import math

from safeharbor.errors import InvalidCoordinate, InvalidGeometry
from safeharbor.models import Coordinate, Polygon

EARTH_RADIUS_M = 6371000.0

# Cross-product tolerance for deciding a point sits on an edge, in degrees^2.
_EDGE_EPS = 1e-12


def validate_coordinate(c: Coordinate) -> Coordinate:
    if not (math.isfinite(c.lat) and math.isfinite(c.lng)):
        raise InvalidCoordinate(f"Non-finite coordinate: {c.lat}, {c.lng}")
    if not -90.0 <= c.lat <= 90.0:
        raise InvalidCoordinate(f"Latitude out of range: {c.lat}")
    if not -180.0 <= c.lng <= 180.0:
        raise InvalidCoordinate(f"Longitude out of range: {c.lng}")
    return c


def _check_ring(ring: tuple[Coordinate, ...], what: str) -> None:
    if len(ring) < 4:
        raise InvalidGeometry(f"{what} needs at least 4 points, got {len(ring)}")
    if ring[0] != ring[-1]:
        raise InvalidGeometry(f"{what} is not closed (first point != last point)")


def validate_polygon(poly: Polygon) -> Polygon:
    _check_ring(poly.ring, "Polygon ring")
    for n, hole in enumerate(poly.holes):
        _check_ring(hole, f"Polygon hole {n}")
    return poly


def haversine_distance_m(a: Coordinate, b: Coordinate) -> float:
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlmb = math.radians(b.lng - a.lng)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    # Rounding can push h a hair past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def within_radius(center: Coordinate, point: Coordinate, radius_m: float) -> bool:
    return haversine_distance_m(center, point) <= radius_m


def _on_segment(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> bool:
    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    if abs(cross) > _EDGE_EPS:
        return False
    return min(ax, bx) <= px <= max(ax, bx) and min(ay, by) <= py <= max(ay, by)


def _ring_position(x: float, y: float, ring: tuple[Coordinate, ...]) -> bool | None:
    """True inside, False outside, None on an edge or vertex."""
    inside = False
    for i in range(len(ring) - 1):
        ax, ay = ring[i].lng, ring[i].lat
        bx, by = ring[i + 1].lng, ring[i + 1].lat

        if _on_segment(x, y, ax, ay, bx, by):
            return None

        # Half-open in y so a ray through a vertex is counted once
        if (ay > y) != (by > y):
            x_cross = ax + (y - ay) * (bx - ax) / (by - ay)
            if x < x_cross:
                inside = not inside

    return inside


def point_in_polygon(p: Coordinate, poly: Polygon) -> bool:
    """Even-odd ray casting with (lng, lat) as planar (x, y).

    Points lying on an edge or a vertex count as inside, so a restriction
    applies right up to its painted line. That includes the edge of a hole;
    only the hole's interior is outside the zone.
    """
    validate_polygon(poly)
    x, y = p.lng, p.lat

    where = _ring_position(x, y, poly.ring)
    if where is not True:
        return where is None

    for hole in poly.holes:
        where = _ring_position(x, y, hole)
        if where is None:
            return True
        if where:
            return False
    return True


def bounding_box(poly: Polygon) -> tuple[float, float, float, float]:
    """(south, west, north, east)"""
    lats = [c.lat for c in poly.ring]
    lngs = [c.lng for c in poly.ring]
    return (min(lats), min(lngs), max(lats), max(lngs))


def bbox_distance_m(point: Coordinate, poly: Polygon) -> float:
    """Distance from point to the polygon's bounding box; 0 when inside it.

    Used to over-return candidate zones; good enough at city scale.
    """
    s, w, n, e = bounding_box(poly)
    nearest = Coordinate(
        lat=min(max(point.lat, s), n),
        lng=min(max(point.lng, w), e),
    )
    return haversine_distance_m(point, nearest)
