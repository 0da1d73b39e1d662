import json
import logging
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from safeharbor.alerts import new_alert
from safeharbor.data_loader import Snapshot, load_snapshot, parse_zones
from safeharbor.models import Coordinate, ZoneType
from safeharbor.resolver import resolve

from conftest import INSIDE, TZ

RV_LOT = Coordinate(lat=37.7290, lng=-122.3860)
SQUARE_RING = [[-122.42, 37.775], [-122.418, 37.775], [-122.418, 37.777], [-122.42, 37.777], [-122.42, 37.775]]


def feature(props: dict, coordinates: list, gtype: str = "Polygon") -> dict:
    return {"type": "Feature", "properties": props, "geometry": {"type": gtype, "coordinates": coordinates}}


def collection(*features: dict) -> dict:
    return {"type": "FeatureCollection", "features": list(features)}


def test_sample_zones_parse(data_dir):
    snap = load_snapshot(zones_path=str(data_dir / "parking_zones.geojson"))
    rv, limited = snap.zones

    assert rv.id == "1"
    assert rv.zone_type is ZoneType.legal
    assert rv.restrictions.max_days == 3
    assert rv.restrictions.vehicle_type == "rv"
    assert rv.restrictions.extra == {}

    assert limited.zone_type is ZoneType.time_limited
    assert limited.time_limit_minutes == 120
    assert limited.restrictions.prohibited_hours.start == time(2)
    assert limited.restrictions.prohibited_hours.end == time(6)
    assert limited.street_cleaning.day_of_week == 1
    assert (limited.street_cleaning.start, limited.street_cleaning.end) == (time(8), time(10))


def test_restriction_strings_and_unknown_fields():
    zones = parse_zones(
        collection(
            feature(
                {
                    "id": 5,
                    "zone_type": "prohibited",
                    "restrictions": json.dumps({"prohibited_hours": "10pm-6am", "signage": "red curb"}),
                    "effective_date": "2024-01-01",
                    "expiry_date": "2024-12-31T00:00:00",
                },
                [SQUARE_RING],
            )
        )
    )
    (zone,) = zones
    assert zone.restrictions.prohibited_hours.start == time(22)
    assert zone.restrictions.extra == {"signage": "red curb"}
    assert zone.expiry_date.isoformat() == "2024-12-31"


def test_multipolygon_becomes_one_zone_per_part():
    other = [[lng + 0.01, lat] for lng, lat in SQUARE_RING]
    zones = parse_zones(
        collection(feature({"id": 7, "zone_type": "permit_only"}, [[SQUARE_RING], [other]], "MultiPolygon"))
    )
    assert [z.id for z in zones] == ["7:0", "7:1"]


def test_malformed_features_are_skipped(caplog):
    with caplog.at_level(logging.WARNING):
        zones = parse_zones(
            collection(
                feature({"id": 1, "zone_type": "legal"}, [SQUARE_RING]),
                feature({"id": 2, "zone_type": "legal"}, [SQUARE_RING[:3]]),
                feature({"id": 3, "zone_type": "legal"}, [SQUARE_RING[:-1]]),
                feature({"id": 4, "zone_type": "parking_lot"}, [SQUARE_RING]),
                feature({"id": 6, "zone_type": "legal"}, [-122.4, 37.7], "Point"),
            )
        )
    assert [z.id for z in zones] == ["1"]
    assert "Skipping parking zone feature" in caplog.text


def test_not_a_feature_collection():
    with pytest.raises(ValueError):
        parse_zones({"zones": []})


def test_missing_zones_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_snapshot(zones_path=str(tmp_path / "nope.geojson"))


def test_unsupported_extension(tmp_path):
    path = tmp_path / "zones.csv"
    path.write_text("id,zone_type\n")
    with pytest.raises(ValueError):
        load_snapshot(zones_path=str(path))


def test_no_zone_source():
    with pytest.raises(ValueError):
        load_snapshot()


def test_optional_files(data_dir, tmp_path):
    alerts = [
        {"id": "a1", "lat": 37.729, "lng": -122.386, "type": "hazard",
         "created_at": "2024-01-03T10:00:00", "expires_at": "2024-01-04T10:00:00"},
        {"id": "a2", "type": "hazard", "created_at": "2024-01-03T10:00:00", "expires_at": "2024-01-04T10:00:00"},
    ]
    alerts_path = tmp_path / "alerts.json"
    alerts_path.write_text(json.dumps({"alerts": alerts}))

    snap = load_snapshot(
        zones_path=str(data_dir / "parking_zones.geojson"),
        alerts_path=str(alerts_path),
        services_path=str(data_dir / "services.json"),
        emergency_path=str(tmp_path / "missing.json"),
        tz=TZ,
    )
    assert len(snap.services) == 4
    assert snap.emergency == ()
    (alert,) = snap.alerts
    assert alert.created_at.tzinfo is not None
    assert alert.created_at.utcoffset().total_seconds() == -8 * 3600


def test_zones_from_url(monkeypatch):
    class FakeResponse:
        def raise_for_status(self):
            pass

        def json(self):
            return collection(feature({"id": 1, "zone_type": "prohibited"}, [SQUARE_RING]))

    calls = []

    def fake_get(url, timeout, headers):
        calls.append(url)
        return FakeResponse()

    monkeypatch.setattr("safeharbor.data_loader.requests.get", fake_get)
    snap = load_snapshot(zones_path="ignored.geojson", zones_source_url="https://example.org/zones.geojson")
    assert calls == ["https://example.org/zones.geojson"]
    assert snap.zones[0].zone_type is ZoneType.prohibited
    assert snap.sources == ("https://example.org/zones.geojson",)


def test_snapshot_fetch_zones_near(data_dir):
    snap = load_snapshot(zones_path=str(data_dir / "parking_zones.geojson"))
    assert [z.id for z in snap.fetch_zones_near(RV_LOT, 200)] == ["1"]
    assert snap.fetch_zones_near(Coordinate(lat=34.05, lng=-118.24), 1000) == []


def test_snapshot_fetch_services_near(data_dir):
    snap = load_snapshot(
        zones_path=str(data_dir / "parking_zones.geojson"),
        services_path=str(data_dir / "services.json"),
    )
    tenderloin = Coordinate(lat=37.7830, lng=-122.4130)
    food = snap.fetch_services_near(tenderloin, 1000, {"category": "food"})
    assert {s.name for s in food} == {"St. Anthony Foundation", "Glide Memorial Church"}
    assert len(snap.fetch_services_near(tenderloin, 5000)) == 4


def test_with_alert_returns_new_snapshot():
    base = Snapshot()
    alert = new_alert(RV_LOT, "hazard", datetime(2024, 1, 3, 12, tzinfo=ZoneInfo(TZ)))
    updated = base.with_alert(alert)
    assert base.alerts == ()
    assert updated.alerts == (alert,)
    assert updated.fetch_alerts_near(RV_LOT, 10, alert.created_at) == [alert]


@pytest.mark.parametrize(
    "raw, expected",
    [("false", False), ("False", False), ("0", False), (0, False), (False, False),
     ("true", True), ("1", True), (True, True), ("", None)],
)
def test_enforced_flag_strings(raw, expected):
    (zone,) = parse_zones(
        collection(feature({"id": 1, "zone_type": "prohibited", "restrictions": {"enforced": raw}}, [SQUARE_RING]))
    )
    assert zone.restrictions.enforced is expected


def test_unreadable_enforced_flag_skips_feature(caplog):
    with caplog.at_level(logging.WARNING):
        zones = parse_zones(
            collection(feature({"id": 1, "zone_type": "prohibited", "restrictions": {"enforced": "maybe"}}, [SQUARE_RING]))
        )
    assert zones == []
    assert "Skipping parking zone feature 0" in caplog.text


def test_switched_off_zone_from_json_string_props():
    (zone,) = parse_zones(
        collection(
            feature(
                {"id": 1, "zone_type": "prohibited", "restrictions": json.dumps({"enforced": "false"})},
                [SQUARE_RING],
            )
        )
    )
    noon = datetime(2024, 1, 3, 12, tzinfo=ZoneInfo(TZ))
    assert resolve(INSIDE, noon, [zone], TZ).is_legal is None


def test_polygon_holes_are_kept():
    hole = [[-122.4195, 37.7755], [-122.4185, 37.7755], [-122.4185, 37.7765], [-122.4195, 37.7765], [-122.4195, 37.7755]]
    (zone,) = parse_zones(collection(feature({"id": 3, "zone_type": "prohibited"}, [SQUARE_RING, hole])))
    assert len(zone.geometry.holes) == 1

    noon = datetime(2024, 1, 3, 12, tzinfo=ZoneInfo(TZ))
    assert resolve(INSIDE, noon, [zone], TZ).is_legal is None
    in_ring = Coordinate(lat=37.7752, lng=-122.4198)
    assert resolve(in_ring, noon, [zone], TZ).is_legal is False


def test_naive_alert_timestamps_without_city_zone_are_utc(tmp_path, data_dir):
    alerts_path = tmp_path / "alerts.json"
    alerts_path.write_text(json.dumps([
        {"id": "a1", "lat": 37.729, "lng": -122.386, "type": "hazard",
         "created_at": "2024-01-03T10:00:00", "expires_at": "2024-01-04T10:00:00"},
    ]))
    snap = load_snapshot(zones_path=str(data_dir / "parking_zones.geojson"), alerts_path=str(alerts_path))
    (alert,) = snap.alerts
    assert alert.created_at.utcoffset().total_seconds() == 0
    assert alert.expires_at.tzinfo is not None


def test_with_alert_drops_expired_alerts():
    noon = datetime(2024, 1, 3, 12, tzinfo=ZoneInfo(TZ))
    stale = new_alert(RV_LOT, "enforcement", noon - timedelta(hours=3))
    fresh = new_alert(RV_LOT, "hazard", noon - timedelta(hours=1))
    incoming = new_alert(RV_LOT, "safe", noon)

    updated = Snapshot(alerts=(stale, fresh)).with_alert(incoming, now=noon)
    assert updated.alerts == (fresh, incoming)
    assert Snapshot(alerts=(stale,)).with_alert(incoming).alerts == (stale, incoming)
