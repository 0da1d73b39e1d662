import logging
import threading
from datetime import datetime
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from safeharbor.config import settings
from safeharbor.data_loader import Snapshot, load_snapshot
from safeharbor.errors import InvalidCoordinate, InvalidGeometry, SnapshotUnavailable
from safeharbor.models import AlertReport, Coordinate, LegalityVerdict, NearbyQuery, RankedItem
from safeharbor.services import (
    check_legality,
    find_services,
    list_alerts,
    nearest_emergency,
    report_alert,
    zones_near,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Safe Harbor API", version="0.1.0")

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Current snapshot; reports swap in a new one rather than mutating it
snapshot: Optional[Snapshot] = None
# Held across the read-then-replace of `snapshot` when a report comes in
_report_lock = threading.Lock()


@app.on_event("startup")
def load_data():
    global snapshot
    logging.basicConfig(level=settings.log_level.upper())
    try:
        snapshot = load_snapshot(
            zones_path=settings.zones_path,
            alerts_path=settings.alerts_path,
            services_path=settings.services_path,
            emergency_path=settings.emergency_path,
            zones_source_url=settings.zones_source_url,
            timeout_s=settings.source_timeout_s,
            tz=settings.timezone,
        )
        logger.info(
            "Loaded %d zones, %d alerts, %d services, %d emergency resources from %s",
            len(snapshot.zones),
            len(snapshot.alerts),
            len(snapshot.services),
            len(snapshot.emergency),
            ", ".join(snapshot.sources),
        )
    except Exception:
        # Serve 503s until data is fixed instead of refusing to boot
        logger.exception("Error loading snapshot data")


def _current() -> Snapshot:
    if snapshot is None:
        raise SnapshotUnavailable("Parking data not loaded")
    return snapshot


@app.exception_handler(InvalidCoordinate)
@app.exception_handler(InvalidGeometry)
async def _bad_input(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(SnapshotUnavailable)
async def _unavailable(request: Request, exc: SnapshotUnavailable):
    logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def _ranked(rows: list[RankedItem]) -> list[dict]:
    return [
        {**r.item.model_dump(mode="json"), "distance_m": float(r.distance_m)}
        for r in rows
    ]


@app.get("/health")
def health():
    return {
        "status": "ok" if snapshot is not None else "degraded",
        "zones_loaded": len(snapshot.zones) if snapshot else 0,
        "alerts_loaded": len(snapshot.alerts) if snapshot else 0,
    }


@app.get("/parking/check", response_model=LegalityVerdict)
def get_parking_check(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    at: Optional[datetime] = None,
) -> LegalityVerdict:
    """
    Resolve whether parking is allowed at a point.

    - **lat, lng**: Location to check (required)
    - **at**: Optional instant (defaults to now, city time)

    `is_legal` is null when no zone covers the point.
    """
    return check_legality(Coordinate(lat=lat, lng=lng), at, source=_current(), settings=settings)


@app.get("/parking/zones")
def get_parking_zones(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    radius: int = Query(default=1000, ge=100, le=10000),
):
    zones = zones_near(Coordinate(lat=lat, lng=lng), source=_current(), radius_m=radius, settings=settings)
    return {"count": len(zones), "zones": [z.model_dump(mode="json") for z in zones]}


@app.get("/parking/alerts")
def get_parking_alerts(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    radius: int = Query(default=2000, ge=100, le=5000),
):
    rows = list_alerts(Coordinate(lat=lat, lng=lng), source=_current(), radius_m=radius, settings=settings)
    return {"count": len(rows), "alerts": _ranked(rows)}


@app.post("/parking/report", status_code=201)
def post_parking_report(report: AlertReport):
    global snapshot
    alert = report_alert(
        Coordinate(lat=report.lat, lng=report.lng),
        report.type,
        description=report.description,
        reported_by=report.reported_by,
        settings=settings,
    )
    with _report_lock:
        snapshot = _current().with_alert(alert, now=alert.created_at)
    logger.info("Recorded %s report %s", alert.alert_type.value, alert.id)
    return {
        "report_id": alert.id,
        "message": "Report submitted successfully",
        "expires_at": alert.expires_at.isoformat(),
    }


@app.post("/services/nearby")
def post_services_nearby(query: NearbyQuery):
    """
    Services near a point, nearest first.

    - **lat, lng**: Center point coordinates (required)
    - **radius_m**: Search radius in meters (default: 5000)
    - **limit**: Maximum number of results (default: 50)
    - **category**: Optional category filter
    """
    rows = find_services(
        Coordinate(lat=query.lat, lng=query.lng),
        source=_current(),
        radius_m=query.radius_m,
        limit=query.limit,
        category=query.category,
    )
    return {"count": len(rows), "services": _ranked(rows)}


@app.get("/emergency/nearest")
def get_emergency_nearest(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    type: Literal["shelter", "medical", "crisis", "all"] = "all",
):
    current = _current()
    if not current.emergency:
        raise HTTPException(status_code=503, detail="Emergency resource data not loaded")
    rows = nearest_emergency(Coordinate(lat=lat, lng=lng), current.emergency, type)
    return {"location": {"lat": lat, "lng": lng}, "resources": _ranked(rows)}
