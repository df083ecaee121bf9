"""Campus beacon endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from helpline.db import get_db
from helpline.models.emergency_alert import EmergencyAlert
from helpline.models.health_profile import HealthProfile
from helpline.models.user import User
from helpline.schemas.alert import (
    AlertRead,
    BeaconActivate,
    BeaconExtend,
    BeaconLocationUpdate,
    NearbyAlertRead,
    location_of,
)
from helpline.schemas.common import DeviceInfo, Pagination, parse_coordinates_param
from helpline.security import (
    HOUR,
    get_current_user,
    log_user_action,
    rate_limit,
    require_health_profile,
    require_verified_user,
)
from helpline.services import beacon as beacon_service
from helpline.services.alert_store import owner_summary
from helpline.utils.errors import http_error
from helpline.utils.time import ensure_utc, isoformat_z, seconds_until, utcnow

router = APIRouter(prefix="/beacon", tags=["beacon"])

activation_gate = log_user_action(
    "beacon_activated",
    after=rate_limit("beacon_activation", 5, HOUR, after=require_health_profile),
)
extension_gate = log_user_action("beacon_extended", after=rate_limit("beacon_extension", 3, HOUR))


def coordinates_query(coordinates: list[str] | None = Query(default=None)) -> list[float]:
    """``[lon, lat]`` from the query string; shared with the emergency router."""

    if not coordinates:
        raise http_error(
            status.HTTP_400_BAD_REQUEST,
            "INVALID_COORDINATES",
            "Valid coordinates array [longitude, latitude] is required.",
        )
    try:
        return parse_coordinates_param(coordinates)
    except ValueError as exc:
        raise http_error(
            status.HTTP_400_BAD_REQUEST,
            "INVALID_COORDINATES",
            "Valid coordinates array [longitude, latitude] is required.",
            details=str(exc),
        ) from exc


def serialize_alert(alert: EmergencyAlert) -> dict[str, Any]:
    return AlertRead.from_model(alert).model_dump(mode="json", by_alias=True)


def serialize_nearby(matches) -> list[dict[str, Any]]:
    return [
        NearbyAlertRead(
            **AlertRead.from_model(alert).model_dump(),
            distance_m=round(distance, 1),
            owner=owner_summary(owner),
        ).model_dump(mode="json", by_alias=True)
        for alert, owner, distance in matches
    ]


@router.post("/activate", status_code=status.HTTP_201_CREATED)
def activate_beacon(
    payload: BeaconActivate,
    request: Request,
    db: Session = Depends(get_db),
    profile: HealthProfile = Depends(activation_gate),
    user: User = Depends(get_current_user),
) -> dict[str, object]:
    beacon = beacon_service.activate_beacon(
        db, user, profile, payload, device=DeviceInfo.from_headers(request.headers)
    )
    lifetime = ensure_utc(beacon.beacon_end_time) - ensure_utc(beacon.beacon_start_time)
    duration = round(lifetime.total_seconds())
    return {
        "message": "Campus beacon activated successfully",
        "alertId": beacon.id,
        "beaconActive": True,
        "duration": f"{duration} seconds",
        "expiresAt": isoformat_z(beacon.beacon_end_time),
    }


@router.put("/deactivate")
def deactivate_beacon(
    db: Session = Depends(get_db),
    user: User = Depends(log_user_action("beacon_deactivated", after=require_verified_user)),
) -> dict[str, object]:
    beacon = beacon_service.deactivate_beacon(db, user)
    return {
        "message": "Campus beacon deactivated successfully",
        "beaconActive": False,
        "deactivatedAt": isoformat_z(beacon.beacon_end_time),
    }


@router.get("/status")
def beacon_status(
    db: Session = Depends(get_db),
    user: User = Depends(require_verified_user),
) -> dict[str, object]:
    now = utcnow()
    beacon = beacon_service.beacon_status(db, user, now=now)
    if beacon is None:
        return {"beaconActive": False, "message": "No active beacon"}
    return {
        "beaconActive": True,
        "alertId": beacon.id,
        "location": location_of(beacon).model_dump(mode="json", by_alias=True),
        "startTime": isoformat_z(beacon.beacon_start_time),
        "endTime": isoformat_z(beacon.beacon_end_time),
        "timeRemaining": seconds_until(beacon.beacon_end_time, now),
        "shareWithCampus": beacon.share_with_campus,
        "description": beacon.description,
    }


@router.get("/nearby")
def nearby_beacons(
    user: User = Depends(require_verified_user),
    coordinates: list[float] = Depends(coordinates_query),
    max_distance: float = Query(default=2000, alias="maxDistance", gt=0),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    matches = beacon_service.nearby_beacons(
        db, longitude=coordinates[0], latitude=coordinates[1], max_distance_m=max_distance
    )
    return {
        "nearbyBeacons": serialize_nearby(matches),
        "searchRadius": max_distance,
        "coordinates": coordinates,
        "totalActive": len(matches),
    }


@router.get("/history")
def beacon_history(
    limit: int = Query(default=20, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(require_verified_user),
) -> dict[str, object]:
    beacons, total = beacon_service.beacon_history(db, user, page=page, limit=limit)
    return {
        "beacons": [serialize_alert(beacon) for beacon in beacons],
        "pagination": Pagination.build(page=page, limit=limit, total_items=total).model_dump(),
    }


@router.put("/location")
def update_beacon_location(
    payload: BeaconLocationUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(log_user_action("beacon_location_updated", after=require_verified_user)),
) -> dict[str, object]:
    beacon = beacon_service.update_beacon_location(db, user, payload)
    return {
        "message": "Beacon location updated successfully",
        "location": location_of(beacon).model_dump(mode="json", by_alias=True),
    }


@router.put("/extend")
def extend_beacon(
    payload: BeaconExtend,
    db: Session = Depends(get_db),
    user: User = Depends(extension_gate),
) -> dict[str, object]:
    beacon = beacon_service.extend_beacon(db, user, payload)
    return {
        "message": "Beacon duration extended successfully",
        "newEndTime": isoformat_z(beacon.beacon_end_time),
        "additionalDuration": f"{payload.additional_duration} seconds",
    }


@router.get("/stats")
def beacon_stats(
    db: Session = Depends(get_db),
    user: User = Depends(require_verified_user),
) -> dict[str, object]:
    return beacon_service.beacon_stats(db, user)
