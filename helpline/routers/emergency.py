"""SOS and emergency alert endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from helpline.db import get_db
from helpline.models.health_profile import HealthProfile
from helpline.models.user import User
from helpline.routers.beacon import coordinates_query, serialize_alert, serialize_nearby
from helpline.schemas.alert import AlertCancel, AlertStatusUpdate, NotificationTestRequest, SOSCreate
from helpline.schemas.common import DeviceInfo, Pagination
from helpline.security import (
    DAY,
    HOUR,
    get_current_user,
    log_user_action,
    rate_limit,
    require_health_profile,
    require_verified_user,
)
from helpline.services import emergency as emergency_service

router = APIRouter(prefix="/emergency", tags=["emergency"])

sos_gate = log_user_action(
    "sos_alert_sent",
    after=rate_limit("sos_alert", 3, HOUR, after=require_health_profile),
)
test_notification_gate = log_user_action(
    "test_notification_sent",
    after=rate_limit("test_notification", 2, DAY, after=require_health_profile),
)


@router.post("/sos", status_code=status.HTTP_201_CREATED)
def send_sos(
    payload: SOSCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    profile: HealthProfile = Depends(sos_gate),
) -> dict[str, object]:
    alert = emergency_service.create_sos(
        db, user, profile, payload, device=DeviceInfo.from_headers(request.headers)
    )
    return {
        "message": "SOS alert sent successfully",
        "alertId": alert.id,
        "status": alert.status.value,
        "responseTime": emergency_service.EXPECTED_RESPONSE_TIME,
    }


@router.get("/alerts")
def list_alerts(
    user: User = Depends(require_verified_user),
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=10, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    parsed = emergency_service.parse_status(status_filter) if status_filter else None
    alerts, total = emergency_service.list_alerts(db, user, status_filter=parsed, page=page, limit=limit)
    return {
        "alerts": [serialize_alert(alert) for alert in alerts],
        "pagination": Pagination.build(page=page, limit=limit, total_items=total).model_dump(),
    }


@router.get("/alerts/{alert_id}")
def get_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_verified_user),
) -> dict[str, object]:
    return serialize_alert(emergency_service.get_alert(db, user, alert_id))


@router.put("/alerts/{alert_id}/status")
def update_alert_status(
    alert_id: int,
    payload: AlertStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(log_user_action("emergency_alert_status_update", after=require_verified_user)),
) -> dict[str, object]:
    alert = emergency_service.update_status(db, user, alert_id, payload)
    return {"message": "Emergency alert status updated successfully", "alert": serialize_alert(alert)}


@router.put("/alerts/{alert_id}/cancel")
def cancel_alert(
    alert_id: int,
    payload: AlertCancel | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(log_user_action("emergency_alert_cancelled", after=require_verified_user)),
) -> dict[str, object]:
    alert = emergency_service.cancel_alert(db, user, alert_id, payload or AlertCancel())
    return {"message": "Emergency alert cancelled successfully", "alert": serialize_alert(alert)}


@router.get("/stats")
def emergency_stats(
    db: Session = Depends(get_db),
    user: User = Depends(require_verified_user),
) -> dict[str, object]:
    return emergency_service.alert_stats(db, user)


@router.get("/nearby")
def nearby_alerts(
    user: User = Depends(require_verified_user),
    coordinates: list[float] = Depends(coordinates_query),
    max_distance: float = Query(default=1000, alias="maxDistance", gt=0),
    db: Session = Depends(get_db),
) -> dict[str, object]:
    matches = emergency_service.nearby_alerts(
        db, longitude=coordinates[0], latitude=coordinates[1], max_distance_m=max_distance
    )
    return {
        "nearbyAlerts": serialize_nearby(matches),
        "searchRadius": max_distance,
        "coordinates": coordinates,
    }


@router.post("/test-notification")
def test_notification(
    payload: NotificationTestRequest | None = None,
    user: User = Depends(get_current_user),
    profile: HealthProfile = Depends(test_notification_gate),
) -> dict[str, object]:
    payload = payload or NotificationTestRequest()
    return emergency_service.send_test_notification(user, profile, payload.contact_type)
