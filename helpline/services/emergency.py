"""SOS alerts: creation, simulated dispatch, status changes and reporting."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from helpline.config import get_settings
from helpline.models.emergency_alert import (
    NOTIFICATION_CHANNELS,
    AlertStatus,
    AlertType,
    EmergencyAlert,
)
from helpline.models.health_profile import HealthProfile
from helpline.models.user import User
from helpline.schemas.alert import AlertCancel, AlertStatusUpdate, ContactType, SOSCreate
from helpline.schemas.common import DeviceInfo
from helpline.schemas.health_profile import EmergencyContacts
from helpline.services.alert_store import find_nearby, get_user_alert, location_values, paginate
from helpline.services.beacon import expire_due_beacons
from helpline.utils.audit import actor_for_user, log_audit
from helpline.utils.errors import error_response
from helpline.utils.time import utcnow

logger = logging.getLogger(__name__)

EXPECTED_RESPONSE_TIME = "2-3 minutes"
DEFAULT_CANCEL_REASON = "Alert cancelled by user"
TEST_NOTIFICATION_NOTE = "In production, this would send an actual test message"

ALLOWED_TRANSITIONS: dict[AlertStatus, frozenset[AlertStatus]] = {
    AlertStatus.ACTIVE: frozenset({AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED, AlertStatus.CANCELLED}),
    AlertStatus.ACKNOWLEDGED: frozenset({AlertStatus.RESOLVED, AlertStatus.CANCELLED}),
    AlertStatus.RESOLVED: frozenset(),
    AlertStatus.CANCELLED: frozenset(),
}
DISPATCHABLE_STATUSES = (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED)


def _audit(db: Session, *, actor: str, action: str, alert_id: int, data: dict[str, Any] | None = None) -> None:
    log_audit(db, actor=actor, action=action, entity="EmergencyAlert", entity_id=alert_id, data=data)


def _alert_not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error_response("ALERT_NOT_FOUND", "Emergency alert not found."),
    )


def _no_active_alert() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error_response("ACTIVE_ALERT_NOT_FOUND", "Active emergency alert not found."),
    )


def create_sos(
    db: Session,
    user: User,
    profile: HealthProfile,
    payload: SOSCreate,
    *,
    device: DeviceInfo | None = None,
    now: datetime | None = None,
) -> EmergencyAlert:
    """Record an SOS alert; notifications go out on the next dispatch sweep after the delay."""

    settings = get_settings()
    now = now or utcnow()
    device = device or DeviceInfo()
    alert = EmergencyAlert(
        user_id=user.id,
        health_profile_id=profile.id,
        alert_type=AlertType.SOS,
        severity=payload.severity,
        status=AlertStatus.ACTIVE,
        description=payload.description,
        symptoms=list(payload.symptoms),
        notification_due_at=now + timedelta(seconds=settings.SOS_NOTIFY_DELAY_SECONDS),
        user_agent=device.user_agent,
        platform=device.platform,
        app_version=device.app_version,
        **location_values(payload.location),
    )
    db.add(alert)
    db.flush()
    _audit(
        db,
        actor=actor_for_user(user),
        action="SOS_CREATED",
        alert_id=alert.id,
        data={"severity": payload.severity.value, "coordinates": payload.location.coordinates},
    )
    db.commit()
    db.refresh(alert)
    logger.warning(
        "SOS alert raised",
        extra={"alert_id": alert.id, "user_id": user.id, "severity": alert.severity.value},
    )
    return alert


def _send(alert: EmergencyAlert, channel: str) -> None:
    # Simulated transport: the log line is the delivery.
    logger.info(
        "Emergency notification sent",
        extra={"alert_id": alert.id, "channel": channel, "user_id": alert.user_id},
    )


def dispatch_due_notifications(db: Session, *, reference_time: datetime | None = None) -> int:
    """Notify every channel for SOS alerts whose delay has elapsed.

    Each alert is claimed with a conditional update, so a cancelled or resolved
    alert is never notified and no alert is notified twice.
    """

    now = reference_time or utcnow()
    due_ids = list(
        db.scalars(
            select(EmergencyAlert.id).where(
                EmergencyAlert.notifications_dispatched_at.is_(None),
                EmergencyAlert.notification_due_at.is_not(None),
                EmergencyAlert.notification_due_at <= now,
                EmergencyAlert.status.in_(DISPATCHABLE_STATUSES),
            )
        ).all()
    )
    if not due_ids:
        return 0

    values: dict[str, Any] = {"notifications_dispatched_at": now, "response_time": now}
    for channel in NOTIFICATION_CHANNELS:
        values[f"notified_{channel}"] = True
        attempts = getattr(EmergencyAlert, f"{channel}_attempts")
        values[f"{channel}_attempts"] = attempts + 1

    sent_ids: list[int] = []
    for alert_id in due_ids:
        result = db.execute(
            update(EmergencyAlert)
            .where(
                EmergencyAlert.id == alert_id,
                EmergencyAlert.notifications_dispatched_at.is_(None),
                EmergencyAlert.status.in_(DISPATCHABLE_STATUSES),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            continue
        sent_ids.append(alert_id)
        _audit(
            db,
            actor="system",
            action="SOS_NOTIFICATIONS_DISPATCHED",
            alert_id=alert_id,
            data={"channels": list(NOTIFICATION_CHANNELS)},
        )
    db.commit()
    db.expire_all()

    for alert in db.scalars(select(EmergencyAlert).where(EmergencyAlert.id.in_(sent_ids))):
        for channel in NOTIFICATION_CHANNELS:
            _send(alert, channel)
    if sent_ids:
        logger.info("SOS notifications dispatched", extra={"count": len(sent_ids)})
    return len(sent_ids)


def list_alerts(
    db: Session,
    user: User,
    *,
    status_filter: AlertStatus | None = None,
    page: int,
    limit: int,
) -> tuple[list[EmergencyAlert], int]:
    stmt = select(EmergencyAlert).where(EmergencyAlert.user_id == user.id)
    if status_filter is not None:
        stmt = stmt.where(EmergencyAlert.status == status_filter)
    return paginate(db, stmt, page=page, limit=limit)


def get_alert(db: Session, user: User, alert_id: int) -> EmergencyAlert:
    alert = get_user_alert(db, user.id, alert_id)
    if alert is None:
        raise _alert_not_found()
    return alert


def parse_status(value: str) -> AlertStatus:
    try:
        return AlertStatus(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response(
                "INVALID_STATUS",
                "Invalid status value.",
                {"allowed": [member.value for member in AlertStatus]},
            ),
        ) from exc


def update_status(
    db: Session,
    user: User,
    alert_id: int,
    payload: AlertStatusUpdate,
    *,
    now: datetime | None = None,
) -> EmergencyAlert:
    target = parse_status(payload.status)
    now = now or utcnow()
    expire_due_beacons(db, reference_time=now, user_id=user.id)
    alert = get_alert(db, user, alert_id)
    source = alert.status
    if target not in ALLOWED_TRANSITIONS[source]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response(
                "INVALID_STATUS_TRANSITION",
                f"Cannot change status from {source.value} to {target.value}.",
            ),
        )

    values: dict[str, Any] = {"status": target, "beacon_active": False}
    if target == AlertStatus.RESOLVED:
        values["resolution_time"] = now
        if payload.resolution_notes:
            values["resolution_notes"] = payload.resolution_notes
    if alert.beacon_active:
        values["beacon_end_time"] = now

    result = db.execute(
        update(EmergencyAlert)
        .where(
            EmergencyAlert.id == alert.id,
            EmergencyAlert.user_id == user.id,
            EmergencyAlert.status == source,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        # Status moved underneath us (e.g. the beacon expired); report against the fresh state.
        current = get_alert(db, user, alert_id)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response(
                "INVALID_STATUS_TRANSITION",
                f"Cannot change status from {current.status.value} to {target.value}.",
            ),
        )

    _audit(
        db,
        actor=actor_for_user(user),
        action="ALERT_STATUS_UPDATED",
        alert_id=alert.id,
        data={"from": source.value, "to": target.value},
    )
    db.commit()
    db.refresh(alert)
    logger.info(
        "Alert status updated",
        extra={"alert_id": alert.id, "from_status": source.value, "to_status": target.value},
    )
    return alert


def cancel_alert(
    db: Session,
    user: User,
    alert_id: int,
    payload: AlertCancel,
    *,
    now: datetime | None = None,
) -> EmergencyAlert:
    """Cancel an alert that is still ``Active``; anything else is reported as not found."""

    now = now or utcnow()
    expire_due_beacons(db, reference_time=now, user_id=user.id)
    alert = get_user_alert(db, user.id, alert_id)
    if alert is None:
        raise _no_active_alert()
    values: dict[str, Any] = {
        "status": AlertStatus.CANCELLED,
        "beacon_active": False,
        "resolution_notes": payload.reason or DEFAULT_CANCEL_REASON,
    }
    if alert.beacon_active:
        values["beacon_end_time"] = now

    result = db.execute(
        update(EmergencyAlert)
        .where(
            EmergencyAlert.id == alert_id,
            EmergencyAlert.user_id == user.id,
            EmergencyAlert.status == AlertStatus.ACTIVE,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise _no_active_alert()

    _audit(db, actor=actor_for_user(user), action="ALERT_CANCELLED", alert_id=alert.id)
    db.commit()
    db.refresh(alert)
    logger.info("Alert cancelled", extra={"alert_id": alert.id, "user_id": user.id})
    return alert


def alert_stats(db: Session, user: User) -> dict[str, Any]:
    alerts = db.scalars(select(EmergencyAlert).where(EmergencyAlert.user_id == user.id)).all()

    types: Counter = Counter(alert.alert_type.value for alert in alerts)
    severities: Counter = Counter(alert.severity.value for alert in alerts)
    response_minutes = [
        alert.response_time_minutes for alert in alerts if alert.response_time_minutes is not None
    ]
    average = round(sum(response_minutes) / len(response_minutes), 2) if response_minutes else 0

    return {
        "summary": {
            "totalAlerts": len(alerts),
            "activeAlerts": sum(1 for alert in alerts if alert.status == AlertStatus.ACTIVE),
            "resolvedAlerts": sum(1 for alert in alerts if alert.status == AlertStatus.RESOLVED),
            "averageResponseTime": average,
        },
        "alertTypes": [{"alertType": name, "count": count} for name, count in types.most_common()],
        "severityBreakdown": [
            {"severity": name, "count": count} for name, count in severities.most_common()
        ],
    }


def nearby_alerts(db: Session, *, longitude: float, latitude: float, max_distance_m: float):
    return find_nearby(
        db,
        longitude=longitude,
        latitude=latitude,
        max_distance_m=max_distance_m,
        clauses=(EmergencyAlert.status == AlertStatus.ACTIVE,),
    )


def send_test_notification(user: User, profile: HealthProfile, contact_type: ContactType) -> dict[str, Any]:
    contacts = EmergencyContacts.model_validate(profile.emergency_contacts)
    contact = getattr(contacts, contact_type.value)
    if contact is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response(
                "CONTACT_NOT_FOUND",
                f"{contact_type.value} emergency contact not found",
            ),
        )

    logger.info(
        "Test notification sent",
        extra={"user_id": user.id, "contact_type": contact_type.value},
    )
    return {
        "message": f"Test notification sent to {contact_type.value} emergency contact",
        "contact": {"name": contact.name, "phone": contact.phone, "email": contact.email},
        "note": TEST_NOTIFICATION_NOTE,
    }


__all__ = [
    "ALLOWED_TRANSITIONS",
    "EXPECTED_RESPONSE_TIME",
    "alert_stats",
    "cancel_alert",
    "create_sos",
    "dispatch_due_notifications",
    "get_alert",
    "list_alerts",
    "nearby_alerts",
    "parse_status",
    "send_test_notification",
    "update_status",
]
