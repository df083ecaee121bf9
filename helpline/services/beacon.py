"""Campus beacon lifecycle.

A beacon is an ``EmergencyAlert`` of type ``Beacon Activation`` that stays live
until ``beacon_end_time``. Expiry is not scheduled per beacon: any live beacon
whose end time has passed is resolved by :func:`expire_due_beacons`, which the
scheduler runs periodically and the request paths run for the caller first.
Every write is a conditional update on the live state, so a beacon that was
stopped by hand is never overwritten by the expiry sweep.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from helpline.config import get_settings
from helpline.models.emergency_alert import AlertSeverity, AlertStatus, AlertType, EmergencyAlert
from helpline.models.health_profile import HealthProfile
from helpline.models.user import User
from helpline.schemas.alert import BeaconActivate, BeaconExtend, BeaconLocationUpdate
from helpline.schemas.common import DeviceInfo
from helpline.services.alert_store import (
    find_nearby,
    live_beacon_clauses,
    location_values,
    not_expired,
    paginate,
)
from helpline.utils.audit import actor_for_user, log_audit
from helpline.utils.errors import error_response
from helpline.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Campus safety beacon activated"
AUTO_EXPIRY_NOTE = "Beacon automatically deactivated after time limit"
MANUAL_STOP_NOTE = "Beacon manually deactivated by user"
EXTEND_MAX_RETRIES = 3


def _audit(db: Session, *, actor: str, action: str, alert_id: int, data: dict[str, Any] | None = None) -> None:
    log_audit(db, actor=actor, action=action, entity="EmergencyAlert", entity_id=alert_id, data=data)


def _no_active_beacon() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error_response("NO_ACTIVE_BEACON", "No active beacon found."),
    )


def _invalid_duration(max_seconds: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=error_response("INVALID_DURATION", f"Beacon duration cannot exceed {max_seconds} seconds."),
    )


def _already_active() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=error_response(
            "BEACON_ALREADY_ACTIVE",
            "You already have an active beacon. Please deactivate it first.",
        ),
    )


def get_active_beacon(db: Session, user_id: int) -> EmergencyAlert | None:
    stmt = (
        select(EmergencyAlert)
        .where(EmergencyAlert.user_id == user_id, *live_beacon_clauses())
        .execution_options(populate_existing=True)
    )
    return db.scalars(stmt).first()


def expire_due_beacons(
    db: Session,
    *,
    reference_time: datetime | None = None,
    user_id: int | None = None,
) -> int:
    """Resolve live beacons whose end time has passed; return how many changed."""

    now = reference_time or utcnow()
    due = select(EmergencyAlert.id).where(*live_beacon_clauses(), EmergencyAlert.beacon_end_time <= now)
    if user_id is not None:
        due = due.where(EmergencyAlert.user_id == user_id)
    due_ids = list(db.scalars(due).all())
    if not due_ids:
        return 0

    expired = 0
    for alert_id in due_ids:
        result = db.execute(
            update(EmergencyAlert)
            .where(
                EmergencyAlert.id == alert_id,
                *live_beacon_clauses(),
                EmergencyAlert.beacon_end_time <= now,
            )
            .values(
                status=AlertStatus.RESOLVED,
                beacon_active=False,
                resolution_time=now,
                resolution_notes=AUTO_EXPIRY_NOTE,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            expired += 1
            _audit(db, actor="system", action="BEACON_EXPIRED", alert_id=alert_id)
    db.commit()
    db.expire_all()
    if expired:
        logger.info("Expired beacons", extra={"count": expired, "user_id": user_id})
    return expired


def activate_beacon(
    db: Session,
    user: User,
    profile: HealthProfile,
    payload: BeaconActivate,
    *,
    device: DeviceInfo | None = None,
    now: datetime | None = None,
) -> EmergencyAlert:
    settings = get_settings()
    now = now or utcnow()
    duration = payload.duration or settings.BEACON_DEFAULT_DURATION_SECONDS
    if duration > settings.BEACON_MAX_DURATION_SECONDS:
        raise _invalid_duration(settings.BEACON_MAX_DURATION_SECONDS)

    expire_due_beacons(db, reference_time=now, user_id=user.id)
    if get_active_beacon(db, user.id) is not None:
        raise _already_active()

    device = device or DeviceInfo()
    beacon = EmergencyAlert(
        user_id=user.id,
        health_profile_id=profile.id,
        alert_type=AlertType.BEACON_ACTIVATION,
        severity=AlertSeverity.LOW,
        status=AlertStatus.ACTIVE,
        description=payload.description or DEFAULT_DESCRIPTION,
        symptoms=[],
        beacon_active=True,
        beacon_start_time=now,
        beacon_end_time=now + timedelta(seconds=duration),
        share_with_campus=payload.share_with_campus,
        user_agent=device.user_agent,
        platform=device.platform,
        app_version=device.app_version,
        **location_values(payload.location),
    )
    try:
        with db.begin_nested():
            db.add(beacon)
    except IntegrityError as exc:
        # A concurrent activation won the partial unique index.
        raise _already_active() from exc

    _audit(
        db,
        actor=actor_for_user(user),
        action="BEACON_ACTIVATED",
        alert_id=beacon.id,
        data={"duration": duration, "coordinates": payload.location.coordinates},
    )
    db.commit()
    db.refresh(beacon)
    logger.info("Beacon activated", extra={"alert_id": beacon.id, "user_id": user.id, "duration": duration})
    return beacon


def deactivate_beacon(db: Session, user: User, *, now: datetime | None = None) -> EmergencyAlert:
    now = now or utcnow()
    expire_due_beacons(db, reference_time=now, user_id=user.id)
    beacon = get_active_beacon(db, user.id)
    if beacon is None:
        raise _no_active_beacon()

    result = db.execute(
        update(EmergencyAlert)
        .where(EmergencyAlert.id == beacon.id, *live_beacon_clauses())
        .values(
            status=AlertStatus.RESOLVED,
            beacon_active=False,
            beacon_end_time=now,
            resolution_time=now,
            resolution_notes=MANUAL_STOP_NOTE,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        db.rollback()
        raise _no_active_beacon()

    _audit(db, actor=actor_for_user(user), action="BEACON_DEACTIVATED", alert_id=beacon.id)
    db.commit()
    db.refresh(beacon)
    logger.info("Beacon deactivated", extra={"alert_id": beacon.id, "user_id": user.id})
    return beacon


def extend_beacon(
    db: Session, user: User, payload: BeaconExtend, *, now: datetime | None = None
) -> EmergencyAlert:
    """Push the live beacon's end time back by exactly ``additional_duration`` seconds.

    The write only lands if the end time is still the one that was read. The
    whole session, start to new end, stays within ``BEACON_MAX_DURATION_SECONDS``.
    """

    max_seconds = get_settings().BEACON_MAX_DURATION_SECONDS
    now = now or utcnow()
    expire_due_beacons(db, reference_time=now, user_id=user.id)
    for attempt in range(1, EXTEND_MAX_RETRIES + 1):
        beacon = get_active_beacon(db, user.id)
        if beacon is None:
            raise _no_active_beacon()

        previous_end = beacon.beacon_end_time
        elapsed = (ensure_utc(previous_end) - ensure_utc(beacon.beacon_start_time)).total_seconds()
        if elapsed + payload.additional_duration > max_seconds:
            raise _invalid_duration(max_seconds)
        new_end = ensure_utc(previous_end) + timedelta(seconds=payload.additional_duration)
        result = db.execute(
            update(EmergencyAlert)
            .where(
                EmergencyAlert.id == beacon.id,
                *live_beacon_clauses(),
                EmergencyAlert.beacon_end_time == previous_end,
            )
            .values(beacon_end_time=new_end)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            _audit(
                db,
                actor=actor_for_user(user),
                action="BEACON_EXTENDED",
                alert_id=beacon.id,
                data={"additional_duration": payload.additional_duration, "new_end_time": new_end.isoformat()},
            )
            db.commit()
            db.refresh(beacon)
            logger.info(
                "Beacon extended",
                extra={"alert_id": beacon.id, "additional_duration": payload.additional_duration},
            )
            return beacon
        logger.warning("Beacon extension lost a race", extra={"alert_id": beacon.id, "attempt": attempt})

    db.rollback()
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=error_response("BEACON_CONFLICT", "Beacon changed while extending. Please retry."),
    )


def update_beacon_location(
    db: Session, user: User, payload: BeaconLocationUpdate, *, now: datetime | None = None
) -> EmergencyAlert:
    now = now or utcnow()
    expire_due_beacons(db, reference_time=now, user_id=user.id)
    beacon = get_active_beacon(db, user.id)
    if beacon is None:
        raise _no_active_beacon()

    result = db.execute(
        update(EmergencyAlert)
        .where(EmergencyAlert.id == beacon.id, *live_beacon_clauses())
        .values(**location_values(payload.location))
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        db.rollback()
        raise _no_active_beacon()

    _audit(
        db,
        actor=actor_for_user(user),
        action="BEACON_LOCATION_UPDATED",
        alert_id=beacon.id,
        data={"coordinates": payload.location.coordinates},
    )
    db.commit()
    db.refresh(beacon)
    return beacon


def beacon_status(db: Session, user: User, *, now: datetime | None = None) -> EmergencyAlert | None:
    """Return the caller's live beacon after applying any overdue expiry."""

    now = now or utcnow()
    expire_due_beacons(db, reference_time=now, user_id=user.id)
    return get_active_beacon(db, user.id)


def nearby_beacons(
    db: Session,
    *,
    longitude: float,
    latitude: float,
    max_distance_m: float,
    now: datetime | None = None,
):
    now = now or utcnow()
    return find_nearby(
        db,
        longitude=longitude,
        latitude=latitude,
        max_distance_m=max_distance_m,
        clauses=(*live_beacon_clauses(), EmergencyAlert.share_with_campus.is_(True), not_expired(now)),
    )


def beacon_history(db: Session, user: User, *, page: int, limit: int) -> tuple[list[EmergencyAlert], int]:
    stmt = select(EmergencyAlert).where(
        EmergencyAlert.user_id == user.id,
        EmergencyAlert.alert_type == AlertType.BEACON_ACTIVATION,
    )
    return paginate(db, stmt, page=page, limit=limit)


def beacon_stats(db: Session, user: User, *, now: datetime | None = None) -> dict[str, Any]:
    expire_due_beacons(db, reference_time=now or utcnow(), user_id=user.id)
    rows = db.execute(
        select(
            EmergencyAlert.beacon_active,
            EmergencyAlert.beacon_start_time,
            EmergencyAlert.beacon_end_time,
            EmergencyAlert.campus_location,
        ).where(
            EmergencyAlert.user_id == user.id,
            EmergencyAlert.alert_type == AlertType.BEACON_ACTIVATION,
        )
    ).all()

    total_duration = 0.0
    locations: Counter = Counter()
    active = 0
    for beacon_active, start, end, campus_location in rows:
        if beacon_active:
            active += 1
        if start is not None and end is not None:
            total_duration += (ensure_utc(end) - ensure_utc(start)).total_seconds()
        locations[campus_location.value if campus_location else None] += 1

    total = len(rows)
    return {
        "summary": {
            "totalBeacons": total,
            "activeBeacons": active,
            "totalDuration": round(total_duration),
        },
        "campusLocations": [
            {"campusLocation": location, "count": count} for location, count in locations.most_common()
        ],
        "averageDuration": round(total_duration / total) if total else 0,
    }


__all__ = [
    "AUTO_EXPIRY_NOTE",
    "MANUAL_STOP_NOTE",
    "activate_beacon",
    "beacon_history",
    "beacon_stats",
    "beacon_status",
    "deactivate_beacon",
    "expire_due_beacons",
    "extend_beacon",
    "get_active_beacon",
    "nearby_beacons",
    "update_beacon_location",
]
