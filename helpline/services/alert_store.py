"""Queries shared by the beacon and SOS controllers over ``emergency_alerts``."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from helpline.models.emergency_alert import AlertStatus, EmergencyAlert
from helpline.models.user import User
from helpline.schemas.common import LocationIn
from helpline.utils.geo import bounding_box, haversine_m


def live_beacon_clauses() -> tuple[Any, ...]:
    return (EmergencyAlert.beacon_active.is_(True), EmergencyAlert.status == AlertStatus.ACTIVE)


def location_values(location: LocationIn) -> dict[str, Any]:
    """Column values for a validated ``[lon, lat]`` location."""

    lon, lat = location.coordinates
    return {
        "longitude": lon,
        "latitude": lat,
        "address": location.address,
        "campus_location": location.campus_location,
        "building": location.building,
        "room": location.room,
        "accuracy": location.accuracy,
    }


def get_user_alert(db: Session, user_id: int, alert_id: int) -> EmergencyAlert | None:
    stmt = (
        select(EmergencyAlert)
        .where(EmergencyAlert.id == alert_id, EmergencyAlert.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return db.scalars(stmt).first()


def paginate(db: Session, stmt, *, page: int, limit: int) -> tuple[list[EmergencyAlert], int]:
    """Return one page of ``stmt`` (newest first) and the total row count."""

    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(
        stmt.order_by(EmergencyAlert.created_at.desc(), EmergencyAlert.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    ).all()
    return list(rows), total


def find_nearby(
    db: Session,
    *,
    longitude: float,
    latitude: float,
    max_distance_m: float,
    clauses: Sequence[Any],
) -> list[tuple[EmergencyAlert, User, float]]:
    """Alerts matching ``clauses`` within ``max_distance_m`` meters, nearest first.

    A bounding box narrows the rows in SQL; the great-circle distance decides.
    """

    min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, max_distance_m)
    stmt = (
        select(EmergencyAlert, User)
        .join(User, User.id == EmergencyAlert.user_id)
        .where(*clauses)
        .where(EmergencyAlert.latitude.between(min_lat, max_lat))
        .where(EmergencyAlert.longitude.between(min_lon, max_lon))
    )
    matches: list[tuple[EmergencyAlert, User, float]] = []
    for alert, owner in db.execute(stmt).all():
        distance = haversine_m(latitude, longitude, alert.latitude, alert.longitude)
        if distance <= max_distance_m:
            matches.append((alert, owner, distance))
    matches.sort(key=lambda item: (item[2], item[0].id))
    return matches


def owner_summary(owner: User) -> dict[str, str]:
    return {"firstName": owner.first_name, "lastName": owner.last_name}


def not_expired(now: datetime) -> Any:
    return EmergencyAlert.beacon_end_time > now


__all__ = [
    "find_nearby",
    "get_user_alert",
    "live_beacon_clauses",
    "location_values",
    "not_expired",
    "owner_summary",
    "paginate",
]
