"""Emergency alert and beacon schemas."""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field, field_validator

from helpline.models.emergency_alert import (
    NOTIFICATION_CHANNELS,
    AlertSeverity,
    AlertStatus,
    AlertType,
    EmergencyAlert,
    Responder,
)
from helpline.schemas.common import CamelModel, LocationIn, LocationRead
from helpline.utils.time import ensure_utc


class SOSCreate(CamelModel):
    location: LocationIn
    description: str | None = Field(default=None, max_length=1000)
    symptoms: list[str] = Field(default_factory=list)
    severity: AlertSeverity = AlertSeverity.HIGH

    @field_validator("symptoms")
    @classmethod
    def _strip_symptoms(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item and item.strip()]


class AlertStatusUpdate(CamelModel):
    status: str
    resolution_notes: str | None = Field(default=None, max_length=1000)


class AlertCancel(CamelModel):
    reason: str | None = Field(default=None, max_length=1000)


class ContactType(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class NotificationTestRequest(CamelModel):
    contact_type: ContactType = ContactType.PRIMARY


class BeaconActivate(CamelModel):
    location: LocationIn
    duration: int | None = Field(default=None, ge=1)
    description: str | None = Field(default=None, max_length=1000)
    share_with_campus: bool = True


class BeaconExtend(CamelModel):
    additional_duration: int = Field(default=300, ge=1)


class BeaconLocationUpdate(CamelModel):
    location: LocationIn


class AlertRead(CamelModel):
    id: int
    user_id: int
    health_profile_id: int | None
    alert_type: AlertType
    severity: AlertSeverity
    status: AlertStatus
    location: LocationRead
    description: str | None
    symptoms: list[str]
    responded_by: Responder
    response_time: datetime | None
    resolution_time: datetime | None
    resolution_notes: str | None
    notifications_sent: dict[str, bool]
    notification_attempts: dict[str, int]
    beacon_active: bool
    beacon_start_time: datetime | None
    beacon_end_time: datetime | None
    share_with_campus: bool
    response_time_minutes: int | None
    resolution_time_minutes: int | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, alert: EmergencyAlert) -> "AlertRead":
        return cls(
            id=alert.id,
            user_id=alert.user_id,
            health_profile_id=alert.health_profile_id,
            alert_type=alert.alert_type,
            severity=alert.severity,
            status=alert.status,
            location=location_of(alert),
            description=alert.description,
            symptoms=list(alert.symptoms or []),
            responded_by=alert.responded_by,
            response_time=ensure_utc(alert.response_time),
            resolution_time=ensure_utc(alert.resolution_time),
            resolution_notes=alert.resolution_notes,
            notifications_sent={
                channel: bool(getattr(alert, f"notified_{channel}")) for channel in NOTIFICATION_CHANNELS
            },
            notification_attempts={
                channel: int(getattr(alert, f"{channel}_attempts") or 0) for channel in NOTIFICATION_CHANNELS
            },
            beacon_active=alert.beacon_active,
            beacon_start_time=ensure_utc(alert.beacon_start_time),
            beacon_end_time=ensure_utc(alert.beacon_end_time),
            share_with_campus=alert.share_with_campus,
            response_time_minutes=alert.response_time_minutes,
            resolution_time_minutes=alert.resolution_time_minutes,
            created_at=ensure_utc(alert.created_at),
            updated_at=ensure_utc(alert.updated_at),
        )


def location_of(alert: EmergencyAlert) -> LocationRead:
    return LocationRead(
        coordinates=alert.coordinates,
        address=alert.address,
        campus_location=alert.campus_location,
        building=alert.building,
        room=alert.room,
        accuracy=alert.accuracy,
    )


class NearbyAlertRead(AlertRead):
    distance_m: float
    owner: dict[str, str]
