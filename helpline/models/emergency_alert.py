"""Emergency alert / campus beacon model."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, enum_column
from .campus import CampusLocation


class AlertType(str, Enum):
    SOS = "SOS"
    MEDICAL_EMERGENCY = "Medical Emergency"
    SAFETY_CONCERN = "Safety Concern"
    LOCATION_SHARE = "Location Share"
    BEACON_ACTIVATION = "Beacon Activation"


class AlertSeverity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class AlertStatus(str, Enum):
    ACTIVE = "Active"
    ACKNOWLEDGED = "Acknowledged"
    RESOLVED = "Resolved"
    CANCELLED = "Cancelled"


class Responder(str, Enum):
    EMERGENCY_SERVICES = "Emergency Services"
    CAMPUS_POLICE = "Campus Police"
    STUDENT_HEALTH = "Student Health"
    EMERGENCY_CONTACT = "Emergency Contact"
    OTHER = "Other"


NOTIFICATION_CHANNELS = ("emergency_services", "campus_police", "primary_contact", "secondary_contact")


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _minutes_between(start: datetime | None, end: datetime | None) -> int | None:
    start, end = _as_utc(start), _as_utc(end)
    if start is None or end is None:
        return None
    return round((end - start).total_seconds() / 60)


class EmergencyAlert(Base):
    """An SOS event or a campus beacon session."""

    __tablename__ = "emergency_alerts"
    __table_args__ = (
        Index("ix_emergency_alerts_status_severity", "status", "severity"),
        Index("ix_emergency_alerts_type_created", "alert_type", "created_at"),
        Index("ix_emergency_alerts_beacon_status", "beacon_active", "status"),
        Index("ix_emergency_alerts_lat_lon", "latitude", "longitude"),
        # One live beacon per user.
        Index(
            "uq_emergency_alerts_active_beacon",
            "user_id",
            unique=True,
            sqlite_where=text("beacon_active"),
            postgresql_where=text("beacon_active"),
        ),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    health_profile_id: Mapped[int | None] = mapped_column(
        ForeignKey("health_profiles.id", ondelete="SET NULL"), nullable=True
    )

    alert_type: Mapped[AlertType] = mapped_column(
        enum_column(AlertType, "alert_type"), nullable=False, default=AlertType.SOS
    )
    severity: Mapped[AlertSeverity] = mapped_column(
        enum_column(AlertSeverity, "alert_severity"), nullable=False, default=AlertSeverity.HIGH
    )
    status: Mapped[AlertStatus] = mapped_column(
        enum_column(AlertStatus, "alert_status"), nullable=False, default=AlertStatus.ACTIVE
    )

    # Location ([longitude, latitude] on the wire)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    campus_location: Mapped[CampusLocation | None] = mapped_column(
        enum_column(CampusLocation, "campus_location"), nullable=True
    )
    building: Mapped[str | None] = mapped_column(String(120), nullable=True)
    room: Mapped[str | None] = mapped_column(String(60), nullable=True)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    symptoms: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    responded_by: Mapped[Responder] = mapped_column(
        enum_column(Responder, "responder"), nullable=False, default=Responder.EMERGENCY_SERVICES
    )
    response_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Notification bookkeeping
    notified_emergency_services: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notified_campus_police: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notified_primary_contact: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notified_secondary_contact: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    emergency_services_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    campus_police_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    primary_contact_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    secondary_contact_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notification_due_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    notifications_dispatched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Beacon
    beacon_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    beacon_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    beacon_end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    share_with_campus: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Device metadata
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(64), nullable=True)
    app_version: Mapped[str] = mapped_column(String(32), nullable=False, default="1.0.0")

    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="alerts")

    @property
    def coordinates(self) -> list[float]:
        return [self.longitude, self.latitude]

    @property
    def response_time_minutes(self) -> int | None:
        return _minutes_between(self.created_at, self.response_time)

    @property
    def resolution_time_minutes(self) -> int | None:
        return _minutes_between(self.created_at, self.resolution_time)

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE
