"""ORM models package."""
from .audit import AuditLog
from .base import Base
from .campus import CampusLocation, Residence
from .emergency_alert import AlertSeverity, AlertStatus, AlertType, EmergencyAlert, Responder
from .health_profile import BloodType, HealthProfile
from .rate_limit import RateLimitHit
from .scheduler_lock import SchedulerLock
from .user import AcademicYear, User

__all__ = [
    "AcademicYear",
    "AlertSeverity",
    "AlertStatus",
    "AlertType",
    "AuditLog",
    "Base",
    "BloodType",
    "CampusLocation",
    "EmergencyAlert",
    "HealthProfile",
    "RateLimitHit",
    "Residence",
    "Responder",
    "SchedulerLock",
    "User",
]
