"""Schema package exports."""
from .alert import (
    AlertCancel,
    AlertRead,
    AlertStatusUpdate,
    BeaconActivate,
    BeaconExtend,
    BeaconLocationUpdate,
    SOSCreate,
    NotificationTestRequest,
)
from .common import CamelModel, DeviceInfo, LocationIn, LocationRead, Pagination
from .health_profile import (
    EmergencyContacts,
    HealthProfileCreate,
    HealthProfileRead,
    HealthProfileUpdate,
    MedicalConditionCreate,
    MedicalConditionUpdate,
)
from .user import (
    AuthTokenRead,
    EmailVerification,
    ForgotPassword,
    PasswordChange,
    UserLogin,
    UserProfileUpdate,
    UserRead,
    UserRegister,
)

__all__ = [
    "AlertCancel",
    "AlertRead",
    "AlertStatusUpdate",
    "AuthTokenRead",
    "BeaconActivate",
    "BeaconExtend",
    "BeaconLocationUpdate",
    "CamelModel",
    "DeviceInfo",
    "EmailVerification",
    "EmergencyContacts",
    "ForgotPassword",
    "HealthProfileCreate",
    "HealthProfileRead",
    "HealthProfileUpdate",
    "LocationIn",
    "LocationRead",
    "MedicalConditionCreate",
    "MedicalConditionUpdate",
    "Pagination",
    "PasswordChange",
    "SOSCreate",
    "NotificationTestRequest",
    "UserLogin",
    "UserProfileUpdate",
    "UserRead",
    "UserRegister",
]
