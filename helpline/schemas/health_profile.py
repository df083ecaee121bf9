"""Health profile schemas."""
from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum

from pydantic import Field, field_validator

from helpline.models.campus import CampusLocation, Residence
from helpline.models.health_profile import BloodType
from helpline.schemas.common import CamelModel

PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_AGE = 16
MAX_AGE = 100


class AllergySeverity(str, Enum):
    MILD = "Mild"
    MODERATE = "Moderate"
    SEVERE = "Severe"
    LIFE_THREATENING = "Life-threatening"


class EmergencyContact(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    relationship: str = Field(min_length=1, max_length=60)
    phone: str
    email: str | None = None
    is_notified: bool = False
    last_notified: datetime | None = None

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        cleaned = value.strip()
        if not PHONE_RE.match(cleaned):
            raise ValueError("phone must be digits with an optional leading +")
        return cleaned

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        cleaned = value.strip().lower()
        if not EMAIL_RE.match(cleaned):
            raise ValueError("invalid email address")
        return cleaned


class EmergencyContacts(CamelModel):
    primary: EmergencyContact
    secondary: EmergencyContact | None = None


class Allergy(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    severity: AllergySeverity = AllergySeverity.MODERATE
    reaction: str | None = None
    medications: list[str] = Field(default_factory=list)


class Medication(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    dosage: str | None = None
    frequency: str | None = None
    purpose: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class MedicalConditionCreate(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    diagnosis_date: date | None = None
    is_active: bool = True
    symptoms: list[str] = Field(default_factory=list)
    treatments: list[str] = Field(default_factory=list)


class MedicalCondition(MedicalConditionCreate):
    id: str


def age_on(birth: date, today: date) -> int:
    years = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        years -= 1
    return years


class HealthProfileBase(CamelModel):
    date_of_birth: date
    age: int | None = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    blood_type: BloodType
    height_cm: float | None = Field(default=None, ge=100, le=250, alias="height")
    weight_kg: float | None = Field(default=None, ge=30, le=300, alias="weight")
    allergies: list[Allergy] = Field(default_factory=list)
    medications: list[Medication] = Field(default_factory=list)
    medical_conditions: list[MedicalConditionCreate] = Field(default_factory=list)
    campus_location: CampusLocation
    residence: Residence
    emergency_contacts: EmergencyContacts
    emergency_notes: str | None = Field(default=None, max_length=500)
    insurance_provider: str | None = Field(default=None, max_length=120)
    insurance_policy_number: str | None = Field(default=None, max_length=64)
    insurance_group_number: str | None = Field(default=None, max_length=64)
    share_with_emergency_services: bool = True
    share_with_campus_health: bool = True

    @field_validator("date_of_birth")
    @classmethod
    def _check_birth_date(cls, value: date) -> date:
        age = age_on(value, date.today())
        if not MIN_AGE <= age <= MAX_AGE:
            raise ValueError(f"age derived from dateOfBirth must be between {MIN_AGE} and {MAX_AGE}")
        return value


class HealthProfileCreate(HealthProfileBase):
    """Payload to create a health profile; ``age`` is derived from ``dateOfBirth``."""


class HealthProfileUpdate(CamelModel):
    """Partial update; merged onto the stored profile and re-validated as a whole."""

    date_of_birth: date | None = None
    blood_type: BloodType | None = None
    height_cm: float | None = Field(default=None, alias="height")
    weight_kg: float | None = Field(default=None, alias="weight")
    allergies: list[Allergy] | None = None
    medications: list[Medication] | None = None
    campus_location: CampusLocation | None = None
    residence: Residence | None = None
    emergency_contacts: EmergencyContacts | None = None
    emergency_notes: str | None = None
    insurance_provider: str | None = None
    insurance_policy_number: str | None = None
    insurance_group_number: str | None = None
    share_with_emergency_services: bool | None = None
    share_with_campus_health: bool | None = None
    last_reviewed: datetime | None = None


class HealthProfileRead(HealthProfileBase):
    id: int
    user_id: int
    age: int
    bmi: float | None = None
    medical_conditions: list[MedicalCondition] = Field(default_factory=list)
    last_updated: datetime | None = None
    last_reviewed: datetime | None = None
    data_version: str
    created_at: datetime
    updated_at: datetime

    @field_validator("date_of_birth")
    @classmethod
    def _check_birth_date(cls, value: date) -> date:
        return value


class MedicalConditionUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    diagnosis_date: date | None = None
    is_active: bool | None = None
    symptoms: list[str] | None = None
    treatments: list[str] | None = None
