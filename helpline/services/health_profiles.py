"""Health profile services."""
from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from helpline.config import get_settings
from helpline.models.health_profile import HealthProfile
from helpline.models.user import User
from helpline.schemas.health_profile import (
    EmergencyContacts,
    HealthProfileCreate,
    HealthProfileRead,
    HealthProfileUpdate,
    MedicalCondition,
    MedicalConditionCreate,
    MedicalConditionUpdate,
    age_on,
)
from helpline.utils.audit import actor_for_user, log_audit
from helpline.utils.errors import error_response, http_error, validation_details
from helpline.utils.time import isoformat_z, utcnow

logger = logging.getLogger(__name__)

QR_TYPE = "helpline_emergency"
QR_INSTRUCTIONS = (
    "In emergency: Call 911 first, then contact emergency contacts above. "
    "Use Purdue resources for non-emergency situations."
)
EXPORTED_BY = "helpline-api"

_JSON_FIELDS = ("allergies", "medications", "emergency_contacts")
_UPDATABLE_FIELDS = (
    "date_of_birth",
    "blood_type",
    "height_cm",
    "weight_kg",
    "allergies",
    "medications",
    "campus_location",
    "residence",
    "emergency_contacts",
    "emergency_notes",
    "insurance_provider",
    "insurance_policy_number",
    "insurance_group_number",
    "share_with_emergency_services",
    "share_with_campus_health",
)


def _audit(db: Session, *, user: User, action: str, profile_id: int, data: dict[str, Any] | None = None) -> None:
    log_audit(
        db,
        actor=actor_for_user(user),
        action=action,
        entity="HealthProfile",
        entity_id=profile_id,
        data=data,
    )


def get_profile(db: Session, user: User) -> HealthProfile | None:
    return db.scalars(select(HealthProfile).where(HealthProfile.user_id == user.id)).first()


def get_profile_or_404(db: Session, user: User) -> HealthProfile:
    profile = get_profile(db, user)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response(
                "HEALTH_PROFILE_NOT_FOUND",
                "Health profile not found. Please create your health profile first.",
            ),
        )
    return profile


def _condition_document(condition: MedicalConditionCreate, condition_id: str | None = None) -> dict[str, Any]:
    document = condition.model_dump(mode="json")
    document["id"] = condition_id or uuid.uuid4().hex
    return document


def _apply(profile: HealthProfile, payload: HealthProfileCreate) -> None:
    for field in _UPDATABLE_FIELDS:
        if field in _JSON_FIELDS:
            setattr(profile, field, payload.model_dump(mode="json", include={field})[field])
        else:
            setattr(profile, field, getattr(payload, field))
    profile.age = age_on(payload.date_of_birth, date.today())


def create_profile(db: Session, user: User, payload: HealthProfileCreate) -> HealthProfile:
    if get_profile(db, user) is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("HEALTH_PROFILE_EXISTS", "Health profile already exists. Use PUT to update."),
        )

    profile = HealthProfile(user_id=user.id)
    _apply(profile, payload)
    profile.medical_conditions = [_condition_document(item) for item in payload.medical_conditions]
    profile.last_updated = utcnow()
    db.add(profile)
    db.flush()
    _audit(
        db,
        user=user,
        action="HEALTH_PROFILE_CREATED",
        profile_id=profile.id,
        data={"blood_type": profile.blood_type.value, "campus_location": profile.campus_location.value},
    )
    db.commit()
    db.refresh(profile)
    logger.info("Health profile created", extra={"user_id": user.id, "profile_id": profile.id})
    return profile


def update_profile(db: Session, user: User, profile: HealthProfile, payload: HealthProfileUpdate) -> HealthProfile:
    """Merge the partial payload onto the stored profile and validate the result as a whole."""

    changes = payload.model_dump(exclude_unset=True)
    last_reviewed = changes.pop("last_reviewed", None)
    current = HealthProfileRead.model_validate(profile).model_dump(include=set(_UPDATABLE_FIELDS))
    current.update(changes)
    try:
        merged = HealthProfileCreate.model_validate(current)
    except ValidationError as exc:
        raise http_error(
            status.HTTP_400_BAD_REQUEST,
            "VALIDATION_ERROR",
            "Validation error",
            details=validation_details(exc.errors()),
        ) from exc

    _apply(profile, merged)
    profile.last_updated = utcnow()
    if last_reviewed is not None:
        profile.last_reviewed = last_reviewed
    _audit(db, user=user, action="HEALTH_PROFILE_UPDATED", profile_id=profile.id, data={"fields": sorted(changes)})
    db.commit()
    db.refresh(profile)
    logger.info("Health profile updated", extra={"user_id": user.id, "profile_id": profile.id})
    return profile


def delete_profile(db: Session, user: User, profile: HealthProfile) -> None:
    profile_id = profile.id
    db.delete(profile)
    _audit(db, user=user, action="HEALTH_PROFILE_DELETED", profile_id=profile_id)
    db.commit()
    logger.info("Health profile deleted", extra={"user_id": user.id, "profile_id": profile_id})


def serialize_profile(profile: HealthProfile) -> dict[str, Any]:
    return HealthProfileRead.model_validate(profile).model_dump(mode="json", by_alias=True)


def _contacts(profile: HealthProfile) -> dict[str, Any]:
    contacts = EmergencyContacts.model_validate(profile.emergency_contacts)
    return contacts.model_dump(mode="json", by_alias=True)


def build_qr_payload(user: User, profile: HealthProfile) -> dict[str, Any]:
    """Emergency card payload; the client renders it as a QR image."""

    settings = get_settings()
    document = serialize_profile(profile)
    return {
        "type": QR_TYPE,
        "version": profile.data_version,
        "timestamp": isoformat_z(utcnow()),
        "personal": {
            "name": user.full_name,
            "age": profile.age,
            "bloodType": profile.blood_type.value,
            "allergies": document["allergies"],
            "medications": document["medications"],
            "campusLocation": profile.campus_location.value,
            "residence": profile.residence.value,
        },
        "emergencyContacts": _contacts(profile),
        "purdueResources": {
            "studentHealth": settings.STUDENT_HEALTH_NUMBER,
            "campusCounseling": settings.CAMPUS_COUNSELING_NUMBER,
            "purduePolice": settings.CAMPUS_POLICE_NUMBER,
            "emergency": settings.CAMPUS_EMERGENCY_NUMBER,
            "healthCenterAddress": settings.HEALTH_CENTER_ADDRESS,
            "policeAddress": settings.POLICE_ADDRESS,
        },
        "instructions": QR_INSTRUCTIONS,
    }


def export_filename(user: User, *, today: date | None = None) -> str:
    today = today or utcnow().date()
    return f"helpline-health-data-{user.purdue_id}-{today.isoformat()}.json"


def build_export(user: User, profile: HealthProfile) -> dict[str, Any]:
    return {
        "exportDate": isoformat_z(utcnow()),
        "user": {
            "firstName": user.first_name,
            "lastName": user.last_name,
            "email": user.email,
            "purdueId": user.purdue_id,
        },
        "healthProfile": serialize_profile(profile),
        "metadata": {"exportedBy": EXPORTED_BY, "version": "1.0.0"},
    }


def build_summary(user: User, profile: HealthProfile) -> dict[str, Any]:
    return {
        "personalInfo": {
            "name": user.full_name,
            "age": profile.age,
            "bloodType": profile.blood_type.value,
            "campusLocation": profile.campus_location.value,
            "residence": profile.residence.value,
        },
        "medicalSummary": {
            "allergiesCount": len(profile.allergies or []),
            "medicationsCount": len(profile.medications or []),
            "conditionsCount": len(profile.medical_conditions or []),
        },
        "emergencyContacts": _contacts(profile),
        "lastUpdated": isoformat_z(profile.last_updated),
        "dataVersion": profile.data_version,
    }


def update_emergency_contacts(
    db: Session, user: User, profile: HealthProfile, payload: EmergencyContacts
) -> HealthProfile:
    profile.emergency_contacts = payload.model_dump(mode="json")
    profile.last_updated = utcnow()
    _audit(
        db,
        user=user,
        action="EMERGENCY_CONTACTS_UPDATED",
        profile_id=profile.id,
        data={"has_secondary": payload.secondary is not None},
    )
    db.commit()
    db.refresh(profile)
    return profile


def add_medical_condition(
    db: Session, user: User, profile: HealthProfile, payload: MedicalConditionCreate
) -> MedicalCondition:
    document = _condition_document(payload)
    profile.medical_conditions = [*(profile.medical_conditions or []), document]
    profile.last_updated = utcnow()
    _audit(
        db,
        user=user,
        action="MEDICAL_CONDITION_ADDED",
        profile_id=profile.id,
        data={"condition_id": document["id"]},
    )
    db.commit()
    db.refresh(profile)
    return MedicalCondition.model_validate(document)


def update_medical_condition(
    db: Session,
    user: User,
    profile: HealthProfile,
    condition_id: str,
    payload: MedicalConditionUpdate,
) -> MedicalCondition:
    conditions = list(profile.medical_conditions or [])
    for index, existing in enumerate(conditions):
        if existing.get("id") == condition_id:
            break
    else:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response("MEDICAL_CONDITION_NOT_FOUND", "Medical condition not found."),
        )

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    merged = MedicalConditionCreate.model_validate({**existing, **changes})
    document = _condition_document(merged, condition_id)
    conditions[index] = document
    profile.medical_conditions = conditions
    profile.last_updated = utcnow()
    _audit(
        db,
        user=user,
        action="MEDICAL_CONDITION_UPDATED",
        profile_id=profile.id,
        data={"condition_id": condition_id},
    )
    db.commit()
    db.refresh(profile)
    return MedicalCondition.model_validate(document)


__all__ = [
    "add_medical_condition",
    "build_export",
    "build_qr_payload",
    "build_summary",
    "create_profile",
    "delete_profile",
    "export_filename",
    "get_profile",
    "get_profile_or_404",
    "serialize_profile",
    "update_emergency_contacts",
    "update_medical_condition",
    "update_profile",
]
