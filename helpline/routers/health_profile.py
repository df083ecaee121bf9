"""Health profile endpoints."""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from helpline.db import get_db
from helpline.models.health_profile import HealthProfile
from helpline.models.user import User
from helpline.schemas.health_profile import (
    EmergencyContacts,
    HealthProfileCreate,
    HealthProfileUpdate,
    MedicalConditionCreate,
    MedicalConditionUpdate,
)
from helpline.security import (
    get_current_user,
    log_user_action,
    require_health_profile,
    require_verified_user,
)
from helpline.services import health_profiles

router = APIRouter(prefix="/health", tags=["health-profile"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_health_profile(
    payload: HealthProfileCreate,
    db: Session = Depends(get_db),
    user: User = Depends(log_user_action("health_profile_create", after=require_verified_user)),
) -> dict[str, object]:
    profile = health_profiles.create_profile(db, user, payload)
    return {
        "message": "Health profile created successfully",
        "healthProfile": health_profiles.serialize_profile(profile),
    }


@router.get("")
def read_health_profile(
    db: Session = Depends(get_db),
    user: User = Depends(require_verified_user),
) -> dict[str, object]:
    profile = health_profiles.get_profile_or_404(db, user)
    return health_profiles.serialize_profile(profile)


@router.put("")
def update_health_profile(
    payload: HealthProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    profile: HealthProfile = Depends(log_user_action("health_profile_update", after=require_health_profile)),
) -> dict[str, object]:
    profile = health_profiles.update_profile(db, user, profile, payload)
    return {
        "message": "Health profile updated successfully",
        "healthProfile": health_profiles.serialize_profile(profile),
    }


@router.delete("")
def delete_health_profile(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    profile: HealthProfile = Depends(log_user_action("health_profile_delete", after=require_health_profile)),
) -> dict[str, str]:
    health_profiles.delete_profile(db, user, profile)
    return {"message": "Health profile deleted successfully"}


@router.get("/qr-data")
def qr_data(
    user: User = Depends(require_verified_user),
    profile: HealthProfile = Depends(require_health_profile),
) -> dict[str, object]:
    return health_profiles.build_qr_payload(user, profile)


@router.get("/export")
def export_health_data(
    user: User = Depends(get_current_user),
    profile: HealthProfile = Depends(log_user_action("health_data_export", after=require_health_profile)),
) -> JSONResponse:
    filename = health_profiles.export_filename(user)
    return JSONResponse(
        content=health_profiles.build_export(user, profile),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/summary")
def health_summary(
    user: User = Depends(require_verified_user),
    profile: HealthProfile = Depends(require_health_profile),
) -> dict[str, object]:
    return health_profiles.build_summary(user, profile)


@router.put("/emergency-contacts")
def update_emergency_contacts(
    payload: EmergencyContacts,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    profile: HealthProfile = Depends(log_user_action("emergency_contacts_update", after=require_health_profile)),
) -> dict[str, object]:
    profile = health_profiles.update_emergency_contacts(db, user, profile, payload)
    return {
        "message": "Emergency contacts updated successfully",
        "emergencyContacts": EmergencyContacts.model_validate(profile.emergency_contacts).model_dump(
            mode="json", by_alias=True
        ),
    }


@router.post("/medical-conditions", status_code=status.HTTP_201_CREATED)
def add_medical_condition(
    payload: MedicalConditionCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    profile: HealthProfile = Depends(log_user_action("medical_condition_add", after=require_health_profile)),
) -> dict[str, object]:
    condition = health_profiles.add_medical_condition(db, user, profile, payload)
    return {
        "message": "Medical condition added successfully",
        "medicalCondition": condition.model_dump(mode="json", by_alias=True),
    }


@router.put("/medical-conditions/{condition_id}")
def update_medical_condition(
    condition_id: str,
    payload: MedicalConditionUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    profile: HealthProfile = Depends(log_user_action("medical_condition_update", after=require_health_profile)),
) -> dict[str, object]:
    condition = health_profiles.update_medical_condition(db, user, profile, condition_id, payload)
    return {
        "message": "Medical condition updated successfully",
        "medicalCondition": condition.model_dump(mode="json", by_alias=True),
    }
