"""Health profile model."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, enum_column
from .campus import CampusLocation, Residence


class BloodType(str, Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class HealthProfile(Base):
    """Emergency medical information for one student.

    Allergies, medications, conditions and contacts are stored as JSON documents;
    their shape is enforced by the pydantic schemas in ``helpline.schemas.health_profile``.
    """

    __tablename__ = "health_profiles"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    blood_type: Mapped[BloodType] = mapped_column(
        enum_column(BloodType, "blood_type"), nullable=False, index=True
    )
    height_cm: Mapped[float | None] = mapped_column(Numeric(5, 1, asdecimal=False), nullable=True)
    weight_kg: Mapped[float | None] = mapped_column(Numeric(5, 1, asdecimal=False), nullable=True)

    allergies: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    medications: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    medical_conditions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    campus_location: Mapped[CampusLocation] = mapped_column(
        enum_column(CampusLocation, "campus_location"), nullable=False, index=True
    )
    residence: Mapped[Residence] = mapped_column(
        enum_column(Residence, "residence"), nullable=False, index=True
    )
    emergency_contacts: Mapped[dict] = mapped_column(JSON, nullable=False)
    emergency_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    insurance_provider: Mapped[str | None] = mapped_column(String(120), nullable=True)
    insurance_policy_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    insurance_group_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    share_with_emergency_services: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    share_with_campus_health: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_reviewed: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    data_version: Mapped[str] = mapped_column(String(16), nullable=False, default="1.0.0")

    user = relationship("User", back_populates="health_profile")

    @property
    def bmi(self) -> float | None:
        if not self.height_cm or not self.weight_kg:
            return None
        height_m = float(self.height_cm) / 100
        return round(float(self.weight_kg) / (height_m * height_m), 1)
