"""initial helpline schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

ACADEMIC_YEARS = ("Freshman", "Sophomore", "Junior", "Senior", "Graduate", "PhD")
BLOOD_TYPES = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")
CAMPUS_LOCATIONS = (
    "Academic Campus",
    "Discovery Park",
    "Purdue Airport",
    "Purdue Research Park",
    "West Lafayette Campus",
)
RESIDENCES = (
    "Cary Quadrangle",
    "Earhart Hall",
    "First Street Towers",
    "Harrison Hall",
    "Hawkins Hall",
    "Hillenbrand Hall",
    "Hilltop Apartments",
    "Meredith Hall",
    "Owen Hall",
    "Purdue Village",
    "Shreve Hall",
    "Tarkington Hall",
    "Wiley Hall",
    "Windsor Hall",
    "Off-Campus Housing",
)
ALERT_TYPES = ("SOS", "Medical Emergency", "Safety Concern", "Location Share", "Beacon Activation")
ALERT_SEVERITIES = ("Low", "Medium", "High", "Critical")
ALERT_STATUSES = ("Active", "Acknowledged", "Resolved", "Cancelled")
RESPONDERS = ("Emergency Services", "Campus Police", "Student Health", "Emergency Contact", "Other")

ENUM_NAMES = (
    "academic_year",
    "blood_type",
    "campus_location",
    "residence",
    "alert_type",
    "alert_severity",
    "alert_status",
    "responder",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        *_timestamps(),
        sa.Column("purdue_id", sa.String(length=10), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("major", sa.String(length=120), nullable=True),
        sa.Column("year", sa.Enum(*ACADEMIC_YEARS, name="academic_year"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("login_attempts", sa.Integer(), nullable=False),
        sa.Column("lock_until", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("purdue_id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_is_active", "users", ["is_active"])

    op.create_table(
        "health_profiles",
        *_timestamps(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("blood_type", sa.Enum(*BLOOD_TYPES, name="blood_type"), nullable=False),
        sa.Column("height_cm", sa.Numeric(5, 1), nullable=True),
        sa.Column("weight_kg", sa.Numeric(5, 1), nullable=True),
        sa.Column("allergies", sa.JSON(), nullable=False),
        sa.Column("medications", sa.JSON(), nullable=False),
        sa.Column("medical_conditions", sa.JSON(), nullable=False),
        sa.Column("campus_location", sa.Enum(*CAMPUS_LOCATIONS, name="campus_location"), nullable=False),
        sa.Column("residence", sa.Enum(*RESIDENCES, name="residence"), nullable=False),
        sa.Column("emergency_contacts", sa.JSON(), nullable=False),
        sa.Column("emergency_notes", sa.Text(), nullable=True),
        sa.Column("insurance_provider", sa.String(length=120), nullable=True),
        sa.Column("insurance_policy_number", sa.String(length=64), nullable=True),
        sa.Column("insurance_group_number", sa.String(length=64), nullable=True),
        sa.Column("share_with_emergency_services", sa.Boolean(), nullable=False),
        sa.Column("share_with_campus_health", sa.Boolean(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_reviewed", sa.DateTime(timezone=True), nullable=True),
        sa.Column("data_version", sa.String(length=16), nullable=False),
        sa.UniqueConstraint("user_id"),
    )
    op.create_index("ix_health_profiles_blood_type", "health_profiles", ["blood_type"])
    op.create_index("ix_health_profiles_campus_location", "health_profiles", ["campus_location"])
    op.create_index("ix_health_profiles_residence", "health_profiles", ["residence"])

    # campus_location already exists as a type on PostgreSQL after health_profiles.
    alert_campus_location = sa.Enum(*CAMPUS_LOCATIONS, name="campus_location").with_variant(
        postgresql.ENUM(*CAMPUS_LOCATIONS, name="campus_location", create_type=False), "postgresql"
    )
    op.create_table(
        "emergency_alerts",
        *_timestamps(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "health_profile_id",
            sa.Integer(),
            sa.ForeignKey("health_profiles.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("alert_type", sa.Enum(*ALERT_TYPES, name="alert_type"), nullable=False),
        sa.Column("severity", sa.Enum(*ALERT_SEVERITIES, name="alert_severity"), nullable=False),
        sa.Column("status", sa.Enum(*ALERT_STATUSES, name="alert_status"), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("campus_location", alert_campus_location, nullable=True),
        sa.Column("building", sa.String(length=120), nullable=True),
        sa.Column("room", sa.String(length=60), nullable=True),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("symptoms", sa.JSON(), nullable=False),
        sa.Column("responded_by", sa.Enum(*RESPONDERS, name="responder"), nullable=False),
        sa.Column("response_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("notified_emergency_services", sa.Boolean(), nullable=False),
        sa.Column("notified_campus_police", sa.Boolean(), nullable=False),
        sa.Column("notified_primary_contact", sa.Boolean(), nullable=False),
        sa.Column("notified_secondary_contact", sa.Boolean(), nullable=False),
        sa.Column("emergency_services_attempts", sa.Integer(), nullable=False),
        sa.Column("campus_police_attempts", sa.Integer(), nullable=False),
        sa.Column("primary_contact_attempts", sa.Integer(), nullable=False),
        sa.Column("secondary_contact_attempts", sa.Integer(), nullable=False),
        sa.Column("notification_due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notifications_dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("beacon_active", sa.Boolean(), nullable=False),
        sa.Column("beacon_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("beacon_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("share_with_campus", sa.Boolean(), nullable=False),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("platform", sa.String(length=64), nullable=True),
        sa.Column("app_version", sa.String(length=32), nullable=False),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_emergency_alerts_user_id", "emergency_alerts", ["user_id"])
    op.create_index("ix_emergency_alerts_notification_due_at", "emergency_alerts", ["notification_due_at"])
    op.create_index("ix_emergency_alerts_status_severity", "emergency_alerts", ["status", "severity"])
    op.create_index("ix_emergency_alerts_type_created", "emergency_alerts", ["alert_type", "created_at"])
    op.create_index("ix_emergency_alerts_beacon_status", "emergency_alerts", ["beacon_active", "status"])
    op.create_index("ix_emergency_alerts_lat_lon", "emergency_alerts", ["latitude", "longitude"])
    op.create_index(
        "uq_emergency_alerts_active_beacon",
        "emergency_alerts",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("beacon_active"),
        postgresql_where=sa.text("beacon_active"),
    )

    op.create_table(
        "audit_logs",
        *_timestamps(),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"])

    op.create_table(
        "rate_limit_hits",
        *_timestamps(),
        sa.Column("key", sa.String(length=200), nullable=False),
        sa.Column("hit_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_rate_limit_hits_key_at", "rate_limit_hits", ["key", "hit_at"])

    op.create_table(
        "scheduler_locks",
        *_timestamps(),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("owner", sa.String(length=128), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("name"),
    )


def downgrade() -> None:
    op.drop_table("scheduler_locks")
    op.drop_index("ix_rate_limit_hits_key_at", table_name="rate_limit_hits")
    op.drop_table("rate_limit_hits")
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("uq_emergency_alerts_active_beacon", table_name="emergency_alerts")
    op.drop_index("ix_emergency_alerts_lat_lon", table_name="emergency_alerts")
    op.drop_index("ix_emergency_alerts_beacon_status", table_name="emergency_alerts")
    op.drop_index("ix_emergency_alerts_type_created", table_name="emergency_alerts")
    op.drop_index("ix_emergency_alerts_status_severity", table_name="emergency_alerts")
    op.drop_index("ix_emergency_alerts_notification_due_at", table_name="emergency_alerts")
    op.drop_index("ix_emergency_alerts_user_id", table_name="emergency_alerts")
    op.drop_table("emergency_alerts")
    op.drop_index("ix_health_profiles_residence", table_name="health_profiles")
    op.drop_index("ix_health_profiles_campus_location", table_name="health_profiles")
    op.drop_index("ix_health_profiles_blood_type", table_name="health_profiles")
    op.drop_table("health_profiles")
    op.drop_index("ix_users_is_active", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in ENUM_NAMES:
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
