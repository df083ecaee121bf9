"""Audit logging helper utilities."""
from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from helpline.models.audit import AuditLog
from helpline.utils.time import utcnow


SENSITIVE_KEYS = {
    "email",
    "phone",
    "password",
    "insurance_policy_number",
    "insurance_group_number",
    "purdue_id",
    "coordinates",
}


def _mask_value(key: str, value: Any) -> Any:
    if value is None:
        return None

    if key == "password":
        return "***"

    if key == "email":
        text = str(value)
        if "@" in text:
            _, domain = text.split("@", 1)
            return f"***@{domain}"
        return "***"

    if key in {"phone", "insurance_policy_number", "insurance_group_number", "purdue_id"}:
        stripped = str(value).replace(" ", "")
        if len(stripped) <= 4:
            return "***"
        return f"***{stripped[-4:]}"

    if key == "coordinates":
        # Keep roughly 1 km precision in the trail.
        try:
            return [round(float(part), 2) for part in value]
        except (TypeError, ValueError):
            return "***"

    return value


def sanitize_payload_for_audit(data: Any) -> Any:
    """Return a copy of ``data`` with obvious PII fields masked."""

    if isinstance(data, Mapping):
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS:
                sanitized[key] = _mask_value(key, value)
            else:
                sanitized[key] = sanitize_payload_for_audit(value)
        return sanitized

    if isinstance(data, list):
        return [sanitize_payload_for_audit(item) for item in data]

    return data


def log_audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity: str,
    entity_id: int | None,
    data: dict | None = None,
) -> None:
    """Persist an audit entry in the shared AuditLog table."""

    db.add(
        AuditLog(
            actor=actor,
            action=action,
            entity=entity,
            entity_id=entity_id if entity_id is not None else 0,
            data_json=sanitize_payload_for_audit(data or {}),
            at=utcnow(),
        )
    )


def actor_for_user(user: Any, fallback: str = "system") -> str:
    """Return the canonical actor string for a user object."""

    user_id = getattr(user, "id", None)
    if user_id is not None:
        return f"user:{user_id}"
    return fallback
