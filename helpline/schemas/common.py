"""Shared schema primitives."""
from __future__ import annotations

import json
import math
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from helpline.models.campus import CampusLocation


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def validate_coordinate_pair(value: list[float]) -> list[float]:
    if len(value) != 2:
        raise ValueError("coordinates must be a [longitude, latitude] pair")
    lon, lat = float(value[0]), float(value[1])
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise ValueError("coordinates must be finite numbers")
    if not -180.0 <= lon <= 180.0:
        raise ValueError("longitude must be within [-180, 180]")
    if not -90.0 <= lat <= 90.0:
        raise ValueError("latitude must be within [-90, 90]")
    return [lon, lat]


def parse_coordinates_param(raw: list[str]) -> list[float]:
    """Accept ``?coordinates=lon&coordinates=lat``, ``?coordinates=lon,lat`` or ``?coordinates=[lon,lat]``."""

    if len(raw) == 1:
        text = raw[0].strip()
        if text.startswith("["):
            parsed = json.loads(text)
            if not isinstance(parsed, list):
                raise ValueError("coordinates must be a list")
            values = parsed
        else:
            values = [part for part in text.split(",") if part.strip()]
    else:
        values = raw
    try:
        pair = [float(part) for part in values]
    except (TypeError, ValueError) as exc:
        raise ValueError("coordinates must be numeric") from exc
    return validate_coordinate_pair(pair)


class LocationIn(CamelModel):
    coordinates: list[float]
    address: str | None = Field(default=None, max_length=255)
    campus_location: CampusLocation | None = None
    building: str | None = Field(default=None, max_length=120)
    room: str | None = Field(default=None, max_length=60)
    accuracy: float | None = Field(default=None, ge=0)

    @field_validator("coordinates")
    @classmethod
    def _check_pair(cls, value: list[float]) -> list[float]:
        return validate_coordinate_pair(value)

    @field_validator("address", "building", "room")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class LocationRead(CamelModel):
    coordinates: list[float]
    address: str | None = None
    campus_location: CampusLocation | None = None
    building: str | None = None
    room: str | None = None
    accuracy: float | None = None


class Pagination(BaseModel):
    current: int
    total: int
    hasNext: bool
    hasPrev: bool

    @classmethod
    def build(cls, *, page: int, limit: int, total_items: int) -> "Pagination":
        return cls(
            current=page,
            total=math.ceil(total_items / limit) if limit else 0,
            hasNext=page * limit < total_items,
            hasPrev=page > 1,
        )


class DeviceInfo(CamelModel):
    user_agent: str | None = None
    platform: str | None = None
    app_version: str = "1.0.0"

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "DeviceInfo":
        return cls(
            user_agent=(headers.get("user-agent") or None),
            platform=(headers.get("sec-ch-ua-platform") or "").strip('"') or None,
            app_version=headers.get("x-app-version") or "1.0.0",
        )
