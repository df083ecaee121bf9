"""Utility helpers for standardized error responses."""
from typing import Any, Iterable, Mapping

from fastapi import HTTPException


def error_response(code: str, message: str, details: Any | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


def http_error(
    status_code: int,
    code: str,
    message: str,
    *,
    details: Any | None = None,
    headers: dict[str, str] | None = None,
) -> HTTPException:
    """Build an ``HTTPException`` carrying the standard error envelope."""

    return HTTPException(
        status_code=status_code,
        detail=error_response(code, message, details),
        headers=headers,
    )


def validation_details(errors: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Reduce pydantic error entries to JSON-safe ``loc``/``msg``/``type`` triples."""

    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": str(error.get("msg", "")),
            "type": str(error.get("type", "")),
        }
        for error in errors
    ]
