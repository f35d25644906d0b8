"""Standardized error payloads and the domain error taxonomy."""
from typing import Any

from fastapi import HTTPException, status


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class DomainError(HTTPException):
    """Base class for errors surfaced to API callers with a stable error code."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "BAD_REQUEST"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.code = code or self.default_code
        self.message = message
        self.details = details or {}
        super().__init__(
            status_code=self.status_code,
            detail=error_response(self.code, message, details),
        )


class NotFound(DomainError):
    """Unknown identifier; a client error, never retried."""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class Forbidden(DomainError):
    """Caller is not allowed to act on the resource."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class InvalidTransition(DomainError):
    """Illegal state change; details carry the current status so callers can resync."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        *,
        entity: str,
        entity_id: int | None,
        current_status: Any,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        payload = {
            "entity": entity,
            "id": entity_id,
            "current_status": getattr(current_status, "value", current_status),
        }
        if details:
            payload.update(details)
        super().__init__(message, code=code, details=payload)


class RecordBusy(DomainError):
    """A concurrent writer kept changing the record; safe to retry."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "RECORD_BUSY"


class GatewayUnavailable(DomainError):
    """The payment gateway timed out or answered with an error."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "GATEWAY_UNAVAILABLE"


class GatewayNotConfigured(DomainError):
    """The requested gateway is disabled or missing credentials."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "GATEWAY_NOT_CONFIGURED"


__all__ = [
    "DomainError",
    "Forbidden",
    "GatewayNotConfigured",
    "GatewayUnavailable",
    "InvalidTransition",
    "NotFound",
    "RecordBusy",
    "error_response",
]
