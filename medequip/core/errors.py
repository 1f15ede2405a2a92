from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

# Starlette renamed the 422 constant; the numeric value is stable.
UNPROCESSABLE = HTTPStatus.UNPROCESSABLE_ENTITY.value


class ReservationError(Exception):
    """Base class for domain errors raised by the store and the engine."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "reservation_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInterval(ReservationError, ValueError):
    status_code = UNPROCESSABLE
    code = "invalid_interval"

    def __init__(self, start: Any, end: Any) -> None:
        super().__init__(
            "end_time must be after start_time",
            details={"start_time": str(start), "end_time": str(end)},
        )


class InvalidReservation(ReservationError, ValueError):
    status_code = UNPROCESSABLE
    code = "invalid_reservation"


class EquipmentNotFound(ReservationError, LookupError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "equipment_not_found"

    def __init__(self, equipment_id: Any) -> None:
        super().__init__("Equipment not found", details={"equipment_id": equipment_id})
        self.equipment_id = equipment_id


class EquipmentUnavailable(ReservationError):
    """Equipment exists but has been deactivated or soft-deleted."""

    status_code = status.HTTP_409_CONFLICT
    code = "equipment_unavailable"

    def __init__(self, equipment_id: Any) -> None:
        super().__init__("Equipment is not accepting reservations", details={"equipment_id": equipment_id})


class CapacityExceeded(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "capacity_exceeded"

    def __init__(self, equipment_id: Any, requested: int, remaining: int) -> None:
        super().__init__(
            f"This item is fully booked for the selected period (remaining: {remaining})",
            details={"equipment_id": equipment_id, "requested": requested, "remaining": remaining},
        )
        self.remaining = remaining


class InvalidTransition(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"

    def __init__(self, current: str, target: str, reason: str | None = None) -> None:
        message = reason or f"Cannot change reservation status from {current} to {target}"
        super().__init__(message, details={"current": current, "target": target})


class PermissionDenied(ReservationError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class ConflictError(ReservationError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def reservation_error_handler(request: Request, exc: ReservationError):
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        message = HTTPStatus(exc.status_code).phrase
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=UNPROCESSABLE,
        code="validation_error",
        message="Validation failed",
        details={"errors": jsonable_encoder(exc.errors())},
    )
