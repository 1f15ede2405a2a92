"""Calendar-facing views assembled from the availability engine."""

from __future__ import annotations

import calendar as _calendar
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.equipment import list_equipment
from ..crud.reservations import fetch_candidates, list_reservations
from ..models.equipment import Equipment
from ..models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus
from .availability import overlapping, reserved_quantity, validate_interval
from .timecalc import day_window, to_iso

EVENT_COLORS = {
    ReservationStatus.APPROVED: ("#38A169", "#2F855A"),
    ReservationStatus.PENDING: ("#ED8936", "#DD6B20"),
}


def _event(reservation: Reservation) -> dict[str, Any]:
    status = ReservationStatus(reservation.status)
    background, border = EVENT_COLORS[status]
    name = reservation.equipment_name
    return {
        "id": reservation.id,
        "title": f"{name} - {reservation.department}",
        "start": to_iso(reservation.start_time),
        "end": to_iso(reservation.end_time),
        "extendedProps": {
            "equipmentName": name,
            "department": reservation.department,
            "applicantName": reservation.applicant_name,
            "quantity": reservation.quantity,
            "status": status.value,
        },
        "backgroundColor": background,
        "borderColor": border,
    }


def reservation_events(db: Session, start: datetime, end: datetime) -> list[dict[str, Any]]:
    """Active reservations touching ``[start, end)`` in calendar-event form."""

    start, end = validate_interval(start, end)
    rows = list_reservations(db, status_in=ACTIVE_STATUSES, overlapping=(start, end), order="asc")
    return [_event(row) for row in rows]


def available_on_date(db: Session, day: date, category_id: int | None = None) -> list[dict[str, Any]]:
    """Every active catalog item with what is left of it on ``day``."""

    start, end = day_window(day, settings.TZ)
    items = list_equipment(db, category_id=category_id, is_active=True)
    result = []
    for item in items:
        if item.unlimited:
            remaining = None
            is_available = True
        else:
            candidates = fetch_candidates(db, item.id, (start, end))
            remaining = max(item.total_quantity - reserved_quantity(candidates, item.id, start, end), 0)
            is_available = remaining > 0
        result.append(
            {
                "equipment": item,
                "remaining": remaining,
                "is_available": is_available,
                "is_unlimited": item.unlimited,
            }
        )
    return result


def monthly_availability(db: Session, equipment: Equipment, year: int, month: int) -> dict[str, Any]:
    """Remaining units and the overlapping bookings for each day of a month."""

    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    days_in_month = _calendar.monthrange(year, month)[1]
    month_start, _ = day_window(date(year, month, 1), settings.TZ)
    _, month_end = day_window(date(year, month, days_in_month), settings.TZ)
    # One fetch for the month, sliced per day in memory.
    fetched = fetch_candidates(db, equipment.id, (month_start, month_end))
    candidates = overlapping(fetched, equipment.id, month_start, month_end)

    daily: dict[str, dict[str, Any]] = {}
    for day_number in range(1, days_in_month + 1):
        day = date(year, month, day_number)
        start, end = day_window(day, settings.TZ)
        day_rows = overlapping(candidates, equipment.id, start, end)
        reserved = sum(row.quantity for row in day_rows)
        daily[day.isoformat()] = {
            "remaining": None if equipment.unlimited else max(equipment.total_quantity - reserved, 0),
            "reserved": reserved,
            "reservations": [
                {
                    "id": row.id,
                    "quantity": row.quantity,
                    "purpose": row.purpose,
                    "user_name": row.applicant_name or "不明",
                    "status": ReservationStatus(row.status).value,
                }
                for row in day_rows
            ],
        }
    return {
        "equipment": {
            "id": equipment.id,
            "name": equipment.name,
            "total_quantity": equipment.total_quantity,
            "is_unlimited": equipment.unlimited,
        },
        "daily_availability": daily,
    }
