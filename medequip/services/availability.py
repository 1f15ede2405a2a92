"""Availability engine: how many units of an item are committed over a window.

Two layers live here.

*Pure functions* (``intervals_overlap``, ``reserved_quantity``,
``overlapping``, ``evaluate``) work on any in-memory sequence of reservation-like
objects exposing ``id``, ``equipment_id``, ``status``, ``start_time``,
``end_time`` and ``quantity``. They never touch the database, so the calendar
views can fetch a month of rows once and slice it per day.

*Store-backed functions* (``get_reserved_quantity``, ``check_availability``,
``find_overlapping``) load candidates through ``crud.reservations`` and then
apply the pure filters. The store may or may not have narrowed the candidate
set already; the engine always re-applies equipment, status, exclusion and
overlap filters itself, so the answer is the same either way.

Intervals are half-open ``[start, end)``: a booking ending at 12:00 and one
starting at 12:00 do not overlap. Only ``pending`` and ``approved``
reservations consume capacity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Iterator

from sqlalchemy.orm import Session

from ..core.errors import EquipmentNotFound, InvalidInterval, InvalidReservation
from ..crud.equipment import get_equipment
from ..crud.reservations import fetch_candidates
from ..models.equipment import Equipment
from ..models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus
from .timecalc import as_utc_naive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Availability:
    """Outcome of a capacity check.

    ``available`` is authoritative. ``remaining`` is informational: clamped at
    zero for limited stock and ``None`` for unlimited equipment, which has no
    meaningful count and must not be compared numerically.
    """

    available: bool
    remaining: int | None
    total_quantity: int
    reserved: int
    unlimited: bool = False


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def validate_interval(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    """Normalize both ends to naive UTC and reject empty or inverted windows."""

    start = as_utc_naive(start)
    end = as_utc_naive(end)
    if start >= end:
        raise InvalidInterval(start, end)
    return start, end


def _is_active(status: Any) -> bool:
    return ReservationStatus(status) in ACTIVE_STATUSES


def _matching(
    candidates: Iterable[Any],
    equipment_id: Any,
    start: datetime,
    end: datetime,
    exclude_reservation_id: Any = None,
) -> Iterator[Any]:
    for candidate in candidates:
        if exclude_reservation_id is not None and candidate.id == exclude_reservation_id:
            continue
        if candidate.equipment_id != equipment_id:
            continue
        if not _is_active(candidate.status):
            continue
        if intervals_overlap(as_utc_naive(candidate.start_time), as_utc_naive(candidate.end_time), start, end):
            yield candidate


def reserved_quantity(
    candidates: Iterable[Any],
    equipment_id: Any,
    start: datetime,
    end: datetime,
    exclude_reservation_id: Any = None,
) -> int:
    """Sum of quantities of active reservations on ``equipment_id`` overlapping the window."""

    start, end = validate_interval(start, end)
    return sum(
        int(candidate.quantity)
        for candidate in _matching(candidates, equipment_id, start, end, exclude_reservation_id)
    )


def overlapping(candidates: Iterable[Any], equipment_id: Any, start: datetime, end: datetime) -> list[Any]:
    """Active reservations on ``equipment_id`` overlapping the window, earliest first."""

    start, end = validate_interval(start, end)
    matches = list(_matching(candidates, equipment_id, start, end))
    matches.sort(key=lambda candidate: (as_utc_naive(candidate.start_time), candidate.id or 0))
    return matches


def evaluate(equipment: Equipment, reserved: int, requested_quantity: int) -> Availability:
    if requested_quantity < 1:
        raise InvalidReservation("requested quantity must be at least 1")
    total = equipment.total_quantity
    if equipment.unlimited:
        return Availability(available=True, remaining=None, total_quantity=total, reserved=reserved, unlimited=True)
    raw_remaining = total - reserved
    return Availability(
        available=requested_quantity <= raw_remaining,
        remaining=max(raw_remaining, 0),
        total_quantity=total,
        reserved=reserved,
    )


# ---------- store-backed ----------


def get_reserved_quantity(
    db: Session,
    equipment_id: int,
    start: datetime,
    end: datetime,
    exclude_reservation_id: int | None = None,
) -> int:
    start, end = validate_interval(start, end)
    candidates = fetch_candidates(db, equipment_id, (start, end))
    return reserved_quantity(candidates, equipment_id, start, end, exclude_reservation_id)


def resolve_equipment(db: Session, equipment: Equipment | int) -> Equipment:
    if isinstance(equipment, Equipment):
        return equipment
    found = get_equipment(db, equipment)
    if found is None:
        raise EquipmentNotFound(equipment)
    return found


def check_availability(
    db: Session,
    equipment: Equipment | int,
    start: datetime,
    end: datetime,
    requested_quantity: int,
    exclude_reservation_id: int | None = None,
) -> Availability:
    """Can ``requested_quantity`` more units be booked over ``[start, end)``?

    Unknown equipment raises ``EquipmentNotFound`` rather than reporting
    ``available=False``. Active/deleted flags are the caller's concern.
    """

    item = resolve_equipment(db, equipment)
    start, end = validate_interval(start, end)
    if item.unlimited:
        result = evaluate(item, 0, requested_quantity)
    else:
        reserved = get_reserved_quantity(db, item.id, start, end, exclude_reservation_id)
        result = evaluate(item, reserved, requested_quantity)
    logger.debug(
        "availability.checked",
        extra={
            "extra_data": {
                "equipment_id": item.id,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "requested": requested_quantity,
                "reserved": result.reserved,
                "remaining": result.remaining,
                "available": result.available,
                "excluded": exclude_reservation_id,
            }
        },
    )
    return result


def find_overlapping(db: Session, equipment_id: int, start: datetime, end: datetime) -> list[Reservation]:
    start, end = validate_interval(start, end)
    candidates = fetch_candidates(db, equipment_id, (start, end))
    return overlapping(candidates, equipment_id, start, end)
