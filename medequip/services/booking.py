"""Reservation write workflow: create, edit and status changes.

Capacity is re-counted inside the write. For catalog items the sequence
"lock equipment, count overlapping reservations, insert/update, commit" runs
under a per-equipment lock held for the whole unit of work, so two requests
racing for the last unit cannot both be accepted by this process. The
equipment row is also selected ``FOR UPDATE`` so databases with row locks
serialize writers across processes.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from sqlalchemy.orm import Session

from ..core.errors import (
    CapacityExceeded,
    EquipmentNotFound,
    EquipmentUnavailable,
    InvalidReservation,
    InvalidTransition,
    PermissionDenied,
    ReservationError,
)
from ..crud.equipment import get_equipment
from ..crud.reservations import add_reservation, apply_changes
from ..models.reservation import ALLOWED_TRANSITIONS, Reservation, ReservationStatus
from .availability import check_availability, validate_interval
from .timecalc import as_utc_naive, utcnow

logger = logging.getLogger(__name__)

REQUIRED_APPLICANT_FIELDS = ("department", "applicant_name", "contact_info")
FREE_TEXT_FIELDS = ("purpose", "location", "notes")

_locks: dict[int, threading.Lock] = {}
_locks_guard = threading.Lock()


@contextmanager
def equipment_lock(equipment_id: int) -> Iterator[None]:
    with _locks_guard:
        lock = _locks.setdefault(equipment_id, threading.Lock())
    with lock:
        yield


def _require_quantity(value) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidReservation("quantity must be an integer") from exc
    if quantity < 1:
        raise InvalidReservation("quantity must be at least 1")
    return quantity


def _ensure_capacity(
    db: Session,
    equipment_id: int,
    start: datetime,
    end: datetime,
    quantity: int,
    *,
    exclude_reservation_id: int | None = None,
    require_bookable: bool = True,
) -> None:
    equipment = get_equipment(db, equipment_id, for_update=True)
    if equipment is None:
        raise EquipmentNotFound(equipment_id)
    if require_bookable and not equipment.bookable:
        raise EquipmentUnavailable(equipment_id)
    result = check_availability(db, equipment, start, end, quantity, exclude_reservation_id)
    if not result.available:
        logger.info(
            "reservation.capacity_rejected",
            extra={
                "extra_data": {
                    "equipment_id": equipment_id,
                    "requested": quantity,
                    "remaining": result.remaining,
                    "excluded": exclude_reservation_id,
                }
            },
        )
        raise CapacityExceeded(equipment_id, quantity, result.remaining or 0)


def create_reservation(db: Session, payload: dict) -> Reservation:
    """Validate and persist a new ``pending`` reservation."""

    equipment_id = payload.get("equipment_id")
    custom_name = (payload.get("custom_equipment_name") or "").strip() or None
    if equipment_id is None and not custom_name:
        raise InvalidReservation("equipment_id or custom_equipment_name is required")

    data: dict = {}
    for field in REQUIRED_APPLICANT_FIELDS:
        value = (payload.get(field) or "").strip()
        if not value:
            raise InvalidReservation(f"{field} is required")
        data[field] = value
    if payload.get("start_time") is None or payload.get("end_time") is None:
        raise InvalidReservation("start_time and end_time are required")
    start, end = validate_interval(payload["start_time"], payload["end_time"])
    quantity = _require_quantity(payload.get("quantity", 1))
    data.update(
        start_time=start,
        end_time=end,
        quantity=quantity,
        status=ReservationStatus.PENDING,
        **{field: payload.get(field) for field in FREE_TEXT_FIELDS},
    )

    if equipment_id is None:
        # Ad-hoc items have no stock to account against.
        data["custom_equipment_name"] = custom_name
        reservation = add_reservation(db, data)
    else:
        # Unknown ids are rejected before a lock is allocated for them.
        if get_equipment(db, equipment_id) is None:
            raise EquipmentNotFound(equipment_id)
        data["equipment_id"] = equipment_id
        with equipment_lock(equipment_id):
            try:
                _ensure_capacity(db, equipment_id, start, end, quantity)
            except ReservationError:
                db.rollback()
                raise
            reservation = add_reservation(db, data)
    logger.info(
        "reservation.created",
        extra={"extra_data": {"reservation_id": reservation.id, "equipment_id": equipment_id}},
    )
    return reservation


def _ensure_transition(
    reservation: Reservation,
    target: ReservationStatus,
    now: datetime | None = None,
) -> None:
    current = ReservationStatus(reservation.status)
    if target == current:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value)
    if target == ReservationStatus.CANCELLED:
        moment = as_utc_naive(now) if now is not None else utcnow()
        if as_utc_naive(reservation.start_time) <= moment:
            raise InvalidTransition(
                current.value,
                target.value,
                reason="Reservations cannot be cancelled once the usage period has started",
            )


def update_reservation(
    db: Session,
    reservation: Reservation,
    payload: dict,
    *,
    now: datetime | None = None,
) -> Reservation:
    """Edit a reservation, re-checking capacity without counting itself."""

    changes: dict = {}
    start = reservation.start_time
    end = reservation.end_time
    if payload.get("start_time") is not None:
        start = payload["start_time"]
    if payload.get("end_time") is not None:
        end = payload["end_time"]
    start, end = validate_interval(start, end)
    window_changed = start != reservation.start_time or end != reservation.end_time
    if window_changed:
        changes["start_time"] = start
        changes["end_time"] = end

    quantity = reservation.quantity
    if payload.get("quantity") is not None:
        quantity = _require_quantity(payload["quantity"])
        if quantity != reservation.quantity:
            changes["quantity"] = quantity

    status = ReservationStatus(reservation.status)
    if payload.get("status") is not None:
        target = ReservationStatus(payload["status"])
        _ensure_transition(reservation, target, now)
        if target != status:
            changes["status"] = target
            status = target

    for field in FREE_TEXT_FIELDS:
        if field in payload:
            changes[field] = payload[field]

    needs_check = (
        reservation.equipment_id is not None
        and status.is_active
        and ("start_time" in changes or "quantity" in changes)
    )
    if not needs_check:
        return apply_changes(db, reservation, changes)

    with equipment_lock(reservation.equipment_id):
        try:
            _ensure_capacity(
                db,
                reservation.equipment_id,
                start,
                end,
                quantity,
                exclude_reservation_id=reservation.id,
                require_bookable=False,
            )
        except ReservationError:
            db.rollback()
            raise
        return apply_changes(db, reservation, changes)


def transition_reservation(
    db: Session,
    reservation: Reservation,
    new_status: ReservationStatus | str,
    *,
    now: datetime | None = None,
) -> Reservation:
    target = ReservationStatus(new_status)
    _ensure_transition(reservation, target, now)
    if target == ReservationStatus(reservation.status):
        return reservation
    updated = apply_changes(db, reservation, {"status": target})
    logger.info(
        "reservation.status_changed",
        extra={"extra_data": {"reservation_id": reservation.id, "status": target.value}},
    )
    return updated


def cancel_reservation(db: Session, reservation: Reservation, *, now: datetime | None = None) -> Reservation:
    return transition_reservation(db, reservation, ReservationStatus.CANCELLED, now=now)


def cancel_own_reservation(
    db: Session,
    reservation: Reservation,
    contact_info: str,
    *,
    now: datetime | None = None,
) -> Reservation:
    """Requester-side cancel; the contact info on file acts as proof of ownership."""

    if (contact_info or "").strip() != reservation.contact_info:
        raise PermissionDenied("You are not allowed to cancel this reservation")
    if not reservation.is_active:
        raise InvalidTransition(
            ReservationStatus(reservation.status).value,
            ReservationStatus.CANCELLED.value,
            reason="This reservation can no longer be cancelled",
        )
    return cancel_reservation(db, reservation, now=now)
