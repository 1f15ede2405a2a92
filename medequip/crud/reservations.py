"""Reservation Store: queries and raw persistence for reservation rows.

Capacity rules are not enforced here; writes that must respect stock go
through ``services.booking``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import asc, desc, func, select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus
from ..services.timecalc import as_utc_naive, utcnow_iso

UPDATABLE_FIELDS = (
    "start_time",
    "end_time",
    "quantity",
    "purpose",
    "location",
    "notes",
    "status",
)


def _reservation_filters(
    *,
    equipment_id: int | None = None,
    status: ReservationStatus | None = None,
    status_in: Iterable[ReservationStatus] | None = None,
    overlapping: tuple[datetime, datetime] | None = None,
    contact_info: str | None = None,
    start_from: datetime | None = None,
    start_to: datetime | None = None,
    starting_in: tuple[datetime, datetime] | None = None,
    covering: datetime | None = None,
) -> list:
    clauses = []
    if equipment_id is not None:
        clauses.append(Reservation.equipment_id == equipment_id)
    if status is not None:
        clauses.append(Reservation.status == ReservationStatus(status))
    if status_in is not None:
        clauses.append(Reservation.status.in_([ReservationStatus(s) for s in status_in]))
    if overlapping is not None:
        window_start, window_end = (as_utc_naive(value) for value in overlapping)
        clauses.append(Reservation.start_time < window_end)
        clauses.append(Reservation.end_time > window_start)
    if contact_info is not None:
        clauses.append(Reservation.contact_info == contact_info)
    if start_from is not None:
        clauses.append(Reservation.start_time >= as_utc_naive(start_from))
    if start_to is not None:
        clauses.append(Reservation.start_time <= as_utc_naive(start_to))
    if starting_in is not None:
        window_start, window_end = (as_utc_naive(value) for value in starting_in)
        clauses.append(Reservation.start_time >= window_start)
        clauses.append(Reservation.start_time < window_end)
    if covering is not None:
        # Half-open: a booking ending at this instant no longer covers it.
        instant = as_utc_naive(covering)
        clauses.append(Reservation.start_time <= instant)
        clauses.append(Reservation.end_time > instant)
    return clauses


def list_reservations(
    db: Session,
    *,
    equipment_id: int | None = None,
    status: ReservationStatus | None = None,
    status_in: Iterable[ReservationStatus] | None = None,
    overlapping: tuple[datetime, datetime] | None = None,
    contact_info: str | None = None,
    start_from: datetime | None = None,
    start_to: datetime | None = None,
    order: str = "desc",
    limit: int | None = None,
    offset: int = 0,
) -> list[Reservation]:
    """Filtered reservation listing ordered by ``start_time``."""

    direction = asc if order == "asc" else desc
    stmt = (
        select(Reservation)
        .where(
            *_reservation_filters(
                equipment_id=equipment_id,
                status=status,
                status_in=status_in,
                overlapping=overlapping,
                contact_info=contact_info,
                start_from=start_from,
                start_to=start_to,
            )
        )
        .order_by(direction(Reservation.start_time), direction(Reservation.id))
        .offset(offset)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return db.execute(stmt).unique().scalars().all()


def count_reservations(db: Session, **filters) -> int:
    stmt = select(func.count(Reservation.id)).where(*_reservation_filters(**filters))
    return int(db.execute(stmt).scalar_one())


def count_requesters(db: Session, **filters) -> int:
    """Distinct contact addresses among the matching reservations."""

    stmt = select(func.count(func.distinct(Reservation.contact_info))).where(*_reservation_filters(**filters))
    return int(db.execute(stmt).scalar_one())


def fetch_candidates(
    db: Session,
    equipment_id: int,
    window: tuple[datetime, datetime] | None = None,
    *,
    pushdown: bool | None = None,
) -> list[Reservation]:
    """Candidate rows for the availability engine.

    With pushdown the equipment, status and window filters run in SQL. Without
    it every reservation is returned and the engine narrows the set itself.
    """

    if pushdown is None:
        pushdown = settings.PUSHDOWN_FILTERS
    if not pushdown:
        return db.execute(select(Reservation)).unique().scalars().all()
    return list_reservations(
        db,
        equipment_id=equipment_id,
        status_in=ACTIVE_STATUSES,
        overlapping=window,
        order="asc",
    )


def get_reservation(db: Session, reservation_id: int) -> Reservation | None:
    return db.get(Reservation, reservation_id)


def add_reservation(db: Session, data: dict) -> Reservation:
    now = utcnow_iso()
    reservation = Reservation(
        equipment_id=data.get("equipment_id"),
        custom_equipment_name=data.get("custom_equipment_name"),
        department=data["department"],
        applicant_name=data["applicant_name"],
        contact_info=data["contact_info"],
        start_time=as_utc_naive(data["start_time"]),
        end_time=as_utc_naive(data["end_time"]),
        quantity=int(data.get("quantity") or 1),
        purpose=data.get("purpose") or None,
        location=data.get("location") or None,
        notes=data.get("notes") or None,
        status=ReservationStatus(data.get("status") or ReservationStatus.PENDING),
        created_at=now,
        updated_at=now,
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    return reservation


def apply_changes(db: Session, reservation: Reservation, changes: dict) -> Reservation:
    """Write already-validated field changes. Unknown keys are ignored."""

    for key in UPDATABLE_FIELDS:
        if key not in changes:
            continue
        value = changes[key]
        if key in ("start_time", "end_time"):
            value = as_utc_naive(value)
        elif key == "status":
            value = ReservationStatus(value)
        setattr(reservation, key, value)
    reservation.updated_at = utcnow_iso()
    db.commit()
    db.refresh(reservation)
    return reservation
