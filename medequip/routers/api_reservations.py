from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..crud.equipment import get_equipment
from ..crud.reservations import count_reservations, get_reservation, list_reservations
from ..db.session import get_db
from ..deps.auth import require_admin
from ..models.reservation import Reservation, ReservationStatus
from ..schemas.equipment import AvailableEquipmentOut, EquipmentOut, Pagination
from ..schemas.reservation import (
    AvailabilityOut,
    CancelResult,
    OwnCancelRequest,
    ReservationCreate,
    ReservationOut,
    ReservationPage,
    ReservationUpdate,
    StatusChange,
)
from ..services.availability import check_availability, resolve_equipment
from ..services.booking import (
    cancel_own_reservation,
    cancel_reservation,
    create_reservation,
    transition_reservation,
    update_reservation,
)
from ..services.calendar import available_on_date, monthly_availability, reservation_events
from ..services.export import export_filename, export_reservations_csv
from ..services.timecalc import utcnow

router = APIRouter(prefix="/api/v1/reservations", tags=["reservations"])


def _to_schema(reservation: Reservation) -> ReservationOut:
    return ReservationOut.model_validate(reservation, from_attributes=True)


def _load(db: Session, reservation_id: int) -> Reservation:
    reservation = get_reservation(db, reservation_id)
    if not reservation:
        raise HTTPException(404, "Reservation not found")
    return reservation


def _page(db: Session, page: int, limit: int, **filters) -> ReservationPage:
    rows = list_reservations(db, limit=limit, offset=(page - 1) * limit, **filters)
    total = count_reservations(db, **filters)
    return ReservationPage(
        items=[_to_schema(row) for row in rows],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("", response_model=ReservationPage, dependencies=[Depends(require_admin)])
def api_list_reservations(
    equipment_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    status: ReservationStatus | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return _page(
        db,
        page,
        limit,
        equipment_id=equipment_id,
        status=status,
        start_from=start_date,
        start_to=end_date,
    )


@router.get("/events")
def api_reservation_events(start: datetime, end: datetime, db: Session = Depends(get_db)):
    return reservation_events(db, start, end)


@router.get("/available", response_model=list[AvailableEquipmentOut])
def api_available_on_date(
    day: date = Query(..., alias="date"),
    category_id: int | None = None,
    db: Session = Depends(get_db),
):
    rows = available_on_date(db, day, category_id=category_id)
    return [
        AvailableEquipmentOut(
            **EquipmentOut.model_validate(row["equipment"], from_attributes=True).model_dump(),
            remaining=row["remaining"],
            is_available=row["is_available"],
            effective_unlimited=row["is_unlimited"],
        )
        for row in rows
    ]


@router.get("/availability", response_model=AvailabilityOut)
def api_check_availability(
    equipment_id: int,
    start_time: datetime,
    end_time: datetime,
    quantity: int = Query(1, ge=1),
    exclude_reservation_id: int | None = None,
    db: Session = Depends(get_db),
):
    equipment = resolve_equipment(db, equipment_id)
    result = check_availability(db, equipment, start_time, end_time, quantity, exclude_reservation_id)
    return AvailabilityOut(
        equipment_id=equipment.id,
        start_time=start_time,
        end_time=end_time,
        requested_quantity=quantity,
        available=result.available,
        remaining=result.remaining,
        reserved=result.reserved,
        total_quantity=result.total_quantity,
        is_unlimited=result.unlimited,
        is_bookable=equipment.bookable,
    )


@router.get("/calendar/{equipment_id}")
def api_monthly_calendar(
    equipment_id: int,
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
):
    equipment = get_equipment(db, equipment_id)
    if not equipment or equipment.is_deleted:
        raise HTTPException(404, "Equipment not found")
    return monthly_availability(db, equipment, year, month)


@router.get("/admin/export", dependencies=[Depends(require_admin)])
def api_export_reservations(
    equipment_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    status: ReservationStatus | None = None,
    department: str | None = None,
    db: Session = Depends(get_db),
):
    content = export_reservations_csv(
        db,
        equipment_id=equipment_id,
        status=status,
        start_from=start_date,
        start_to=end_date,
        department=department,
    )
    filename = export_filename(utcnow())
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/my/history", response_model=ReservationPage)
def api_my_history(
    contact_info: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return _page(db, page, limit, contact_info=contact_info)


@router.post("/my/cancel/{reservation_id}", response_model=CancelResult)
def api_cancel_own(reservation_id: int, payload: OwnCancelRequest, db: Session = Depends(get_db)):
    reservation = _load(db, reservation_id)
    updated = cancel_own_reservation(db, reservation, payload.contact_info)
    return CancelResult(message="Reservation cancelled", reservation=_to_schema(updated))


@router.get("/{reservation_id}", response_model=ReservationOut, dependencies=[Depends(require_admin)])
def api_get_reservation(reservation_id: int, db: Session = Depends(get_db)):
    return _to_schema(_load(db, reservation_id))


@router.post("", response_model=ReservationOut, status_code=201)
def api_create_reservation(payload: ReservationCreate, db: Session = Depends(get_db)):
    reservation = create_reservation(db, payload.model_dump())
    return _to_schema(reservation)


@router.put("/{reservation_id}", response_model=ReservationOut, dependencies=[Depends(require_admin)])
def api_update_reservation(reservation_id: int, payload: ReservationUpdate, db: Session = Depends(get_db)):
    reservation = _load(db, reservation_id)
    updated = update_reservation(db, reservation, payload.model_dump(exclude_unset=True))
    return _to_schema(updated)


@router.post("/{reservation_id}/status", response_model=ReservationOut, dependencies=[Depends(require_admin)])
def api_change_status(reservation_id: int, payload: StatusChange, db: Session = Depends(get_db)):
    reservation = _load(db, reservation_id)
    return _to_schema(transition_reservation(db, reservation, payload.status))


@router.delete("/{reservation_id}", response_model=CancelResult, dependencies=[Depends(require_admin)])
def api_cancel_reservation(reservation_id: int, db: Session = Depends(get_db)):
    reservation = _load(db, reservation_id)
    updated = cancel_reservation(db, reservation)
    return CancelResult(message="Reservation cancelled", reservation=_to_schema(updated))
