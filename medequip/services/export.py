from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.reservations import list_reservations
from ..models.reservation import Reservation, ReservationStatus
from .timecalc import format_local, parse_iso

BOM = "\ufeff"
CSV_HEADERS = [
    "予約ID",
    "ステータス",
    "機材名",
    "カテゴリ",
    "部署",
    "申請者名",
    "連絡先",
    "利用開始日時",
    "利用終了日時",
    "数量",
    "利用目的",
    "利用場所",
    "作成日時",
]
STATUS_LABELS = {
    ReservationStatus.PENDING: "承認待ち",
    ReservationStatus.APPROVED: "承認済み",
    ReservationStatus.REJECTED: "却下",
    ReservationStatus.CANCELLED: "キャンセル",
    ReservationStatus.COMPLETED: "完了",
}


def _row(reservation: Reservation) -> list[object]:
    equipment = reservation.equipment
    category = equipment.category_name if equipment is not None else None
    created = parse_iso(reservation.created_at)
    return [
        reservation.id,
        STATUS_LABELS[ReservationStatus(reservation.status)],
        equipment.name if equipment is not None else (reservation.custom_equipment_name or ""),
        category or "",
        reservation.department,
        reservation.applicant_name,
        reservation.contact_info,
        format_local(reservation.start_time, settings.TZ),
        format_local(reservation.end_time, settings.TZ),
        reservation.quantity,
        reservation.purpose or "",
        reservation.location or "",
        format_local(created, settings.TZ),
    ]


def render_csv(reservations: Iterable[Reservation]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for reservation in reservations:
        writer.writerow(_row(reservation))
    return BOM + buffer.getvalue()


def export_reservations_csv(
    db: Session,
    *,
    equipment_id: int | None = None,
    status: ReservationStatus | None = None,
    start_from: datetime | None = None,
    start_to: datetime | None = None,
    department: str | None = None,
) -> str:
    """Every matching reservation, newest first, as a BOM-prefixed CSV document."""

    rows = list_reservations(
        db,
        equipment_id=equipment_id,
        status=status,
        start_from=start_from,
        start_to=start_to,
    )
    if department:
        rows = [row for row in rows if department in (row.department or "")]
    return render_csv(rows)


def export_filename(today: datetime) -> str:
    return f"reservations_{today.date().isoformat()}.csv"
