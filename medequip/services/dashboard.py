"""Headline counts for the administrator's landing page."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.equipment import count_equipment
from ..crud.reservations import count_requesters, count_reservations
from ..models.reservation import ACTIVE_STATUSES
from .timecalc import as_utc_naive, day_window, local_date, utcnow


def dashboard_stats(db: Session, *, now: datetime | None = None) -> dict[str, Any]:
    """Counts as of ``now``.

    ``today_reservations`` counts every reservation starting in the local
    calendar day, whatever its status. ``in_use_reservations`` counts active
    reservations whose ``[start, end)`` window contains ``now``.
    ``active_equipment`` excludes deactivated and deleted items.
    ``active_requesters`` is the number of distinct contact addresses holding
    an active reservation; requesters have no accounts of their own.
    """

    moment = as_utc_naive(now) if now is not None else utcnow()
    today = local_date(moment, settings.TZ)
    return {
        "date": today.isoformat(),
        "today_reservations": count_reservations(db, starting_in=day_window(today, settings.TZ)),
        "active_equipment": count_equipment(db, is_active=True),
        "in_use_reservations": count_reservations(db, status_in=ACTIVE_STATUSES, covering=moment),
        "active_requesters": count_requesters(db, status_in=ACTIVE_STATUSES),
    }
