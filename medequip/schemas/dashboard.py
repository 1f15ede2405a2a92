from __future__ import annotations

from pydantic import BaseModel


class DashboardStats(BaseModel):
    date: str
    today_reservations: int
    active_equipment: int
    in_use_reservations: int
    active_requesters: int
