from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import require_admin
from ..schemas.dashboard import DashboardStats
from ..services.dashboard import dashboard_stats

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"], dependencies=[Depends(require_admin)])


@router.get("/stats", response_model=DashboardStats)
def api_dashboard_stats(db: Session = Depends(get_db)):
    return DashboardStats(**dashboard_stats(db))
