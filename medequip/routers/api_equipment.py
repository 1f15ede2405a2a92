from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..crud.equipment import (
    count_equipment,
    create_category,
    create_equipment,
    deactivate_equipment,
    delete_category,
    get_category,
    get_equipment,
    list_categories,
    list_equipment,
    update_category,
    update_equipment,
)
from ..db.session import get_db
from ..deps.auth import require_admin
from ..schemas.equipment import (
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    CategoryWithCount,
    EquipmentCreate,
    EquipmentOut,
    EquipmentPage,
    EquipmentUpdate,
    Pagination,
)

router = APIRouter(prefix="/api/v1/equipment", tags=["equipment"])

_ACTIVE_FILTERS = {"true": True, "false": False, "all": None}


# ---------- categories (declared before /{equipment_id}) ----------


@router.get("/categories", response_model=list[CategoryWithCount])
def api_list_categories(db: Session = Depends(get_db)):
    return [
        CategoryWithCount.model_validate(category, from_attributes=True).model_copy(
            update={"equipment_count": count}
        )
        for category, count in list_categories(db)
    ]


@router.post("/categories", response_model=CategoryOut, status_code=201, dependencies=[Depends(require_admin)])
def api_create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    return create_category(db, payload.model_dump())


@router.put("/categories/{category_id}", response_model=CategoryOut, dependencies=[Depends(require_admin)])
def api_update_category(category_id: int, payload: CategoryUpdate, db: Session = Depends(get_db)):
    category = get_category(db, category_id)
    if not category:
        raise HTTPException(404, "Category not found")
    return update_category(db, category, payload.model_dump(exclude_unset=True))


@router.delete("/categories/{category_id}", dependencies=[Depends(require_admin)])
def api_delete_category(category_id: int, db: Session = Depends(get_db)):
    category = get_category(db, category_id)
    if not category:
        raise HTTPException(404, "Category not found")
    delete_category(db, category)
    return {"status": "deleted"}


# ---------- equipment ----------


@router.get("", response_model=EquipmentPage)
def api_list_equipment(
    search: str | None = None,
    category_id: int | None = None,
    is_active: Literal["true", "false", "all"] = "true",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    filters = {"search": search, "category_id": category_id, "is_active": _ACTIVE_FILTERS[is_active]}
    items = list_equipment(db, limit=limit, offset=(page - 1) * limit, **filters)
    total = count_equipment(db, **filters)
    return EquipmentPage(
        items=[EquipmentOut.model_validate(item, from_attributes=True) for item in items],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/{equipment_id}", response_model=EquipmentOut)
def api_get_equipment(equipment_id: int, db: Session = Depends(get_db)):
    equipment = get_equipment(db, equipment_id)
    if not equipment or equipment.is_deleted:
        raise HTTPException(404, "Equipment not found")
    return equipment


@router.post("", response_model=EquipmentOut, status_code=201, dependencies=[Depends(require_admin)])
def api_create_equipment(payload: EquipmentCreate, db: Session = Depends(get_db)):
    return create_equipment(db, payload.model_dump(exclude_unset=True))


@router.put("/{equipment_id}", response_model=EquipmentOut, dependencies=[Depends(require_admin)])
def api_update_equipment(equipment_id: int, payload: EquipmentUpdate, db: Session = Depends(get_db)):
    equipment = get_equipment(db, equipment_id)
    if not equipment:
        raise HTTPException(404, "Equipment not found")
    return update_equipment(db, equipment, payload.model_dump(exclude_unset=True))


@router.delete("/{equipment_id}", dependencies=[Depends(require_admin)])
def api_delete_equipment(equipment_id: int, db: Session = Depends(get_db)):
    equipment = get_equipment(db, equipment_id)
    if not equipment:
        raise HTTPException(404, "Equipment not found")
    deactivate_equipment(db, equipment)
    return {"status": "deactivated"}
