"""Equipment and category CRUD helpers."""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..core.errors import ConflictError, InvalidReservation
from ..models.equipment import Equipment, EquipmentCategory
from ..services.timecalc import utcnow_iso

EQUIPMENT_FIELDS = (
    "name",
    "description",
    "quantity",
    "location",
    "image_url",
    "is_active",
    "is_unlimited",
    "is_deleted",
    "specifications",
)


def _equipment_filters(
    *,
    search: str | None = None,
    category_id: int | None = None,
    is_active: bool | None = True,
    include_deleted: bool = False,
) -> list:
    clauses = []
    if not include_deleted:
        clauses.append(Equipment.is_deleted.is_(False))
    if category_id is not None:
        clauses.append(Equipment.category_id == category_id)
    if is_active is not None:
        clauses.append(Equipment.is_active.is_(is_active))
    term = (search or "").strip()
    if term:
        pattern = f"%{term}%"
        clauses.append(
            or_(
                Equipment.name.ilike(pattern),
                Equipment.description.ilike(pattern),
                Equipment.location.ilike(pattern),
            )
        )
    return clauses


def list_equipment(
    db: Session,
    *,
    search: str | None = None,
    category_id: int | None = None,
    is_active: bool | None = True,
    include_deleted: bool = False,
    limit: int | None = None,
    offset: int = 0,
) -> list[Equipment]:
    """Catalog listing ordered by name. ``is_active=None`` returns both states."""

    stmt = (
        select(Equipment)
        .where(
            *_equipment_filters(
                search=search,
                category_id=category_id,
                is_active=is_active,
                include_deleted=include_deleted,
            )
        )
        .order_by(Equipment.name, Equipment.id)
        .offset(offset)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return db.execute(stmt).unique().scalars().all()


def count_equipment(
    db: Session,
    *,
    search: str | None = None,
    category_id: int | None = None,
    is_active: bool | None = True,
    include_deleted: bool = False,
) -> int:
    stmt = select(func.count(Equipment.id)).where(
        *_equipment_filters(
            search=search,
            category_id=category_id,
            is_active=is_active,
            include_deleted=include_deleted,
        )
    )
    return int(db.execute(stmt).scalar_one())


def get_equipment(db: Session, equipment_id: int, *, for_update: bool = False) -> Equipment | None:
    """Equipment Store read: ``None`` when the id does not resolve."""

    stmt = select(Equipment).where(Equipment.id == equipment_id)
    if for_update:
        # Row lock on databases that support it; SQLite ignores the clause.
        stmt = stmt.with_for_update()
    return db.execute(stmt).unique().scalars().first()


def _clean_equipment_payload(db: Session, payload: dict) -> dict:
    data = {key: payload[key] for key in EQUIPMENT_FIELDS if key in payload}
    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise InvalidReservation("name is required")
        data["name"] = name
    if "quantity" in data:
        quantity = data["quantity"]
        if quantity is None or int(quantity) < 0:
            raise InvalidReservation("quantity must be zero or greater")
        data["quantity"] = int(quantity)
    for key in ("description", "location", "image_url"):
        if key in data and isinstance(data[key], str):
            data[key] = data[key].strip() or None
    if "category_id" in payload:
        category_id = payload.get("category_id")
        if category_id is not None and not get_category(db, category_id):
            raise InvalidReservation("category not found")
        data["category_id"] = category_id
    return data


def create_equipment(db: Session, payload: dict) -> Equipment:
    if "name" not in payload or payload.get("quantity") is None:
        raise InvalidReservation("name and quantity are required")
    data = _clean_equipment_payload(db, payload)
    now = utcnow_iso()
    data.setdefault("is_active", True)
    data.setdefault("is_unlimited", False)
    data.setdefault("is_deleted", False)
    equipment = Equipment(created_at=now, updated_at=now, **data)
    db.add(equipment)
    db.commit()
    db.refresh(equipment)
    return equipment


def update_equipment(db: Session, equipment: Equipment, payload: dict) -> Equipment:
    """Apply a partial update. Unknown keys are ignored."""

    data = _clean_equipment_payload(db, payload)
    for key, value in data.items():
        setattr(equipment, key, value)
    equipment.updated_at = utcnow_iso()
    db.commit()
    db.refresh(equipment)
    return equipment


def deactivate_equipment(db: Session, equipment: Equipment) -> Equipment:
    # Soft delete: reservations keep pointing at the row.
    equipment.is_active = False
    equipment.updated_at = utcnow_iso()
    db.commit()
    db.refresh(equipment)
    return equipment


# ---------- categories ----------


def list_categories(db: Session) -> list[tuple[EquipmentCategory, int]]:
    """Categories by name, each paired with its equipment count."""

    stmt = (
        select(EquipmentCategory, func.count(Equipment.id))
        .outerjoin(Equipment, Equipment.category_id == EquipmentCategory.id)
        .group_by(EquipmentCategory.id)
        .order_by(EquipmentCategory.name)
    )
    return [(category, int(count)) for category, count in db.execute(stmt).all()]


def get_category(db: Session, category_id: int) -> EquipmentCategory | None:
    return db.get(EquipmentCategory, category_id)


def get_category_by_name(db: Session, name: str) -> EquipmentCategory | None:
    stmt = select(EquipmentCategory).where(EquipmentCategory.name == name)
    return db.execute(stmt).scalars().first()


def create_category(db: Session, payload: dict) -> EquipmentCategory:
    name = (payload.get("name") or "").strip()
    if not name:
        raise InvalidReservation("category name is required")
    if get_category_by_name(db, name):
        raise ConflictError("A category with this name already exists", details={"name": name})
    now = utcnow_iso()
    category = EquipmentCategory(
        name=name,
        description=(payload.get("description") or None),
        created_at=now,
        updated_at=now,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def update_category(db: Session, category: EquipmentCategory, payload: dict) -> EquipmentCategory:
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise InvalidReservation("category name is required")
        existing = get_category_by_name(db, name)
        if existing and existing.id != category.id:
            raise ConflictError("A category with this name already exists", details={"name": name})
        category.name = name
    if "description" in payload:
        category.description = payload.get("description") or None
    category.updated_at = utcnow_iso()
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category: EquipmentCategory) -> None:
    in_use = db.execute(
        select(func.count(Equipment.id)).where(Equipment.category_id == category.id)
    ).scalar_one()
    if in_use:
        raise ConflictError(
            "This category still has equipment assigned and cannot be deleted",
            details={"equipment_count": int(in_use)},
        )
    db.delete(category)
    db.commit()
