from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=-(-total // limit) if limit else 0)


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None


class CategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class CategoryWithCount(CategoryOut):
    equipment_count: int = 0


class EquipmentCreate(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    description: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = None
    is_unlimited: bool = False
    category_id: Optional[int] = None
    specifications: Optional[dict[str, Any]] = None


class EquipmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    quantity: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None
    is_unlimited: Optional[bool] = None
    is_deleted: Optional[bool] = None
    category_id: Optional[int] = None
    specifications: Optional[dict[str, Any]] = None


class EquipmentSummary(BaseModel):
    id: int
    name: str
    quantity: int
    is_unlimited: bool
    category_name: Optional[str] = None

    model_config = {"from_attributes": True}


class EquipmentOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    quantity: int
    location: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool
    is_unlimited: bool
    is_deleted: bool
    specifications: Optional[dict[str, Any]] = None
    category_id: Optional[int] = None
    category: Optional[CategoryOut] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class EquipmentPage(BaseModel):
    items: list[EquipmentOut]
    pagination: Pagination


class AvailableEquipmentOut(EquipmentOut):
    remaining: Optional[int] = None
    is_available: bool
    effective_unlimited: bool
