from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

from ..models.reservation import ReservationStatus
from ..services.timecalc import to_iso
from .equipment import EquipmentSummary, Pagination


class ReservationCreate(BaseModel):
    equipment_id: Optional[int] = None
    custom_equipment_name: Optional[str] = None
    department: str = Field(min_length=1)
    applicant_name: str = Field(min_length=1)
    contact_info: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    quantity: int = Field(default=1, ge=1)
    purpose: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_target(self) -> "ReservationCreate":
        if self.equipment_id is None and not (self.custom_equipment_name and self.custom_equipment_name.strip()):
            raise ValueError("equipment_id or custom_equipment_name is required")
        return self


class ReservationUpdate(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    purpose: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[ReservationStatus] = None


class StatusChange(BaseModel):
    status: ReservationStatus


class OwnCancelRequest(BaseModel):
    contact_info: str = Field(min_length=1)


class ReservationOut(BaseModel):
    id: int
    equipment_id: Optional[int] = None
    custom_equipment_name: Optional[str] = None
    equipment_name: str
    equipment: Optional[EquipmentSummary] = None
    department: str
    applicant_name: str
    contact_info: str
    start_time: datetime
    end_time: datetime
    quantity: int
    purpose: Optional[str] = None
    location: Optional[str] = None
    status: ReservationStatus
    notes: Optional[str] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}

    @field_serializer("start_time", "end_time")
    def serialize_times(self, value: datetime) -> str | None:
        return to_iso(value)


class ReservationPage(BaseModel):
    items: list[ReservationOut]
    pagination: Pagination


class CancelResult(BaseModel):
    message: str
    reservation: ReservationOut


class AvailabilityOut(BaseModel):
    equipment_id: int
    start_time: datetime
    end_time: datetime
    requested_quantity: int
    available: bool
    # null when the item is unlimited
    remaining: Optional[int] = None
    reserved: int
    total_quantity: int
    is_unlimited: bool
    is_bookable: bool

    @field_serializer("start_time", "end_time")
    def serialize_times(self, value: datetime) -> str | None:
        return to_iso(value)
