"""Reservation table, its status enumeration and the borrowed-item variant."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Union

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]


# Only these statuses consume capacity.
ACTIVE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.APPROVED})

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset(
        {ReservationStatus.APPROVED, ReservationStatus.REJECTED, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.APPROVED: frozenset({ReservationStatus.CANCELLED, ReservationStatus.COMPLETED}),
    ReservationStatus.REJECTED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.COMPLETED: frozenset(),
}


@dataclass(frozen=True)
class CatalogItem:
    equipment_id: int


@dataclass(frozen=True)
class AdHoc:
    name: str


ReservationTarget = Union[CatalogItem, AdHoc]


class Reservation(Base):
    """A claim on ``quantity`` units over the half-open window [start_time, end_time).

    Times are stored as naive UTC.
    """

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=True, index=True)
    custom_equipment_name = Column(Text, nullable=True)
    department = Column(Text, nullable=False)
    applicant_name = Column(Text, nullable=False)
    contact_info = Column(Text, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    purpose = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    status = Column(
        Enum(
            ReservationStatus,
            name="reservation_status",
            native_enum=False,
            length=20,
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
        default=ReservationStatus.PENDING,
        index=True,
    )
    notes = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    equipment = relationship("Equipment", lazy="joined")

    @property
    def target(self) -> ReservationTarget:
        # The catalog reference wins when both columns are populated.
        if self.equipment_id is not None:
            return CatalogItem(self.equipment_id)
        return AdHoc(self.custom_equipment_name or "")

    @property
    def equipment_name(self) -> str:
        if self.equipment is not None:
            return self.equipment.name
        return self.custom_equipment_name or "未設定"

    @property
    def is_active(self) -> bool:
        return ReservationStatus(self.status) in ACTIVE_STATUSES


__all__ = [
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "AdHoc",
    "CatalogItem",
    "Reservation",
    "ReservationStatus",
    "ReservationTarget",
]
