"""Catalog tables: loanable equipment and the categories that group it."""

from __future__ import annotations

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..core.config import settings
from ..db.session import Base


class EquipmentCategory(Base):
    __tablename__ = "equipment_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    equipments = relationship("Equipment", back_populates="category")

    @property
    def is_unlimited(self) -> bool:
        return self.name in settings.unlimited_category_names


class Equipment(Base):
    """A piece of loanable stock.

    ``quantity`` is the number of units owned. Rows are never removed once
    created; ``is_active`` and ``is_deleted`` retire an item instead.
    """

    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    location = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_unlimited = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    specifications = Column(JSON, nullable=True)
    category_id = Column(Integer, ForeignKey("equipment_categories.id"), nullable=True, index=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    category = relationship("EquipmentCategory", back_populates="equipments", lazy="joined")

    @property
    def total_quantity(self) -> int:
        return int(self.quantity or 0)

    @property
    def unlimited(self) -> bool:
        """Effective unlimited flag, including consumable categories."""

        if self.is_unlimited:
            return True
        return bool(self.category and self.category.is_unlimited)

    @property
    def bookable(self) -> bool:
        return bool(self.is_active) and not self.is_deleted

    @property
    def category_name(self) -> str | None:
        return self.category.name if self.category else None


__all__ = ["Equipment", "EquipmentCategory"]
