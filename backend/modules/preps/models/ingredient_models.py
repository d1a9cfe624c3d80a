# backend/modules/preps/models/ingredient_models.py

from sqlalchemy import Column, Integer, String, Boolean, Numeric, CheckConstraint
from core.database import Base
from core.mixins import TimestampMixin


class Ingredient(Base, TimestampMixin):
    """Raw ingredient priced per unit of measure"""

    __tablename__ = "ingredients"
    __table_args__ = (
        CheckConstraint("cost_per_unit >= 0", name="ck_ingredient_cost_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    name_de = Column(String(200), nullable=True)
    name_en = Column(String(200), nullable=True)
    category = Column(String(100), nullable=True)

    unit = Column(String(50), nullable=False)
    cost_per_unit = Column(Numeric(14, 6), nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Ingredient(id={self.id}, name='{self.name}', unit='{self.unit}')>"
