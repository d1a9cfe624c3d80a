# backend/modules/preps/models/menu_item_models.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Text,
    Boolean,
    Numeric,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from core.database import Base
from core.mixins import TimestampMixin


class MenuItem(Base, TimestampMixin):
    """Dish on the menu; its price is authored, not derived"""

    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    ingredients = relationship(
        "MenuItemIngredient",
        back_populates="menu_item",
        cascade="all, delete-orphan",
        order_by="MenuItemIngredient.id",
    )


class MenuItemIngredient(Base, TimestampMixin):
    """Component of a dish: either a raw ingredient or a prep, never both"""

    __tablename__ = "menu_item_ingredients"
    __table_args__ = (
        CheckConstraint(
            "(ingredient_id IS NOT NULL AND prep_id IS NULL) OR "
            "(ingredient_id IS NULL AND prep_id IS NOT NULL)",
            name="ck_menu_item_ingredient_single_source",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    menu_item_id = Column(
        Integer,
        ForeignKey("menu_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id"), nullable=True, index=True
    )
    prep_id = Column(Integer, ForeignKey("preps.id"), nullable=True, index=True)

    quantity = Column(Numeric(12, 4), nullable=False)
    unit = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    menu_item = relationship("MenuItem", back_populates="ingredients")
    ingredient = relationship("Ingredient")
    prep = relationship("Prep")
