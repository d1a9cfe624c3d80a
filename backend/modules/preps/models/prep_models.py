# backend/modules/preps/models/prep_models.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Text,
    Boolean,
    Numeric,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from core.database import Base
from core.mixins import TimestampMixin


class Prep(Base, TimestampMixin):
    """Intermediate batch preparation made from ingredients"""

    __tablename__ = "preps"
    __table_args__ = (
        CheckConstraint("batch_yield_amount > 0", name="ck_prep_batch_yield_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    name_de = Column(String(200), nullable=True)
    name_en = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    description_de = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)

    # Yield of one batch, e.g. "500ml" -> 500 / ml
    batch_yield = Column(String(50), nullable=True)
    batch_yield_amount = Column(Numeric(12, 4), nullable=False)
    batch_yield_unit = Column(String(50), nullable=True)

    instructions = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Derived by the cost calculator, never edited directly
    cost_per_batch = Column(Numeric(14, 6), nullable=False, default=0)
    cost_per_unit = Column(Numeric(14, 6), nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)

    # Optimistic lock counter, bumped on every UPDATE of the row
    version = Column(Integer, nullable=False)

    ingredients = relationship(
        "PrepIngredient",
        back_populates="prep",
        cascade="all, delete-orphan",
        order_by="PrepIngredient.id",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Prep(id={self.id}, name='{self.name}', version={self.version})>"


class PrepIngredient(Base, TimestampMixin):
    """Edge from an ingredient into a prep, carrying the quantity used per batch"""

    __tablename__ = "prep_ingredients"
    __table_args__ = (
        UniqueConstraint("prep_id", "ingredient_id", name="uq_prep_ingredient"),
        CheckConstraint("quantity > 0", name="ck_prep_ingredient_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    prep_id = Column(
        Integer, ForeignKey("preps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id"), nullable=False, index=True
    )

    quantity = Column(Numeric(12, 4), nullable=False)
    unit = Column(String(50), nullable=False)
    notes = Column(Text, nullable=True)

    prep = relationship("Prep", back_populates="ingredients")
    ingredient = relationship("Ingredient")

    def __repr__(self):
        return (
            f"<PrepIngredient(prep_id={self.prep_id}, "
            f"ingredient_id={self.ingredient_id}, quantity={self.quantity})>"
        )
