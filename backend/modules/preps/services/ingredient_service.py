# backend/modules/preps/services/ingredient_service.py

from typing import Optional, Tuple
import logging

from sqlalchemy.orm import Session

from core.database import SessionLocal
from ..config import get_costing_config
from ..models import Ingredient
from ..schemas.prep_schemas import IngredientCreate, IngredientUpdate
from .graph_store import CompositionGraphStore
from .propagation_service import PropagationScheduler, PropagationResult

logger = logging.getLogger(__name__)


class IngredientService:
    """
    Ingredient administration.

    A change of cost per unit is the one ingredient edit that affects other
    rows: after it is committed the propagation scheduler recomputes every
    prep using the ingredient, inline or on the task queue depending on
    ``DEFER_PROPAGATION``.
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = CompositionGraphStore(db)
        self.config = get_costing_config()

    def create_ingredient(self, data: IngredientCreate) -> Ingredient:
        ingredient = Ingredient(**data.model_dump())
        try:
            self.store.put_ingredient(ingredient)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(ingredient)
        logger.info(f"Created ingredient {ingredient.id} '{ingredient.name}'")
        return ingredient

    def update_ingredient(
        self, ingredient_id: int, data: IngredientUpdate
    ) -> Tuple[Ingredient, bool, Optional[PropagationResult], Optional[str]]:
        """
        Apply a partial update.

        Returns:
            (ingredient, whether the cost changed, inline propagation result,
            id of the queued propagation task when deferred)
        """
        update_data = data.model_dump(exclude_unset=True)
        new_cost = update_data.pop("cost_per_unit", None)

        try:
            ingredient = self.store.get_ingredient(ingredient_id)
            if update_data.get("unit") is not None:
                self.store.guard.check_ingredient_unit_change(ingredient, update_data["unit"])
            for field, value in update_data.items():
                if value is None and field in ("name", "unit", "is_active"):
                    continue
                setattr(ingredient, field, value)
            self.store.put_ingredient(ingredient)

            changed = False
            previous = ingredient.cost_per_unit
            if new_cost is not None:
                ingredient, previous, changed = self.store.put_ingredient_cost(
                    ingredient_id, new_cost
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(ingredient)

        if not changed:
            return ingredient, False, None, None

        logger.info(
            f"Cost of ingredient {ingredient_id} changed from {previous} "
            f"to {ingredient.cost_per_unit}"
        )
        result, task_id = self.propagate_cost_change(
            ingredient_id, previous, ingredient.cost_per_unit
        )
        self.db.refresh(ingredient)
        return ingredient, True, result, task_id

    def update_cost(self, ingredient_id: int, new_cost) -> Tuple[Ingredient, Optional[PropagationResult]]:
        ingredient, _, result, _ = self.update_ingredient(
            ingredient_id, IngredientUpdate(cost_per_unit=new_cost)
        )
        return ingredient, result

    def propagate_cost_change(
        self, ingredient_id: int, old_cost=None, new_cost=None
    ) -> Tuple[Optional[PropagationResult], Optional[str]]:
        if self.config.DEFER_PROPAGATION:
            from ..tasks.prep_cost_tasks import propagate_ingredient_cost_async

            task = propagate_ingredient_cost_async.delay(ingredient_id)
            logger.info(
                f"Queued cost propagation for ingredient {ingredient_id} as task {task.id}"
            )
            return None, task.id

        session_factory = SessionLocal if self.config.PROPAGATION_MAX_WORKERS > 1 else None
        scheduler = PropagationScheduler(self.db, session_factory=session_factory)
        return scheduler.propagate_ingredient_change(ingredient_id, old_cost, new_cost), None

    def delete_ingredient(self, ingredient_id: int) -> None:
        """Delete an ingredient unless a prep or menu item still uses it"""
        self.store.delete_ingredient(ingredient_id)
        self.db.commit()
        logger.info(f"Deleted ingredient {ingredient_id}")
