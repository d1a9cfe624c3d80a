# backend/modules/preps/services/consistency_guard.py

"""
Structural validation for every write to the composition graph.

Checks run before the store touches a row so that callers always get a
domain error naming the violated rule instead of a database constraint
failure. Order of evaluation: exclusivity, uniqueness, referential-delete
protection, positivity.
"""

from typing import Any, Dict, Iterable, List, Optional
from decimal import Decimal, InvalidOperation
import logging

from sqlalchemy.orm import Session

from ..models import Ingredient, Prep, PrepIngredient, MenuItem, MenuItemIngredient
from ..exceptions import (
    PrepErrorCode,
    PrepValidationError,
    ExclusivityViolation,
    DuplicateEdge,
    ReferentialDeleteBlocked,
)
from ..utils.costing_logging import costing_logger
from .cost_calculator import QUANTITY_EXPONENT, quantize_quantity

logger = logging.getLogger(__name__)


def normalize_unit(unit: Optional[str]) -> Optional[str]:
    if unit is None:
        return None
    return unit.strip().lower() or None


class ConsistencyGuard:
    """Validates graph mutations against the standing invariants"""

    def __init__(self, db: Session):
        self.db = db

    # Exclusivity

    def check_menu_item_component(
        self,
        ingredient_id: Optional[int],
        prep_id: Optional[int],
        quantity: Any,
    ) -> None:
        if (ingredient_id is None) == (prep_id is None):
            raise ExclusivityViolation(ingredient_id, prep_id)
        self.check_positive(quantity, "quantity")

    # Uniqueness

    def check_prep_ingredient_insert(
        self, prep_id: Optional[int], ingredient: Ingredient, quantity: Any
    ) -> None:
        if prep_id is not None:
            exists = (
                self.db.query(PrepIngredient.id)
                .filter(
                    PrepIngredient.prep_id == prep_id,
                    PrepIngredient.ingredient_id == ingredient.id,
                )
                .first()
            )
            if exists:
                raise DuplicateEdge(prep_id, ingredient.id, ingredient.name)
        self.check_positive(quantity, "quantity")

    def check_unique_ingredients(
        self, prep_id: Optional[int], ingredient_ids: Iterable[int]
    ) -> None:
        """Reject a submitted edge list naming the same ingredient twice"""
        seen = set()
        for ingredient_id in ingredient_ids:
            if ingredient_id in seen:
                raise DuplicateEdge(prep_id or 0, ingredient_id)
            seen.add(ingredient_id)

    # Referential-delete protection

    def check_prep_delete(self, prep: Prep) -> None:
        menu_names = self._menu_item_names(MenuItemIngredient.prep_id == prep.id)
        if menu_names:
            referenced_by = [
                {
                    "entity_type": "menu_items",
                    "count": len(menu_names),
                    "names": menu_names,
                }
            ]
            costing_logger.log_delete_blocked("prep", prep.id, referenced_by)
            raise ReferentialDeleteBlocked("prep", prep.id, prep.name, referenced_by)

    def check_ingredient_delete(self, ingredient: Ingredient) -> None:
        referenced_by: List[Dict[str, Any]] = []

        prep_names = [
            name
            for (name,) in self.db.query(Prep.name)
            .join(PrepIngredient, PrepIngredient.prep_id == Prep.id)
            .filter(PrepIngredient.ingredient_id == ingredient.id)
            .order_by(Prep.name)
            .all()
        ]
        if prep_names:
            referenced_by.append(
                {"entity_type": "preps", "count": len(prep_names), "names": prep_names}
            )

        menu_names = self._menu_item_names(
            MenuItemIngredient.ingredient_id == ingredient.id
        )
        if menu_names:
            referenced_by.append(
                {
                    "entity_type": "menu_items",
                    "count": len(menu_names),
                    "names": menu_names,
                }
            )

        if referenced_by:
            costing_logger.log_delete_blocked("ingredient", ingredient.id, referenced_by)
            raise ReferentialDeleteBlocked(
                "ingredient", ingredient.id, ingredient.name, referenced_by
            )

    def _menu_item_names(self, condition) -> List[str]:
        rows = (
            self.db.query(MenuItem.name)
            .join(MenuItemIngredient, MenuItemIngredient.menu_item_id == MenuItem.id)
            .filter(condition)
            .group_by(MenuItem.id, MenuItem.name)
            .order_by(MenuItem.name)
            .all()
        )
        return [name for (name,) in rows]

    # Positivity

    def check_positive(self, value: Any, field: str) -> Decimal:
        number = self._as_decimal(value, field)
        if number <= 0:
            raise PrepValidationError(
                f"{field} must be greater than zero", field=field, value=value
            )
        return number

    def check_quantity(self, value: Any, field: str) -> Decimal:
        """Positive amount rounded to the scale of the quantity and yield columns"""
        number = self.check_positive(value, field)
        try:
            rounded = quantize_quantity(number)
        except InvalidOperation:
            raise PrepValidationError(
                f"{field} is too large", field=field, value=value
            )
        if rounded <= 0:
            raise PrepValidationError(
                f"{field} is below the smallest storable amount ({QUANTITY_EXPONENT})",
                field=field,
                value=value,
            )
        return rounded

    def check_non_negative(self, value: Any, field: str) -> Decimal:
        number = self._as_decimal(value, field)
        if number < 0:
            raise PrepValidationError(
                f"{field} cannot be negative", field=field, value=value
            )
        return number

    def check_prep_fields(self, prep: Prep) -> None:
        if not prep.name or not prep.name.strip():
            raise PrepValidationError("name is required", field="name")
        self.check_positive(prep.batch_yield_amount, "batch_yield_amount")

    def check_menu_item_fields(self, menu_item: MenuItem) -> None:
        if not menu_item.name or not menu_item.name.strip():
            raise PrepValidationError("name is required", field="name")
        self.check_non_negative(menu_item.price, "price")

    def check_ingredient_fields(self, ingredient: Ingredient) -> None:
        if not ingredient.name or not ingredient.name.strip():
            raise PrepValidationError("name is required", field="name")
        if not normalize_unit(ingredient.unit):
            raise PrepValidationError("unit is required", field="unit")
        self.check_non_negative(ingredient.cost_per_unit, "cost_per_unit")

    # Units

    def resolve_edge_unit(self, ingredient: Ingredient, unit: Optional[str]) -> str:
        """
        Unit stored on an edge from an ingredient.

        The edge inherits the ingredient's unit when none is given; any other
        unit is rejected because no conversion between units is performed.
        """
        if normalize_unit(unit) is None:
            return ingredient.unit
        if normalize_unit(unit) != normalize_unit(ingredient.unit):
            raise PrepValidationError(
                f"Unit '{unit}' does not match the unit '{ingredient.unit}' "
                f"that {ingredient.name} is priced in",
                field="unit",
                value=unit,
                error_code=PrepErrorCode.UNIT_MISMATCH,
                details={"ingredient_id": ingredient.id, "ingredient_unit": ingredient.unit},
            )
        return unit.strip()

    def resolve_prep_edge_unit(self, prep: Prep, unit: Optional[str]) -> Optional[str]:
        """Unit stored on a menu item edge from a prep, priced per unit of yield"""
        if normalize_unit(unit) is None:
            return prep.batch_yield_unit
        if normalize_unit(prep.batch_yield_unit) is None:
            return unit.strip()
        if normalize_unit(unit) != normalize_unit(prep.batch_yield_unit):
            raise PrepValidationError(
                f"Unit '{unit}' does not match the unit '{prep.batch_yield_unit}' "
                f"that {prep.name} yields in",
                field="unit",
                value=unit,
                error_code=PrepErrorCode.UNIT_MISMATCH,
                details={"prep_id": prep.id, "batch_yield_unit": prep.batch_yield_unit},
            )
        return unit.strip()

    def check_ingredient_unit_change(self, ingredient: Ingredient, new_unit: str) -> None:
        """An ingredient cannot switch units while edges are measured in the old one"""
        if normalize_unit(new_unit) == normalize_unit(ingredient.unit):
            return
        edge_count = (
            self.db.query(PrepIngredient.id)
            .filter(PrepIngredient.ingredient_id == ingredient.id)
            .count()
        )
        menu_edge_count = (
            self.db.query(MenuItemIngredient.id)
            .filter(MenuItemIngredient.ingredient_id == ingredient.id)
            .count()
        )
        if edge_count or menu_edge_count:
            raise PrepValidationError(
                f"Cannot change the unit of {ingredient.name} from '{ingredient.unit}' "
                f"to '{new_unit}' while {edge_count + menu_edge_count} edge(s) use it",
                field="unit",
                value=new_unit,
                error_code=PrepErrorCode.UNIT_MISMATCH,
                details={
                    "ingredient_id": ingredient.id,
                    "prep_edge_count": edge_count,
                    "menu_item_edge_count": menu_edge_count,
                },
            )

    def check_prep_unit_change(self, prep: Prep, new_unit: Optional[str]) -> None:
        if normalize_unit(new_unit) == normalize_unit(prep.batch_yield_unit):
            return
        menu_edge_count = (
            self.db.query(MenuItemIngredient.id)
            .filter(MenuItemIngredient.prep_id == prep.id)
            .count()
        )
        if menu_edge_count:
            raise PrepValidationError(
                f"Cannot change the yield unit of {prep.name} from "
                f"'{prep.batch_yield_unit}' to '{new_unit}' while "
                f"{menu_edge_count} menu item(s) use it",
                field="batch_yield_unit",
                value=new_unit,
                error_code=PrepErrorCode.UNIT_MISMATCH,
                details={"prep_id": prep.id, "menu_item_edge_count": menu_edge_count},
            )

    @staticmethod
    def _as_decimal(value: Any, field: str) -> Decimal:
        if value is None:
            raise PrepValidationError(f"{field} is required", field=field)
        if isinstance(value, Decimal):
            number = value
        else:
            try:
                number = Decimal(str(value))
            except (InvalidOperation, ValueError):
                raise PrepValidationError(
                    f"{field} must be a number", field=field, value=value
                )
        if not number.is_finite():
            raise PrepValidationError(
                f"{field} must be a finite number", field=field, value=value
            )
        return number
