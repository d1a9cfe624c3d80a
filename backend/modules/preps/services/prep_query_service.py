# backend/modules/preps/services/prep_query_service.py

"""
Read side of prep costing: search, detail views and cost breakdowns.

Stored preps are returned as persisted. Breakdowns are the exception: they
are recomputed from current ingredient prices on every call, so a report
never shows a cost that is waiting for propagation. Nothing here writes.
"""

from typing import Any, Dict, List, Optional, Tuple
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from ..config import get_costing_config
from ..models import Ingredient, Prep, PrepIngredient
from ..exceptions import MissingCostData
from ..schemas.prep_schemas import (
    CostBreakdownLine,
    PrepCostBreakdown,
    MenuItemCostBreakdown,
    PrepUsageItem,
    PrepUsageResponse,
)
from ..utils.performance_utils import timing_logger
from .cost_calculator import (
    calculate_prep_cost,
    calculate_cost_per_unit,
    cost_share,
    food_cost_percentage,
    line_cost,
    missing_inputs,
    quantize_stored,
    rate_food_cost,
    round_currency,
    to_decimal,
)
from .graph_store import CompositionGraphStore

logger = logging.getLogger(__name__)


class PrepQueryService:
    def __init__(self, db: Session):
        self.db = db
        self.store = CompositionGraphStore(db)
        self.precision = get_costing_config().CURRENCY_PRECISION

    def search_preps(
        self,
        query: Optional[str] = None,
        active_only: bool = False,
        include_ingredients: bool = False,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        preps, total = self.store.list_preps(
            search=query,
            active_only=active_only,
            include_edges=include_ingredients,
            offset=offset,
            limit=limit,
        )
        return [self.serialize_prep(prep, include_ingredients) for prep in preps], total

    def get_prep(self, prep_id: int, include_ingredients: bool = False) -> Dict[str, Any]:
        prep = self.store.get_prep(prep_id, include_edges=include_ingredients)
        return self.serialize_prep(prep, include_ingredients)

    def get_prep_with_ingredients(self, prep_id: int) -> Dict[str, Any]:
        """Prep plus each edge resolved to the ingredient's current name, unit and price"""
        return self.get_prep(prep_id, include_ingredients=True)

    def list_ingredients(
        self,
        query: Optional[str] = None,
        active_only: bool = False,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Ingredient], int]:
        return self.store.list_ingredients(query, active_only, offset, limit)

    def serialize_prep(self, prep: Prep, include_ingredients: bool = False) -> Dict[str, Any]:
        data = {
            column.name: getattr(prep, column.name)
            for column in Prep.__table__.columns
        }
        data["ingredients"] = (
            [self._serialize_edge(edge) for edge in prep.ingredients]
            if include_ingredients
            else None
        )
        return data

    def _serialize_edge(self, edge: PrepIngredient) -> Dict[str, Any]:
        ingredient = edge.ingredient
        return {
            "id": edge.id,
            "ingredient_id": edge.ingredient_id,
            "quantity": edge.quantity,
            "unit": edge.unit,
            "notes": edge.notes,
            "ingredient_name": ingredient.name if ingredient else None,
            "ingredient_unit": ingredient.unit if ingredient else None,
            "ingredient_cost_per_unit": ingredient.cost_per_unit if ingredient else None,
            "line_cost": (
                round_currency(line_cost(edge.quantity, ingredient.cost_per_unit), self.precision)
                if ingredient
                else None
            ),
        }

    @timing_logger("get_cost_breakdown")
    def get_cost_breakdown(self, prep_id: int) -> PrepCostBreakdown:
        """Line items and total for one batch, priced at current ingredient costs"""
        prep = self.store.get_prep(prep_id, include_edges=True)

        missing = [edge.ingredient_id for edge in prep.ingredients if edge.ingredient is None]
        if missing:
            raise MissingCostData(prep.id, missing)

        raw_lines = [
            (
                "ingredient",
                edge.ingredient_id,
                edge.ingredient.name,
                edge.quantity,
                edge.unit,
                to_decimal(edge.ingredient.cost_per_unit),
            )
            for edge in prep.ingredients
        ]
        lines, total = self._build_lines(raw_lines)
        stored = to_decimal(prep.cost_per_batch)

        return PrepCostBreakdown(
            prep_id=prep.id,
            prep_name=prep.name,
            batch_yield_amount=prep.batch_yield_amount,
            batch_yield_unit=prep.batch_yield_unit,
            lines=lines,
            total_cost=round_currency(total, self.precision),
            cost_per_unit=quantize_stored(
                calculate_cost_per_unit(total, prep.batch_yield_amount)
            ),
            stored_cost_per_batch=round_currency(stored, self.precision),
            is_stale=quantize_stored(total) != stored,
            most_expensive=self._most_expensive(lines),
        )

    def get_menu_item_cost_breakdown(self, menu_item_id: int) -> MenuItemCostBreakdown:
        """
        Cost of one portion of a dish.

        Prep components are priced at a live recomputation of the prep's
        cost per unit rather than the stored value.
        """
        menu_item = self.store.get_menu_item(menu_item_id, include_edges=True)

        raw_lines = []
        for edge in menu_item.ingredients:
            if edge.ingredient_id is not None:
                raw_lines.append(
                    (
                        "ingredient",
                        edge.ingredient_id,
                        edge.ingredient.name,
                        edge.quantity,
                        edge.unit,
                        to_decimal(edge.ingredient.cost_per_unit),
                    )
                )
            else:
                raw_lines.append(
                    (
                        "prep",
                        edge.prep_id,
                        edge.prep.name,
                        edge.quantity,
                        edge.unit,
                        self._live_prep_unit_cost(edge.prep),
                    )
                )

        lines, total = self._build_lines(raw_lines)
        price = to_decimal(menu_item.price)
        percentage = food_cost_percentage(total, price)

        return MenuItemCostBreakdown(
            menu_item_id=menu_item.id,
            menu_item_name=menu_item.name,
            price=round_currency(price, self.precision),
            lines=lines,
            total_cost=round_currency(total, self.precision),
            food_cost_percentage=(
                round_currency(percentage, 2) if percentage is not None else None
            ),
            margin=round_currency(price - total, self.precision),
            cost_rating=rate_food_cost(percentage),
            most_expensive=self._most_expensive(lines),
        )

    def get_prep_usage(self, prep_id: int) -> PrepUsageResponse:
        """Menu items that use the prep, i.e. what blocks its deletion"""
        prep = self.store.get_prep(prep_id)
        edges = self.store.menu_items_using_prep(prep_id)
        items = [
            PrepUsageItem(
                menu_item_id=edge.menu_item_id,
                menu_item_name=edge.menu_item.name,
                quantity=edge.quantity,
                unit=edge.unit,
            )
            for edge in edges
        ]
        return PrepUsageResponse(
            prep_id=prep.id,
            prep_name=prep.name,
            menu_item_count=len({item.menu_item_id for item in items}),
            menu_items=items,
        )

    def _live_prep_unit_cost(self, prep: Prep) -> Decimal:
        inputs = self.store.resolve_cost_inputs(prep)
        missing = missing_inputs(inputs)
        if missing:
            raise MissingCostData(prep.id, missing)
        return calculate_prep_cost(prep.batch_yield_amount, inputs).cost_per_unit

    def _build_lines(self, raw_lines) -> Tuple[List[CostBreakdownLine], Decimal]:
        costs = [line_cost(quantity, unit_cost) for _, _, _, quantity, _, unit_cost in raw_lines]
        total = sum(costs, Decimal("0"))
        lines = [
            CostBreakdownLine(
                source_type=source_type,
                source_id=source_id,
                name=name,
                quantity=to_decimal(quantity),
                unit=unit,
                unit_cost=quantize_stored(unit_cost),
                line_cost=round_currency(cost, self.precision),
                percentage=round_currency(cost_share(cost, total), 2),
            )
            for (source_type, source_id, name, quantity, unit, unit_cost), cost in zip(raw_lines, costs)
        ]
        return lines, total

    @staticmethod
    def _most_expensive(lines: List[CostBreakdownLine]) -> Optional[CostBreakdownLine]:
        if not lines:
            return None
        return max(lines, key=lambda line: line.line_cost)
