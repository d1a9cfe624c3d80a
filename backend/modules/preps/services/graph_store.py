# backend/modules/preps/services/graph_store.py

"""
Composition graph store: ingredients, preps, menu items and their edges.

The store is the only component that writes graph rows, and every write
passes through the ConsistencyGuard first. Methods flush but never commit;
the calling service owns the transaction boundary.
"""

from typing import List, Optional, Tuple
from decimal import Decimal
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ..models import Ingredient, Prep, PrepIngredient, MenuItem, MenuItemIngredient
from ..exceptions import PrepNotFound
from .consistency_guard import ConsistencyGuard
from .cost_calculator import CostInput, to_decimal

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"


def like_pattern(search: str) -> str:
    """Substring pattern in which the user's % and _ match themselves"""
    term = (
        search.strip()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{term}%"


class CompositionGraphStore:
    """Guarded read/write access to the composition graph"""

    def __init__(self, db: Session, guard: Optional[ConsistencyGuard] = None):
        self.db = db
        self.guard = guard or ConsistencyGuard(db)

    # Reads

    def get_ingredient(self, ingredient_id: int) -> Ingredient:
        ingredient = self.db.query(Ingredient).filter(Ingredient.id == ingredient_id).first()
        if not ingredient:
            raise PrepNotFound("ingredient", ingredient_id)
        return ingredient

    def get_prep(self, prep_id: int, include_edges: bool = False) -> Prep:
        query = self.db.query(Prep)
        if include_edges:
            query = query.options(
                selectinload(Prep.ingredients).joinedload(PrepIngredient.ingredient)
            )
        prep = query.filter(Prep.id == prep_id).first()
        if not prep:
            raise PrepNotFound("prep", prep_id)
        return prep

    def get_menu_item(self, menu_item_id: int, include_edges: bool = False) -> MenuItem:
        query = self.db.query(MenuItem)
        if include_edges:
            query = query.options(
                selectinload(MenuItem.ingredients).joinedload(MenuItemIngredient.ingredient),
                selectinload(MenuItem.ingredients).joinedload(MenuItemIngredient.prep),
            )
        menu_item = query.filter(MenuItem.id == menu_item_id).first()
        if not menu_item:
            raise PrepNotFound("menu item", menu_item_id)
        return menu_item

    def list_preps(
        self,
        search: Optional[str] = None,
        active_only: bool = False,
        include_edges: bool = False,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Prep], int]:
        """Substring search over all display names, ordered by name"""
        query = self.db.query(Prep)

        if search:
            pattern = like_pattern(search)
            query = query.filter(
                or_(
                    Prep.name.ilike(pattern, escape=LIKE_ESCAPE),
                    Prep.name_de.ilike(pattern, escape=LIKE_ESCAPE),
                    Prep.name_en.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )
        if active_only:
            query = query.filter(Prep.is_active == True)

        total = query.count()

        if include_edges:
            query = query.options(
                selectinload(Prep.ingredients).joinedload(PrepIngredient.ingredient)
            )
        preps = query.order_by(Prep.name, Prep.id).offset(offset).limit(limit).all()
        return preps, total

    def list_ingredients(
        self,
        search: Optional[str] = None,
        active_only: bool = False,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Ingredient], int]:
        query = self.db.query(Ingredient)

        if search:
            pattern = like_pattern(search)
            query = query.filter(
                or_(
                    Ingredient.name.ilike(pattern, escape=LIKE_ESCAPE),
                    Ingredient.name_de.ilike(pattern, escape=LIKE_ESCAPE),
                    Ingredient.name_en.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )
        if active_only:
            query = query.filter(Ingredient.is_active == True)

        total = query.count()
        items = query.order_by(Ingredient.name, Ingredient.id).offset(offset).limit(limit).all()
        return items, total

    def find_preps_using_ingredient(self, ingredient_id: int) -> List[int]:
        """Reverse index lookup: ids of preps with an edge from the ingredient"""
        rows = (
            self.db.query(PrepIngredient.prep_id)
            .filter(PrepIngredient.ingredient_id == ingredient_id)
            .distinct()
            .order_by(PrepIngredient.prep_id)
            .all()
        )
        return [prep_id for (prep_id,) in rows]

    def all_prep_ids(self) -> List[int]:
        return [prep_id for (prep_id,) in self.db.query(Prep.id).order_by(Prep.id).all()]

    def resolve_cost_inputs(self, prep: Prep) -> List[CostInput]:
        """Pair each edge of the prep with its ingredient's current price"""
        edges = (
            self.db.query(PrepIngredient)
            .options(joinedload(PrepIngredient.ingredient))
            .filter(PrepIngredient.prep_id == prep.id)
            .order_by(PrepIngredient.id)
            .all()
        )
        return [
            CostInput(
                ingredient_id=edge.ingredient_id,
                quantity=to_decimal(edge.quantity),
                cost_per_unit=(
                    to_decimal(edge.ingredient.cost_per_unit)
                    if edge.ingredient is not None
                    else None
                ),
            )
            for edge in edges
        ]

    def menu_items_using_prep(self, prep_id: int) -> List[MenuItemIngredient]:
        return (
            self.db.query(MenuItemIngredient)
            .options(joinedload(MenuItemIngredient.menu_item))
            .filter(MenuItemIngredient.prep_id == prep_id)
            .order_by(MenuItemIngredient.menu_item_id, MenuItemIngredient.id)
            .all()
        )

    # Writes

    def put_prep(self, prep: Prep) -> Prep:
        """Insert a new prep or flush edits to an existing one"""
        self.guard.check_prep_fields(prep)
        prep.batch_yield_amount = self.guard.check_quantity(
            prep.batch_yield_amount, "batch_yield_amount"
        )
        if prep.id is None:
            self.db.add(prep)
        self.db.flush()
        return prep

    def put_ingredient(self, ingredient: Ingredient) -> Ingredient:
        self.guard.check_ingredient_fields(ingredient)
        if ingredient.id is None:
            self.db.add(ingredient)
        self.db.flush()
        return ingredient

    def put_ingredient_cost(self, ingredient_id: int, new_cost) -> Tuple[Ingredient, Decimal, bool]:
        """
        Set an ingredient's cost per unit.

        Returns:
            (ingredient, previous cost, whether the cost actually changed)
        """
        cost = self.guard.check_non_negative(new_cost, "cost_per_unit")
        ingredient = self.get_ingredient(ingredient_id)
        previous = to_decimal(ingredient.cost_per_unit)
        changed = previous != cost
        if changed:
            ingredient.cost_per_unit = cost
            self.db.flush()
        return ingredient, previous, changed

    def add_prep_ingredient(
        self,
        prep: Prep,
        ingredient_id: int,
        quantity,
        unit: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PrepIngredient:
        ingredient = self.get_ingredient(ingredient_id)
        self.guard.check_prep_ingredient_insert(prep.id, ingredient, quantity)
        edge = PrepIngredient(
            ingredient_id=ingredient.id,
            quantity=self.guard.check_quantity(quantity, "quantity"),
            unit=self.guard.resolve_edge_unit(ingredient, unit),
            notes=notes,
        )
        edge.ingredient = ingredient
        prep.ingredients.append(edge)
        self.db.flush()
        return edge

    def get_prep_ingredient(self, prep_id: int, ingredient_id: int) -> PrepIngredient:
        edge = (
            self.db.query(PrepIngredient)
            .filter(
                PrepIngredient.prep_id == prep_id,
                PrepIngredient.ingredient_id == ingredient_id,
            )
            .first()
        )
        if not edge:
            raise PrepNotFound("prep ingredient", f"{prep_id}/{ingredient_id}")
        return edge

    def update_prep_ingredient(
        self,
        prep_id: int,
        ingredient_id: int,
        quantity=None,
        unit: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PrepIngredient:
        edge = self.get_prep_ingredient(prep_id, ingredient_id)
        if quantity is not None:
            edge.quantity = self.guard.check_quantity(quantity, "quantity")
        if unit is not None:
            edge.unit = self.guard.resolve_edge_unit(edge.ingredient, unit)
        if notes is not None:
            edge.notes = notes
        self.db.flush()
        return edge

    def remove_prep_ingredient(self, prep_id: int, ingredient_id: int) -> None:
        edge = self.get_prep_ingredient(prep_id, ingredient_id)
        prep = edge.prep
        prep.ingredients.remove(edge)
        self.db.flush()

    def add_menu_item_ingredient(
        self,
        menu_item_id: int,
        quantity,
        ingredient_id: Optional[int] = None,
        prep_id: Optional[int] = None,
        unit: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> MenuItemIngredient:
        self.guard.check_menu_item_component(ingredient_id, prep_id, quantity)
        menu_item = self.get_menu_item(menu_item_id)

        edge = MenuItemIngredient(
            quantity=self.guard.check_quantity(quantity, "quantity"),
            notes=notes,
        )
        if ingredient_id is not None:
            ingredient = self.get_ingredient(ingredient_id)
            edge.unit = self.guard.resolve_edge_unit(ingredient, unit)
            edge.ingredient = ingredient
        else:
            prep = self.get_prep(prep_id)
            edge.unit = self.guard.resolve_prep_edge_unit(prep, unit)
            edge.prep = prep

        menu_item.ingredients.append(edge)
        self.db.flush()
        return edge

    def remove_menu_item_ingredient(self, menu_item_id: int, edge_id: int) -> None:
        edge = (
            self.db.query(MenuItemIngredient)
            .filter(
                MenuItemIngredient.id == edge_id,
                MenuItemIngredient.menu_item_id == menu_item_id,
            )
            .first()
        )
        if not edge:
            raise PrepNotFound("menu item ingredient", edge_id)
        self.db.delete(edge)
        self.db.flush()

    def put_menu_item(self, menu_item: MenuItem) -> MenuItem:
        self.guard.check_menu_item_fields(menu_item)
        if menu_item.id is None:
            self.db.add(menu_item)
        self.db.flush()
        return menu_item

    def delete_prep(self, prep_id: int) -> None:
        """Guard-then-delete; the prep's own edges go with it"""
        prep = self.get_prep(prep_id)
        self.guard.check_prep_delete(prep)
        self.db.delete(prep)
        self.db.flush()

    def delete_ingredient(self, ingredient_id: int) -> None:
        ingredient = self.get_ingredient(ingredient_id)
        self.guard.check_ingredient_delete(ingredient)
        self.db.delete(ingredient)
        self.db.flush()

    def delete_menu_item(self, menu_item_id: int) -> None:
        menu_item = self.get_menu_item(menu_item_id)
        self.db.delete(menu_item)
        self.db.flush()
