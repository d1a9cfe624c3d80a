# backend/modules/preps/services/menu_item_service.py

import logging

from sqlalchemy.orm import Session

from ..models import MenuItem, MenuItemIngredient
from ..schemas.prep_schemas import MenuItemCreate, MenuItemIngredientCreate
from .graph_store import CompositionGraphStore

logger = logging.getLogger(__name__)


class MenuItemService:
    """Attaches preps and raw ingredients to dishes"""

    def __init__(self, db: Session):
        self.db = db
        self.store = CompositionGraphStore(db)

    def create_menu_item(self, data: MenuItemCreate) -> MenuItem:
        menu_item = MenuItem(name=data.name, price=data.price, is_active=data.is_active)
        try:
            self.store.put_menu_item(menu_item)
            for component in data.ingredients:
                self._attach(menu_item.id, component)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(menu_item)
        return menu_item

    def add_component(self, menu_item_id: int, component: MenuItemIngredientCreate) -> MenuItemIngredient:
        try:
            edge = self._attach(menu_item_id, component)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(edge)
        return edge

    def remove_component(self, menu_item_id: int, edge_id: int) -> None:
        self.store.remove_menu_item_ingredient(menu_item_id, edge_id)
        self.db.commit()

    def delete_menu_item(self, menu_item_id: int) -> None:
        self.store.delete_menu_item(menu_item_id)
        self.db.commit()
        logger.info(f"Deleted menu item {menu_item_id}")

    def _attach(self, menu_item_id: int, component: MenuItemIngredientCreate) -> MenuItemIngredient:
        return self.store.add_menu_item_ingredient(
            menu_item_id,
            component.quantity,
            ingredient_id=component.ingredient_id,
            prep_id=component.prep_id,
            unit=component.unit,
            notes=component.notes,
        )
