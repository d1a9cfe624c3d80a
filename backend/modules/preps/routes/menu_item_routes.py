# backend/modules/preps/routes/menu_item_routes.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from core.database import get_db
from ..services.menu_item_service import MenuItemService
from ..services.prep_query_service import PrepQueryService
from ..services.graph_store import CompositionGraphStore
from ..schemas.prep_schemas import (
    MenuItemCreate,
    MenuItemResponse,
    MenuItemIngredientCreate,
    MenuItemIngredientResponse,
    MenuItemCostBreakdown,
)

router = APIRouter(prefix="/menu-items", tags=["Menu Item Costing"])


def get_menu_item_service(db: Session = Depends(get_db)) -> MenuItemService:
    """Dependency to get menu item service instance"""
    return MenuItemService(db)


@router.post("", response_model=MenuItemResponse, status_code=status.HTTP_201_CREATED)
async def create_menu_item(
    data: MenuItemCreate,
    menu_item_service: MenuItemService = Depends(get_menu_item_service),
):
    return menu_item_service.create_menu_item(data)


@router.get("/{menu_item_id}", response_model=MenuItemResponse)
async def get_menu_item(menu_item_id: int, db: Session = Depends(get_db)):
    return CompositionGraphStore(db).get_menu_item(menu_item_id, include_edges=True)


@router.post(
    "/{menu_item_id}/ingredients",
    response_model=MenuItemIngredientResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_menu_item_ingredient(
    menu_item_id: int,
    component: MenuItemIngredientCreate,
    menu_item_service: MenuItemService = Depends(get_menu_item_service),
):
    """Attach exactly one of a raw ingredient or a prep to a dish"""
    return menu_item_service.add_component(menu_item_id, component)


@router.delete(
    "/{menu_item_id}/ingredients/{edge_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def remove_menu_item_ingredient(
    menu_item_id: int,
    edge_id: int,
    menu_item_service: MenuItemService = Depends(get_menu_item_service),
):
    menu_item_service.remove_component(menu_item_id, edge_id)


@router.delete("/{menu_item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_menu_item(
    menu_item_id: int,
    menu_item_service: MenuItemService = Depends(get_menu_item_service),
):
    menu_item_service.delete_menu_item(menu_item_id)


@router.get("/{menu_item_id}/cost-breakdown", response_model=MenuItemCostBreakdown)
async def get_menu_item_cost_breakdown(
    menu_item_id: int, db: Session = Depends(get_db)
):
    """Live cost of one portion, with food cost percentage and rating"""
    return PrepQueryService(db).get_menu_item_cost_breakdown(menu_item_id)
