from .prep_routes import router as prep_router
from .ingredient_routes import router as ingredient_router
from .menu_item_routes import router as menu_item_router

__all__ = ["prep_router", "ingredient_router", "menu_item_router"]
