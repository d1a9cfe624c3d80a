from .ingredient_models import Ingredient
from .prep_models import Prep, PrepIngredient
from .menu_item_models import MenuItem, MenuItemIngredient

__all__ = [
    "Ingredient",
    "Prep",
    "PrepIngredient",
    "MenuItem",
    "MenuItemIngredient",
]
