# backend/modules/preps/routes/ingredient_routes.py

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from core.database import get_db
from ..services.ingredient_service import IngredientService
from ..services.prep_query_service import PrepQueryService
from ..services.graph_store import CompositionGraphStore
from ..schemas.prep_schemas import (
    IngredientCreate,
    IngredientUpdate,
    IngredientResponse,
    IngredientUpdateResponse,
    PropagationResultResponse,
)

router = APIRouter(prefix="/ingredients", tags=["Ingredients"])


def get_ingredient_service(db: Session = Depends(get_db)) -> IngredientService:
    """Dependency to get ingredient service instance"""
    return IngredientService(db)


@router.post("", response_model=IngredientResponse, status_code=status.HTTP_201_CREATED)
async def create_ingredient(
    data: IngredientCreate,
    ingredient_service: IngredientService = Depends(get_ingredient_service),
):
    return ingredient_service.create_ingredient(data)


@router.get("", response_model=dict)
async def list_ingredients(
    search: Optional[str] = Query(None, description="Substring match on any name"),
    active_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Search and list ingredients"""
    items, total = PrepQueryService(db).list_ingredients(search, active_only, offset, limit)
    return {
        "items": [IngredientResponse.model_validate(item).model_dump(mode="json") for item in items],
        "total": total,
        "page": (offset // limit) + 1,
        "pages": (total + limit - 1) // limit if limit > 0 else 0,
    }


@router.get("/{ingredient_id}", response_model=IngredientResponse)
async def get_ingredient(ingredient_id: int, db: Session = Depends(get_db)):
    return CompositionGraphStore(db).get_ingredient(ingredient_id)


@router.put("/{ingredient_id}", response_model=IngredientUpdateResponse)
async def update_ingredient(
    ingredient_id: int,
    data: IngredientUpdate,
    ingredient_service: IngredientService = Depends(get_ingredient_service),
):
    """Update an ingredient; a new cost per unit is pushed into every prep using it"""
    ingredient, changed, result, task_id = ingredient_service.update_ingredient(
        ingredient_id, data
    )
    propagation = None
    if result is not None:
        propagation = PropagationResultResponse(**result.to_dict())
    elif task_id is not None:
        propagation = PropagationResultResponse(ingredient_id=ingredient_id, task_id=task_id)

    return IngredientUpdateResponse(
        ingredient=IngredientResponse.model_validate(ingredient),
        cost_changed=changed,
        propagation=propagation,
    )


@router.delete("/{ingredient_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ingredient(
    ingredient_id: int,
    ingredient_service: IngredientService = Depends(get_ingredient_service),
):
    """Delete an ingredient; fails while any prep or menu item still uses it"""
    ingredient_service.delete_ingredient(ingredient_id)
