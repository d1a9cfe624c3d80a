# backend/modules/preps/routes/prep_routes.py

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional, Union

from core.database import get_db
from ..services.prep_service import PrepService
from ..services.prep_query_service import PrepQueryService
from ..schemas.prep_schemas import (
    PrepCreate,
    PrepUpdate,
    PrepResponse,
    PrepListResponse,
    PrepIngredientCreate,
    PrepIngredientUpdate,
    PrepCostBreakdown,
    PrepUsageResponse,
    PropagationResultResponse,
)

router = APIRouter(prefix="/preps", tags=["Prep Costing"])


def get_prep_service(db: Session = Depends(get_db)) -> PrepService:
    """Dependency to get prep service instance"""
    return PrepService(db)


def get_prep_query_service(db: Session = Depends(get_db)) -> PrepQueryService:
    """Dependency to get prep query service instance"""
    return PrepQueryService(db)


def _prep_response(query_service: PrepQueryService, prep_id: int) -> PrepResponse:
    return PrepResponse.model_validate(query_service.get_prep_with_ingredients(prep_id))


# Prep CRUD Operations
@router.post("", response_model=PrepResponse, status_code=status.HTTP_201_CREATED)
async def create_prep(
    prep_data: PrepCreate,
    prep_service: PrepService = Depends(get_prep_service),
    query_service: PrepQueryService = Depends(get_prep_query_service),
):
    """Create a prep with optional initial ingredients; costs are computed on creation"""
    prep = prep_service.create_prep(prep_data)
    return _prep_response(query_service, prep.id)


@router.get("", response_model=Union[PrepResponse, PrepListResponse])
async def get_preps(
    id: Optional[int] = Query(None, description="Fetch a single prep"),
    search: Optional[str] = Query(None, description="Substring match on any prep name"),
    active_only: bool = Query(False, description="Only active preps"),
    include_ingredients: bool = Query(False, description="Resolve ingredient edges inline"),
    limit: int = Query(50, ge=1, le=500, description="Items per page"),
    offset: int = Query(0, ge=0, description="Items to skip"),
    query_service: PrepQueryService = Depends(get_prep_query_service),
):
    """List and search preps, or fetch one by id"""
    if id is not None:
        return PrepResponse.model_validate(
            query_service.get_prep(id, include_ingredients=include_ingredients)
        )

    preps, total = query_service.search_preps(
        query=search,
        active_only=active_only,
        include_ingredients=include_ingredients,
        offset=offset,
        limit=limit,
    )
    return PrepListResponse(
        items=[PrepResponse.model_validate(prep) for prep in preps],
        total=total,
        page=(offset // limit) + 1,
        pages=(total + limit - 1) // limit if limit > 0 else 0,
    )


@router.put("", response_model=PrepResponse)
async def update_prep(
    prep_data: PrepUpdate,
    id: int = Query(..., description="Prep to update"),
    prep_service: PrepService = Depends(get_prep_service),
    query_service: PrepQueryService = Depends(get_prep_query_service),
):
    """Partial update; a new yield recomputes cost per unit immediately"""
    prep_service.update_prep(id, prep_data)
    return _prep_response(query_service, id)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_prep(
    id: int = Query(..., description="Prep to delete"),
    prep_service: PrepService = Depends(get_prep_service),
):
    """Delete a prep; fails while any menu item still uses it"""
    prep_service.delete_prep(id)


@router.post("/recalculate-costs", response_model=PropagationResultResponse)
async def recalculate_all_costs(
    prep_service: PrepService = Depends(get_prep_service),
):
    """Recompute every prep from current ingredient prices"""
    return PropagationResultResponse(**prep_service.recalculate_all().to_dict())


# Prep Ingredients Management
@router.put("/{prep_id}/ingredients", response_model=PrepResponse)
async def replace_prep_ingredients(
    prep_id: int,
    ingredients: List[PrepIngredientCreate],
    prep_service: PrepService = Depends(get_prep_service),
    query_service: PrepQueryService = Depends(get_prep_query_service),
):
    """Replace all ingredients of a prep"""
    prep_service.replace_prep_ingredients(prep_id, ingredients)
    return _prep_response(query_service, prep_id)


@router.post(
    "/{prep_id}/ingredients",
    response_model=PrepResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_prep_ingredient(
    prep_id: int,
    ingredient: PrepIngredientCreate,
    prep_service: PrepService = Depends(get_prep_service),
    query_service: PrepQueryService = Depends(get_prep_query_service),
):
    """Add a single ingredient to a prep"""
    prep_service.add_prep_ingredient(prep_id, ingredient)
    return _prep_response(query_service, prep_id)


@router.put("/{prep_id}/ingredients/{ingredient_id}", response_model=PrepResponse)
async def update_prep_ingredient(
    prep_id: int,
    ingredient_id: int,
    changes: PrepIngredientUpdate,
    prep_service: PrepService = Depends(get_prep_service),
    query_service: PrepQueryService = Depends(get_prep_query_service),
):
    """Change quantity, unit or notes of one ingredient in a prep"""
    prep_service.update_prep_ingredient(prep_id, ingredient_id, changes)
    return _prep_response(query_service, prep_id)


@router.delete("/{prep_id}/ingredients/{ingredient_id}", response_model=PrepResponse)
async def remove_prep_ingredient(
    prep_id: int,
    ingredient_id: int,
    prep_service: PrepService = Depends(get_prep_service),
    query_service: PrepQueryService = Depends(get_prep_query_service),
):
    """Remove an ingredient from a prep"""
    prep_service.remove_prep_ingredient(prep_id, ingredient_id)
    return _prep_response(query_service, prep_id)


# Prep Cost Reporting
@router.get("/{prep_id}/cost-breakdown", response_model=PrepCostBreakdown)
async def get_prep_cost_breakdown(
    prep_id: int,
    query_service: PrepQueryService = Depends(get_prep_query_service),
):
    """Per-ingredient cost lines at current prices"""
    return query_service.get_cost_breakdown(prep_id)


@router.get("/{prep_id}/usage", response_model=PrepUsageResponse)
async def get_prep_usage(
    prep_id: int,
    query_service: PrepQueryService = Depends(get_prep_query_service),
):
    """Menu items that use this prep"""
    return query_service.get_prep_usage(prep_id)
