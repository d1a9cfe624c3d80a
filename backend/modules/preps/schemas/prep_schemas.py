# backend/modules/preps/schemas/prep_schemas.py

"""
Request and response schemas for prep costing.

Range rules (positive quantities and yields, non-negative prices) are not
duplicated here; they are enforced by the consistency guard so that every
write path reports them the same way.
"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _strip_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


# Ingredients
class IngredientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    name_de: Optional[str] = Field(None, max_length=200)
    name_en: Optional[str] = Field(None, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    unit: str = Field(..., min_length=1, max_length=50)
    cost_per_unit: Decimal = Decimal("0")
    is_active: bool = True


class IngredientCreate(IngredientBase):
    pass


class IngredientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    name_de: Optional[str] = Field(None, max_length=200)
    name_en: Optional[str] = Field(None, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    unit: Optional[str] = Field(None, min_length=1, max_length=50)
    cost_per_unit: Optional[Decimal] = None
    is_active: Optional[bool] = None


class IngredientResponse(IngredientBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime


class PropagationFailureResponse(BaseModel):
    prep_id: int
    error_code: str
    message: str


class PropagationResultResponse(BaseModel):
    ingredient_id: Optional[int] = None
    affected: List[int] = []
    updated: List[int] = []
    unchanged: List[int] = []
    failed: List[PropagationFailureResponse] = []
    task_id: Optional[str] = None


class IngredientUpdateResponse(BaseModel):
    ingredient: IngredientResponse
    cost_changed: bool
    propagation: Optional[PropagationResultResponse] = None


# Prep ingredient edges
class PrepIngredientCreate(BaseModel):
    ingredient_id: int
    quantity: Decimal
    unit: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None

    @field_validator("unit")
    @classmethod
    def strip_unit(cls, v):
        return _strip_optional(v)


class PrepIngredientUpdate(BaseModel):
    quantity: Optional[Decimal] = None
    unit: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class PrepIngredientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ingredient_id: int
    quantity: Decimal
    unit: str
    notes: Optional[str] = None
    ingredient_name: Optional[str] = None
    ingredient_unit: Optional[str] = None
    ingredient_cost_per_unit: Optional[Decimal] = None
    line_cost: Optional[Decimal] = None


# Preps
class PrepBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    name_de: Optional[str] = Field(None, max_length=200)
    name_en: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    description_de: Optional[str] = None
    description_en: Optional[str] = None
    batch_yield: Optional[str] = Field(None, max_length=50)
    batch_yield_amount: Optional[Decimal] = None
    batch_yield_unit: Optional[str] = Field(None, max_length=50)
    instructions: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True


class PrepCreate(PrepBase):
    ingredients: List[PrepIngredientCreate] = []


class PrepUpdate(BaseModel):
    """Partial update; derived cost fields are not accepted"""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    name_de: Optional[str] = Field(None, max_length=200)
    name_en: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    description_de: Optional[str] = None
    description_en: Optional[str] = None
    batch_yield: Optional[str] = Field(None, max_length=50)
    batch_yield_amount: Optional[Decimal] = None
    batch_yield_unit: Optional[str] = Field(None, max_length=50)
    instructions: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    # Replaces the whole edge list when given
    ingredients: Optional[List[PrepIngredientCreate]] = None

    # Reject the edit if the prep changed since the client loaded it
    expected_version: Optional[int] = None


class PrepResponse(PrepBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    batch_yield_amount: Decimal
    cost_per_batch: Decimal
    cost_per_unit: Decimal
    version: int
    created_at: datetime
    updated_at: datetime
    ingredients: Optional[List[PrepIngredientResponse]] = None


class PrepListResponse(BaseModel):
    items: List[PrepResponse]
    total: int
    page: int
    pages: int


class PrepUsageItem(BaseModel):
    menu_item_id: int
    menu_item_name: str
    quantity: Decimal
    unit: Optional[str] = None


class PrepUsageResponse(BaseModel):
    prep_id: int
    prep_name: str
    menu_item_count: int
    menu_items: List[PrepUsageItem]


# Menu items
class MenuItemIngredientCreate(BaseModel):
    ingredient_id: Optional[int] = None
    prep_id: Optional[int] = None
    quantity: Decimal
    unit: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class MenuItemIngredientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    ingredient_id: Optional[int] = None
    prep_id: Optional[int] = None
    quantity: Decimal
    unit: Optional[str] = None
    notes: Optional[str] = None


class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Decimal("0")
    is_active: bool = True
    ingredients: List[MenuItemIngredientCreate] = []


class MenuItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: Decimal
    is_active: bool
    ingredients: List[MenuItemIngredientResponse] = []


# Cost breakdowns
class CostBreakdownLine(BaseModel):
    source_type: str  # "ingredient" or "prep"
    source_id: int
    name: str
    quantity: Decimal
    unit: Optional[str] = None
    unit_cost: Decimal
    line_cost: Decimal
    percentage: Decimal


class PrepCostBreakdown(BaseModel):
    prep_id: int
    prep_name: str
    batch_yield_amount: Decimal
    batch_yield_unit: Optional[str] = None
    lines: List[CostBreakdownLine]
    total_cost: Decimal
    cost_per_unit: Decimal
    stored_cost_per_batch: Decimal
    is_stale: bool
    most_expensive: Optional[CostBreakdownLine] = None


class MenuItemCostBreakdown(BaseModel):
    menu_item_id: int
    menu_item_name: str
    price: Decimal
    lines: List[CostBreakdownLine]
    total_cost: Decimal
    food_cost_percentage: Optional[Decimal] = None
    margin: Decimal
    cost_rating: Optional[str] = None
    most_expensive: Optional[CostBreakdownLine] = None
