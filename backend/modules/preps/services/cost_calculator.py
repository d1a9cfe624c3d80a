# backend/modules/preps/services/cost_calculator.py

"""
Pure cost arithmetic for preps and menu items.

Nothing here touches the database. Inputs are plain values resolved by the
caller from a consistent snapshot, so every function is deterministic and
safe to call any number of times.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple, Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")

BATCH_YIELD_PATTERN = re.compile(
    r"^(\d+(?:\.\d+)?)\s*(ml|g|kg|l|portions?|servings?)$", re.IGNORECASE
)


@dataclass(frozen=True)
class CostInput:
    """One prep edge resolved to its ingredient's current price"""

    ingredient_id: int
    quantity: Decimal
    cost_per_unit: Optional[Decimal]  # None when the ingredient is gone


@dataclass(frozen=True)
class PrepCost:
    cost_per_batch: Decimal
    cost_per_unit: Decimal


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert a stored or submitted number to Decimal without float noise"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def line_cost(quantity: Number, cost_per_unit: Number) -> Decimal:
    return to_decimal(quantity) * to_decimal(cost_per_unit)


def missing_inputs(inputs: Iterable[CostInput]) -> List[int]:
    """Ingredient ids among the inputs that could not be resolved"""
    return [item.ingredient_id for item in inputs if item.cost_per_unit is None]


def calculate_cost_per_unit(cost_per_batch: Number, batch_yield_amount: Number) -> Decimal:
    """
    Per-unit cost of a batch.

    A non-positive yield is rejected before it reaches the store; zero is
    returned here so that a bad row can never raise inside a propagation run.
    """
    amount = to_decimal(batch_yield_amount)
    if amount <= 0:
        return ZERO
    return to_decimal(cost_per_batch) / amount


def calculate_prep_cost(batch_yield_amount: Number, inputs: Iterable[CostInput]) -> PrepCost:
    """
    Derive batch and per-unit cost from a prep's resolved edges.

    Raises:
        ValueError: if any input has no cost (unresolved ingredient)
    """
    inputs = list(inputs)
    missing = missing_inputs(inputs)
    if missing:
        raise ValueError(f"Unresolved ingredient(s): {missing}")

    cost_per_batch = sum(
        (line_cost(item.quantity, item.cost_per_unit) for item in inputs), ZERO
    )
    return PrepCost(
        cost_per_batch=cost_per_batch,
        cost_per_unit=calculate_cost_per_unit(cost_per_batch, batch_yield_amount),
    )


def round_currency(value: Optional[Number], places: int = 2) -> Decimal:
    """Round a money value for display; only used at the read boundary"""
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def cost_share(part: Number, total: Number) -> Decimal:
    """Percentage of ``total`` contributed by ``part`` (0 when total is 0)"""
    total = to_decimal(total)
    if total <= 0:
        return ZERO
    return to_decimal(part) / total * 100


def food_cost_percentage(cost: Number, price: Number) -> Optional[Decimal]:
    price = to_decimal(price)
    if price <= 0:
        return None
    return to_decimal(cost) / price * 100


def rate_food_cost(percentage: Optional[Number]) -> Optional[str]:
    """Bucket a food-cost percentage into the rating shown next to a dish"""
    if percentage is None:
        return None
    percentage = to_decimal(percentage)
    if percentage <= 5:
        return "excellent"
    if percentage <= 10:
        return "good"
    if percentage <= 15:
        return "moderate"
    return "high"


def parse_batch_yield(text: Optional[str]) -> Optional[Tuple[Decimal, str]]:
    """
    Split a free-text yield such as "500ml" or "4 portions" into amount and unit.

    Returns None when the text does not follow the amount-unit pattern.
    """
    if not text:
        return None
    match = BATCH_YIELD_PATTERN.match(text.strip())
    if not match:
        return None
    return Decimal(match.group(1)), match.group(2).lower()


STORED_COST_EXPONENT = Decimal("0.000001")


def quantize_stored(value: Number) -> Decimal:
    """Fit a derived cost to the precision of the cost columns"""
    return to_decimal(value).quantize(STORED_COST_EXPONENT, rounding=ROUND_HALF_UP)


# Scale of quantity and batch yield columns
QUANTITY_EXPONENT = Decimal("0.0001")


def quantize_quantity(value: Number) -> Decimal:
    """Round a quantity or yield amount to the scale it is stored at"""
    return to_decimal(value).quantize(QUANTITY_EXPONENT, rounding=ROUND_HALF_UP)
