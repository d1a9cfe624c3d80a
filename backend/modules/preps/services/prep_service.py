# backend/modules/preps/services/prep_service.py

from typing import Callable, List, Optional, TypeVar
from decimal import Decimal
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_costing_config
from ..models import Prep
from ..schemas.prep_schemas import (
    PrepCreate,
    PrepUpdate,
    PrepIngredientCreate,
    PrepIngredientUpdate,
)
from ..exceptions import (
    PrepErrorCode,
    PrepValidationError,
    ConcurrencyConflict,
    UpstreamUnavailable,
)
from ..utils.database_retry import retry_on_conflict, is_concurrency_error, is_retryable_error
from .cost_calculator import parse_batch_yield
from .graph_store import CompositionGraphStore
from .propagation_service import PropagationScheduler, PropagationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

YIELD_FIELDS = ("batch_yield", "batch_yield_amount", "batch_yield_unit")
REQUIRED_FIELDS = ("name", "is_active")


class PrepService:
    """Write side of prep management; every edit leaves the prep's costs current"""

    def __init__(self, db: Session):
        self.db = db
        self.store = CompositionGraphStore(db)
        self.scheduler = PropagationScheduler(db)
        self.config = get_costing_config()

    def create_prep(self, prep_data: PrepCreate) -> Prep:
        """
        Create a prep with its initial ingredient edges and compute its cost.

        The prep row and all of its edges are committed together; if any edge
        is rejected nothing is persisted.
        """
        amount, unit = self._resolve_yield(
            prep_data.batch_yield, prep_data.batch_yield_amount, prep_data.batch_yield_unit
        )
        self.store.guard.check_unique_ingredients(
            None, [item.ingredient_id for item in prep_data.ingredients]
        )

        def operation() -> Prep:
            prep = Prep(
                **prep_data.model_dump(exclude={"ingredients", *YIELD_FIELDS}),
                batch_yield=prep_data.batch_yield,
                batch_yield_amount=amount,
                batch_yield_unit=unit,
                cost_per_batch=Decimal("0"),
                cost_per_unit=Decimal("0"),
            )
            self.store.put_prep(prep)
            for item in prep_data.ingredients:
                self.store.add_prep_ingredient(
                    prep, item.ingredient_id, item.quantity, item.unit, item.notes
                )
            self.scheduler.recompute_in_place(prep)
            return prep

        prep = self._run_in_transaction("create prep", None, operation)
        logger.info(f"Created prep {prep.id} '{prep.name}' with cost {prep.cost_per_batch}")
        return prep

    def update_prep(self, prep_id: int, prep_data: PrepUpdate) -> Prep:
        """
        Partially update a prep.

        A changed yield recomputes cost per unit; an ``ingredients`` list
        replaces all edges and recomputes both cost fields.
        """
        update_data = prep_data.model_dump(
            exclude_unset=True, exclude={"ingredients", "expected_version"}
        )
        if prep_data.ingredients is not None:
            self.store.guard.check_unique_ingredients(
                prep_id, [item.ingredient_id for item in prep_data.ingredients]
            )

        def operation() -> Prep:
            prep = self.store.get_prep(prep_id)
            if (
                prep_data.expected_version is not None
                and prep.version != prep_data.expected_version
            ):
                raise ConcurrencyConflict(
                    prep_id,
                    expected_version=prep_data.expected_version,
                    current_version=prep.version,
                )

            fields = dict(update_data)
            if any(field in fields for field in YIELD_FIELDS):
                amount, unit = self._yield_for_update(prep, fields)
                self.store.guard.check_prep_unit_change(prep, unit)
                fields["batch_yield_amount"] = amount
                fields["batch_yield_unit"] = unit

            for field, value in fields.items():
                if value is None and field in REQUIRED_FIELDS:
                    continue
                setattr(prep, field, value)
            self.store.put_prep(prep)

            if prep_data.ingredients is not None:
                self._replace_edges(prep, prep_data.ingredients)

            self.scheduler.recompute_in_place(prep)
            return prep

        return self._run_in_transaction("update prep", prep_id, operation)

    def replace_prep_ingredients(
        self, prep_id: int, ingredients: List[PrepIngredientCreate]
    ) -> Prep:
        self.store.guard.check_unique_ingredients(
            prep_id, [item.ingredient_id for item in ingredients]
        )

        def operation() -> Prep:
            prep = self.store.get_prep(prep_id)
            self._replace_edges(prep, ingredients)
            self.scheduler.recompute_in_place(prep)
            return prep

        return self._run_in_transaction("replace prep ingredients", prep_id, operation)

    def add_prep_ingredient(self, prep_id: int, ingredient: PrepIngredientCreate) -> Prep:
        def operation() -> Prep:
            prep = self.store.get_prep(prep_id)
            self.store.add_prep_ingredient(
                prep, ingredient.ingredient_id, ingredient.quantity,
                ingredient.unit, ingredient.notes
            )
            self.scheduler.recompute_in_place(prep)
            return prep

        return self._run_in_transaction("add prep ingredient", prep_id, operation)

    def update_prep_ingredient(
        self, prep_id: int, ingredient_id: int, changes: PrepIngredientUpdate
    ) -> Prep:
        def operation() -> Prep:
            prep = self.store.get_prep(prep_id)
            self.store.update_prep_ingredient(
                prep_id, ingredient_id, changes.quantity, changes.unit, changes.notes
            )
            self.scheduler.recompute_in_place(prep)
            return prep

        return self._run_in_transaction("update prep ingredient", prep_id, operation)

    def remove_prep_ingredient(self, prep_id: int, ingredient_id: int) -> Prep:
        def operation() -> Prep:
            prep = self.store.get_prep(prep_id)
            self.store.remove_prep_ingredient(prep_id, ingredient_id)
            self.scheduler.recompute_in_place(prep)
            return prep

        return self._run_in_transaction("remove prep ingredient", prep_id, operation)

    def delete_prep(self, prep_id: int) -> None:
        """Delete a prep unless a menu item still uses it"""
        self._run_in_transaction(
            "delete prep", prep_id, lambda: self.store.delete_prep(prep_id)
        )
        logger.info(f"Deleted prep {prep_id}")

    def recalculate_all(self) -> PropagationResult:
        return self.scheduler.recalculate_all()

    def _replace_edges(self, prep: Prep, ingredients: List[PrepIngredientCreate]) -> None:
        prep.ingredients.clear()
        self.db.flush()
        for item in ingredients:
            self.store.add_prep_ingredient(
                prep, item.ingredient_id, item.quantity, item.unit, item.notes
            )

    def _resolve_yield(self, batch_yield, amount, unit):
        """Explicit amount wins; otherwise parse the free-text yield"""
        if amount is not None:
            return amount, unit
        parsed = parse_batch_yield(batch_yield)
        if parsed is None:
            raise PrepValidationError(
                "batch_yield_amount is required unless batch_yield reads like '500ml'",
                field="batch_yield",
                value=batch_yield,
                error_code=PrepErrorCode.INVALID_BATCH_YIELD,
            )
        parsed_amount, parsed_unit = parsed
        return parsed_amount, unit or parsed_unit

    def _yield_for_update(self, prep: Prep, fields: dict):
        unit = fields.get("batch_yield_unit", prep.batch_yield_unit)
        if fields.get("batch_yield_amount") is not None:
            return fields["batch_yield_amount"], unit
        if fields.get("batch_yield") is not None:
            return self._resolve_yield(
                fields["batch_yield"], None, fields.get("batch_yield_unit")
            )
        if "batch_yield_amount" in fields:
            # Amount cleared without new text: fall back to the stored text
            return self._resolve_yield(
                prep.batch_yield, None, fields.get("batch_yield_unit")
            )
        return prep.batch_yield_amount, unit

    def _run_in_transaction(
        self, operation_name: str, prep_id: Optional[int], operation: Callable[[], T]
    ) -> T:
        """
        Run ``operation`` and commit, retrying with fresh data when the prep
        row was changed by another writer in the meantime.
        """

        def attempt() -> T:
            try:
                result = operation()
                self.db.commit()
                return result
            except Exception:
                self.db.rollback()
                raise

        try:
            result = retry_on_conflict(
                attempt,
                max_attempts=self.config.PROPAGATION_MAX_ATTEMPTS,
                initial_delay=self.config.PROPAGATION_INITIAL_DELAY,
                max_delay=self.config.PROPAGATION_MAX_DELAY,
                backoff_factor=self.config.PROPAGATION_BACKOFF_FACTOR,
            )
        except SQLAlchemyError as e:
            if is_concurrency_error(e):
                raise ConcurrencyConflict(
                    prep_id or 0, attempts=self.config.PROPAGATION_MAX_ATTEMPTS
                )
            if is_retryable_error(e):
                raise UpstreamUnavailable(
                    operation_name, str(e), attempts=self.config.PROPAGATION_MAX_ATTEMPTS
                )
            raise

        if isinstance(result, Prep):
            self.db.refresh(result)
        return result
