# backend/modules/preps/services/propagation_service.py

"""
Propagation of ingredient price changes into dependent preps.

Each affected prep is recomputed and committed on its own, so a failure on
one prep is rolled back and reported without blocking the others. Recompute
is a pure function of current ingredient prices, which makes repeated or
reordered runs converge to the same stored costs.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import CostingConfig, get_costing_config
from ..exceptions import (
    PrepCostingException,
    MissingCostData,
    ConcurrencyConflict,
    UpstreamUnavailable,
)
from ..models import Prep
from ..utils.costing_logging import costing_logger
from ..utils.database_retry import retry_on_conflict, is_concurrency_error, is_retryable_error
from ..utils.performance_utils import ParallelExecutor, OperationTimer, timing_logger
from .cost_calculator import calculate_prep_cost, missing_inputs, quantize_stored, to_decimal
from .graph_store import CompositionGraphStore

logger = logging.getLogger(__name__)


@dataclass
class PrepRecomputeFailure:
    prep_id: int
    error_code: str
    message: str


@dataclass
class PropagationResult:
    """Outcome of one propagation or bulk recalculation run"""

    ingredient_id: Optional[int]
    affected: List[int]
    updated: List[int] = field(default_factory=list)
    unchanged: List[int] = field(default_factory=list)
    failed: List[PrepRecomputeFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failed

    @property
    def has_upstream_failures(self) -> bool:
        """True when some prep could not be written and should be retried later"""
        return any(
            failure.error_code in ("UPSTREAM_UNAVAILABLE", "CONCURRENCY_CONFLICT")
            for failure in self.failed
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingredient_id": self.ingredient_id,
            "affected": self.affected,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": [
                {
                    "prep_id": failure.prep_id,
                    "error_code": failure.error_code,
                    "message": failure.message,
                }
                for failure in self.failed
            ],
        }


def apply_prep_cost(store: CompositionGraphStore, prep: Prep) -> bool:
    """
    Recompute a prep's derived costs from its edges and assign them.

    Returns:
        True if either stored cost field changed
    """
    inputs = store.resolve_cost_inputs(prep)
    missing = missing_inputs(inputs)
    if missing:
        raise MissingCostData(prep.id, missing)

    cost = calculate_prep_cost(prep.batch_yield_amount, inputs)
    cost_per_batch = quantize_stored(cost.cost_per_batch)
    cost_per_unit = quantize_stored(cost.cost_per_unit)

    changed = (
        to_decimal(prep.cost_per_batch) != cost_per_batch
        or to_decimal(prep.cost_per_unit) != cost_per_unit
    )
    if changed:
        prep.cost_per_batch = cost_per_batch
        prep.cost_per_unit = cost_per_unit
    return changed


class PropagationScheduler:
    """Recomputes dependent prep costs after an input changes"""

    def __init__(
        self,
        db: Session,
        session_factory: Optional[Callable[[], Session]] = None,
        config: Optional[CostingConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.session_factory = session_factory
        self.config = config or get_costing_config()
        self._sleep = sleep

    def recompute_in_place(self, prep: Prep) -> bool:
        """
        Recompute one prep inside the caller's open transaction.

        Used right after a prep's own edge list or yield changed; the caller
        commits the edit and the new costs together.
        """
        store = CompositionGraphStore(self.db)
        self.db.flush()
        return apply_prep_cost(store, prep)

    @timing_logger("propagate_ingredient_cost")
    def propagate_ingredient_change(
        self,
        ingredient_id: int,
        old_cost: Any = None,
        new_cost: Any = None,
    ) -> PropagationResult:
        """Recompute every prep that uses the ingredient"""
        affected = CompositionGraphStore(self.db).find_preps_using_ingredient(ingredient_id)
        costing_logger.log_propagation_start(ingredient_id, old_cost, new_cost, affected)
        return self._run(ingredient_id, affected)

    def recalculate_preps(self, prep_ids: List[int]) -> PropagationResult:
        return self._run(None, list(prep_ids))

    @timing_logger("recalculate_all")
    def recalculate_all(self) -> PropagationResult:
        """Repair job: recompute every prep from current prices"""
        return self._run(None, CompositionGraphStore(self.db).all_prep_ids())

    def _run(self, ingredient_id: Optional[int], prep_ids: List[int]) -> PropagationResult:
        result = PropagationResult(ingredient_id=ingredient_id, affected=prep_ids)

        with OperationTimer("prep_cost_propagation", warning_threshold_ms=1000) as timer:
            if self.session_factory and self.config.PROPAGATION_MAX_WORKERS > 1 and len(prep_ids) > 1:
                with ParallelExecutor(max_workers=self.config.PROPAGATION_MAX_WORKERS) as executor:
                    raw = executor.parallel_map(self._recompute_isolated, prep_ids)
                outcomes = [
                    self._worker_failure(prep_id, outcome)
                    if isinstance(outcome, Exception)
                    else outcome
                    for prep_id, outcome in zip(prep_ids, raw)
                ]
            else:
                outcomes = [self._recompute_on(self.db, prep_id) for prep_id in prep_ids]

        for prep_id, changed, failure in outcomes:
            if failure is not None:
                result.failed.append(failure)
            elif changed:
                result.updated.append(prep_id)
            else:
                result.unchanged.append(prep_id)

        costing_logger.log_propagation_complete(
            ingredient_id,
            len(result.updated),
            len(result.unchanged),
            len(result.failed),
            timer.elapsed_ms,
        )
        return result

    def _recompute_isolated(self, prep_id: int):
        db = self.session_factory()
        try:
            return self._recompute_on(db, prep_id)
        finally:
            db.close()

    def _recompute_on(
        self, db: Session, prep_id: int
    ) -> Tuple[int, bool, Optional[PrepRecomputeFailure]]:
        """Recompute and commit one prep; failures are rolled back and returned"""
        attempts = {"count": 0}

        def attempt():
            attempts["count"] += 1
            try:
                store = CompositionGraphStore(db)
                prep = store.get_prep(prep_id)
                changed = apply_prep_cost(store, prep)
                costs = (prep.cost_per_batch, prep.cost_per_unit)
                db.commit()
                return changed, costs
            except Exception:
                db.rollback()
                raise

        def on_retry(attempt_no: int, delay: float, error: Exception) -> None:
            costing_logger.log_recompute_retry(
                prep_id, attempt_no, self.config.PROPAGATION_MAX_ATTEMPTS, delay, error
            )

        try:
            changed, costs = retry_on_conflict(
                attempt,
                max_attempts=self.config.PROPAGATION_MAX_ATTEMPTS,
                initial_delay=self.config.PROPAGATION_INITIAL_DELAY,
                max_delay=self.config.PROPAGATION_MAX_DELAY,
                backoff_factor=self.config.PROPAGATION_BACKOFF_FACTOR,
                on_retry=on_retry,
                sleep=self._sleep,
            )
        except PrepCostingException as e:
            return prep_id, False, self._failure(prep_id, e)
        except SQLAlchemyError as e:
            if is_concurrency_error(e):
                error = ConcurrencyConflict(prep_id, attempts=attempts["count"])
            else:
                error = UpstreamUnavailable(
                    "prep recompute",
                    str(e) if is_retryable_error(e) else e.__class__.__name__,
                    attempts=attempts["count"],
                )
            return prep_id, False, self._failure(prep_id, error)

        costing_logger.log_prep_recomputed(
            prep_id, costs[0], costs[1], changed, attempts["count"]
        )
        return prep_id, changed, None

    def _worker_failure(
        self, prep_id: int, error: Exception
    ) -> Tuple[int, bool, PrepRecomputeFailure]:
        """A worker that died outside the recompute itself, e.g. opening its session"""
        if isinstance(error, PrepCostingException):
            return prep_id, False, self._failure(prep_id, error)
        return prep_id, False, self._failure(
            prep_id, UpstreamUnavailable("prep recompute", f"{error.__class__.__name__}: {error}")
        )

    @staticmethod
    def _failure(prep_id: int, error: PrepCostingException) -> PrepRecomputeFailure:
        costing_logger.log_prep_recompute_failed(prep_id, error.error_code.name, error.message)
        return PrepRecomputeFailure(
            prep_id=prep_id, error_code=error.error_code.name, message=error.message
        )
