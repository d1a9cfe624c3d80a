# backend/modules/preps/utils/costing_logging.py

import logging
import json
from typing import Any, Dict, List, Optional
from datetime import datetime


class CostingLogger:
    """Specialized logger for cost propagation with structured logging"""

    def __init__(self, name: str = "prep_costing"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create formatter for structured logs
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s - %(extra_data)s'
        )

        # Add handler if not already present
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _format_extra_data(self, **kwargs) -> Dict:
        """Format extra data for structured logging"""
        extra = {
            'timestamp': datetime.utcnow().isoformat(),
            'extra_data': json.dumps(kwargs, default=str)
        }
        return extra

    def log_propagation_start(self, ingredient_id: int, old_cost: Any,
                              new_cost: Any, affected_prep_ids: List[int]):
        """Log the start of a cost propagation run"""
        self.logger.info(
            f"Propagating cost change of ingredient {ingredient_id} "
            f"to {len(affected_prep_ids)} prep(s)",
            extra=self._format_extra_data(
                event="propagation_start",
                ingredient_id=ingredient_id,
                old_cost=old_cost,
                new_cost=new_cost,
                affected_prep_ids=affected_prep_ids
            )
        )

    def log_prep_recomputed(self, prep_id: int, cost_per_batch: Any,
                            cost_per_unit: Any, changed: bool, attempts: int):
        self.logger.info(
            f"Recomputed cost of prep {prep_id}",
            extra=self._format_extra_data(
                event="prep_recomputed",
                prep_id=prep_id,
                cost_per_batch=cost_per_batch,
                cost_per_unit=cost_per_unit,
                changed=changed,
                attempts=attempts
            )
        )

    def log_recompute_retry(self, prep_id: int, attempt: int, max_attempts: int,
                            delay: float, error: Exception):
        self.logger.warning(
            f"Retrying recompute of prep {prep_id} "
            f"(attempt {attempt}/{max_attempts}) in {delay:.2f}s",
            extra=self._format_extra_data(
                event="prep_recompute_retry",
                prep_id=prep_id,
                attempt=attempt,
                max_attempts=max_attempts,
                delay_seconds=delay,
                error_class=error.__class__.__name__,
                error_message=str(error)
            )
        )

    def log_prep_recompute_failed(self, prep_id: int, error_code: str, message: str):
        """Log a prep whose recompute was rolled back"""
        self.logger.error(
            f"Recompute of prep {prep_id} failed: {message}",
            extra=self._format_extra_data(
                event="prep_recompute_failed",
                prep_id=prep_id,
                error_code=error_code,
                error_message=message,
                requires_manual_review=error_code != "UPSTREAM_UNAVAILABLE"
            )
        )

    def log_propagation_complete(self, ingredient_id: Optional[int], updated: int,
                                 unchanged: int, failed: int, processing_time_ms: float):
        level = logging.WARNING if failed else logging.INFO
        self.logger.log(
            level,
            f"Cost propagation finished: {updated} updated, "
            f"{unchanged} unchanged, {failed} failed",
            extra=self._format_extra_data(
                event="propagation_complete",
                ingredient_id=ingredient_id,
                updated_count=updated,
                unchanged_count=unchanged,
                failed_count=failed,
                processing_time_ms=processing_time_ms
            )
        )

    def log_delete_blocked(self, entity_type: str, entity_id: int,
                           referenced_by: List[Dict[str, Any]]):
        self.logger.warning(
            f"Delete of {entity_type} {entity_id} blocked by existing references",
            extra=self._format_extra_data(
                event="delete_blocked",
                entity_type=entity_type,
                entity_id=entity_id,
                referenced_by=referenced_by
            )
        )


# Global logger instance
costing_logger = CostingLogger()
