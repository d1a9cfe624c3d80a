# backend/modules/preps/tasks/prep_cost_tasks.py

"""
Background tasks for prep cost propagation.

Used when ingredient price changes arrive as events (or when inline
propagation is disabled). A propagation that could not write some prep
because the store was unavailable or contended is retried with backoff
instead of being dropped, so a stale cost is never left behind silently.
"""

from celery import Celery, Task
from typing import Dict, Any, Optional
from datetime import datetime
import logging
from sqlalchemy.orm import Session

from core.database import SessionLocal
from core.config import settings
from ..config import costing_config
from ..exceptions import UpstreamUnavailable
from ..services.propagation_service import PropagationScheduler, PropagationResult

logger = logging.getLogger(__name__)

# Initialize Celery
celery_app = Celery(
    'prep_costing_tasks',
    broker=settings.redis_url or 'redis://localhost:6379/0',
    backend=settings.redis_url or 'redis://localhost:6379/0'
)

# Configure Celery
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,
)


class PrepCostTask(Task):
    """Base task class with database session management"""

    def __init__(self):
        self._db: Optional[Session] = None

    @property
    def db(self) -> Session:
        if self._db is None:
            self._db = SessionLocal()
        return self._db

    def after_return(self, *args, **kwargs):
        if self._db is not None:
            self._db.close()
            self._db = None

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(
            f"Task {self.name}[{task_id}] gave up with args {args}: {str(exc)}"
        )


def _summary(result: PropagationResult) -> Dict[str, Any]:
    summary = result.to_dict()
    summary['status'] = 'success' if result.succeeded else 'partial'
    summary['timestamp'] = datetime.utcnow().isoformat()
    return summary


@celery_app.task(
    base=PrepCostTask,
    bind=True,
    name='preps.propagate_ingredient_cost',
    autoretry_for=(UpstreamUnavailable,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    max_retries=costing_config.TASK_MAX_RETRIES,
)
def propagate_ingredient_cost_async(self, ingredient_id: int) -> Dict[str, Any]:
    """
    Recompute every prep that uses the ingredient.

    Args:
        ingredient_id: ID of the ingredient whose cost changed

    Returns:
        Dict with the propagation summary
    """
    scheduler = PropagationScheduler(self.db)
    result = scheduler.propagate_ingredient_change(ingredient_id)

    if result.has_upstream_failures:
        failed = [failure.prep_id for failure in result.failed]
        logger.warning(
            f"Propagation for ingredient {ingredient_id} incomplete, "
            f"retry {self.request.retries} for preps {failed}"
        )
        raise UpstreamUnavailable(
            "ingredient cost propagation",
            f"{len(failed)} prep(s) not written: {failed}",
            attempts=self.request.retries + 1,
        )

    return _summary(result)


@celery_app.task(base=PrepCostTask, bind=True, name='preps.recalculate_all')
def recalculate_all_preps_async(self) -> Dict[str, Any]:
    """Recompute every prep from current ingredient prices."""
    start_time = datetime.utcnow()
    result = PropagationScheduler(self.db).recalculate_all()
    summary = _summary(result)
    summary['processing_time'] = (datetime.utcnow() - start_time).total_seconds()
    return summary
