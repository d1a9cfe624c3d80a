# backend/modules/preps/utils/performance_utils.py

"""
Timing and thread-pool helpers for cost recomputation.

Slow propagations are logged with their duration so that a menu with many
preps sharing one ingredient shows up in the logs before it becomes a
problem at the pass.
"""

import time
import logging
import functools
from typing import Callable, Dict, Optional, List, TypeVar, Union
from concurrent.futures import ThreadPoolExecutor, as_completed

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')

DEFAULT_WARNING_MS = 500
DEFAULT_ERROR_MS = 2000

# (warning, error) in milliseconds per named operation
OPERATION_THRESHOLDS: Dict[str, tuple] = {
    'propagate_ingredient_cost': (1000, 5000),
    'recalculate_all': (5000, 30000),
    'get_cost_breakdown': (300, 1000),
}


def thresholds_for(operation_name: str) -> tuple:
    return OPERATION_THRESHOLDS.get(operation_name, (DEFAULT_WARNING_MS, DEFAULT_ERROR_MS))


class OperationTimer:
    """Times a block and logs the duration at a level matching its thresholds"""

    def __init__(
        self,
        operation_name: str,
        warning_threshold_ms: Optional[int] = None,
        error_threshold_ms: Optional[int] = None,
    ):
        default_warning, default_error = thresholds_for(operation_name)
        self.operation_name = operation_name
        self.warning_threshold_ms = warning_threshold_ms or default_warning
        self.error_threshold_ms = error_threshold_ms or default_error
        self._started: Optional[float] = None
        self._finished: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._finished = time.perf_counter()
        context = {'operation': self.operation_name, 'duration_ms': self.elapsed_ms}

        if exc_type:
            logger.error(
                f"{self.operation_name} failed after {self.elapsed_ms:.2f}ms: {exc_val}",
                extra=context,
            )
        elif self.elapsed_ms >= self.error_threshold_ms:
            logger.error(
                f"SLOW OPERATION: {self.operation_name} took {self.elapsed_ms:.2f}ms "
                f"(threshold: {self.error_threshold_ms}ms)",
                extra=context,
            )
        elif self.elapsed_ms >= self.warning_threshold_ms:
            logger.warning(
                f"Slow operation: {self.operation_name} took {self.elapsed_ms:.2f}ms "
                f"(threshold: {self.warning_threshold_ms}ms)",
                extra=context,
            )
        else:
            logger.debug(
                f"{self.operation_name} took {self.elapsed_ms:.2f}ms", extra=context
            )
        return False

    @property
    def elapsed_ms(self) -> float:
        if self._started is None:
            return 0.0
        end = self._finished if self._finished is not None else time.perf_counter()
        return (end - self._started) * 1000


def timing_logger(operation_name: Optional[str] = None):
    """Decorator form of OperationTimer"""

    def decorator(func: Callable) -> Callable:
        name = operation_name or f"{func.__module__}.{func.__name__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with OperationTimer(name):
                return func(*args, **kwargs)

        return wrapper

    return decorator


class ParallelExecutor:
    """
    Thread pool for recomputing independent preps side by side.

    Every callable must open and close its own database session; sessions
    are never shared between threads.
    """

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max_workers
        self._pool: Optional[ThreadPoolExecutor] = None

    def __enter__(self):
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._pool:
            self._pool.shutdown(wait=True)
        return False

    def parallel_map(
        self, func: Callable[[T], R], items: List[T]
    ) -> List[Union[R, Exception]]:
        """Results in item order; a raised exception takes its item's slot"""
        if self._pool is None:
            raise RuntimeError("ParallelExecutor must be used as context manager")

        results: List[Union[R, Exception]] = [None] * len(items)
        futures = {self._pool.submit(func, item): i for i, item in enumerate(items)}

        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = future.result()
            except Exception as e:
                logger.error(f"Parallel recompute failed for item {items[index]}: {e}")
                results[index] = e

        return results
