# backend/modules/preps/config/costing_config.py

from pydantic_settings import BaseSettings


class CostingConfig(BaseSettings):
    """
    Configuration for prep cost propagation.

    These settings control retry behaviour and parallelism when ingredient
    price changes are pushed into dependent preps.
    """

    # Attempts per prep before a concurrency or availability error is surfaced
    PROPAGATION_MAX_ATTEMPTS: int = 3

    # Exponential backoff between attempts (seconds)
    PROPAGATION_INITIAL_DELAY: float = 0.05
    PROPAGATION_MAX_DELAY: float = 1.0
    PROPAGATION_BACKOFF_FACTOR: float = 2.0

    # Worker threads for recomputing affected preps (1 = sequential)
    PROPAGATION_MAX_WORKERS: int = 1

    # Decimal places of money values in responses
    CURRENCY_PRECISION: int = 2

    # Enqueue propagation on Celery instead of running it inline
    DEFER_PROPAGATION: bool = False

    # Celery retries for a propagation that hit an unavailable store
    TASK_MAX_RETRIES: int = 5

    class Config:
        env_prefix = "PREP_COSTING_"
        case_sensitive = False


# Global instance
costing_config = CostingConfig()


def get_costing_config() -> CostingConfig:
    """Get the prep costing configuration."""
    return costing_config
