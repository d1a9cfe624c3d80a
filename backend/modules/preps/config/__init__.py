from .costing_config import CostingConfig, costing_config, get_costing_config

__all__ = ["CostingConfig", "costing_config", "get_costing_config"]
