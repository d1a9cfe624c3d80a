from .prep_exceptions import (
    PrepErrorCode,
    PrepCostingException,
    PrepValidationError,
    ExclusivityViolation,
    DuplicateEdge,
    ReferentialDeleteBlocked,
    PrepNotFound,
    MissingCostData,
    ConcurrencyConflict,
    UpstreamUnavailable,
)

__all__ = [
    "PrepErrorCode",
    "PrepCostingException",
    "PrepValidationError",
    "ExclusivityViolation",
    "DuplicateEdge",
    "ReferentialDeleteBlocked",
    "PrepNotFound",
    "MissingCostData",
    "ConcurrencyConflict",
    "UpstreamUnavailable",
]
