# backend/modules/preps/exceptions/prep_exceptions.py

"""
Exception classes for prep costing with structured error payloads.

Every invariant violation has its own error code so that the admin UI can
map it to a specific message and point the user at the conflicting entity.
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum
from fastapi import HTTPException, status


class PrepErrorCode(str, Enum):
    """Prep costing error codes for frontend mapping"""

    # Validation errors
    VALIDATION_ERROR = "PRP001"
    INVALID_BATCH_YIELD = "PRP002"
    UNIT_MISMATCH = "PRP003"

    # Structural invariants
    EXCLUSIVITY_VIOLATION = "PRP100"
    DUPLICATE_EDGE = "PRP101"
    REFERENTIAL_DELETE_BLOCKED = "PRP102"
    NOT_FOUND = "PRP103"

    # Cost calculation
    MISSING_COST_DATA = "PRP200"

    # Concurrency and availability
    CONCURRENCY_CONFLICT = "PRP300"
    UPSTREAM_UNAVAILABLE = "PRP301"


class PrepCostingException(HTTPException):
    """Base exception for prep costing errors with enhanced payload"""

    def __init__(
        self,
        status_code: int,
        error_code: PrepErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        self.field = field
        self.timestamp = datetime.utcnow()

        error_payload = {
            "error": {
                "code": error_code.value,
                "kind": error_code.name,
                "message": message,
                "timestamp": self.timestamp.isoformat(),
                "details": self.details,
            }
        }

        if field:
            error_payload["error"]["field"] = field

        super().__init__(status_code=status_code, detail=error_payload, headers=headers)

    def __str__(self):
        return self.message


class PrepValidationError(PrepCostingException):
    """Malformed input, non-positive quantity or yield, negative cost"""

    def __init__(
        self,
        message: str,
        field: str,
        value: Any = None,
        error_code: PrepErrorCode = PrepErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if value is not None:
            details["provided_value"] = str(value)

        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
            message=message,
            details=details,
            field=field,
        )


class ExclusivityViolation(PrepCostingException):
    """Menu item component referencing both or neither of ingredient and prep"""

    def __init__(self, ingredient_id: Optional[int], prep_id: Optional[int]):
        if ingredient_id is None and prep_id is None:
            message = "A menu item component must reference an ingredient or a prep"
        else:
            message = (
                "A menu item component cannot reference both an ingredient "
                f"({ingredient_id}) and a prep ({prep_id})"
            )
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=PrepErrorCode.EXCLUSIVITY_VIOLATION,
            message=message,
            details={"ingredient_id": ingredient_id, "prep_id": prep_id},
        )


class DuplicateEdge(PrepCostingException):
    def __init__(self, prep_id: int, ingredient_id: int, ingredient_name: Optional[str] = None):
        label = ingredient_name or f"Ingredient {ingredient_id}"
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code=PrepErrorCode.DUPLICATE_EDGE,
            message=f"{label} is already part of prep {prep_id}",
            details={"prep_id": prep_id, "ingredient_id": ingredient_id},
        )


class ReferentialDeleteBlocked(PrepCostingException):
    """
    Delete attempted on an entity that is still referenced.

    ``referenced_by`` lists one entry per referencing entity type with the
    number of references and the display names of the referencing parents.
    """

    def __init__(
        self,
        entity_type: str,
        entity_id: int,
        entity_name: str,
        referenced_by: List[Dict[str, Any]],
    ):
        self.referenced_by = referenced_by
        parts = []
        for ref in referenced_by:
            names = ", ".join(ref["names"])
            parts.append(f"{ref['count']} {ref['entity_type']} ({names})")
        message = (
            f"{entity_type.capitalize()} '{entity_name}' is still in use by "
            + "; ".join(parts)
        )
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code=PrepErrorCode.REFERENTIAL_DELETE_BLOCKED,
            message=message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "referenced_by": referenced_by,
            },
        )


class PrepNotFound(PrepCostingException):
    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=PrepErrorCode.NOT_FOUND,
            message=f"{entity_type.capitalize()} {entity_id} not found",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )


class MissingCostData(PrepCostingException):
    """An edge points at an ingredient that no longer exists"""

    def __init__(self, prep_id: int, ingredient_ids: List[int]):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=PrepErrorCode.MISSING_COST_DATA,
            message=(
                f"Prep {prep_id} references missing ingredient(s) "
                f"{', '.join(str(i) for i in ingredient_ids)}"
            ),
            details={"prep_id": prep_id, "missing_ingredient_ids": ingredient_ids},
        )


class ConcurrencyConflict(PrepCostingException):
    """The prep changed since it was read; retry with fresh data"""

    def __init__(
        self,
        prep_id: int,
        expected_version: Optional[int] = None,
        current_version: Optional[int] = None,
        attempts: Optional[int] = None,
    ):
        details = {"prep_id": prep_id}
        if expected_version is not None:
            details["expected_version"] = expected_version
        if current_version is not None:
            details["current_version"] = current_version
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code=PrepErrorCode.CONCURRENCY_CONFLICT,
            message=f"Prep {prep_id} was modified concurrently, reload and retry",
            details=details,
        )


class UpstreamUnavailable(PrepCostingException):
    def __init__(self, operation: str, reason: str, attempts: Optional[int] = None):
        details = {"operation": operation, "reason": reason}
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=PrepErrorCode.UPSTREAM_UNAVAILABLE,
            message=f"Store unavailable during {operation}: {reason}",
            details=details,
            headers={"Retry-After": "1"},
        )
