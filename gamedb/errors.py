"""
Error types for the catalog core.

- CatalogError: Base exception
- ValidationError: Caller-supplied data violates a field constraint
- NotFoundError: Referenced entity does not exist
- PersistenceError: Storage or transaction failure (already rolled back)
"""

from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Base exception for all catalog errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "CATALOG_ERROR"
        self.details = details or {}


class ValidationError(CatalogError):
    """Input rejected before anything was written.

    Raised when:
    - A required field is empty or absent
    - An edit has no message
    - A rating falls outside 1-10 after rounding
    - An unknown field or entity kind is supplied
    """

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR", details={"field": field})
        self.field = field


class NotFoundError(CatalogError):
    """Referenced entity id does not exist."""

    def __init__(self, kind: str, entity_id: Any) -> None:
        super().__init__(
            f"{kind} {entity_id} not found",
            code="NOT_FOUND",
            details={"kind": kind, "id": entity_id},
        )
        self.kind = kind
        self.entity_id = entity_id


class PersistenceError(CatalogError):
    """The transaction failed and was rolled back.

    The original database exception is available as ``__cause__``.
    """

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(message, code="PERSISTENCE_ERROR", details={"operation": operation})
        self.operation = operation
