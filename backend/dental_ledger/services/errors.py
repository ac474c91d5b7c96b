from __future__ import annotations


class ReconciliationError(Exception):
    """Base class for treatment/billing/lab reconciliation failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ReconciliationError):
    """A required field combination is missing; raised before any write."""


class NotFoundError(ReconciliationError):
    """A referenced patient, treatment, session or lab no longer exists."""

    def __init__(self, entity_type: str, entity_id: object) -> None:
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class PersistenceError(ReconciliationError):
    """The underlying create/update/delete call failed."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        detail = f"{operation} failed"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)
        self.operation = operation
        self.cause = cause
