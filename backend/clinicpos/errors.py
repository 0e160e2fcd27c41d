# Overview: Error taxonomy shared by services and routes.

"""
Workflow errors

Every failure raised by the service layer is a WorkflowError. Routes map the
class to an HTTP status and return the message plus structured details.

CATEGORIES:
- ValidationError: malformed or out-of-range input, rejected before any write
- NotFoundError: a referenced record does not exist
- StateError: illegal lifecycle transition (converted quote, completed transfer...)
- ConsistencyError: rejected at commit time (insufficient stock, expired discount)
- StorageUnavailable: retryable infrastructure failure
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for service-layer errors."""
    status_code = 400
    code = "WORKFLOW_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(WorkflowError):
    """400-level input problem, tied to a field and the violated constraint."""
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, field: str, constraint: str, details: dict | None = None):
        super().__init__(f"{field}: {constraint}", details)
        self.field = field
        self.constraint = constraint
        self.details.setdefault("field", field)
        self.details.setdefault("constraint", constraint)


class NotFoundError(WorkflowError):
    status_code = 404
    code = "NOT_FOUND"


class StateError(WorkflowError):
    """409-level lifecycle violation."""
    status_code = 409
    code = "INVALID_STATE"


class InvalidStateTransition(StateError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, entity: str, current: str, target: str, details: dict | None = None):
        super().__init__(
            f"Cannot move {entity} from {current} to {target}",
            {"entity": entity, "current": current, "target": target, **(details or {})},
        )
        self.current = current
        self.target = target


class AlreadyConverted(StateError):
    code = "ALREADY_CONVERTED"


class QuoteExpired(StateError):
    code = "QUOTE_EXPIRED"


class ConsistencyError(WorkflowError):
    """409-level rule checked at commit time."""
    status_code = 409
    code = "CONSISTENCY_ERROR"


class InsufficientStock(ConsistencyError):
    code = "INSUFFICIENT_STOCK"


class DiscountExpired(ConsistencyError):
    code = "DISCOUNT_EXPIRED"


class StorageUnavailable(WorkflowError):
    """Database unreachable or still conflicting after retries. Safe to retry."""
    status_code = 503
    code = "STORAGE_UNAVAILABLE"
