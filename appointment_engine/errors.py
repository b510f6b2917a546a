"""
Typed errors raised by the scheduling engine.

Every error carries a machine-readable ``code`` so an outer layer can map
it to a response without parsing messages. Only ``PersistenceError`` is
unrecoverable; the others describe a failed precondition of one request.
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for all engine errors."""

    default_code = "SCHEDULING_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(SchedulingError):
    """Malformed input: bad time block, bounds, or a missing mandatory reason."""

    default_code = "VALIDATION_FAILED"


class ConflictError(SchedulingError):
    """A concurrent writer got there first; retry against another resource."""

    default_code = "CONFLICT"


class NotFoundError(SchedulingError):
    """A referenced template, slot, booking or exception does not exist."""

    default_code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        super().__init__(
            f"{resource_type.capitalize()} '{resource_id}' not found",
            details={"resource_type": resource_type, "resource": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class BusinessLogicError(SchedulingError):
    """A business rule rejected the action (timing, state, exclusivity)."""

    default_code = "BUSINESS_RULE_VIOLATION"


class InvalidTransitionError(BusinessLogicError):
    """Raised when a booking transition is not valid from the current status."""

    default_code = "INVALID_STATUS_TRANSITION"


class PersistenceError(SchedulingError):
    """The store failed during an atomic write; no partial success may be assumed."""

    default_code = "PERSISTENCE_FAILURE"
