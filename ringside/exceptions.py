"""
ringside/exceptions.py
Typed exceptions for the roster lifecycle engine and championship ledger.

Every failure is an expected outcome of invalid business input and is
recoverable at the call boundary:
- Period store invariants (overlap, missing open period, bad range)
- Transition preconditions
- Period kinds an entity type does not support
"""
from typing import Optional


class LifecycleError(Exception):
    """Base exception for lifecycle errors."""
    code: str = "LIFECYCLE_ERROR"
    status_code: int = 409

    def __init__(self, message: str, reason: Optional[str] = None):
        self.message = message
        self.reason = reason
        super().__init__(self.message)


class OverlappingPeriodError(LifecycleError):
    """
    Raised when a period would overlap another of the same kind.

    Examples:
    - Opening an injury while one is already open
    - Starting an employment before the previous one ended
    """
    code = "OVERLAPPING_PERIOD"


class NoOpenPeriodError(LifecycleError):
    """Raised when closing a period kind that has no open period."""
    code = "NO_OPEN_PERIOD"


class InvalidRangeError(LifecycleError):
    """Raised when a closing timestamp precedes the opening timestamp."""
    code = "INVALID_RANGE"


class InvalidTransitionError(LifecycleError):
    """
    Raised when the entity's current status does not allow the operation.

    reason names the violated precondition (e.g. "retired", "not_injured")
    so callers can render a precise message.
    """
    code = "INVALID_TRANSITION"

    def __init__(self, operation: str, reason: str, message: Optional[str] = None):
        self.operation = operation
        super().__init__(
            message or f"Cannot {operation}: {reason.replace('_', ' ')}",
            reason=reason
        )


class UnsupportedKindError(LifecycleError):
    """Raised when an entity type does not support a period kind (e.g. injuring a stable)."""
    code = "UNSUPPORTED_KIND"
    status_code = 400


class EntityNotFoundError(LifecycleError):
    """Raised when a referenced entity does not exist."""
    code = "ENTITY_NOT_FOUND"
    status_code = 404
