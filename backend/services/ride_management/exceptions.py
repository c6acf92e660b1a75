"""Custom exceptions for ride dispatch."""


class DispatchError(Exception):
    """Base class for errors returned to callers of ride operations."""

    code = "dispatch_error"

    def __init__(self, message: str = "", code: str = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(DispatchError):
    """Raised when input is malformed. Nothing has been changed."""
    code = "validation_error"


class ConflictError(DispatchError):
    """Raised when the current state does not allow the operation."""
    code = "conflict"


class InvalidTransitionError(ConflictError):
    """Raised when the target status is not reachable from the current one."""
    code = "invalid_transition"


class NotFoundError(DispatchError):
    """Raised when a referenced entity does not exist."""
    code = "not_found"


class RideNotFoundError(NotFoundError):
    """Raised when a ride cannot be found."""
    pass


class OfferNotFoundError(NotFoundError):
    """Raised when a ride offer cannot be found."""
    pass


class LedgerError(DispatchError):
    """Raised when a ledger debit cannot be applied."""
    code = "ledger_error"


class TransientError(DispatchError):
    """Raised for feed delivery or refresh hiccups."""
    code = "transient_error"
