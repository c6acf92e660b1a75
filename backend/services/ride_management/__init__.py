"""
Ride management service - Core ride lifecycle operations.

This module handles:
    - Submitting ride requests
    - Validated status transitions (the ride state machine)
    - Cancelling rides
    - Rating completed rides
"""

from .ride_lifecycle import (
    submit_ride,
    apply_transition,
    transition,
    cancel_ride,
    rate_ride,
    get_status_history,
)

from .exceptions import (
    DispatchError,
    ValidationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    RideNotFoundError,
    OfferNotFoundError,
    LedgerError,
    TransientError,
)

__all__ = [
    # Lifecycle operations
    "submit_ride",
    "apply_transition",
    "transition",
    "cancel_ride",
    "rate_ride",
    "get_status_history",
    # Exceptions
    "DispatchError",
    "ValidationError",
    "ConflictError",
    "InvalidTransitionError",
    "NotFoundError",
    "RideNotFoundError",
    "OfferNotFoundError",
    "LedgerError",
    "TransientError",
]
