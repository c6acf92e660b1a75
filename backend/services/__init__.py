"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - ride_management: Ride state machine (submit, transition, cancel, rate)
    - matching: Offer marketplace (submit, withdraw, accept)
    - billing: Ledger debits for account-billed rides
"""

# Expose commonly used functions at package level
from .ride_management import (
    submit_ride,
    transition,
    cancel_ride,
    rate_ride,
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
from .matching import (
    submit_offer,
    withdraw_offer,
    accept_offer,
)

__all__ = [
    # Ride management
    "submit_ride",
    "transition",
    "cancel_ride",
    "rate_ride",
    # Matching
    "submit_offer",
    "withdraw_offer",
    "accept_offer",
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
