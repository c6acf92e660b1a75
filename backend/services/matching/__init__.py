"""
Offer marketplace service.

This module handles:
    - Drivers submitting quotes on pending rides
    - Drivers withdrawing their pending quotes
    - Requesters accepting one quote (all others rejected atomically)
"""

from .offer_marketplace import submit_offer, withdraw_offer, accept_offer

__all__ = [
    "submit_offer",
    "withdraw_offer",
    "accept_offer",
]
