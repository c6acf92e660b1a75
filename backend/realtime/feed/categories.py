"""
Ride categorization for observer feeds.

Every function here is pure: it works on serialized ride/offer rows
(the dicts stored on change events) so the same rules apply to live
events, catch-up replays and authoritative refreshes.
"""

from typing import Any, Dict, Iterable, Optional

from rides.models import Ride, RideOffer

PASSENGER = "passenger"
DRIVER = "driver"

# Passenger categories
PENDING = "pending"
ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"

# Driver categories
AVAILABLE = "available"
MY_BIDS = "my_bids"
IN_PROGRESS = "in_progress"

PASSENGER_CATEGORIES = (PENDING, ACTIVE, COMPLETED, CANCELLED)
DRIVER_CATEGORIES = (AVAILABLE, MY_BIDS, IN_PROGRESS, COMPLETED, CANCELLED)

# Assigned statuses shown as Active / In Progress
ASSIGNED_STATUSES = frozenset({
    Ride.ACCEPTED,
    Ride.DRIVER_EN_ROUTE,
    Ride.DRIVER_ARRIVED,
    Ride.TRIP_STARTED,
    Ride.TRIP_COMPLETED,
})


def categories_for(role: str) -> tuple:
    if role == DRIVER:
        return DRIVER_CATEGORIES
    if role == PASSENGER:
        return PASSENGER_CATEGORIES
    raise ValueError(f"Unknown observer role: {role}")


def default_category(role: str) -> str:
    return AVAILABLE if role == DRIVER else PENDING


def _own_offers(ride_id, observer_id, related_offers: Optional[Iterable[Dict[str, Any]]]):
    return [
        offer for offer in (related_offers or ())
        if offer.get("ride_id") == ride_id and offer.get("driver_id") == observer_id
    ]


def categorize(
    ride: Optional[Dict[str, Any]],
    role: str,
    observer_id: int,
    related_offers: Optional[Iterable[Dict[str, Any]]] = None,
) -> Optional[str]:
    """
    Return the single category `ride` occupies for this observer, or None.

    `related_offers` are offer rows; only the observer's own offers on
    this ride are considered.
    """
    if not ride:
        return None

    status = ride.get("status")

    if role == PASSENGER:
        if ride.get("passenger_id") != observer_id:
            return None
        if status == Ride.PENDING:
            return PENDING
        if status in ASSIGNED_STATUSES:
            return ACTIVE
        if status == Ride.COMPLETED:
            return COMPLETED
        if status == Ride.CANCELLED:
            return CANCELLED
        return None

    if role == DRIVER:
        own_offers = _own_offers(ride.get("id"), observer_id, related_offers)
        assigned_to_me = ride.get("driver_id") == observer_id

        if status == Ride.PENDING:
            if any(offer.get("status") == RideOffer.PENDING for offer in own_offers):
                return MY_BIDS
            return AVAILABLE
        if status in ASSIGNED_STATUSES:
            return IN_PROGRESS if assigned_to_me else None
        if status == Ride.COMPLETED:
            return COMPLETED if assigned_to_me else None
        if status == Ride.CANCELLED:
            return CANCELLED if (assigned_to_me or own_offers) else None
        return None

    raise ValueError(f"Unknown observer role: {role}")


def sort_timestamp(
    ride: Dict[str, Any],
    category: str,
    observer_id: Optional[int] = None,
    related_offers: Optional[Iterable[Dict[str, Any]]] = None,
) -> str:
    """Timestamp a category is ordered by (newest first)."""
    if category == PENDING:
        return ride.get("scheduled_for") or ride.get("created_at") or ""
    if category in (ACTIVE, IN_PROGRESS):
        return (
            ride.get("scheduled_for")
            or ride.get("trip_started_at")
            or ride.get("created_at")
            or ""
        )
    if category == COMPLETED:
        return ride.get("completed_at") or ""
    if category == CANCELLED:
        return ride.get("cancelled_at") or ""
    if category == MY_BIDS:
        own = [
            offer for offer in _own_offers(ride.get("id"), observer_id, related_offers)
            if offer.get("status") == RideOffer.PENDING
        ]
        if own:
            return max(offer.get("offered_at") or "" for offer in own)
    return ride.get("created_at") or ""


def sort_key(ride, category, observer_id=None, related_offers=None):
    """Ascending key; sort with reverse=True for newest first."""
    return (sort_timestamp(ride, category, observer_id, related_offers), ride.get("id") or 0)
