"""
Core ride lifecycle operations.

This module contains the ride state machine operations: submitting a
ride, moving it through its statuses, cancelling and rating it. Every
write goes through rides.store under the ride's row lock.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from billing.models import BillingAccount
from rides import store
from rides.models import Ride, RideOffer
from .exceptions import (
    ConflictError,
    InvalidTransitionError,
    ValidationError,
)
from .state_machine import STATUS_TIMESTAMP_FIELDS, can_transition

logger = logging.getLogger(__name__)


def _decimal_or_none(value, field: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")


def _actor_role(ride: Ride, actor) -> str:
    if actor is None:
        return 'system'
    if actor.id == ride.passenger_id:
        return 'passenger'
    if actor.id == ride.driver_id or getattr(actor, 'role', None) == 'driver':
        return 'driver'
    return 'system'


# ===================== Submission =====================

@transaction.atomic
def submit_ride(
    passenger,
    pickup_latitude,
    pickup_longitude,
    service_type: str = 'taxi',
    timing_mode: str = Ride.INSTANT,
    payment_method: str = 'cash',
    pickup_address: str = "",
    dropoff_latitude=None,
    dropoff_longitude=None,
    dropoff_address: str = "",
    scheduled_for=None,
    billing_account_id: Optional[int] = None,
    number_of_passengers: int = 1,
    notes: str = "",
) -> Ride:
    """
    Create a new ride request in status pending.

    Raises:
        ValidationError: If any input is malformed
    """
    if service_type not in dict(Ride.SERVICE_TYPE_CHOICES):
        raise ValidationError(f"Unknown service type '{service_type}'")
    if timing_mode not in dict(Ride.TIMING_MODE_CHOICES):
        raise ValidationError(f"Unknown timing mode '{timing_mode}'")
    if payment_method not in dict(Ride.PAYMENT_METHOD_CHOICES):
        raise ValidationError(f"Unknown payment method '{payment_method}'")

    pickup_latitude = _decimal_or_none(pickup_latitude, "pickup_latitude")
    pickup_longitude = _decimal_or_none(pickup_longitude, "pickup_longitude")
    if pickup_latitude is None or pickup_longitude is None:
        raise ValidationError("Pickup coordinates are required")
    if not (-90 <= pickup_latitude <= 90) or not (-180 <= pickup_longitude <= 180):
        raise ValidationError("Pickup coordinates are out of range")

    dropoff_latitude = _decimal_or_none(dropoff_latitude, "dropoff_latitude")
    dropoff_longitude = _decimal_or_none(dropoff_longitude, "dropoff_longitude")
    if (dropoff_latitude is None) != (dropoff_longitude is None):
        raise ValidationError("Dropoff latitude and longitude must be given together")

    if timing_mode != Ride.INSTANT and scheduled_for is None:
        raise ValidationError(f"scheduled_for is required for {timing_mode} rides")

    if number_of_passengers is None or int(number_of_passengers) < 1:
        raise ValidationError("number_of_passengers must be at least 1")

    billing_status = Ride.BILLING_NOT_APPLICABLE
    if payment_method == Ride.ACCOUNT_BALANCE:
        if billing_account_id is None:
            raise ValidationError("billing_account_id is required for account balance rides")
        if not BillingAccount.objects.filter(id=billing_account_id, is_active=True).exists():
            raise ValidationError(f"Billing account {billing_account_id} is not active")
        billing_status = Ride.BILLING_PENDING
    else:
        billing_account_id = None

    ride = store.create_ride(
        passenger=passenger,
        service_type=service_type,
        timing_mode=timing_mode,
        scheduled_for=scheduled_for,
        payment_method=payment_method,
        billing_account_id=billing_account_id,
        billing_status=billing_status,
        pickup_latitude=pickup_latitude,
        pickup_longitude=pickup_longitude,
        pickup_address=pickup_address or "",
        dropoff_latitude=dropoff_latitude,
        dropoff_longitude=dropoff_longitude,
        dropoff_address=dropoff_address or "",
        number_of_passengers=int(number_of_passengers),
        notes=notes or "",
    )

    logger.info("Ride %s submitted by user %s (%s, %s)", ride.id, passenger.id, service_type, timing_mode)
    return ride


# ===================== Transitions =====================

def apply_transition(
    ride: Ride,
    target_status: str,
    actor=None,
    note: str = "",
    changes: Optional[Dict[str, Any]] = None,
    notify_extra_ids=(),
) -> Ride:
    """
    Move a locked ride to `target_status` as one versioned write.

    Must run inside a transaction holding the ride's row lock.
    `changes` are extra columns written together with the status.

    Raises:
        InvalidTransitionError: If the target is not reachable
    """
    old_status = ride.status
    if not can_transition(old_status, target_status):
        raise InvalidTransitionError(
            f"Cannot move ride {ride.id} from {old_status} to {target_status}"
        )

    now = timezone.now()
    changes = dict(changes or {})
    changes['status'] = target_status
    timestamp_field = STATUS_TIMESTAMP_FIELDS.get(target_status)
    if timestamp_field:
        changes[timestamp_field] = now

    # Billed completion: the debit's outcome is written with the status
    if target_status == Ride.TRIP_COMPLETED and ride.billing_account_id is not None:
        from services.billing import run_ride_debit
        if ride.billing_status != Ride.BILLING_DEBITED:
            changes['billing_status'] = run_ride_debit(ride, actor)

    store.update_ride(ride, **changes)

    try:
        with transaction.atomic():
            store.append_history(ride, old_status, target_status, actor, note)
    except Exception:
        logger.exception("Failed to append status history for ride %s", ride.id)

    if target_status == Ride.TRIP_COMPLETED and ride.driver_id:
        get_user_model().objects.filter(id=ride.driver_id).update(
            completed_rides=F('completed_rides') + 1
        )

    from realtime.notifications import notify_status_change
    try:
        notify_status_change(ride, old_status, target_status, actor, notify_extra_ids)
    except Exception:
        logger.exception("Failed to record status notifications for ride %s", ride.id)

    logger.info("Ride %s: %s -> %s", ride.id, old_status, target_status)
    return ride


@transaction.atomic
def transition(ride_id: int, target_status: str, actor=None, note: str = "") -> Ride:
    """
    Validate and apply a status transition.

    Acceptance and cancellation have dedicated operations
    (services.matching.accept_offer, cancel_ride) because they carry
    extra writes; rating has rate_ride.

    Raises:
        RideNotFoundError: If the ride does not exist
        InvalidTransitionError: If the target is not reachable
    """
    ride = store.get_ride_for_update(ride_id)

    if target_status not in dict(Ride.STATUS_CHOICES):
        raise InvalidTransitionError(f"Unknown status '{target_status}' for ride {ride.id}")

    if target_status == Ride.ACCEPTED and can_transition(ride.status, target_status):
        raise ConflictError("Rides are accepted through an offer", code="offer_required")
    if target_status == Ride.CANCELLED:
        return _cancel_locked(ride, actor, note or None)

    return apply_transition(ride, target_status, actor, note)


# ===================== Cancellation =====================

def _cancel_locked(ride: Ride, actor, reason: Optional[str]) -> Ride:
    if not can_transition(ride.status, Ride.CANCELLED):
        raise InvalidTransitionError(
            f"Cannot cancel - ride {ride.id} is {ride.status}"
        )

    reason = reason or getattr(settings, 'CANCELLATION_DEFAULT_REASON', "No reason provided")
    now = timezone.now()

    # Bids on a ride that will never be accepted
    bidder_ids = []
    pending_offers = RideOffer.objects.select_for_update().filter(
        ride_id=ride.id, status=RideOffer.PENDING
    ).order_by('id')
    for offer in pending_offers:
        store.update_offer(offer, passenger_id=ride.passenger_id, status=RideOffer.REJECTED, responded_at=now)
        bidder_ids.append(offer.driver_id)

    return apply_transition(
        ride,
        Ride.CANCELLED,
        actor,
        note=reason,
        changes={
            'cancellation_reason': reason,
            'cancelled_by': _actor_role(ride, actor),
        },
        notify_extra_ids=bidder_ids,
    )


@transaction.atomic
def cancel_ride(ride_id: int, actor=None, reason: Optional[str] = None) -> Ride:
    """
    Cancel a ride that has not started its trip.

    Pending offers on the ride are rejected and their drivers notified.

    Raises:
        RideNotFoundError: If the ride does not exist
        InvalidTransitionError: If the trip already started or the ride is closed
    """
    ride = store.get_ride_for_update(ride_id)
    return _cancel_locked(ride, actor, reason)


# ===================== Rating =====================

@transaction.atomic
def rate_ride(ride_id: int, actor, rating, review: Optional[str] = None) -> Ride:
    """
    Record the requester's rating and close the ride (trip_completed -> completed).

    Raises:
        ValidationError: If the rating is not 1..5
        RideNotFoundError: If the ride does not exist
        InvalidTransitionError: If the trip has not completed
    """
    try:
        rating = int(rating)
    except (TypeError, ValueError):
        raise ValidationError("rating must be an integer between 1 and 5")
    if not 1 <= rating <= 5:
        raise ValidationError("rating must be an integer between 1 and 5")

    ride = store.get_ride_for_update(ride_id)
    return apply_transition(
        ride,
        Ride.COMPLETED,
        actor,
        note=f"Rated {rating}",
        changes={
            'rating': rating,
            'review': review or None,
            'rated_at': timezone.now(),
        },
    )


# ===================== Queries =====================

def get_status_history(ride_id: int):
    ride = store.get_ride(ride_id)
    return ride.status_history.all()
