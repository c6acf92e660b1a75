"""
Offer marketplace: driver quotes against pending rides.

Every operation runs under the ride's row lock, so two near-simultaneous
accept attempts resolve with exactly one winner; the other caller sees
the ride is no longer pending and gets a ConflictError.
"""

import logging
import time
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import IntegrityError, OperationalError, transaction
from django.utils import timezone

from rides import store
from rides.models import Ride, RideOffer
from services.ride_management.exceptions import (
    ConflictError,
    OfferNotFoundError,
    ValidationError,
)
from services.ride_management.ride_lifecycle import apply_transition
from services.ride_management.state_machine import ON_TRIP_STATUSES

logger = logging.getLogger(__name__)


def _parse_price(price) -> Decimal:
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Quoted price must be a number")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Quoted price must be greater than zero")
    return value.quantize(Decimal("0.01"))


@transaction.atomic
def submit_offer(ride_id: int, driver, price) -> RideOffer:
    """
    Place a driver's quote on a pending ride.

    Raises:
        ValidationError: If price <= 0
        RideNotFoundError: If the ride does not exist
        ConflictError: If the ride is not pending or the driver already has a pending offer
    """
    quoted_price = _parse_price(price)
    ride = store.get_ride_for_update(ride_id)

    if ride.status != Ride.PENDING:
        raise ConflictError(f"Ride {ride.id} is no longer accepting offers ({ride.status})")

    if RideOffer.objects.filter(ride=ride, driver=driver, status=RideOffer.PENDING).exists():
        raise ConflictError("You already have a pending offer on this ride", code="duplicate_offer")

    try:
        with transaction.atomic():
            offer = store.create_offer(ride, driver, quoted_price)
    except IntegrityError:
        raise ConflictError("You already have a pending offer on this ride", code="duplicate_offer")

    logger.info("Driver %s offered %s on ride %s", driver.id, quoted_price, ride.id)
    return offer


@transaction.atomic
def withdraw_offer(offer_id: int, driver) -> RideOffer:
    """
    Withdraw a driver's own pending offer. The driver may bid again afterwards.

    Raises:
        OfferNotFoundError: If the offer does not exist or belongs to another driver
        ConflictError: If the offer or its ride is no longer pending
    """
    ride_id = RideOffer.objects.filter(id=offer_id, driver=driver).values_list('ride_id', flat=True).first()
    if ride_id is None:
        raise OfferNotFoundError(f"Offer {offer_id} not found")

    ride = store.get_ride_for_update(ride_id)
    offer = store.get_offer_for_update(offer_id)

    if offer.status != RideOffer.PENDING:
        raise ConflictError(f"Offer {offer.id} is already {offer.status}")
    if ride.status != Ride.PENDING:
        raise ConflictError(f"Ride {ride.id} is no longer pending ({ride.status})")

    store.update_offer(offer, passenger_id=ride.passenger_id, status=RideOffer.REJECTED, responded_at=timezone.now())
    logger.info("Driver %s withdrew offer %s on ride %s", driver.id, offer.id, ride.id)
    return offer


def _accept_offer_once(offer_id: int, ride_id: int, actor) -> Ride:
    with transaction.atomic():
        ride = store.get_ride_for_update(ride_id)
        offer = store.get_offer_for_update(offer_id)

        if offer.ride_id != ride.id:
            raise OfferNotFoundError(f"Offer {offer_id} not found on ride {ride_id}")
        if offer.status != RideOffer.PENDING:
            raise ConflictError(f"Offer {offer.id} is already {offer.status}")
        if ride.status != Ride.PENDING:
            raise ConflictError(f"Ride {ride.id} is no longer pending ({ride.status})")

        if ride.timing_mode == Ride.INSTANT and Ride.objects.filter(
            driver_id=offer.driver_id,
            timing_mode=Ride.INSTANT,
            status__in=ON_TRIP_STATUSES,
        ).exclude(id=ride.id).exists():
            raise ConflictError(
                "Driver already has an active instant ride",
                code="driver_unavailable",
            )

        now = timezone.now()
        store.update_offer(offer, passenger_id=ride.passenger_id, status=RideOffer.ACCEPTED, responded_at=now)

        siblings = RideOffer.objects.select_for_update().filter(
            ride_id=ride.id, status=RideOffer.PENDING
        ).exclude(id=offer.id).order_by('id')
        for sibling in siblings:
            store.update_offer(sibling, passenger_id=ride.passenger_id, status=RideOffer.REJECTED, responded_at=now)

        apply_transition(
            ride,
            Ride.ACCEPTED,
            actor,
            note=f"Accepted offer #{offer.id} from driver {offer.driver_id} at {offer.quoted_price}",
            changes={
                'driver_id': offer.driver_id,
                'fare': offer.quoted_price,
            },
        )
        return ride


def accept_offer(offer_id: int, ride_id: int, actor) -> Ride:
    """
    Accept one offer and reject all others, assigning its driver and fare.

    The whole sequence commits or nothing does. Lock and serialization
    failures are retried up to ACCEPT_OFFER_MAX_ATTEMPTS times; a
    ConflictError is never retried.

    Raises:
        RideNotFoundError / OfferNotFoundError: If either does not exist
        ConflictError: If the offer or ride is no longer pending
    """
    max_attempts = max(1, getattr(settings, 'ACCEPT_OFFER_MAX_ATTEMPTS', 3))

    for attempt in range(1, max_attempts + 1):
        try:
            ride = _accept_offer_once(offer_id, ride_id, actor)
        except OperationalError:
            if attempt == max_attempts:
                logger.exception("Accepting offer %s on ride %s failed after %s attempts", offer_id, ride_id, attempt)
                raise
            logger.warning("Accepting offer %s on ride %s hit a lock, retrying (%s/%s)", offer_id, ride_id, attempt, max_attempts)
            time.sleep(0.05 * attempt)
            continue

        logger.info("Ride %s accepted offer %s (driver %s, fare %s)", ride.id, offer_id, ride.driver_id, ride.fare)
        return ride
