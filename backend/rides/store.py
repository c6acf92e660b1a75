"""
RideStore: every write to rides and offers goes through here.

Each helper captures the prior row, applies the write, bumps the row
version and records exactly one ChangeEvent inside the caller's
transaction. The event is published to the channel layer only after
the transaction commits.
"""

import logging
from typing import Any, Dict, Optional

from django.db import transaction
from django.db.models import DateTimeField, Exists, OuterRef, Q, Subquery
from django.db.models.functions import Coalesce
from django.utils import timezone

from services.ride_management.exceptions import (
    OfferNotFoundError,
    RideNotFoundError,
    ValidationError,
)
from realtime.feed import categories
from .models import ChangeEvent, Ride, RideOffer, RideStatusHistory
from .serializers import RideOfferSerializer, RideSerializer

logger = logging.getLogger(__name__)


# ---------------------- Row snapshots ----------------------

def ride_row(ride: Ride) -> Dict[str, Any]:
    return dict(RideSerializer(ride).data)


def offer_row(offer: RideOffer) -> Dict[str, Any]:
    return dict(RideOfferSerializer(offer).data)


# ---------------------- Reads ----------------------

def get_ride(ride_id: int) -> Ride:
    try:
        return Ride.objects.get(id=ride_id)
    except Ride.DoesNotExist:
        raise RideNotFoundError(f"Ride {ride_id} not found")


def get_ride_for_update(ride_id: int) -> Ride:
    """Fetch a ride holding its row lock. Must be called inside a transaction."""
    try:
        return Ride.objects.select_for_update().get(id=ride_id)
    except Ride.DoesNotExist:
        raise RideNotFoundError(f"Ride {ride_id} not found")


def get_offer_for_update(offer_id: int) -> RideOffer:
    try:
        return RideOffer.objects.select_for_update().get(id=offer_id)
    except RideOffer.DoesNotExist:
        raise OfferNotFoundError(f"Offer {offer_id} not found")


def offers_for_driver(driver_id: int, ride_ids=None):
    """All offers a driver has made, optionally limited to some rides."""
    qs = RideOffer.objects.filter(driver_id=driver_id)
    if ride_ids is not None:
        qs = qs.filter(ride_id__in=ride_ids)
    return qs.order_by('offered_at', 'id')


def rides_for_category(role: str, observer_id: int, category: str):
    """
    Authoritative list of rides in one category for one observer,
    newest first. Must agree with categories.categorize().
    """
    if category not in categories.categories_for(role):
        raise ValidationError(f"Unknown category '{category}' for role {role}")

    active = list(categories.ASSIGNED_STATUSES)
    qs = Ride.objects.all()

    if role == categories.PASSENGER:
        qs = qs.filter(passenger_id=observer_id)
        if category == categories.PENDING:
            return qs.filter(status=Ride.PENDING).annotate(
                sort_at=Coalesce('scheduled_for', 'created_at')
            ).order_by('-sort_at', '-id')
        if category == categories.ACTIVE:
            return qs.filter(status__in=active).annotate(
                sort_at=Coalesce('scheduled_for', 'trip_started_at', 'created_at')
            ).order_by('-sort_at', '-id')

    else:
        pending_bids = RideOffer.objects.filter(
            ride_id=OuterRef('pk'),
            driver_id=observer_id,
            status=RideOffer.PENDING,
        )
        if category == categories.AVAILABLE:
            return qs.filter(status=Ride.PENDING).filter(
                ~Exists(pending_bids)
            ).order_by('-created_at', '-id')
        if category == categories.MY_BIDS:
            return qs.filter(status=Ride.PENDING).annotate(
                sort_at=Subquery(
                    pending_bids.order_by('-offered_at').values('offered_at')[:1],
                    output_field=DateTimeField(),
                )
            ).filter(sort_at__isnull=False).order_by('-sort_at', '-id')
        if category == categories.IN_PROGRESS:
            return qs.filter(driver_id=observer_id, status__in=active).annotate(
                sort_at=Coalesce('scheduled_for', 'trip_started_at', 'created_at')
            ).order_by('-sort_at', '-id')
        if category == categories.COMPLETED:
            qs = qs.filter(driver_id=observer_id)
        if category == categories.CANCELLED:
            qs = qs.filter(
                Q(driver_id=observer_id) | Q(offers__driver_id=observer_id)
            ).distinct()

    if category == categories.COMPLETED:
        return qs.filter(status=Ride.COMPLETED).order_by('-completed_at', '-id')
    return qs.filter(status=Ride.CANCELLED).order_by('-cancelled_at', '-id')


# ---------------------- Change events ----------------------

def _record_change(entity_type, entity_id, event_type, version, old_row, new_row,
                   passenger_id, driver_id) -> ChangeEvent:
    event = ChangeEvent.objects.create(
        entity_type=entity_type,
        entity_id=entity_id,
        event_type=event_type,
        version=version,
        old_row=old_row,
        new_row=new_row,
        passenger_id=passenger_id,
        driver_id=driver_id,
    )

    from realtime.changefeed import publish_change_event
    transaction.on_commit(lambda: publish_change_event(event), robust=True)
    return event


# ---------------------- Ride writes ----------------------

def create_ride(**fields) -> Ride:
    now = timezone.now()
    fields.setdefault('created_at', now)
    fields.setdefault('updated_at', now)
    ride = Ride.objects.create(status=Ride.PENDING, version=1, **fields)
    _record_change(
        ChangeEvent.RIDE, ride.id, ChangeEvent.INSERT, ride.version,
        None, ride_row(ride), ride.passenger_id, ride.driver_id,
    )
    return ride


def update_ride(ride: Ride, **changes) -> Ride:
    """Apply `changes` to a locked ride as one versioned write."""
    old_row = ride_row(ride)
    old_driver_id = ride.driver_id

    for field, value in changes.items():
        setattr(ride, field, value)
    ride.version += 1
    ride.updated_at = timezone.now()

    ride.save(update_fields=list(changes) + ['version', 'updated_at'])

    _record_change(
        ChangeEvent.RIDE, ride.id, ChangeEvent.UPDATE, ride.version,
        old_row, ride_row(ride), ride.passenger_id, ride.driver_id or old_driver_id,
    )
    return ride


# ---------------------- Offer writes ----------------------

def create_offer(ride: Ride, driver, quoted_price) -> RideOffer:
    now = timezone.now()
    offer = RideOffer.objects.create(
        ride=ride,
        driver=driver,
        quoted_price=quoted_price,
        status=RideOffer.PENDING,
        offered_at=now,
        updated_at=now,
        version=1,
    )
    _record_change(
        ChangeEvent.OFFER, offer.id, ChangeEvent.INSERT, offer.version,
        None, offer_row(offer), ride.passenger_id, offer.driver_id,
    )
    return offer


def update_offer(offer: RideOffer, passenger_id: Optional[int] = None, **changes) -> RideOffer:
    old_row = offer_row(offer)

    for field, value in changes.items():
        setattr(offer, field, value)
    offer.version += 1
    offer.updated_at = timezone.now()
    offer.save(update_fields=list(changes) + ['version', 'updated_at'])

    if passenger_id is None:
        passenger_id = Ride.objects.filter(id=offer.ride_id).values_list('passenger_id', flat=True).get()

    _record_change(
        ChangeEvent.OFFER, offer.id, ChangeEvent.UPDATE, offer.version,
        old_row, offer_row(offer), passenger_id, offer.driver_id,
    )
    return offer


# ---------------------- History ----------------------

def append_history(ride: Ride, old_status: str, new_status: str, actor=None, note: str = "") -> RideStatusHistory:
    return RideStatusHistory.objects.create(
        ride=ride,
        old_status=old_status,
        new_status=new_status,
        changed_by=actor,
        note=note or "",
    )
