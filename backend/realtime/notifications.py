"""
Notification helpers for ride status changes and low balances.

Each trigger creates one Notification row per recipient, keyed by a
dedupe key, inside the caller's transaction. Delivery to the
recipient's personal group (user_<id>) happens after commit; rows that
fail to deliver are picked up by rides.tasks.redeliver_notifications_task.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from rides.models import Notification, Ride
from .changefeed import user_group

logger = logging.getLogger(__name__)


STATUS_MESSAGES = {
    Ride.ACCEPTED: ("Ride accepted", "A driver has been assigned to your ride."),
    Ride.DRIVER_EN_ROUTE: ("Driver on the way", "Your driver is heading to the pickup point."),
    Ride.DRIVER_ARRIVED: ("Driver arrived", "Your driver has arrived at the pickup point."),
    Ride.TRIP_STARTED: ("Trip started", "Your trip is underway."),
    Ride.TRIP_COMPLETED: ("Trip completed", "The trip has finished. Please rate your ride."),
    Ride.COMPLETED: ("Ride closed", "The ride has been rated and archived."),
    Ride.CANCELLED: ("Ride cancelled", "This ride has been cancelled."),
}


def notification_payload(notification: Notification) -> Dict[str, Any]:
    return {
        "notification_id": notification.id,
        "ride_id": notification.ride_id,
        "kind": notification.kind,
        "title": notification.title,
        "message": notification.message,
        "details": notification.details,
    }


# ---------------------- Creation ----------------------

def _create_notification(
    recipient_id: int,
    kind: str,
    dedupe_key: str,
    title: str,
    message: str,
    ride_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[Notification]:
    """
    Create a notification once per dedupe key and schedule delivery.

    Returns None when this trigger was already recorded.
    """
    with transaction.atomic():
        notification, created = Notification.objects.get_or_create(
            dedupe_key=dedupe_key,
            defaults={
                "recipient_id": recipient_id,
                "ride_id": ride_id,
                "kind": kind,
                "title": title,
                "message": message,
                "details": details or {},
            },
        )

    if not created:
        logger.debug("Notification %s already recorded", dedupe_key)
        return None

    transaction.on_commit(lambda: deliver_notification(notification.id), robust=True)
    return notification


def notify_status_change(
    ride: Ride,
    old_status: str,
    new_status: str,
    actor=None,
    extra_recipient_ids: Iterable[int] = (),
) -> List[Notification]:
    """
    Alert the requester and the assigned driver (not the actor) that a
    ride changed status. `extra_recipient_ids` adds observers such as
    drivers whose bids were dropped by a cancellation.
    """
    actor_id = getattr(actor, "id", None)
    recipient_ids = []
    for user_id in [ride.passenger_id, ride.driver_id, *extra_recipient_ids]:
        if user_id and user_id != actor_id and user_id not in recipient_ids:
            recipient_ids.append(user_id)

    title, message = STATUS_MESSAGES.get(
        new_status, ("Ride updated", f"Ride status changed to {new_status}.")
    )
    if new_status == Ride.CANCELLED and ride.cancellation_reason:
        message = f"{message} Reason: {ride.cancellation_reason}"

    details = {
        "old_status": old_status,
        "new_status": new_status,
        "actor_id": actor_id,
    }

    created = []
    for user_id in recipient_ids:
        notification = _create_notification(
            recipient_id=user_id,
            kind=Notification.STATUS_CHANGE,
            dedupe_key=f"status_change:{ride.id}:{new_status}:{user_id}",
            title=title,
            message=message,
            ride_id=ride.id,
            details=details,
        )
        if notification:
            created.append(notification)
    return created


def notify_low_balance(account, ledger_transaction, new_balance, threshold) -> Optional[Notification]:
    """Alert the account owner that a debit pushed the balance to or below its threshold."""
    return _create_notification(
        recipient_id=account.owner_id,
        kind=Notification.LOW_BALANCE,
        dedupe_key=f"low_balance:{account.id}:{ledger_transaction.id}",
        title="Low account balance",
        message=(
            f"Your account '{account.name}' balance is {new_balance}, "
            f"at or below the {threshold} threshold."
        ),
        ride_id=ledger_transaction.ride_id,
        details={
            "account_id": account.id,
            "new_balance": str(new_balance),
            "threshold": str(threshold),
        },
    )


# ---------------------- Delivery ----------------------

def deliver_notification(notification_id: int) -> bool:
    """
    Push a notification to its recipient's group: user_<recipient_id>

    Returns:
        True if sent successfully, False otherwise
    """
    notification = Notification.objects.filter(id=notification_id).first()
    if notification is None or notification.delivered_at is not None:
        return False

    Notification.objects.filter(id=notification_id).update(
        delivery_attempts=F("delivery_attempts") + 1
    )

    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available; notification %s left undelivered", notification_id)
        return False

    payload = {
        "type": "notification",
        "notification": notification_payload(notification),
    }

    try:
        logger.debug("WS -> user_%s: %s", notification.recipient_id, payload)
        async_to_sync(channel_layer.group_send)(user_group(notification.recipient_id), payload)
    except Exception:
        logger.warning("Failed to deliver notification %s", notification_id, exc_info=True)
        return False

    Notification.objects.filter(id=notification_id).update(delivered_at=timezone.now())
    return True


def undelivered_notifications(max_attempts: int = None):
    if max_attempts is None:
        max_attempts = getattr(settings, "NOTIFICATION_MAX_DELIVERY_ATTEMPTS", 5)
    return Notification.objects.filter(
        delivered_at__isnull=True,
        delivery_attempts__lt=max_attempts,
    ).order_by("created_at", "id")
