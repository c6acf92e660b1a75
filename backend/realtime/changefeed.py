"""
ChangeFeed fan-out.

ChangeEvent rows are written by rides.store inside the mutating
transaction; this module pushes them to channel layer groups after
commit and replays them to subscribers that reconnect with a
`last_event_id`.

Groups:
    user_<id>  personal group of every connected user
    drivers    every connected driver (ride events feed the marketplace)
"""

import logging
from typing import Any, Dict, List

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db.models import Q

from rides.models import ChangeEvent

logger = logging.getLogger(__name__)

DRIVERS_GROUP = "drivers"


def user_group(user_id: int) -> str:
    return f"user_{user_id}"


def event_payload(event: ChangeEvent) -> Dict[str, Any]:
    """Wire shape of a change event."""
    return {
        "event_id": event.id,
        "entity_type": event.entity_type,
        "event_type": event.event_type,
        "entity_id": event.entity_id,
        "version": event.version,
        "old": event.old_row,
        "new": event.new_row,
    }


def groups_for_event(event: ChangeEvent) -> List[str]:
    groups = [user_group(event.passenger_id)]
    if event.entity_type == ChangeEvent.RIDE:
        groups.append(DRIVERS_GROUP)
    elif event.driver_id:
        groups.append(user_group(event.driver_id))
    return groups


def publish_change_event(event: ChangeEvent) -> bool:
    """
    Push one committed change event to its groups.

    Failures are logged and reported through the return value; the
    durable row stays and is replayed on the next open_feed.
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available; change event %s not published", event.id)
        return False

    message = {"type": "change_event", "event": event_payload(event)}
    try:
        for group in groups_for_event(event):
            async_to_sync(channel_layer.group_send)(group, message)
    except Exception:
        logger.warning("Failed to publish change event %s", event.id, exc_info=True)
        return False
    return True


def audience_filter(role: str, observer_id: int) -> Q:
    """Events a given observer would have received live."""
    if role == "driver":
        return Q(entity_type=ChangeEvent.RIDE) | Q(
            entity_type=ChangeEvent.OFFER, driver_id=observer_id
        )
    return Q(passenger_id=observer_id)


def events_since(role: str, observer_id: int, last_event_id: int, limit: int = None) -> List[Dict[str, Any]]:
    """Durable events after `last_event_id`, oldest first."""
    if limit is None:
        limit = getattr(settings, "FEED_CATCH_UP_LIMIT", 500)

    events = (
        ChangeEvent.objects
        .filter(id__gt=last_event_id)
        .filter(audience_filter(role, observer_id))
        .order_by("id")[:limit]
    )
    return [event_payload(event) for event in events]


def latest_event_id() -> int:
    return ChangeEvent.objects.order_by("-id").values_list("id", flat=True).first() or 0
