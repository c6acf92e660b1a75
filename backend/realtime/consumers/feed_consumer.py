"""Categorized ride feed WebSocket consumer."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from channels.db import database_sync_to_async

from rides import store
from ..changefeed import DRIVERS_GROUP, events_since, latest_event_id
from ..feed import categories
from ..feed.projector import FeedProjector
from .base import BaseConsumer

logger = logging.getLogger(__name__)


class FeedConsumer(BaseConsumer):
    """
    WebSocket consumer serving one FeedProjector per connection.

    Client messages:
        - open_feed {category?, last_event_id?}: start the subscription,
          replaying durable events newer than last_event_id
        - set_category {category}: switch the active category
        - refresh: re-fetch the active category
        - close_feed: end the subscription (the socket stays open)

    Server messages:
        - feed_opened, feed_snapshot, feed_closed, refresh_failed,
          notification, error
    """

    async def on_connect(self):
        self.projector: Optional[FeedProjector] = None
        self.last_event_id = 0

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "categories": list(categories.categories_for(self.role)),
        })

    async def on_disconnect(self, close_code):
        self._close_projector()

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "open_feed":
            await self._handle_open_feed(data)
        elif msg_type == "close_feed":
            await self._handle_close_feed()
        elif msg_type == "set_category":
            await self._handle_set_category(data)
        elif msg_type == "refresh":
            await self._handle_refresh()
        elif msg_type == "ping":
            await self.send_success("pong")
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_open_feed(self, data: Dict[str, Any]):
        category = data.get("category") or categories.default_category(self.role)
        if category not in categories.categories_for(self.role):
            await self.send_error(f"Unknown category: {category}")
            return

        self._close_projector()
        self.projector = FeedProjector(
            role=self.role,
            observer_id=self.user_id,
            fetch=self._fetch_category,
            active_category=category,
            on_refresh=self._send_snapshot,
            on_error=self._send_refresh_failed,
        )

        # Join before catching up so nothing falls in between
        if self.role == categories.DRIVER:
            await self._join_group(DRIVERS_GROUP)

        last_event_id = data.get("last_event_id")
        replayed = 0
        if last_event_id is not None:
            for event in await self._events_since(int(last_event_id)):
                self.projector.apply_event(event)
                self.last_event_id = max(self.last_event_id, event["event_id"])
                replayed += 1
        else:
            self.last_event_id = await database_sync_to_async(latest_event_id)()

        await self.send_success(
            "feed_opened",
            category=category,
            replayed=replayed,
            last_event_id=self.last_event_id,
        )
        self.projector.switch_category(category)

    async def _handle_close_feed(self):
        self._close_projector()
        if DRIVERS_GROUP in self.joined_groups:
            await self._leave_group(DRIVERS_GROUP)
        await self.send_success("feed_closed")

    async def _handle_set_category(self, data: Dict[str, Any]):
        if not await self._require_projector():
            return
        category = data.get("category")
        if category not in self.projector.categories:
            await self.send_error(f"Unknown category: {category}")
            return
        self.projector.switch_category(category)

    async def _handle_refresh(self):
        if not await self._require_projector():
            return
        self.projector.refresh()

    async def _require_projector(self) -> bool:
        if self.projector is None:
            await self.send_error("Feed is not open; send open_feed first")
            return False
        return True

    def _close_projector(self):
        if getattr(self, "projector", None) is not None:
            self.projector.close()
            self.projector = None

    # ---------------------- Projector callbacks ----------------------

    async def _send_snapshot(self, snapshot: Dict[str, Any]):
        await self.send_json({
            "type": "feed_snapshot",
            "last_event_id": self.last_event_id,
            **snapshot,
        })

    async def _send_refresh_failed(self, error):
        await self.send_json({
            "type": "refresh_failed",
            "code": error.code,
            "message": error.message,
            "stale_categories": self.projector.stale_categories if self.projector else [],
        })

    # ---------------------- Channel layer events ----------------------

    async def change_event(self, event):
        """Sent by realtime.changefeed after a ride or offer write commits."""
        payload = event.get("event", {})
        if self.projector is None:
            return

        self.last_event_id = max(self.last_event_id, payload.get("event_id") or 0)
        if self.projector.apply_event(payload):
            await self._send_snapshot(self.projector.snapshot())

    # ---------------------- Database helpers ----------------------

    @database_sync_to_async
    def _events_since(self, last_event_id: int) -> List[Dict[str, Any]]:
        return events_since(self.role, self.user_id, last_event_id)

    @database_sync_to_async
    def _fetch_category(self, category: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        rides = list(store.rides_for_category(self.role, self.user_id, category))
        offers = []
        if self.role == categories.DRIVER:
            offers = [
                store.offer_row(offer)
                for offer in store.offers_for_driver(self.user_id, [ride.id for ride in rides])
            ]
        return [store.ride_row(ride) for ride in rides], offers
