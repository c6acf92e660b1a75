"""
Per-session categorized ride feed.

A FeedProjector belongs to one observing session. It applies change
events optimistically to the category the observer is viewing, flags
other categories as stale instead of touching them, and reconciles the
active category with authoritative refreshes that run as cancellable
asyncio tasks.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from services.ride_management.exceptions import TransientError
from . import categories

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
# fetch(category) -> (ride rows, the observer's offer rows on those rides)
Fetcher = Callable[[str], Awaitable[Tuple[List[Row], List[Row]]]]


async def _maybe_await(result):
    if inspect.isawaitable(result):
        await result


class FeedProjector:
    """
    Disjoint per-category ride lists for one observer.

    Args:
        role: "passenger" or "driver"
        observer_id: ID of the observing user
        fetch: async callable returning the authoritative rows of a category
        active_category: category shown first (role default if omitted)
        on_refresh: called with the snapshot after a refresh lands
        on_error: called with a TransientError when a refresh fails
    """

    def __init__(
        self,
        role: str,
        observer_id: int,
        fetch: Fetcher,
        active_category: Optional[str] = None,
        on_refresh: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_error: Optional[Callable[[TransientError], Any]] = None,
    ):
        self.categories = categories.categories_for(role)
        self.role = role
        self.observer_id = observer_id
        self.active_category = active_category or categories.default_category(role)
        if self.active_category not in self.categories:
            raise ValueError(f"Unknown category '{self.active_category}' for role {role}")

        self._fetch = fetch
        self._on_refresh = on_refresh
        self._on_error = on_error

        self._lists: Dict[str, List[Row]] = {category: [] for category in self.categories}
        self._membership: Dict[int, str] = {}
        self._rides: Dict[int, Row] = {}
        self._offers: Dict[int, Row] = {}
        self._versions: Dict[Tuple[str, int], int] = {}
        self._stale = set()

        self._refresh_task: Optional[asyncio.Task] = None
        self._generation = 0
        self.closed = False

    # ---------------------- Queries ----------------------

    @property
    def stale_categories(self) -> List[str]:
        return [category for category in self.categories if category in self._stale]

    def is_stale(self, category: str) -> bool:
        return category in self._stale

    def category_of(self, ride_id: int) -> Optional[str]:
        return self._membership.get(ride_id)

    def rides_in(self, category: str) -> List[Row]:
        """Cached rows of a category, minus rides that have since moved elsewhere."""
        return [
            row for row in self._lists.get(category, [])
            if self._membership.get(row["id"]) == category
        ]

    def snapshot(self) -> Dict[str, Any]:
        return {
            "category": self.active_category,
            "rides": self.rides_in(self.active_category),
            "stale_categories": self.stale_categories,
        }

    # ---------------------- Change events ----------------------

    def apply_event(self, event: Dict[str, Any]) -> bool:
        """
        Apply one change event. Returns False for duplicates and
        events older than what is already applied.
        """
        if self.closed:
            return False

        entity_type = event.get("entity_type")
        entity_id = event.get("entity_id")
        version = event.get("version") or 0
        key = (entity_type, entity_id)

        if self._versions.get(key, 0) >= version:
            return False
        self._versions[key] = version

        if entity_type == "ride":
            self._apply_ride_event(event)
        elif entity_type == "offer":
            self._apply_offer_event(event)
        else:
            logger.warning("Ignoring change event with unknown entity type %s", entity_type)
            return False
        return True

    def _categorize(self, ride: Optional[Row]) -> Optional[str]:
        return categories.categorize(ride, self.role, self.observer_id, self._offers.values())

    def _apply_ride_event(self, event: Dict[str, Any]):
        ride_id = event["entity_id"]
        old_row = event.get("old")
        new_row = event.get("new") if event.get("event_type") != "delete" else None

        old_category = self._categorize(old_row) if old_row else self._membership.get(ride_id)
        self._place(ride_id, old_category, new_row)

    def _apply_offer_event(self, event: Dict[str, Any]):
        if self.role != categories.DRIVER:
            return

        offer = event.get("new") or event.get("old")
        if not offer or offer.get("driver_id") != self.observer_id:
            return

        if event.get("event_type") == "delete":
            self._offers.pop(offer["id"], None)
        else:
            self._offers[offer["id"]] = offer

        ride_id = offer.get("ride_id")
        ride = self._rides.get(ride_id)
        if ride is not None:
            self._place(ride_id, self._membership.get(ride_id), ride)
            return

        # Ride not seen yet; only a new bid says where it lands.
        # Closed offers wait for the ride's own event.
        if offer.get("status") != "pending":
            return
        if self.active_category == categories.MY_BIDS:
            self._schedule_refresh()
        else:
            self._stale.add(categories.MY_BIDS)

    def _place(self, ride_id: int, old_category: Optional[str], new_row: Optional[Row]):
        new_category = self._categorize(new_row)
        current = self._membership.get(ride_id)
        active = self.active_category

        if new_category and new_category != active and new_category != old_category:
            self._stale.add(new_category)

        if active in (old_category, current) and new_category != active:
            self._remove(active, ride_id)

        if new_category == active:
            self._upsert(active, new_row)

        if new_category:
            self._membership[ride_id] = new_category
            self._rides[ride_id] = new_row
        else:
            self._membership.pop(ride_id, None)
            self._rides.pop(ride_id, None)

    def _remove(self, category: str, ride_id: int):
        self._lists[category] = [row for row in self._lists[category] if row["id"] != ride_id]

    def _upsert(self, category: str, row: Row):
        rows = [existing for existing in self._lists[category] if existing["id"] != row["id"]]
        rows.append(row)
        self._lists[category] = self._sorted(category, rows)

    def _sorted(self, category: str, rows: Iterable[Row]) -> List[Row]:
        offers = list(self._offers.values())
        return sorted(
            rows,
            key=lambda row: categories.sort_key(row, category, self.observer_id, offers),
            reverse=True,
        )

    # ---------------------- Category switching & refresh ----------------------

    def switch_category(self, category: str) -> asyncio.Task:
        """Make `category` active, clear its stale flag and refresh it."""
        if category not in self.categories:
            raise ValueError(f"Unknown category '{category}' for role {self.role}")
        self.active_category = category
        self._stale.discard(category)
        return self._schedule_refresh()

    def refresh(self) -> asyncio.Task:
        """Re-fetch only the active category."""
        self._stale.discard(self.active_category)
        return self._schedule_refresh()

    def _schedule_refresh(self) -> asyncio.Task:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()

        self._generation += 1
        self._refresh_task = asyncio.get_running_loop().create_task(
            self._run_refresh(self.active_category, self._generation)
        )
        return self._refresh_task

    async def _run_refresh(self, category: str, generation: int):
        try:
            rides, offers = await self._fetch(category)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation != self._generation:
                return
            error = TransientError(f"Could not refresh {category}: {exc}")
            logger.warning("Refresh of %s failed for %s %s", category, self.role, self.observer_id, exc_info=True)
            self._stale.add(category)
            if self._on_error is not None:
                await _maybe_await(self._on_error(error))
            return

        if self.closed or generation != self._generation or category != self.active_category:
            logger.warning("Discarding refresh of %s superseded by a newer request", category)
            return

        self.apply_refresh(category, rides, offers)
        if self._on_refresh is not None:
            await _maybe_await(self._on_refresh(self.snapshot()))

    def apply_refresh(self, category: str, rides: List[Row], offers: Iterable[Row] = ()):
        """Overwrite a category with authoritative rows."""
        for offer in offers or ():
            if offer.get("driver_id") != self.observer_id:
                continue
            key = ("offer", offer["id"])
            if self._versions.get(key, 0) <= offer.get("version", 0):
                self._versions[key] = offer.get("version", 0)
                self._offers[offer["id"]] = offer

        fresh_ids = set()
        rows = []
        for row in rides:
            ride_id = row["id"]
            key = ("ride", ride_id)
            if self._versions.get(key, 0) > row.get("version", 0):
                # An event already delivered a newer row
                known = self._rides.get(ride_id)
                if known is None or self._categorize(known) != category:
                    continue
                row = known
            else:
                self._versions[key] = row.get("version", 0)

            fresh_ids.add(ride_id)
            rows.append(row)
            self._membership[ride_id] = category
            self._rides[ride_id] = row

        for ride_id, member_of in list(self._membership.items()):
            if member_of == category and ride_id not in fresh_ids:
                del self._membership[ride_id]
                self._rides.pop(ride_id, None)

        self._lists[category] = self._sorted(category, rows)
        self._stale.discard(category)

    # ---------------------- Lifecycle ----------------------

    def close(self):
        """End the subscription; pending refreshes are cancelled."""
        self.closed = True
        self._generation += 1
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
