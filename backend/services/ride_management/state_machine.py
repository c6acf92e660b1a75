"""Ride status adjacency table."""

from rides.models import Ride

ALLOWED_TRANSITIONS = {
    Ride.PENDING: {Ride.ACCEPTED, Ride.CANCELLED},
    Ride.ACCEPTED: {Ride.DRIVER_EN_ROUTE, Ride.CANCELLED},
    Ride.DRIVER_EN_ROUTE: {Ride.DRIVER_ARRIVED, Ride.CANCELLED},
    Ride.DRIVER_ARRIVED: {Ride.TRIP_STARTED, Ride.CANCELLED},
    Ride.TRIP_STARTED: {Ride.TRIP_COMPLETED},
    Ride.TRIP_COMPLETED: {Ride.COMPLETED},
    Ride.COMPLETED: set(),
    Ride.CANCELLED: set(),
}

# Column stamped when a ride enters each status
STATUS_TIMESTAMP_FIELDS = {
    Ride.ACCEPTED: "accepted_at",
    Ride.DRIVER_EN_ROUTE: "driver_en_route_at",
    Ride.DRIVER_ARRIVED: "driver_arrived_at",
    Ride.TRIP_STARTED: "trip_started_at",
    Ride.TRIP_COMPLETED: "trip_completed_at",
    Ride.COMPLETED: "completed_at",
    Ride.CANCELLED: "cancelled_at",
}

# Statuses in which an assigned driver is still on the road
ON_TRIP_STATUSES = (
    Ride.ACCEPTED,
    Ride.DRIVER_EN_ROUTE,
    Ride.DRIVER_ARRIVED,
    Ride.TRIP_STARTED,
)


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())
