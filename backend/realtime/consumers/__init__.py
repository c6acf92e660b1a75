"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .feed_consumer import FeedConsumer

__all__ = [
    "BaseConsumer",
    "FeedConsumer",
]
