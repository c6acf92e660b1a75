"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.feed_consumer import FeedConsumer

websocket_urlpatterns = [
    # Categorized ride feed (passengers and drivers)
    # URL: ws://localhost:8000/ws/feed/
    re_path(
        r"ws/feed/$",
        FeedConsumer.as_asgi(),
        name="feed-ws"
    ),
]
