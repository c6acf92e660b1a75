"""
Realtime app: change feed fan-out, categorized feeds and notifications.

Key Components:
    - changefeed.py: publishes committed ChangeEvents to channel groups, catch-up replay
    - feed/categories.py: pure ride -> category rules per observer role
    - feed/projector.py: per-session FeedProjector
    - notifications.py: deduplicated user notifications
    - consumers/: WebSocket FeedConsumer

Usage:
    from realtime.changefeed import publish_change_event, events_since
    from realtime.feed import FeedProjector, categorize
    from realtime.notifications import notify_status_change, notify_low_balance
"""
