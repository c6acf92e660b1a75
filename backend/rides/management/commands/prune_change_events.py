from django.core.management.base import BaseCommand
from django.utils import timezone
from datetime import timedelta
from rides.models import ChangeEvent, Notification
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Delete old change events and delivered notifications."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=7,
            help="Delete records older than this many days (default: 7).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be deleted without actually deleting.",
        )

    def handle(self, *args, **options):
        days = options["days"]
        dry_run = options["dry_run"]
        cutoff = timezone.now() - timedelta(days=days)

        # Subscribers further behind than this get a full refresh on open_feed
        old_events = ChangeEvent.objects.filter(created_at__lt=cutoff)
        events_count = old_events.count()

        old_notifications = Notification.objects.filter(
            created_at__lt=cutoff,
            delivered_at__isnull=False,
        )
        notifications_count = old_notifications.count()

        if dry_run:
            self.stdout.write(
                self.style.WARNING(
                    f"DRY RUN: Would delete {events_count} change events and "
                    f"{notifications_count} notifications older than {days} days."
                )
            )
            return

        old_events.delete()
        old_notifications.delete()
        logger.info("Pruned %s change events and %s notifications", events_count, notifications_count)
        self.stdout.write(
            self.style.SUCCESS(
                f"Deleted {events_count} change events and {notifications_count} notifications older than {days} days."
            )
        )
