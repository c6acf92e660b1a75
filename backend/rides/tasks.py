"""Celery tasks for ride-related background processing."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def reconcile_ride_debit_task(ride_id: int):
    """
    Retry the ledger debit of one ride whose billing failed at completion.
    """
    from services.billing import reconcile_ride
    from services.ride_management.exceptions import RideNotFoundError

    try:
        billing_status = reconcile_ride(ride_id)
    except RideNotFoundError:
        logger.warning("Ride %s not found for debit reconciliation", ride_id)
        return None

    logger.info("Ride %s billing status after reconciliation: %s", ride_id, billing_status)
    return billing_status


@shared_task
def reconcile_failed_debits_task(batch_size: int = None):
    """Periodic sweep over rides left with billing_status=failed."""
    from services.billing import reconcile_failed_debits
    return reconcile_failed_debits(batch_size)


@shared_task
def redeliver_notifications_task(max_attempts: int = None):
    """Push notifications whose delivery failed or never ran."""
    from realtime.notifications import deliver_notification, undelivered_notifications

    delivered = 0
    for notification_id in undelivered_notifications(max_attempts).values_list('id', flat=True):
        if deliver_notification(notification_id):
            delivered += 1

    if delivered:
        logger.info("Redelivered %s notifications", delivered)
    return delivered
