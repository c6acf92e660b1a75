import redis
from celery import current_app
from channels.layers import get_channel_layer
from django.conf import settings
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from realtime.notifications import undelivered_notifications
from rides.models import ChangeEvent, Ride
from rides.tasks import reconcile_failed_debits_task, reconcile_ride_debit_task


def dispatch_backlog():
    """Counts an operator watches: live rides, feed head, debits and notifications awaiting retry."""
    return {
        "open_rides": Ride.objects.exclude(status__in=[Ride.COMPLETED, Ride.CANCELLED]).count(),
        "change_feed_head": ChangeEvent.objects.order_by("-id").values_list("id", flat=True).first() or 0,
        "failed_debits": Ride.objects.filter(billing_status=Ride.BILLING_FAILED).count(),
        "undelivered_notifications": undelivered_notifications().count(),
    }


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Report dependency status plus the dispatch backlog; 503 when a dependency is down."""
    services = {}
    report = {"status": "healthy", "timestamp": timezone.now().isoformat(), "services": services}

    try:
        report["dispatch"] = dispatch_backlog()
        services["database"] = "healthy"
    except Exception as e:
        services["database"] = f"unhealthy: {e}"

    try:
        redis.Redis.from_url(settings.CELERY_BROKER_URL, socket_timeout=3).ping()
        services["redis"] = "healthy"
    except Exception as e:
        services["redis"] = f"unhealthy: {e}"

    if get_channel_layer() is None:
        services["channels"] = "unhealthy: no channel layer"
    else:
        services["channels"] = "healthy"

    missing = [
        task.name for task in (reconcile_ride_debit_task, reconcile_failed_debits_task)
        if task.name not in current_app.tasks
    ]
    if missing:
        services["celery"] = f"unhealthy: unregistered {', '.join(missing)}"
    else:
        services["celery"] = "healthy"

    if any(value != "healthy" for value in services.values()):
        report["status"] = "unhealthy"
        return Response(report, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(report, status=status.HTTP_200_OK)
