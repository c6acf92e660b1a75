from django.db import models
from django.db.models import Q
from django.conf import settings
from django.utils import timezone


class Ride(models.Model):
    """A single transportation or delivery request tracked through its lifecycle."""

    PENDING = 'pending'
    ACCEPTED = 'accepted'
    DRIVER_EN_ROUTE = 'driver_en_route'
    DRIVER_ARRIVED = 'driver_arrived'
    TRIP_STARTED = 'trip_started'
    TRIP_COMPLETED = 'trip_completed'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (ACCEPTED, 'Accepted'),
        (DRIVER_EN_ROUTE, 'Driver En Route'),
        (DRIVER_ARRIVED, 'Driver Arrived'),
        (TRIP_STARTED, 'Trip Started'),
        (TRIP_COMPLETED, 'Trip Completed'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
    ]

    SERVICE_TYPE_CHOICES = [
        ('taxi', 'Taxi'),
        ('courier', 'Courier'),
        ('errand', 'Errand'),
        ('school_run', 'School Run'),
    ]

    INSTANT = 'instant'
    SCHEDULED = 'scheduled'
    RECURRING = 'recurring'

    TIMING_MODE_CHOICES = [
        (INSTANT, 'Instant'),
        (SCHEDULED, 'Scheduled'),
        (RECURRING, 'Recurring'),
    ]

    ACCOUNT_BALANCE = 'account_balance'

    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Card'),
        ('mobile_money', 'Mobile Money'),
        (ACCOUNT_BALANCE, 'Account Balance'),
    ]

    BILLING_NOT_APPLICABLE = 'not_applicable'
    BILLING_PENDING = 'pending'
    BILLING_DEBITED = 'debited'
    BILLING_FAILED = 'failed'

    BILLING_STATUS_CHOICES = [
        (BILLING_NOT_APPLICABLE, 'Not Applicable'),
        (BILLING_PENDING, 'Pending'),
        (BILLING_DEBITED, 'Debited'),
        (BILLING_FAILED, 'Failed'),
    ]

    CANCELLED_BY_CHOICES = [
        ('passenger', 'Passenger'),
        ('driver', 'Driver'),
        ('system', 'System'),
    ]

    # Foreign keys
    passenger = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='rides'
    )

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='assigned_rides'
    )

    billing_account = models.ForeignKey(
        'billing.BillingAccount',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='rides'
    )

    # Request details
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    service_type = models.CharField(max_length=20, choices=SERVICE_TYPE_CHOICES, default='taxi')
    timing_mode = models.CharField(max_length=20, choices=TIMING_MODE_CHOICES, default=INSTANT)
    scheduled_for = models.DateTimeField(null=True, blank=True)
    number_of_passengers = models.IntegerField(default=1)
    notes = models.TextField(blank=True, default='')

    # Money
    fare = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cash')
    billing_status = models.CharField(
        max_length=20,
        choices=BILLING_STATUS_CHOICES,
        default=BILLING_NOT_APPLICABLE
    )

    # Pickup location
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_address = models.TextField(blank=True, default='')

    # Dropoff location
    dropoff_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    dropoff_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    dropoff_address = models.TextField(blank=True, default='')

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now)
    accepted_at = models.DateTimeField(null=True, blank=True)
    driver_en_route_at = models.DateTimeField(null=True, blank=True)
    driver_arrived_at = models.DateTimeField(null=True, blank=True)
    trip_started_at = models.DateTimeField(null=True, blank=True)
    trip_completed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(default=timezone.now)

    # Cancellation
    cancellation_reason = models.TextField(null=True, blank=True)
    cancelled_by = models.CharField(max_length=10, choices=CANCELLED_BY_CHOICES, null=True, blank=True)

    # Post-completion feedback
    rating = models.PositiveSmallIntegerField(null=True, blank=True)
    review = models.TextField(null=True, blank=True)
    rated_at = models.DateTimeField(null=True, blank=True)

    # Bumped on every write; change events are idempotent on (id, version)
    version = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = 'rides'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='rides_status_created_idx'),
        ]

    def __str__(self):
        return f"Ride #{self.id} - {self.passenger} - {self.status}"


class RideOffer(models.Model):
    """A driver's quote against a pending ride."""

    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (ACCEPTED, 'Accepted'),
        (REJECTED, 'Rejected'),
    ]

    ride = models.ForeignKey(
        Ride,
        on_delete=models.PROTECT,
        related_name='offers'
    )

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='ride_offers'
    )

    quoted_price = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)

    offered_at = models.DateTimeField(default=timezone.now)
    responded_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(default=timezone.now)
    version = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = 'ride_offers'
        ordering = ['offered_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'driver'],
                condition=Q(status='pending'),
                name='unique_pending_offer_per_driver'
            ),
            models.UniqueConstraint(
                fields=['ride'],
                condition=Q(status='accepted'),
                name='unique_accepted_offer_per_ride'
            ),
        ]

    def __str__(self):
        return f"Offer #{self.id} - Ride {self.ride_id} -> Driver {self.driver_id} ({self.quoted_price})"


class RideStatusHistory(models.Model):
    """Append-only audit trail of ride status changes."""

    ride = models.ForeignKey(
        Ride,
        on_delete=models.PROTECT,
        related_name='status_history'
    )
    old_status = models.CharField(max_length=20, choices=Ride.STATUS_CHOICES)
    new_status = models.CharField(max_length=20, choices=Ride.STATUS_CHOICES)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    note = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'ride_status_history'
        ordering = ['created_at', 'id']
        verbose_name_plural = 'ride status history'

    def __str__(self):
        return f"Ride {self.ride_id}: {self.old_status} -> {self.new_status}"


class ChangeEvent(models.Model):
    """
    Durable row-level change record (transactional outbox).

    Written in the same transaction as the ride/offer mutation and
    published to the channel layer after commit. The id is the
    global feed position used for catch-up on re-subscribe.
    """

    RIDE = 'ride'
    OFFER = 'offer'

    ENTITY_CHOICES = [
        (RIDE, 'Ride'),
        (OFFER, 'Offer'),
    ]

    INSERT = 'insert'
    UPDATE = 'update'
    DELETE = 'delete'

    EVENT_CHOICES = [
        (INSERT, 'Insert'),
        (UPDATE, 'Update'),
        (DELETE, 'Delete'),
    ]

    entity_type = models.CharField(max_length=10, choices=ENTITY_CHOICES)
    entity_id = models.PositiveBigIntegerField()
    event_type = models.CharField(max_length=10, choices=EVENT_CHOICES)
    version = models.PositiveIntegerField()
    old_row = models.JSONField(null=True, blank=True)
    new_row = models.JSONField(null=True, blank=True)

    # Audience, resolved at write time
    passenger_id = models.PositiveBigIntegerField()
    driver_id = models.PositiveBigIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'change_events'
        ordering = ['id']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id'], name='change_events_entity_idx'),
        ]

    def __str__(self):
        return f"#{self.id} {self.entity_type} {self.entity_id} {self.event_type} v{self.version}"


class Notification(models.Model):
    """User-facing alert; dedupe_key makes each trigger deliver once per recipient."""

    STATUS_CHANGE = 'status_change'
    LOW_BALANCE = 'low_balance'

    KIND_CHOICES = [
        (STATUS_CHANGE, 'Status Change'),
        (LOW_BALANCE, 'Low Balance'),
    ]

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    ride = models.ForeignKey(
        Ride,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    title = models.CharField(max_length=120)
    message = models.TextField()
    details = models.JSONField(default=dict, blank=True)
    dedupe_key = models.CharField(max_length=200, unique=True)

    delivered_at = models.DateTimeField(null=True, blank=True)
    delivery_attempts = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.kind} -> {self.recipient_id}: {self.title}"
