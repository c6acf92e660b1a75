import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


RIDE_STATUS_CHOICES = [
    ('pending', 'Pending'),
    ('accepted', 'Accepted'),
    ('driver_en_route', 'Driver En Route'),
    ('driver_arrived', 'Driver Arrived'),
    ('trip_started', 'Trip Started'),
    ('trip_completed', 'Trip Completed'),
    ('completed', 'Completed'),
    ('cancelled', 'Cancelled'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('billing', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Ride',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=RIDE_STATUS_CHOICES, default='pending', max_length=20)),
                ('service_type', models.CharField(choices=[('taxi', 'Taxi'), ('courier', 'Courier'), ('errand', 'Errand'), ('school_run', 'School Run')], default='taxi', max_length=20)),
                ('timing_mode', models.CharField(choices=[('instant', 'Instant'), ('scheduled', 'Scheduled'), ('recurring', 'Recurring')], default='instant', max_length=20)),
                ('scheduled_for', models.DateTimeField(blank=True, null=True)),
                ('number_of_passengers', models.IntegerField(default=1)),
                ('notes', models.TextField(blank=True, default='')),
                ('fare', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('card', 'Card'), ('mobile_money', 'Mobile Money'), ('account_balance', 'Account Balance')], default='cash', max_length=20)),
                ('billing_status', models.CharField(choices=[('not_applicable', 'Not Applicable'), ('pending', 'Pending'), ('debited', 'Debited'), ('failed', 'Failed')], default='not_applicable', max_length=20)),
                ('pickup_latitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_longitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_address', models.TextField(blank=True, default='')),
                ('dropoff_latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('dropoff_longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('dropoff_address', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('driver_en_route_at', models.DateTimeField(blank=True, null=True)),
                ('driver_arrived_at', models.DateTimeField(blank=True, null=True)),
                ('trip_started_at', models.DateTimeField(blank=True, null=True)),
                ('trip_completed_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('cancellation_reason', models.TextField(blank=True, null=True)),
                ('cancelled_by', models.CharField(blank=True, choices=[('passenger', 'Passenger'), ('driver', 'Driver'), ('system', 'System')], max_length=10, null=True)),
                ('rating', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('review', models.TextField(blank=True, null=True)),
                ('rated_at', models.DateTimeField(blank=True, null=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('billing_account', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='rides', to='billing.billingaccount')),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='assigned_rides', to=settings.AUTH_USER_MODEL)),
                ('passenger', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='rides', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'rides',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['status', 'created_at'], name='rides_status_created_idx')],
            },
        ),
        migrations.CreateModel(
            name='RideOffer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quoted_price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('offered_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('version', models.PositiveIntegerField(default=1)),
                ('driver', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ride_offers', to=settings.AUTH_USER_MODEL)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='offers', to='rides.ride')),
            ],
            options={
                'db_table': 'ride_offers',
                'ordering': ['offered_at', 'id'],
            },
        ),
        migrations.AddConstraint(
            model_name='rideoffer',
            constraint=models.UniqueConstraint(condition=models.Q(('status', 'pending')), fields=('ride', 'driver'), name='unique_pending_offer_per_driver'),
        ),
        migrations.AddConstraint(
            model_name='rideoffer',
            constraint=models.UniqueConstraint(condition=models.Q(('status', 'accepted')), fields=('ride',), name='unique_accepted_offer_per_ride'),
        ),
        migrations.CreateModel(
            name='RideStatusHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('old_status', models.CharField(choices=RIDE_STATUS_CHOICES, max_length=20)),
                ('new_status', models.CharField(choices=RIDE_STATUS_CHOICES, max_length=20)),
                ('note', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('changed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='status_history', to='rides.ride')),
            ],
            options={
                'db_table': 'ride_status_history',
                'ordering': ['created_at', 'id'],
                'verbose_name_plural': 'ride status history',
            },
        ),
        migrations.CreateModel(
            name='ChangeEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('entity_type', models.CharField(choices=[('ride', 'Ride'), ('offer', 'Offer')], max_length=10)),
                ('entity_id', models.PositiveBigIntegerField()),
                ('event_type', models.CharField(choices=[('insert', 'Insert'), ('update', 'Update'), ('delete', 'Delete')], max_length=10)),
                ('version', models.PositiveIntegerField()),
                ('old_row', models.JSONField(blank=True, null=True)),
                ('new_row', models.JSONField(blank=True, null=True)),
                ('passenger_id', models.PositiveBigIntegerField()),
                ('driver_id', models.PositiveBigIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                'db_table': 'change_events',
                'ordering': ['id'],
                'indexes': [models.Index(fields=['entity_type', 'entity_id'], name='change_events_entity_idx')],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('status_change', 'Status Change'), ('low_balance', 'Low Balance')], max_length=20)),
                ('title', models.CharField(max_length=120)),
                ('message', models.TextField()),
                ('details', models.JSONField(blank=True, default=dict)),
                ('dedupe_key', models.CharField(max_length=200, unique=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('delivery_attempts', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
                ('ride', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='notifications', to='rides.ride')),
            ],
            options={
                'db_table': 'notifications',
                'ordering': ['-created_at'],
            },
        ),
    ]
