from rest_framework import serializers

from .models import Ride, RideOffer, RideStatusHistory


class RideSerializer(serializers.ModelSerializer):
    """Full ride row; also the snapshot stored on change events"""
    passenger_id = serializers.IntegerField(read_only=True)
    driver_id = serializers.IntegerField(read_only=True, allow_null=True)
    billing_account_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Ride
        fields = ['id', 'passenger_id', 'driver_id', 'billing_account_id', 'status',
                  'service_type', 'timing_mode', 'scheduled_for', 'number_of_passengers',
                  'notes', 'fare', 'payment_method', 'billing_status',
                  'pickup_latitude', 'pickup_longitude', 'pickup_address',
                  'dropoff_latitude', 'dropoff_longitude', 'dropoff_address',
                  'created_at', 'accepted_at', 'driver_en_route_at', 'driver_arrived_at',
                  'trip_started_at', 'trip_completed_at', 'completed_at', 'cancelled_at',
                  'updated_at', 'cancellation_reason', 'cancelled_by',
                  'rating', 'review', 'rated_at', 'version']
        read_only_fields = fields


class RideOfferSerializer(serializers.ModelSerializer):
    """Offer row"""
    ride_id = serializers.IntegerField(read_only=True)
    driver_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = RideOffer
        fields = ['id', 'ride_id', 'driver_id', 'quoted_price', 'status',
                  'offered_at', 'responded_at', 'updated_at', 'version']
        read_only_fields = fields


class RideStatusHistorySerializer(serializers.ModelSerializer):
    changed_by_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = RideStatusHistory
        fields = ['id', 'old_status', 'new_status', 'changed_by_id', 'note', 'created_at']
        read_only_fields = fields


# ---------------------- Input serializers ----------------------

class RideSubmitSerializer(serializers.Serializer):
    """Serializer for creating ride requests"""
    service_type = serializers.ChoiceField(choices=Ride.SERVICE_TYPE_CHOICES, default='taxi')
    timing_mode = serializers.ChoiceField(choices=Ride.TIMING_MODE_CHOICES, default=Ride.INSTANT)
    scheduled_for = serializers.DateTimeField(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=Ride.PAYMENT_METHOD_CHOICES, default='cash')
    billing_account_id = serializers.IntegerField(required=False, allow_null=True)
    pickup_latitude = serializers.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = serializers.DecimalField(max_digits=9, decimal_places=6)
    pickup_address = serializers.CharField(required=False, allow_blank=True, default='')
    dropoff_latitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    dropoff_longitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    dropoff_address = serializers.CharField(required=False, allow_blank=True, default='')
    number_of_passengers = serializers.IntegerField(required=False, default=1)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class OfferSubmitSerializer(serializers.Serializer):
    # Positivity is checked by the marketplace so it can report a ValidationError
    quoted_price = serializers.DecimalField(max_digits=10, decimal_places=2)


class TransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Ride.STATUS_CHOICES)
    note = serializers.CharField(required=False, allow_blank=True, default='')


class RideCancelSerializer(serializers.Serializer):
    """Serializer for ride cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True)


class RideRateSerializer(serializers.Serializer):
    rating = serializers.IntegerField()
    review = serializers.CharField(required=False, allow_blank=True, allow_null=True)
