import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from services.matching import accept_offer, submit_offer, withdraw_offer
from services.ride_management import (
    cancel_ride,
    get_status_history,
    rate_ride,
    submit_ride,
    transition,
)
from services.ride_management.exceptions import (
    ConflictError,
    DispatchError,
    NotFoundError,
    ValidationError,
)
from realtime.feed import categories
from . import store
from .models import Ride
from .serializers import (
    OfferSubmitSerializer,
    RideCancelSerializer,
    RideOfferSerializer,
    RideRateSerializer,
    RideSerializer,
    RideStatusHistorySerializer,
    RideSubmitSerializer,
    TransitionSerializer,
)

logger = logging.getLogger(__name__)

# Statuses only the assigned driver may move a ride into
DRIVER_TARGETS = {
    Ride.DRIVER_EN_ROUTE,
    Ride.DRIVER_ARRIVED,
    Ride.TRIP_STARTED,
    Ride.TRIP_COMPLETED,
}


def _error_response(exc: DispatchError) -> Response:
    if isinstance(exc, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return Response(
        {'success': False, 'error': exc.code, 'message': exc.message},
        status=code
    )


def _forbidden(message: str) -> Response:
    return Response(
        {'success': False, 'error': 'forbidden', 'message': message},
        status=status.HTTP_403_FORBIDDEN
    )


def _invalid(serializer) -> Response:
    return Response(
        {'success': False, 'error': 'validation_error', 'message': serializer.errors},
        status=status.HTTP_400_BAD_REQUEST
    )


def _is_participant(ride: Ride, user) -> bool:
    return user.id in (ride.passenger_id, ride.driver_id)


# ==================== Passenger Ride APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def request_ride(request):
    """Submit a new ride request"""
    if not request.user.is_passenger:
        return _forbidden('Only passengers can request rides')

    serializer = RideSubmitSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    try:
        ride = submit_ride(passenger=request.user, **serializer.validated_data)
    except DispatchError as e:
        return _error_response(e)

    return Response({
        'success': True,
        'ride': RideSerializer(ride).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_ride_offer(request, ride_id, offer_id):
    """Requester accepts one driver's offer"""
    try:
        ride = store.get_ride(ride_id)
        if ride.passenger_id != request.user.id:
            return _forbidden('Only the requester can accept offers on this ride')
        ride = accept_offer(offer_id, ride_id, request.user)
    except DispatchError as e:
        return _error_response(e)

    return Response({
        'success': True,
        'message': 'Offer accepted',
        'ride': RideSerializer(ride).data,
    }, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def rate(request, ride_id):
    """Rate a finished trip and close the ride"""
    serializer = RideRateSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    try:
        ride = store.get_ride(ride_id)
        if ride.passenger_id != request.user.id:
            return _forbidden('Only the requester can rate this ride')
        ride = rate_ride(
            ride_id,
            request.user,
            serializer.validated_data['rating'],
            serializer.validated_data.get('review'),
        )
    except DispatchError as e:
        return _error_response(e)

    return Response({'success': True, 'ride': RideSerializer(ride).data}, status=status.HTTP_200_OK)


# ==================== Driver APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def make_offer(request, ride_id):
    """Driver quotes a price on a pending ride"""
    if not request.user.is_driver:
        return _forbidden('Only drivers can make offers')

    serializer = OfferSubmitSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    try:
        offer = submit_offer(ride_id, request.user, serializer.validated_data['quoted_price'])
    except DispatchError as e:
        return _error_response(e)

    return Response({
        'success': True,
        'offer': RideOfferSerializer(offer).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def withdraw(request, offer_id):
    """Driver withdraws its own pending offer"""
    if not request.user.is_driver:
        return _forbidden('Only drivers can withdraw offers')

    try:
        offer = withdraw_offer(offer_id, request.user)
    except DispatchError as e:
        return _error_response(e)

    return Response({'success': True, 'offer': RideOfferSerializer(offer).data}, status=status.HTTP_200_OK)


# ==================== Shared Ride APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_status(request, ride_id):
    """Move a ride to its next status"""
    serializer = TransitionSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    target = serializer.validated_data['status']
    try:
        ride = store.get_ride(ride_id)
        if not _is_participant(ride, request.user):
            return _forbidden('You are not part of this ride')
        if target in DRIVER_TARGETS and ride.driver_id != request.user.id:
            return _forbidden('Only the assigned driver can make this change')
        ride = transition(ride_id, target, request.user, serializer.validated_data['note'])
    except DispatchError as e:
        return _error_response(e)

    return Response({'success': True, 'ride': RideSerializer(ride).data}, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel(request, ride_id):
    """Cancel a ride before its trip starts"""
    serializer = RideCancelSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid(serializer)

    try:
        ride = store.get_ride(ride_id)
        if not _is_participant(ride, request.user):
            return _forbidden('You are not part of this ride')
        ride = cancel_ride(ride_id, request.user, serializer.validated_data.get('reason'))
    except DispatchError as e:
        return _error_response(e)

    return Response({
        'success': True,
        'message': 'Ride cancelled successfully',
        'ride': RideSerializer(ride).data,
    }, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def history(request, ride_id):
    """Status history of one ride"""
    try:
        ride = store.get_ride(ride_id)
        if not _is_participant(ride, request.user):
            return _forbidden('You are not part of this ride')
        entries = get_status_history(ride_id)
    except DispatchError as e:
        return _error_response(e)

    return Response({
        'success': True,
        'ride_id': ride.id,
        'history': RideStatusHistorySerializer(entries, many=True).data,
    }, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def feed(request, category):
    """Authoritative list of one category for the requesting observer"""
    role = request.user.role
    try:
        rides = list(store.rides_for_category(role, request.user.id, category))
    except DispatchError as e:
        return _error_response(e)

    offers = []
    if role == categories.DRIVER:
        offers = store.offers_for_driver(request.user.id, [ride.id for ride in rides])

    return Response({
        'success': True,
        'category': category,
        'rides': RideSerializer(rides, many=True).data,
        'offers': RideOfferSerializer(offers, many=True).data,
    }, status=status.HTTP_200_OK)
