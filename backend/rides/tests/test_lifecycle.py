from datetime import timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone

from rides.models import ChangeEvent, Notification, Ride, RideOffer, RideStatusHistory
from services.matching import accept_offer, submit_offer
from services.ride_management import cancel_ride, rate_ride, transition
from services.ride_management.exceptions import (
	ConflictError,
	InvalidTransitionError,
	RideNotFoundError,
	ValidationError,
)
from services.ride_management.state_machine import ALLOWED_TRANSITIONS, can_transition
from .helpers import make_account, make_driver, make_passenger, make_ride


class SubmitRideTests(TestCase):
	def setUp(self):
		self.passenger = make_passenger()

	def test_new_ride_is_pending_without_driver_or_fare(self):
		ride = make_ride(self.passenger, service_type='courier')

		self.assertEqual(ride.status, Ride.PENDING)
		self.assertIsNone(ride.driver_id)
		self.assertIsNone(ride.fare)
		self.assertEqual(ride.version, 1)
		self.assertEqual(ride.billing_status, Ride.BILLING_NOT_APPLICABLE)

		event = ChangeEvent.objects.get(entity_type=ChangeEvent.RIDE, entity_id=ride.id)
		self.assertEqual(event.event_type, ChangeEvent.INSERT)
		self.assertIsNone(event.old_row)
		self.assertEqual(event.new_row['status'], Ride.PENDING)
		self.assertEqual(event.new_row['service_type'], 'courier')

	def test_scheduled_ride_requires_time(self):
		with self.assertRaises(ValidationError):
			make_ride(self.passenger, timing_mode=Ride.SCHEDULED)

		ride = make_ride(
			self.passenger,
			timing_mode=Ride.SCHEDULED,
			scheduled_for=timezone.now() + timedelta(hours=3),
		)
		self.assertEqual(ride.timing_mode, Ride.SCHEDULED)

	def test_account_balance_ride_needs_an_active_account(self):
		with self.assertRaises(ValidationError):
			make_ride(self.passenger, payment_method=Ride.ACCOUNT_BALANCE)

		inactive = make_account(self.passenger, is_active=False)
		with self.assertRaises(ValidationError):
			make_ride(self.passenger, payment_method=Ride.ACCOUNT_BALANCE, billing_account_id=inactive.id)

		account = make_account(self.passenger, name='Active')
		ride = make_ride(self.passenger, payment_method=Ride.ACCOUNT_BALANCE, billing_account_id=account.id)
		self.assertEqual(ride.billing_account_id, account.id)
		self.assertEqual(ride.billing_status, Ride.BILLING_PENDING)

	def test_invalid_input_creates_nothing(self):
		with self.assertRaises(ValidationError):
			make_ride(self.passenger, service_type='helicopter')
		with self.assertRaises(ValidationError):
			make_ride(self.passenger, pickup_latitude='95.0')
		with self.assertRaises(ValidationError):
			make_ride(self.passenger, dropoff_longitude=None)
		self.assertFalse(Ride.objects.exists())
		self.assertFalse(ChangeEvent.objects.exists())


class TransitionTests(TestCase):
	def setUp(self):
		self.passenger = make_passenger()
		self.driver = make_driver()
		self.ride = make_ride(self.passenger)
		offer = submit_offer(self.ride.id, self.driver, '15.00')
		accept_offer(offer.id, self.ride.id, self.passenger)

	def advance(self, *statuses):
		for status in statuses:
			transition(self.ride.id, status, self.driver)
		self.ride.refresh_from_db()

	def test_full_lifecycle_stamps_each_transition(self):
		self.advance(Ride.DRIVER_EN_ROUTE, Ride.DRIVER_ARRIVED, Ride.TRIP_STARTED, Ride.TRIP_COMPLETED)
		rate_ride(self.ride.id, self.passenger, 5, 'Smooth ride')
		self.ride.refresh_from_db()

		self.assertEqual(self.ride.status, Ride.COMPLETED)
		for field in ('accepted_at', 'driver_en_route_at', 'driver_arrived_at',
					  'trip_started_at', 'trip_completed_at', 'completed_at', 'rated_at'):
			self.assertIsNotNone(getattr(self.ride, field), field)
		self.assertEqual(self.ride.rating, 5)

		statuses = list(
			RideStatusHistory.objects.filter(ride=self.ride).values_list('new_status', flat=True)
		)
		self.assertEqual(statuses, [
			Ride.ACCEPTED, Ride.DRIVER_EN_ROUTE, Ride.DRIVER_ARRIVED,
			Ride.TRIP_STARTED, Ride.TRIP_COMPLETED, Ride.COMPLETED,
		])

		self.driver.refresh_from_db()
		self.assertEqual(self.driver.completed_rides, 1)

	def test_cancel_after_trip_started_conflicts(self):
		self.advance(Ride.DRIVER_EN_ROUTE, Ride.DRIVER_ARRIVED, Ride.TRIP_STARTED)

		with self.assertRaises(ConflictError):
			cancel_ride(self.ride.id, self.passenger, 'Changed my mind')

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, Ride.TRIP_STARTED)
		self.assertIsNone(self.ride.cancelled_at)

	def test_skipping_a_status_is_an_invalid_transition(self):
		version = Ride.objects.get(id=self.ride.id).version
		with self.assertRaises(InvalidTransitionError):
			transition(self.ride.id, Ride.TRIP_STARTED, self.driver)
		self.assertEqual(Ride.objects.get(id=self.ride.id).version, version)

	def test_unknown_status_is_an_invalid_transition(self):
		version = Ride.objects.get(id=self.ride.id).version
		with self.assertRaises(InvalidTransitionError) as ctx:
			transition(self.ride.id, 'teleported', self.driver)
		self.assertEqual(ctx.exception.code, 'invalid_transition')
		self.assertEqual(Ride.objects.get(id=self.ride.id).version, version)

	def test_accepting_through_transition_requires_an_offer(self):
		ride = make_ride(self.passenger)
		with self.assertRaises(ConflictError) as ctx:
			transition(ride.id, Ride.ACCEPTED, self.passenger)
		self.assertEqual(ctx.exception.code, 'offer_required')

	def test_unknown_ride(self):
		with self.assertRaises(RideNotFoundError):
			transition(123456, Ride.DRIVER_EN_ROUTE, self.driver)

	def test_each_transition_writes_one_versioned_change_event(self):
		before = ChangeEvent.objects.filter(entity_type=ChangeEvent.RIDE, entity_id=self.ride.id).count()
		self.advance(Ride.DRIVER_EN_ROUTE)

		events = ChangeEvent.objects.filter(entity_type=ChangeEvent.RIDE, entity_id=self.ride.id)
		self.assertEqual(events.count(), before + 1)
		latest = events.last()
		self.assertEqual(latest.old_row['status'], Ride.ACCEPTED)
		self.assertEqual(latest.new_row['status'], Ride.DRIVER_EN_ROUTE)
		self.assertEqual(latest.version, self.ride.version)
		self.assertEqual(latest.new_row['version'], self.ride.version)

	def test_rating_only_closes_a_completed_trip(self):
		with self.assertRaises(InvalidTransitionError):
			rate_ride(self.ride.id, self.passenger, 4)
		self.assertIsNone(Ride.objects.get(id=self.ride.id).rated_at)

		self.advance(Ride.DRIVER_EN_ROUTE, Ride.DRIVER_ARRIVED, Ride.TRIP_STARTED, Ride.TRIP_COMPLETED)
		for bad in (0, 6, 'great'):
			with self.assertRaises(ValidationError):
				rate_ride(self.ride.id, self.passenger, bad)

	def test_status_change_notifies_other_participant_once(self):
		self.advance(Ride.DRIVER_EN_ROUTE)

		notifications = Notification.objects.filter(ride=self.ride, details__new_status=Ride.DRIVER_EN_ROUTE)
		self.assertEqual(notifications.count(), 1)
		self.assertEqual(notifications.get().recipient_id, self.passenger.id)


class CancelRideTests(TestCase):
	def setUp(self):
		self.passenger = make_passenger()
		self.driver_one = make_driver('driver_one', '9000000001')
		self.driver_two = make_driver('driver_two', '9000000002')
		self.ride = make_ride(self.passenger)

	def test_cancel_pending_ride_rejects_bids_and_notifies_bidders(self):
		offer_one = submit_offer(self.ride.id, self.driver_one, '10.00')
		offer_two = submit_offer(self.ride.id, self.driver_two, '11.00')

		ride = cancel_ride(self.ride.id, self.passenger, 'Found another way')

		self.assertEqual(ride.status, Ride.CANCELLED)
		self.assertEqual(ride.cancellation_reason, 'Found another way')
		self.assertEqual(ride.cancelled_by, 'passenger')
		self.assertIsNotNone(ride.cancelled_at)
		self.assertIsNone(ride.driver_id)

		for offer in (offer_one, offer_two):
			offer.refresh_from_db()
			self.assertEqual(offer.status, RideOffer.REJECTED)

		recipients = set(
			Notification.objects.filter(ride=ride, kind=Notification.STATUS_CHANGE)
			.values_list('recipient_id', flat=True)
		)
		self.assertEqual(recipients, {self.driver_one.id, self.driver_two.id})

	@override_settings(CANCELLATION_DEFAULT_REASON='No reason provided')
	def test_missing_reason_uses_default(self):
		ride = cancel_ride(self.ride.id, self.passenger)
		self.assertEqual(ride.cancellation_reason, 'No reason provided')

	def test_driver_cancel_of_accepted_ride(self):
		offer = submit_offer(self.ride.id, self.driver_one, '10.00')
		accept_offer(offer.id, self.ride.id, self.passenger)

		ride = cancel_ride(self.ride.id, self.driver_one, 'Vehicle trouble')

		self.assertEqual(ride.cancelled_by, 'driver')
		self.assertEqual(ride.driver_id, self.driver_one.id)
		self.assertEqual(ride.fare, Decimal('10.00'))
		self.assertTrue(
			Notification.objects.filter(ride=ride, recipient=self.passenger, details__new_status=Ride.CANCELLED).exists()
		)

	def test_cancelled_ride_cannot_be_cancelled_again(self):
		cancel_ride(self.ride.id, self.passenger)
		with self.assertRaises(InvalidTransitionError):
			cancel_ride(self.ride.id, self.passenger)


class StateMachineTableTests(TestCase):
	def test_cancellation_only_before_trip_starts(self):
		cancellable = {status for status, targets in ALLOWED_TRANSITIONS.items() if Ride.CANCELLED in targets}
		self.assertEqual(cancellable, {Ride.PENDING, Ride.ACCEPTED, Ride.DRIVER_EN_ROUTE, Ride.DRIVER_ARRIVED})

	def test_every_status_has_a_row_and_terminals_are_closed(self):
		self.assertEqual(set(ALLOWED_TRANSITIONS), set(dict(Ride.STATUS_CHOICES)))
		for status in dict(Ride.STATUS_CHOICES):
			self.assertFalse(can_transition(Ride.COMPLETED, status))
			self.assertFalse(can_transition(Ride.CANCELLED, status))
