from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from dispatch_backend.views import health_check
from rides.models import Ride, RideOffer
from rides.views import (
	accept_ride_offer,
	cancel,
	change_status,
	feed,
	history,
	make_offer,
	rate,
	request_ride,
	withdraw,
)
from services.matching import submit_offer
from .helpers import make_account, make_driver, make_passenger, make_ride


class RideApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.passenger = make_passenger()
		self.driver_one = make_driver('driver_one', '9000000001')
		self.driver_two = make_driver('driver_two', '9000000002')

	def post(self, view, user, data=None, **kwargs):
		request = self.factory.post('/api/rides/', data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def get(self, view, user, **kwargs):
		request = self.factory.get('/api/rides/')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def test_passenger_requests_ride(self):
		response = self.post(request_ride, self.passenger, {
			'pickup_latitude': '-17.829200',
			'pickup_longitude': '31.052200',
			'pickup_address': 'First Street, Harare',
			'service_type': 'delivery',
		})

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['ride']['status'], Ride.PENDING)
		self.assertEqual(response.data['ride']['passenger_id'], self.passenger.id)
		self.assertEqual(response.data['ride']['service_type'], 'delivery')

	def test_driver_cannot_request_ride(self):
		response = self.post(request_ride, self.driver_one, {
			'pickup_latitude': '-17.829200',
			'pickup_longitude': '31.052200',
		})
		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'forbidden')

	def test_invalid_request_payloads(self):
		response = self.post(request_ride, self.passenger, {'pickup_latitude': '-17.8'})
		self.assertEqual(response.status_code, 400)

		response = self.post(request_ride, self.passenger, {
			'pickup_latitude': '-17.829200',
			'pickup_longitude': '31.052200',
			'timing_mode': Ride.SCHEDULED,
		})
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'validation_error')

	def test_offer_accept_flow(self):
		ride = make_ride(self.passenger)
		first = self.post(make_offer, self.driver_one, {'quoted_price': '12.50'}, ride_id=ride.id)
		second = self.post(make_offer, self.driver_two, {'quoted_price': '11.00'}, ride_id=ride.id)
		self.assertEqual(first.status_code, 201)
		self.assertEqual(second.status_code, 201)

		response = self.post(
			accept_ride_offer,
			self.passenger,
			ride_id=ride.id,
			offer_id=second.data['offer']['id'],
		)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], Ride.ACCEPTED)
		self.assertEqual(response.data['ride']['driver_id'], self.driver_two.id)
		self.assertEqual(response.data['ride']['fare'], '11.00')

		self.assertEqual(RideOffer.objects.get(id=first.data['offer']['id']).status, RideOffer.REJECTED)

		# the ride is no longer pending
		again = self.post(
			accept_ride_offer,
			self.passenger,
			ride_id=ride.id,
			offer_id=first.data['offer']['id'],
		)
		self.assertEqual(again.status_code, 409)
		self.assertEqual(again.data['error'], 'conflict')

	def test_only_requester_accepts(self):
		ride = make_ride(self.passenger)
		offer = submit_offer(ride.id, self.driver_one, '10.00')
		response = self.post(accept_ride_offer, self.driver_two, ride_id=ride.id, offer_id=offer.id)
		self.assertEqual(response.status_code, 403)

	def test_offer_errors(self):
		ride = make_ride(self.passenger)
		response = self.post(make_offer, self.driver_one, {'quoted_price': '-5.00'}, ride_id=ride.id)
		self.assertEqual(response.status_code, 400)

		response = self.post(make_offer, self.driver_one, {'quoted_price': '10.00'}, ride_id=ride.id + 100)
		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'not_found')

		self.post(make_offer, self.driver_one, {'quoted_price': '10.00'}, ride_id=ride.id)
		response = self.post(make_offer, self.driver_one, {'quoted_price': '9.00'}, ride_id=ride.id)
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'duplicate_offer')

		response = self.post(make_offer, self.passenger, {'quoted_price': '9.00'}, ride_id=ride.id)
		self.assertEqual(response.status_code, 403)

	def test_withdraw_offer(self):
		ride = make_ride(self.passenger)
		offer = submit_offer(ride.id, self.driver_one, '10.00')

		response = self.post(withdraw, self.driver_two, offer_id=offer.id)
		self.assertEqual(response.status_code, 404)

		response = self.post(withdraw, self.driver_one, offer_id=offer.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['offer']['status'], RideOffer.REJECTED)

	def test_trip_progress_and_rating(self):
		ride = make_ride(self.passenger)
		offer = submit_offer(ride.id, self.driver_one, '10.00')
		self.post(accept_ride_offer, self.passenger, ride_id=ride.id, offer_id=offer.id)

		# passenger cannot drive the trip forward
		response = self.post(change_status, self.passenger, {'status': Ride.DRIVER_EN_ROUTE}, ride_id=ride.id)
		self.assertEqual(response.status_code, 403)

		response = self.post(change_status, self.driver_two, {'status': Ride.DRIVER_EN_ROUTE}, ride_id=ride.id)
		self.assertEqual(response.status_code, 403)

		for target in (Ride.DRIVER_EN_ROUTE, Ride.DRIVER_ARRIVED, Ride.TRIP_STARTED):
			response = self.post(change_status, self.driver_one, {'status': target}, ride_id=ride.id)
			self.assertEqual(response.status_code, 200)
			self.assertEqual(response.data['ride']['status'], target)

		response = self.post(change_status, self.driver_one, {'status': Ride.DRIVER_ARRIVED}, ride_id=ride.id)
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'invalid_transition')

		response = self.post(cancel, self.passenger, {'reason': 'Too late'}, ride_id=ride.id)
		self.assertEqual(response.status_code, 409)

		self.post(change_status, self.driver_one, {'status': Ride.TRIP_COMPLETED}, ride_id=ride.id)

		response = self.post(rate, self.passenger, {'rating': 9}, ride_id=ride.id)
		self.assertEqual(response.status_code, 400)

		response = self.post(rate, self.passenger, {'rating': 5, 'review': 'Smooth'}, ride_id=ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], Ride.COMPLETED)
		self.assertEqual(response.data['ride']['rating'], 5)

		response = self.get(history, self.passenger, ride_id=ride.id)
		self.assertEqual(
			[entry['new_status'] for entry in response.data['history']],
			[
				Ride.ACCEPTED,
				Ride.DRIVER_EN_ROUTE,
				Ride.DRIVER_ARRIVED,
				Ride.TRIP_STARTED,
				Ride.TRIP_COMPLETED,
				Ride.COMPLETED,
			],
		)

	def test_cancel_by_participant_only(self):
		ride = make_ride(self.passenger)

		response = self.post(cancel, self.driver_one, {}, ride_id=ride.id)
		self.assertEqual(response.status_code, 403)

		response = self.post(cancel, self.passenger, {}, ride_id=ride.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], Ride.CANCELLED)
		self.assertEqual(response.data['ride']['cancellation_reason'], 'No reason provided')
		self.assertEqual(response.data['ride']['cancelled_by'], 'passenger')

	def test_feed_lists_one_category(self):
		first = make_ride(self.passenger)
		second = make_ride(self.passenger)
		submit_offer(first.id, self.driver_one, '10.00')

		response = self.get(feed, self.driver_one, category='available')
		self.assertEqual([row['id'] for row in response.data['rides']], [second.id])

		response = self.get(feed, self.driver_one, category='my_bids')
		self.assertEqual([row['id'] for row in response.data['rides']], [first.id])
		self.assertEqual(len(response.data['offers']), 1)

		response = self.get(feed, self.passenger, category='pending')
		self.assertEqual([row['id'] for row in response.data['rides']], [second.id, first.id])
		self.assertEqual(response.data['offers'], [])

		response = self.get(feed, self.passenger, category='my_bids')
		self.assertEqual(response.status_code, 400)


class HealthCheckTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		passenger = make_passenger()
		account = make_account(passenger)
		self.billed = make_ride(passenger, payment_method=Ride.ACCOUNT_BALANCE, billing_account_id=account.id)
		Ride.objects.filter(id=self.billed.id).update(billing_status=Ride.BILLING_FAILED)
		make_ride(passenger)

	def check(self):
		return health_check(self.factory.get('/health/'))

	@patch('dispatch_backend.views.redis.Redis.from_url')
	def test_reports_dispatch_backlog(self, from_url):
		response = self.check()

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'healthy')
		self.assertEqual(response.data['dispatch']['open_rides'], 2)
		self.assertEqual(response.data['dispatch']['failed_debits'], 1)
		self.assertGreater(response.data['dispatch']['change_feed_head'], 0)
		from_url.return_value.ping.assert_called_once_with()

	@patch('dispatch_backend.views.redis.Redis.from_url')
	def test_redis_outage_is_unavailable_but_still_reports_backlog(self, from_url):
		from_url.return_value.ping.side_effect = ConnectionError('refused')

		response = self.check()

		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.data['services']['redis'].startswith('unhealthy'))
		self.assertEqual(response.data['services']['database'], 'healthy')
		self.assertEqual(response.data['dispatch']['failed_debits'], 1)
