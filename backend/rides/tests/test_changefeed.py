from unittest.mock import AsyncMock, MagicMock, patch

from django.test import TestCase

from realtime.changefeed import (
	DRIVERS_GROUP,
	events_since,
	groups_for_event,
	latest_event_id,
	publish_change_event,
)
from realtime.notifications import deliver_notification, notify_status_change
from rides.models import ChangeEvent, Notification, Ride
from rides.tasks import redeliver_notifications_task
from services.matching import accept_offer, submit_offer
from .helpers import make_driver, make_passenger, make_ride


def mock_layer():
	layer = MagicMock()
	layer.group_send = AsyncMock()
	return layer


class ChangeFeedTests(TestCase):
	def setUp(self):
		self.passenger = make_passenger()
		self.driver_one = make_driver('driver_one', '9000000001')
		self.driver_two = make_driver('driver_two', '9000000002')

	def test_every_write_records_exactly_one_event(self):
		ride = make_ride(self.passenger)
		self.assertEqual(ChangeEvent.objects.count(), 1)

		offer_one = submit_offer(ride.id, self.driver_one, '10.00')
		submit_offer(ride.id, self.driver_two, '8.00')
		self.assertEqual(ChangeEvent.objects.count(), 3)

		accept_offer(offer_one.id, ride.id, self.passenger)
		# accepted offer, rejected sibling, ride update
		events = list(ChangeEvent.objects.order_by('id'))[3:]
		self.assertEqual(
			[(e.entity_type, e.event_type) for e in events],
			[('offer', 'update'), ('offer', 'update'), ('ride', 'update')],
		)
		ride_event = events[-1]
		self.assertEqual(ride_event.old_row['status'], Ride.PENDING)
		self.assertIsNone(ride_event.old_row['driver_id'])
		self.assertEqual(ride_event.new_row['status'], Ride.ACCEPTED)
		self.assertEqual(ride_event.new_row['driver_id'], self.driver_one.id)
		self.assertEqual(ride_event.new_row['fare'], '10.00')
		self.assertEqual(ride_event.driver_id, self.driver_one.id)

	def test_events_are_published_after_commit(self):
		layer = mock_layer()
		with patch('realtime.changefeed.get_channel_layer', return_value=layer):
			with self.captureOnCommitCallbacks(execute=False) as callbacks:
				make_ride(self.passenger)
			layer.group_send.assert_not_called()

			for callback in callbacks:
				callback()

		groups = [call.args[0] for call in layer.group_send.await_args_list]
		self.assertEqual(groups, [f"user_{self.passenger.id}", DRIVERS_GROUP])
		message = layer.group_send.await_args_list[0].args[1]
		self.assertEqual(message['type'], 'change_event')
		self.assertEqual(message['event']['entity_type'], 'ride')
		self.assertEqual(message['event']['event_type'], 'insert')
		self.assertIsNone(message['event']['old'])

	def test_offer_events_go_to_the_bidder_and_requester_only(self):
		ride = make_ride(self.passenger)
		submit_offer(ride.id, self.driver_one, '10.00')
		event = ChangeEvent.objects.get(entity_type=ChangeEvent.OFFER)
		self.assertEqual(
			groups_for_event(event),
			[f"user_{self.passenger.id}", f"user_{self.driver_one.id}"],
		)

	def test_publish_failure_is_reported_not_raised(self):
		make_ride(self.passenger)
		event = ChangeEvent.objects.get()
		layer = mock_layer()
		layer.group_send.side_effect = ConnectionError('redis down')

		with patch('realtime.changefeed.get_channel_layer', return_value=layer):
			with self.assertLogs('realtime.changefeed', level='WARNING'):
				self.assertFalse(publish_change_event(event))

		with patch('realtime.changefeed.get_channel_layer', return_value=None):
			with self.assertLogs('realtime.changefeed', level='WARNING'):
				self.assertFalse(publish_change_event(event))

	def test_catch_up_replays_only_what_the_observer_would_see(self):
		ride = make_ride(self.passenger)
		other_passenger = make_passenger('other', '9000000005')
		other_ride = make_ride(other_passenger)
		start = ChangeEvent.objects.order_by('id').first().id - 1
		submit_offer(ride.id, self.driver_one, '10.00')
		submit_offer(other_ride.id, self.driver_two, '12.00')

		passenger_events = events_since('passenger', self.passenger.id, start)
		self.assertEqual(
			[(e['entity_type'], e['entity_id']) for e in passenger_events],
			[('ride', ride.id), ('offer', ride.offers.get().id)],
		)

		driver_events = events_since('driver', self.driver_one.id, start)
		self.assertEqual(
			[e['entity_type'] for e in driver_events],
			['ride', 'ride', 'offer'],
		)
		self.assertTrue(all(e['event_id'] > start for e in driver_events))

		head = latest_event_id()
		self.assertEqual(events_since('driver', self.driver_one.id, head), [])
		self.assertEqual(len(events_since('driver', self.driver_one.id, start, limit=1)), 1)


class NotificationDispatcherTests(TestCase):
	def setUp(self):
		self.passenger = make_passenger()
		self.driver = make_driver()
		self.ride = make_ride(self.passenger)
		offer = submit_offer(self.ride.id, self.driver, '10.00')
		accept_offer(offer.id, self.ride.id, self.passenger)
		self.ride.refresh_from_db()

	def test_same_trigger_is_recorded_once_per_recipient(self):
		Notification.objects.all().delete()
		first = notify_status_change(self.ride, Ride.ACCEPTED, Ride.DRIVER_EN_ROUTE, self.driver)
		second = notify_status_change(self.ride, Ride.ACCEPTED, Ride.DRIVER_EN_ROUTE, self.driver)

		self.assertEqual(len(first), 1)
		self.assertEqual(second, [])
		notification = Notification.objects.get()
		self.assertEqual(notification.recipient_id, self.passenger.id)
		self.assertEqual(notification.dedupe_key, f"status_change:{self.ride.id}:driver_en_route:{self.passenger.id}")

	def test_delivery_pushes_to_personal_group(self):
		notification = Notification.objects.get(recipient=self.driver, details__new_status=Ride.ACCEPTED)
		layer = mock_layer()
		with patch('realtime.notifications.get_channel_layer', return_value=layer):
			self.assertTrue(deliver_notification(notification.id))
			self.assertFalse(deliver_notification(notification.id))

		group, message = layer.group_send.await_args.args
		self.assertEqual(group, f"user_{self.driver.id}")
		self.assertEqual(message['type'], 'notification')
		self.assertEqual(message['notification']['ride_id'], self.ride.id)
		self.assertEqual(message['notification']['kind'], Notification.STATUS_CHANGE)

		notification.refresh_from_db()
		self.assertIsNotNone(notification.delivered_at)
		self.assertEqual(notification.delivery_attempts, 1)

	def test_failed_delivery_is_retried_by_task(self):
		notification = Notification.objects.get(recipient=self.driver, details__new_status=Ride.ACCEPTED)
		broken = mock_layer()
		broken.group_send.side_effect = ConnectionError('redis down')
		with patch('realtime.notifications.get_channel_layer', return_value=broken):
			with self.assertLogs('realtime.notifications', level='WARNING'):
				self.assertFalse(deliver_notification(notification.id))
		notification.refresh_from_db()
		self.assertIsNone(notification.delivered_at)

		with patch('realtime.notifications.get_channel_layer', return_value=mock_layer()):
			self.assertEqual(redeliver_notifications_task.delay().get(), 1)

		notification.refresh_from_db()
		self.assertIsNotNone(notification.delivered_at)
		self.assertEqual(notification.delivery_attempts, 2)
