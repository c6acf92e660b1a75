from decimal import Decimal

from billing.models import BillingAccount
from accounts.models import User
from services.ride_management import submit_ride


def make_passenger(username='passenger', phone='9000000000'):
	return User.objects.create_user(
		username=username,
		password='pass1234',
		role=User.PASSENGER,
		phone_number=phone
	)


def make_driver(username='driver', phone='9000000001'):
	return User.objects.create_user(
		username=username,
		password='driver1234',
		role=User.DRIVER,
		phone_number=phone
	)


def make_account(owner, balance='50.00', threshold='20.00', **kwargs):
	return BillingAccount.objects.create(
		owner=owner,
		name=kwargs.pop('name', 'Acme Logistics'),
		balance=Decimal(balance),
		low_balance_threshold=Decimal(threshold) if threshold is not None else None,
		**kwargs
	)


def make_ride(passenger, **kwargs):
	fields = {
		'pickup_latitude': '-17.829200',
		'pickup_longitude': '31.052200',
		'pickup_address': 'First Street, Harare',
		'dropoff_latitude': '-17.784800',
		'dropoff_longitude': '31.053000',
		'dropoff_address': 'Borrowdale Road',
	}
	fields.update(kwargs)
	return submit_ride(passenger=passenger, **fields)
