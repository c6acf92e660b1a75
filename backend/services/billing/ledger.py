"""
Ledger debits for rides billed to a business account.

A debit locks the account row, writes the new balance and appends one
LedgerTransaction as a single unit. Concurrent completions on the same
account therefore debit one after another.
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from billing.models import BillingAccount, LedgerTransaction
from rides import store
from rides.models import Ride
from services.ride_management.exceptions import LedgerError

logger = logging.getLogger(__name__)


def crossed_threshold(balance_before: Decimal, balance_after: Decimal, threshold: Decimal) -> bool:
    """True only for the debit that takes the balance from above to at/below the threshold."""
    return balance_before > threshold and balance_after <= threshold


def _existing_debit(ride_id: int) -> Optional[LedgerTransaction]:
    return LedgerTransaction.objects.filter(
        ride_id=ride_id,
        transaction_type=LedgerTransaction.DEBIT,
    ).first()


def _apply_debit(ride: Ride, actor=None) -> LedgerTransaction:
    if ride.billing_account_id is None:
        raise LedgerError(f"Ride {ride.id} has no billing account")
    if ride.fare is None:
        raise LedgerError(f"Ride {ride.id} has no fare to debit")

    account = BillingAccount.objects.select_for_update().filter(id=ride.billing_account_id).first()
    if account is None:
        raise LedgerError(f"Billing account {ride.billing_account_id} not found")
    if not account.is_active:
        raise LedgerError(f"Billing account {account.id} is inactive")

    existing = _existing_debit(ride.id)
    if existing is not None:
        logger.info("Ride %s already debited (transaction %s)", ride.id, existing.id)
        return existing

    balance_before = account.balance
    balance_after = balance_before - ride.fare
    threshold = account.effective_threshold

    account.balance = balance_after
    account.save(update_fields=['balance', 'updated_at'])

    ledger_transaction = LedgerTransaction.objects.create(
        account=account,
        ride=ride,
        transaction_type=LedgerTransaction.DEBIT,
        amount=ride.fare,
        balance_before=balance_before,
        balance_after=balance_after,
        description=f"Ride #{ride.id} ({ride.service_type})",
        created_by=actor,
    )

    logger.info(
        "Debited %s from account %s for ride %s (%s -> %s)",
        ride.fare, account.id, ride.id, balance_before, balance_after,
    )

    if crossed_threshold(balance_before, balance_after, threshold):
        from realtime.notifications import notify_low_balance
        try:
            notify_low_balance(account, ledger_transaction, balance_after, threshold)
        except Exception:
            logger.exception("Failed to record low balance notification for account %s", account.id)

    return ledger_transaction


def debit_ride(ride: Ride, actor=None) -> LedgerTransaction:
    """
    Debit the ride's fare from its billing account.

    Idempotent: a ride that was already debited returns its existing
    transaction instead of debiting again.

    Raises:
        LedgerError: If the ride or account cannot be billed
    """
    try:
        with transaction.atomic():
            return _apply_debit(ride, actor)
    except IntegrityError:
        existing = _existing_debit(ride.id)
        if existing is None:
            raise LedgerError(f"Could not record debit for ride {ride.id}")
        return existing


def run_ride_debit(ride: Ride, actor=None) -> str:
    """
    Attempt the debit and report the resulting billing status.

    Failures are logged for reconciliation and never raised.
    """
    try:
        debit_ride(ride, actor)
    except Exception:
        logger.exception("Ledger debit failed for ride %s", ride.id)
        return Ride.BILLING_FAILED
    return Ride.BILLING_DEBITED


@transaction.atomic
def reconcile_ride(ride_id: int) -> str:
    """Retry the debit of one ride whose billing failed."""
    ride = store.get_ride_for_update(ride_id)
    if ride.billing_status != Ride.BILLING_FAILED:
        return ride.billing_status

    billing_status = run_ride_debit(ride)
    if billing_status == Ride.BILLING_DEBITED:
        store.update_ride(ride, billing_status=billing_status)
    return billing_status


def reconcile_failed_debits(batch_size: int = None) -> Dict[str, int]:
    """Retry debits for rides left with billing_status=failed."""
    if batch_size is None:
        batch_size = getattr(settings, 'LEDGER_RECONCILE_BATCH_SIZE', 100)

    ride_ids = list(
        Ride.objects.filter(
            billing_status=Ride.BILLING_FAILED,
            status__in=[Ride.TRIP_COMPLETED, Ride.COMPLETED],
        ).order_by('trip_completed_at', 'id').values_list('id', flat=True)[:batch_size]
    )

    results = {"debited": 0, "failed": 0}
    for ride_id in ride_ids:
        if reconcile_ride(ride_id) == Ride.BILLING_DEBITED:
            results["debited"] += 1
        else:
            results["failed"] += 1

    if ride_ids:
        logger.info("Ledger reconciliation: %s debited, %s still failing", results["debited"], results["failed"])
    return results
