"""
Billing-account ledger service.

This module handles:
    - Debiting an account when a billed ride completes
    - Low-balance crossing alerts
    - Reconciling debits that failed at completion time
"""

from .ledger import (
    debit_ride,
    run_ride_debit,
    reconcile_ride,
    reconcile_failed_debits,
)

__all__ = [
    "debit_ride",
    "run_ride_debit",
    "reconcile_ride",
    "reconcile_failed_debits",
]
