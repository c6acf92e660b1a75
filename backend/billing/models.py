from decimal import Decimal

from django.conf import settings
from django.db import models


class BillingAccount(models.Model):
    """Prepaid business account that completed rides can be billed against."""

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='billing_accounts'
    )
    name = models.CharField(max_length=120)

    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    # Falls back to settings.DEFAULT_LOW_BALANCE_THRESHOLD when unset
    low_balance_threshold = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'billing_accounts'

    @property
    def effective_threshold(self) -> Decimal:
        if self.low_balance_threshold is not None:
            return self.low_balance_threshold
        return getattr(settings, 'DEFAULT_LOW_BALANCE_THRESHOLD', Decimal('100.00'))

    def __str__(self):
        return f"{self.name} ({self.balance})"


class LedgerTransaction(models.Model):
    """Append-only record of a balance mutation on a billing account."""

    DEBIT = 'debit'

    TYPE_CHOICES = [
        (DEBIT, 'Debit'),
    ]

    account = models.ForeignKey(
        BillingAccount,
        on_delete=models.PROTECT,
        related_name='transactions'
    )
    ride = models.ForeignKey(
        'rides.Ride',
        on_delete=models.PROTECT,
        related_name='ledger_transactions'
    )
    transaction_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default=DEBIT)

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance_before = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'ledger_transactions'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'transaction_type'],
                name='unique_ledger_entry_per_ride'
            )
        ]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.amount} on {self.account_id} for ride {self.ride_id}"
