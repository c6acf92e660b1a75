from django.contrib import admin
from .models import BillingAccount, LedgerTransaction


@admin.register(BillingAccount)
class BillingAccountAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "balance", "low_balance_threshold", "is_active", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("name", "owner__username")


@admin.register(LedgerTransaction)
class LedgerTransactionAdmin(admin.ModelAdmin):
    """Ledger entries are append-only; the admin is read-only."""
    list_display = ("id", "account", "ride", "transaction_type", "amount", "balance_before", "balance_after", "created_at")
    list_filter = ("transaction_type",)
    search_fields = ("account__name", "ride__id")
    readonly_fields = [f.name for f in LedgerTransaction._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
