from django.core.management.base import BaseCommand

from services.billing import reconcile_failed_debits


class Command(BaseCommand):
    help = "Retry ledger debits for completed rides whose billing failed."

    def add_arguments(self, parser):
        parser.add_argument(
            "--batch-size",
            type=int,
            default=None,
            help="Rides to process in this run (default: LEDGER_RECONCILE_BATCH_SIZE).",
        )

    def handle(self, *args, **options):
        results = reconcile_failed_debits(batch_size=options["batch_size"])

        style = self.style.SUCCESS if not results["failed"] else self.style.WARNING
        self.stdout.write(
            style(
                f"Debited {results['debited']} ride(s); {results['failed']} still failing."
            )
        )
