from datetime import timedelta

from django.core.management.base import BaseCommand

from payments.services import PaymentOrchestrator


class Command(BaseCommand):
    help = "Polls the payment processor for escrow transactions stuck in 'processing' and records the outcome."

    def add_arguments(self, parser):
        parser.add_argument(
            '--older-than',
            type=int,
            default=None,
            help='Only reconcile transactions older than this many minutes (defaults to PAYMENT_CONFIRMATION_WINDOW_MINUTES)',
        )

    def handle(self, *args, **options):
        minutes = options['older_than']
        older_than = timedelta(minutes=minutes) if minutes is not None else None

        summary = PaymentOrchestrator().reconcile_stale(older_than=older_than)

        self.stdout.write(self.style.SUCCESS(
            "Reconciled: {held_in_escrow} held, {failed} failed, {cancelled} cancelled, "
            "{processing} still processing".format(**summary)
        ))
        if summary['errors']:
            self.stdout.write(self.style.WARNING(f"{summary['errors']} transaction(s) could not be checked; run again later."))
