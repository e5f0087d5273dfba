from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import Q
from auditlog.registry import auditlog
from auditlog.models import AuditlogHistoryField

from contracts.models import Contract, Milestone

User = get_user_model()

# A milestone may have at most one transaction in any of these states.
ACTIVE_TRANSACTION_STATES = ('pending', 'processing', 'held_in_escrow', 'released')
# States that still block a fresh escrow intent for the same milestone.
OPEN_TRANSACTION_STATES = ('pending', 'processing', 'held_in_escrow')


class Transaction(models.Model):
    """
    One escrow hold for one milestone: funded by the client through the
    processor, then released to the freelancer or refunded.
    """
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('processing', 'Processing'),
        ('held_in_escrow', 'Held in Escrow'),
        ('released', 'Released'),
        ('refunded', 'Refunded'),
        ('failed', 'Failed'),
        ('cancelled', 'Cancelled'),
    )

    PROVIDER_CHOICES = (
        ('stripe', 'Stripe'),
    )

    contract = models.ForeignKey(Contract, on_delete=models.PROTECT, related_name='transactions')
    milestone = models.ForeignKey(Milestone, on_delete=models.PROTECT, related_name='transactions')
    client = models.ForeignKey(User, on_delete=models.PROTECT, related_name='escrow_payments')
    freelancer = models.ForeignKey(User, on_delete=models.PROTECT, related_name='escrow_earnings')

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    platform_commission = models.DecimalField(max_digits=12, decimal_places=2)
    freelancer_amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='USD')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)

    provider = models.CharField(max_length=20, choices=PROVIDER_CHOICES, default='stripe')
    provider_intent_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    client_secret = models.CharField(max_length=255, blank=True)
    provider_transfer_id = models.CharField(max_length=255, blank=True)
    provider_refund_id = models.CharField(max_length=255, blank=True)
    idempotency_key = models.CharField(max_length=255, unique=True)

    escrow_release_date = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    history = AuditlogHistoryField()

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['milestone'],
                condition=Q(status__in=ACTIVE_TRANSACTION_STATES),
                name='one_active_transaction_per_milestone',
            ),
        ]

    def __str__(self):
        return f"{self.amount} {self.currency} for milestone {self.milestone_id} [{self.status}]"


class PayoutAccount(models.Model):
    """
    Freelancer's connected account at the payment processor
    (e.g. a Stripe Connect ``acct_...`` id). Releases transfer here.
    """
    PROVIDER_CHOICES = Transaction.PROVIDER_CHOICES

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='payout_accounts')
    provider = models.CharField(max_length=20, choices=PROVIDER_CHOICES, default='stripe')
    account_id = models.CharField(max_length=255, unique=True, help_text="Processor account ID (acct_...)")
    payouts_enabled = models.BooleanField(default=False)
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Payout Account"
        verbose_name_plural = "Payout Accounts"

    def __str__(self):
        return f"{self.user.email} - {self.provider} {self.account_id}"


class WebhookEvent(models.Model):
    """
    Stores processed webhook event IDs to ensure idempotency.
    """
    provider = models.CharField(max_length=50)
    event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100, blank=True)
    received_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.provider}:{self.event_id}"


auditlog.register(Transaction, exclude_fields=['client_secret'])
