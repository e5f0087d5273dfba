from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import models
from django.utils import timezone
from auditlog.registry import auditlog
from auditlog.models import AuditlogHistoryField

from .exceptions import ConcurrentModification, NotFound

User = get_user_model()


DEFAULT_TERMS = {
    'payment_terms': 'Payment will be released upon milestone completion and client approval.',
    'cancellation_policy': 'Either party may cancel this contract with 7 days written notice.',
    'intellectual_property': 'All work product created under this contract will be owned by the client.',
    'confidentiality': 'Both parties agree to maintain confidentiality of all project information.',
    'dispute_resolution': "Disputes will be resolved through the platform's dispute resolution process.",
    'additional_terms': '',
}
TERMS_FIELDS = tuple(DEFAULT_TERMS)


def default_terms():
    return dict(DEFAULT_TERMS)


class Contract(models.Model):
    """
    Binding agreement between a client and a freelancer, created in ``draft``
    from an accepted proposal. Milestones, signatures and amendments are owned
    rows addressed by ``(contract_id, child_id)``.

    ``version`` is bumped on every mutation; see ``save_with_version``.
    """
    STATUS_CHOICES = (
        ('draft', 'Draft'),
        ('active', 'Active'),
        ('paused', 'Paused'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
        ('disputed', 'Disputed'),
    )

    SOURCE_CHOICES = (
        ('proposal', 'Proposal'),
        ('hire_now', 'Hire Now'),
        ('service', 'Service Package'),
    )

    project_ref = models.CharField(max_length=64)
    proposal_ref = models.CharField(max_length=64, unique=True)
    source_type = models.CharField(max_length=20, choices=SOURCE_CHOICES, default='proposal')
    client = models.ForeignKey(User, related_name='client_contracts', on_delete=models.PROTECT)
    freelancer = models.ForeignKey(User, related_name='freelancer_contracts', on_delete=models.PROTECT)
    title = models.CharField(max_length=200)
    description = models.TextField(max_length=2000)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='USD')
    start_date = models.DateField()
    end_date = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft', db_index=True)
    terms = models.JSONField(default=default_terms)
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    history = AuditlogHistoryField()

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} ({self.client} -> {self.freelancer})"

    def save_with_version(self, update_fields=()):
        """
        Persist ``update_fields`` only if nobody else wrote the contract since
        it was read. The conditional UPDATE claims the next version; losing
        the race raises ConcurrentModification.
        """
        claimed = Contract.objects.filter(pk=self.pk, version=self.version).update(
            version=models.F('version') + 1
        )
        if not claimed:
            raise ConcurrentModification()
        self.version += 1
        self.save(update_fields=[*update_fields, 'version', 'updated_at'])

    def is_fully_signed(self):
        signed = set(self.signatures.values_list('signed_by_id', flat=True))
        return {self.client_id, self.freelancer_id} <= signed

    def all_milestones_paid(self):
        milestones = list(self.milestones.all())
        return bool(milestones) and all(m.status == 'paid' for m in milestones)

    def get_milestone(self, milestone_id):
        try:
            return self.milestones.get(pk=milestone_id)
        except (Milestone.DoesNotExist, ValueError, TypeError):
            raise NotFound("Milestone not found on this contract.")

    def get_amendment(self, amendment_id):
        try:
            return self.amendments.get(pk=amendment_id)
        except (Amendment.DoesNotExist, ValueError, TypeError):
            raise NotFound("Amendment not found on this contract.")

    @property
    def progress(self):
        milestones = list(self.milestones.all())
        if not milestones:
            return 0
        done = sum(1 for m in milestones if m.status in ('approved', 'paid'))
        return round(done * 100 / len(milestones))

    @property
    def total_paid(self):
        return sum((m.amount for m in self.milestones.all() if m.status == 'paid'), Decimal('0.00'))

    @property
    def remaining_amount(self):
        return max(Decimal('0.00'), self.total_amount - self.total_paid)

    @property
    def overdue_milestones(self):
        today = timezone.localdate()
        return [
            m for m in self.milestones.all()
            if m.due_date and m.due_date < today and m.status not in ('approved', 'paid')
        ]

    @property
    def next_milestone(self):
        upcoming = [m for m in self.milestones.all() if m.status in ('pending', 'in_progress')]
        upcoming.sort(key=lambda m: (m.due_date, m.position))
        return upcoming[0] if upcoming else None


class Milestone(models.Model):
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('in_progress', 'In Progress'),
        ('submitted', 'Submitted'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('paid', 'Paid'),
    )

    contract = models.ForeignKey(Contract, on_delete=models.CASCADE, related_name='milestones')
    position = models.PositiveIntegerField(default=0)
    title = models.CharField(max_length=200)
    description = models.TextField(max_length=1000)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    due_date = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')

    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    client_feedback = models.TextField(max_length=1000, blank=True)
    freelancer_notes = models.TextField(max_length=1000, blank=True)

    history = AuditlogHistoryField()

    class Meta:
        ordering = ['position', 'id']

    def __str__(self):
        return f"{self.title} [{self.status}]"

    @property
    def is_paid(self):
        return self.status == 'paid'


class Deliverable(models.Model):
    TYPE_CHOICES = (
        ('file', 'File'),
        ('link', 'Link'),
        ('text', 'Text'),
        ('code', 'Code'),
    )

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('submitted', 'Submitted'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    )

    milestone = models.ForeignKey(Milestone, on_delete=models.CASCADE, related_name='deliverables')
    title = models.CharField(max_length=200)
    description = models.TextField(max_length=1000, blank=True)
    deliverable_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='text')
    content = models.TextField(blank=True)
    file_ref = models.CharField(max_length=500, blank=True)  # object storage key, owned elsewhere
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    client_feedback = models.TextField(max_length=1000, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.title} ({self.status})"


class Signature(models.Model):
    """
    Audit record that a participant agreed to the contract as written.
    ``signature_hash`` is a trace, not a cryptographic proof.
    """
    contract = models.ForeignKey(Contract, on_delete=models.CASCADE, related_name='signatures')
    signed_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='contract_signatures')
    signed_at = models.DateTimeField(default=timezone.now)
    ip_address = models.CharField(max_length=64, default='unknown')
    user_agent = models.CharField(max_length=500, default='unknown')
    signature_hash = models.CharField(max_length=64)

    class Meta:
        ordering = ['signed_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['contract', 'signed_by'], name='one_signature_per_participant'),
        ]

    def __str__(self):
        return f"{self.signed_by} signed contract {self.contract_id}"


class Amendment(models.Model):
    TYPE_CHOICES = (
        ('milestone_change', 'Milestone Change'),
        ('timeline_change', 'Timeline Change'),
        ('amount_change', 'Amount Change'),
        ('terms_change', 'Terms Change'),
        ('scope_change', 'Scope Change'),
    )

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('rejected', 'Rejected'),
    )

    contract = models.ForeignKey(Contract, on_delete=models.CASCADE, related_name='amendments')
    amendment_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    description = models.TextField(max_length=1000)
    changes = models.JSONField(default=dict)
    reason = models.TextField(max_length=500)
    proposed_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='proposed_amendments')
    proposed_at = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    responded_at = models.DateTimeField(null=True, blank=True)
    responded_by = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='responded_amendments',
    )
    response_notes = models.TextField(max_length=500, blank=True)

    history = AuditlogHistoryField()

    class Meta:
        ordering = ['proposed_at', 'id']

    def __str__(self):
        return f"{self.amendment_type} on contract {self.contract_id} [{self.status}]"


auditlog.register(Contract)
auditlog.register(Milestone)
auditlog.register(Signature)
auditlog.register(Amendment)
