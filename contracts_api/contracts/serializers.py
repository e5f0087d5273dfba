from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Amendment, Contract, Deliverable, Milestone, Signature, TERMS_FIELDS

User = get_user_model()


class ParticipantSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source='get_full_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'full_name', 'user_type']
        read_only_fields = fields


class DeliverableSerializer(serializers.ModelSerializer):
    class Meta:
        model = Deliverable
        fields = [
            'id', 'title', 'description', 'deliverable_type', 'content', 'file_ref', 'status',
            'submitted_at', 'approved_at', 'rejected_at', 'client_feedback', 'created_at',
        ]
        read_only_fields = fields


class MilestoneSerializer(serializers.ModelSerializer):
    deliverables = DeliverableSerializer(many=True, read_only=True)

    class Meta:
        model = Milestone
        fields = [
            'id', 'position', 'title', 'description', 'amount', 'due_date', 'status',
            'submitted_at', 'approved_at', 'rejected_at', 'paid_at',
            'client_feedback', 'freelancer_notes', 'deliverables',
        ]
        read_only_fields = fields


class SignatureSerializer(serializers.ModelSerializer):
    class Meta:
        model = Signature
        fields = ['id', 'signed_by', 'signed_at', 'ip_address', 'user_agent', 'signature_hash']
        read_only_fields = fields


class AmendmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Amendment
        fields = [
            'id', 'amendment_type', 'description', 'changes', 'reason', 'proposed_by', 'proposed_at',
            'status', 'responded_at', 'responded_by', 'response_notes',
        ]
        read_only_fields = fields


class ContractListSerializer(serializers.ModelSerializer):
    client = ParticipantSerializer(read_only=True)
    freelancer = ParticipantSerializer(read_only=True)
    progress = serializers.IntegerField(read_only=True)

    class Meta:
        model = Contract
        fields = [
            'id', 'title', 'status', 'client', 'freelancer', 'total_amount', 'currency',
            'start_date', 'end_date', 'progress', 'version', 'created_at',
        ]
        read_only_fields = fields


class ContractDetailSerializer(serializers.ModelSerializer):
    client = ParticipantSerializer(read_only=True)
    freelancer = ParticipantSerializer(read_only=True)
    milestones = MilestoneSerializer(many=True, read_only=True)
    signatures = SignatureSerializer(many=True, read_only=True)
    amendments = AmendmentSerializer(many=True, read_only=True)
    is_fully_signed = serializers.BooleanField(read_only=True)
    progress = serializers.IntegerField(read_only=True)
    total_paid = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    remaining_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    overdue_milestones = serializers.SerializerMethodField()
    next_milestone = serializers.SerializerMethodField()

    class Meta:
        model = Contract
        fields = [
            'id', 'project_ref', 'proposal_ref', 'source_type', 'client', 'freelancer',
            'title', 'description', 'total_amount', 'currency', 'start_date', 'end_date',
            'status', 'terms', 'version', 'created_at', 'updated_at',
            'is_fully_signed', 'progress', 'total_paid', 'remaining_amount',
            'overdue_milestones', 'next_milestone',
            'milestones', 'signatures', 'amendments',
        ]
        read_only_fields = fields

    def get_overdue_milestones(self, obj):
        return [m.pk for m in obj.overdue_milestones]

    def get_next_milestone(self, obj):
        milestone = obj.next_milestone
        return milestone.pk if milestone else None


# -- request bodies ---------------------------------------------------------

class VersionedSerializer(serializers.Serializer):
    """Optional ``version`` the caller last saw; a stale value is rejected with 409."""
    version = serializers.IntegerField(required=False, min_value=1)


class MilestoneInputSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(max_length=1000)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    due_date = serializers.DateField()

    def validate_amount(self, value):
        if value < settings.PAYMENT_MIN_AMOUNT:
            raise serializers.ValidationError(f"Milestone amount must be at least {settings.PAYMENT_MIN_AMOUNT}.")
        return value


class ContractCreateSerializer(serializers.Serializer):
    freelancer_id = serializers.IntegerField()
    project_ref = serializers.CharField(max_length=64)
    proposal_ref = serializers.CharField(max_length=64)
    source_type = serializers.ChoiceField(choices=Contract.SOURCE_CHOICES, default='proposal')
    title = serializers.CharField(min_length=5, max_length=200)
    description = serializers.CharField(min_length=10, max_length=2000)
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    currency = serializers.CharField(max_length=3, required=False)
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    milestones = MilestoneInputSerializer(many=True, required=False)
    terms = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False)

    def validate_freelancer_id(self, value):
        freelancer = User.objects.filter(pk=value).first()
        if freelancer is None:
            raise serializers.ValidationError("Freelancer not found.")
        if freelancer.user_type != 'freelancer':
            raise serializers.ValidationError("Contracts can only be offered to freelancer accounts.")
        return value

    def validate_terms(self, value):
        unknown = sorted(set(value) - set(TERMS_FIELDS))
        if unknown:
            raise serializers.ValidationError(f"Unknown contract terms: {', '.join(unknown)}.")
        return value


class DeliverableInputSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    deliverable_type = serializers.ChoiceField(choices=Deliverable.TYPE_CHOICES, default='text')
    content = serializers.CharField(required=False, allow_blank=True)
    file_ref = serializers.CharField(max_length=500, required=False, allow_blank=True)


class MilestoneSubmitSerializer(VersionedSerializer):
    deliverables = DeliverableInputSerializer(many=True, required=False)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class MilestoneDecisionSerializer(VersionedSerializer):
    feedback = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class AmendmentProposeSerializer(VersionedSerializer):
    amendment_type = serializers.ChoiceField(choices=Amendment.TYPE_CHOICES)
    description = serializers.CharField(max_length=1000)
    changes = serializers.DictField()
    reason = serializers.CharField(max_length=500)


class AmendmentResponseSerializer(VersionedSerializer):
    status = serializers.ChoiceField(choices=[('accepted', 'Accepted'), ('rejected', 'Rejected')])
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class ReasonSerializer(VersionedSerializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class DisputeSerializer(VersionedSerializer):
    reason = serializers.CharField(max_length=500)
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')
    evidence = serializers.ListField(child=serializers.CharField(max_length=500), required=False, default=list)
