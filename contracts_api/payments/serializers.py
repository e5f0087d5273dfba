from rest_framework import serializers

from .models import PayoutAccount, Transaction


class TransactionSerializer(serializers.ModelSerializer):
    milestone_title = serializers.CharField(source='milestone.title', read_only=True)

    class Meta:
        model = Transaction
        fields = [
            'id', 'contract', 'milestone', 'milestone_title', 'client', 'freelancer',
            'amount', 'platform_commission', 'freelancer_amount', 'currency', 'status', 'provider',
            'provider_intent_id', 'provider_transfer_id', 'provider_refund_id',
            'escrow_release_date', 'released_at', 'refunded_at', 'failure_reason',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class EscrowIntentSerializer(TransactionSerializer):
    """Returned to the paying client only: carries the secret needed to complete payment."""

    class Meta(TransactionSerializer.Meta):
        fields = TransactionSerializer.Meta.fields + ['client_secret']
        read_only_fields = fields


class EscrowConfirmSerializer(serializers.Serializer):
    intent_id = serializers.CharField(max_length=255)


class RefundSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class PayoutAccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = PayoutAccount
        fields = ['id', 'provider', 'account_id', 'payouts_enabled', 'is_default', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_account_id(self, value):
        if PayoutAccount.objects.filter(account_id=value).exists():
            raise serializers.ValidationError("This account is already added as a payout account.")
        return value

    def create(self, validated_data):
        user = self.context['request'].user
        if validated_data.get('is_default'):
            PayoutAccount.objects.filter(user=user, is_default=True).update(is_default=False)
        return PayoutAccount.objects.create(user=user, **validated_data)
