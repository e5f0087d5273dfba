from django.contrib import admin
from .models import PayoutAccount, Transaction, WebhookEvent


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ('id', 'contract', 'milestone', 'amount', 'platform_commission', 'status', 'provider', 'created_at')
    list_filter = ('provider', 'status', 'currency')
    search_fields = ('provider_intent_id', 'provider_transfer_id', 'client__email', 'freelancer__email')
    readonly_fields = ('idempotency_key', 'provider_intent_id', 'provider_transfer_id', 'provider_refund_id')


@admin.register(PayoutAccount)
class PayoutAccountAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'provider', 'account_id', 'payouts_enabled', 'is_default', 'created_at')
    list_filter = ('provider', 'payouts_enabled', 'is_default')
    search_fields = ('user__email', 'account_id')


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ('provider', 'event_id', 'event_type', 'received_at')
    list_filter = ('provider',)
    search_fields = ('event_id',)
