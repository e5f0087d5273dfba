from django.urls import path

from . import views

urlpatterns = [
    path('transactions/', views.TransactionListView.as_view(), name='transaction-list'),
    path('transactions/<int:transaction_id>/', views.TransactionDetailView.as_view(), name='transaction-detail'),
    path('transactions/<int:transaction_id>/release/', views.EscrowReleaseView.as_view(), name='escrow-release'),
    path('transactions/<int:transaction_id>/refund/', views.EscrowRefundView.as_view(), name='escrow-refund'),
    path('transactions/<int:transaction_id>/reconcile/', views.EscrowReconcileView.as_view(), name='escrow-reconcile'),
    path(
        'contracts/<int:contract_id>/milestones/<int:milestone_id>/escrow/',
        views.EscrowIntentCreateView.as_view(),
        name='escrow-intent',
    ),
    path('escrow/confirm/', views.EscrowConfirmView.as_view(), name='escrow-confirm'),
    path('payout-accounts/', views.PayoutAccountListCreateView.as_view(), name='payout-account-list'),
    path('webhooks/stripe/', views.StripeWebhookView.as_view(), name='stripe-webhook'),
]
