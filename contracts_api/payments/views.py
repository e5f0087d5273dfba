from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.authentication import JWTAuthentication
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema

from contracts.pagination import ContractListPagination
from .models import PayoutAccount
from .serializers import (
    EscrowConfirmSerializer,
    EscrowIntentSerializer,
    PayoutAccountSerializer,
    RefundSerializer,
    TransactionSerializer,
)
from .services import PaymentOrchestrator, transactions_visible_to

transaction_id_param = openapi.Parameter(
    'transaction_id', openapi.IN_PATH, description="Transaction ID", type=openapi.TYPE_INTEGER,
)


class TransactionListView(generics.ListAPIView):
    """Escrow transactions on contracts the caller takes part in."""

    serializer_class = TransactionSerializer
    authentication_classes = [JWTAuthentication]
    permission_classes = [permissions.IsAuthenticated]
    pagination_class = ContractListPagination
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['status', 'contract', 'milestone']

    @swagger_auto_schema(
        operation_summary="List escrow transactions for the current user",
        responses={200: TransactionSerializer(many=True)},
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return transactions_visible_to(self.request.user)


class TransactionDetailView(APIView):
    authentication_classes = [JWTAuthentication]
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Retrieve an escrow transaction",
        manual_parameters=[transaction_id_param],
        responses={200: TransactionSerializer(), 404: "Not found"},
    )
    def get(self, request, transaction_id):
        tx = PaymentOrchestrator.get_transaction_for(request.user, transaction_id)
        return Response(TransactionSerializer(tx).data)


class EscrowIntentCreateView(APIView):
    authentication_classes = [JWTAuthentication]
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Fund escrow for an approved milestone",
        operation_description=(
            "Creates a payment intent at the processor. Repeating the call while the "
            "milestone's transaction is still open returns the same transaction."
        ),
        responses={
            201: EscrowIntentSerializer(),
            403: "Only the client can fund milestones",
            409: "Milestone not approved or contract not active",
            502: "Payment processor rejected the request",
            503: "Payment processor unavailable, retry",
        },
    )
    def post(self, request, contract_id, milestone_id):
        tx = PaymentOrchestrator().create_escrow_intent(contract_id, milestone_id, request.user)
        return Response(EscrowIntentSerializer(tx).data, status=status.HTTP_201_CREATED)


class EscrowConfirmView(APIView):
    authentication_classes = [JWTAuthentication]
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Confirm a completed escrow payment",
        request_body=EscrowConfirmSerializer,
        responses={200: TransactionSerializer(), 404: "Not found", 409: "Payment not yet succeeded"},
    )
    def post(self, request):
        serializer = EscrowConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        tx = PaymentOrchestrator().confirm_escrow(serializer.validated_data['intent_id'], user=request.user)
        return Response(TransactionSerializer(tx).data)


class EscrowReleaseView(APIView):
    authentication_classes = [JWTAuthentication]
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Release escrowed funds to the freelancer",
        manual_parameters=[transaction_id_param],
        responses={
            200: TransactionSerializer(),
            400: "Freelancer has no enabled payout account",
            403: "Only the client can release funds",
            409: "Funds not held in escrow",
            502: "Payment processor rejected the request",
            503: "Payment processor unavailable, retry",
        },
    )
    def post(self, request, transaction_id):
        tx = PaymentOrchestrator().release(transaction_id, request.user)
        return Response(TransactionSerializer(tx).data)


class EscrowRefundView(APIView):
    authentication_classes = [JWTAuthentication]
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Refund escrowed funds to the client",
        manual_parameters=[transaction_id_param],
        request_body=RefundSerializer,
        responses={200: TransactionSerializer(), 403: "Forbidden", 409: "Funds not held in escrow"},
    )
    def post(self, request, transaction_id):
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        tx = PaymentOrchestrator().refund(transaction_id, request.user, serializer.validated_data['reason'])
        return Response(TransactionSerializer(tx).data)


class EscrowReconcileView(APIView):
    authentication_classes = [JWTAuthentication]
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Re-check a processing transaction with the processor",
        manual_parameters=[transaction_id_param],
        responses={200: TransactionSerializer(), 404: "Not found"},
    )
    def post(self, request, transaction_id):
        tx = PaymentOrchestrator.get_transaction_for(request.user, transaction_id)
        tx = PaymentOrchestrator().reconcile(tx.pk)
        return Response(TransactionSerializer(tx).data)


class PayoutAccountListCreateView(generics.ListCreateAPIView):
    serializer_class = PayoutAccountSerializer
    authentication_classes = [JWTAuthentication]
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return PayoutAccount.objects.filter(user=self.request.user).order_by('-is_default', '-created_at')


class StripeWebhookView(APIView):
    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    @swagger_auto_schema(auto_schema=None)
    def post(self, request):
        signature = request.META.get('HTTP_STRIPE_SIGNATURE', '')
        result = PaymentOrchestrator().handle_webhook(request.body, signature)
        return Response({'status': result}, status=status.HTTP_200_OK)
