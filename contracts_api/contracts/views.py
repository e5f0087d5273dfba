from django.contrib.auth import get_user_model
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.authentication import JWTAuthentication
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema

from contracts_api.middleware import UserActivityLoggingMiddleware

from .filters import ContractFilter, contracts_visible_to
from .pagination import ContractListPagination
from .permissions import IsClient
from .serializers import (
    AmendmentProposeSerializer,
    AmendmentResponseSerializer,
    AmendmentSerializer,
    ContractCreateSerializer,
    ContractDetailSerializer,
    ContractListSerializer,
    DisputeSerializer,
    MilestoneDecisionSerializer,
    MilestoneSubmitSerializer,
    ReasonSerializer,
    VersionedSerializer,
)
from .services import ContractService

User = get_user_model()

ACTION_RESPONSES = {
    200: ContractDetailSerializer(),
    400: "Validation error",
    403: "Not a participant, or wrong role for this action",
    404: "Contract, milestone or amendment not found",
    409: "Invalid transition, contract not active, or stale version",
}


class ContractListCreateView(generics.ListCreateAPIView):
    """Contracts the caller takes part in; clients create new ones from accepted proposals."""

    authentication_classes = [JWTAuthentication]
    filterset_class = ContractFilter
    pagination_class = ContractListPagination

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated(), IsClient()]
        return [IsAuthenticated()]

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return ContractCreateSerializer
        return ContractListSerializer

    def get_queryset(self):
        return contracts_visible_to(self.request.user)

    @swagger_auto_schema(
        operation_summary="List contracts for the current user",
        responses={200: ContractListSerializer(many=True)},
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Create a draft contract from an accepted proposal",
        request_body=ContractCreateSerializer,
        responses={201: ContractDetailSerializer(), 400: "Validation error"},
    )
    def post(self, request, *args, **kwargs):
        serializer = ContractCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        freelancer = User.objects.get(pk=data.pop('freelancer_id'))
        contract = ContractService().create_contract(client=request.user, freelancer=freelancer, **data)
        return Response({
            'detail': "Contract created successfully.",
            'contract': ContractDetailSerializer(contract).data,
        }, status=status.HTTP_201_CREATED)


class ContractDetailView(generics.RetrieveAPIView):
    serializer_class = ContractDetailSerializer
    authentication_classes = [JWTAuthentication]
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Retrieve a contract with milestones, signatures and amendments",
        responses={200: ContractDetailSerializer(), 403: "Forbidden", 404: "Not found"},
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_object(self):
        return ContractService.get_contract_for(self.request.user, self.kwargs['contract_id'])


class ContractActionView(APIView):
    """Shared plumbing for POST endpoints that drive one contract transition."""

    authentication_classes = [JWTAuthentication]
    permission_classes = [IsAuthenticated]
    success_status = status.HTTP_200_OK

    def get_service(self):
        return ContractService()

    def validated(self, request, serializer_class):
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        return data, data.pop('version', None)

    def respond(self, contract):
        return Response(ContractDetailSerializer(contract).data, status=self.success_status)


class ContractSignView(ContractActionView):
    @swagger_auto_schema(
        operation_summary="Sign a draft contract",
        operation_description="The contract becomes active once both participants have signed.",
        request_body=VersionedSerializer,
        responses=ACTION_RESPONSES,
    )
    def post(self, request, contract_id):
        _, version = self.validated(request, VersionedSerializer)
        contract = self.get_service().sign(
            contract_id,
            request.user,
            ip_address=UserActivityLoggingMiddleware.get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT'),
            expected_version=version,
        )
        return self.respond(contract)


class ContractCancelView(ContractActionView):
    @swagger_auto_schema(
        operation_summary="Cancel a draft or active contract",
        request_body=ReasonSerializer,
        responses=ACTION_RESPONSES,
    )
    def post(self, request, contract_id):
        data, version = self.validated(request, ReasonSerializer)
        contract = self.get_service().cancel(contract_id, request.user, data['reason'], expected_version=version)
        return self.respond(contract)


class ContractDisputeView(ContractActionView):
    @swagger_auto_schema(
        operation_summary="Raise a dispute on a contract",
        request_body=DisputeSerializer,
        responses=ACTION_RESPONSES,
    )
    def post(self, request, contract_id):
        data, version = self.validated(request, DisputeSerializer)
        contract = self.get_service().dispute(contract_id, request.user, expected_version=version, **data)
        return self.respond(contract)


class ContractPauseView(ContractActionView):
    @swagger_auto_schema(operation_summary="Pause an active contract", request_body=ReasonSerializer, responses=ACTION_RESPONSES)
    def post(self, request, contract_id):
        data, version = self.validated(request, ReasonSerializer)
        contract = self.get_service().pause(contract_id, request.user, data['reason'], expected_version=version)
        return self.respond(contract)


class ContractResumeView(ContractActionView):
    @swagger_auto_schema(operation_summary="Resume a paused contract", request_body=VersionedSerializer, responses=ACTION_RESPONSES)
    def post(self, request, contract_id):
        _, version = self.validated(request, VersionedSerializer)
        contract = self.get_service().resume(contract_id, request.user, expected_version=version)
        return self.respond(contract)


milestone_path_params = [
    openapi.Parameter('contract_id', openapi.IN_PATH, description="Contract ID", type=openapi.TYPE_INTEGER),
    openapi.Parameter('milestone_id', openapi.IN_PATH, description="Milestone ID", type=openapi.TYPE_INTEGER),
]


class MilestoneStartView(ContractActionView):
    @swagger_auto_schema(
        operation_summary="Freelancer starts work on a pending milestone",
        manual_parameters=milestone_path_params,
        request_body=VersionedSerializer,
        responses=ACTION_RESPONSES,
    )
    def post(self, request, contract_id, milestone_id):
        _, version = self.validated(request, VersionedSerializer)
        contract = self.get_service().start_milestone(contract_id, milestone_id, request.user, expected_version=version)
        return self.respond(contract)


class MilestoneSubmitView(ContractActionView):
    @swagger_auto_schema(
        operation_summary="Freelancer submits a milestone for review",
        manual_parameters=milestone_path_params,
        request_body=MilestoneSubmitSerializer,
        responses=ACTION_RESPONSES,
    )
    def post(self, request, contract_id, milestone_id):
        data, version = self.validated(request, MilestoneSubmitSerializer)
        contract = self.get_service().submit_milestone(
            contract_id,
            milestone_id,
            request.user,
            deliverables=data.get('deliverables', []),
            notes=data['notes'],
            expected_version=version,
        )
        return self.respond(contract)


class MilestoneApproveView(ContractActionView):
    @swagger_auto_schema(
        operation_summary="Client approves a submitted milestone",
        manual_parameters=milestone_path_params,
        request_body=MilestoneDecisionSerializer,
        responses=ACTION_RESPONSES,
    )
    def post(self, request, contract_id, milestone_id):
        data, version = self.validated(request, MilestoneDecisionSerializer)
        contract = self.get_service().approve_milestone(
            contract_id, milestone_id, request.user, data['feedback'], expected_version=version,
        )
        return self.respond(contract)


class MilestoneRejectView(ContractActionView):
    @swagger_auto_schema(
        operation_summary="Client rejects a submitted milestone",
        manual_parameters=milestone_path_params,
        request_body=MilestoneDecisionSerializer,
        responses=ACTION_RESPONSES,
    )
    def post(self, request, contract_id, milestone_id):
        data, version = self.validated(request, MilestoneDecisionSerializer)
        contract = self.get_service().reject_milestone(
            contract_id, milestone_id, request.user, data['feedback'], expected_version=version,
        )
        return self.respond(contract)


class AmendmentListCreateView(ContractActionView):
    success_status = status.HTTP_201_CREATED

    @swagger_auto_schema(
        operation_summary="List amendments on a contract",
        responses={200: AmendmentSerializer(many=True), 403: "Forbidden", 404: "Not found"},
    )
    def get(self, request, contract_id):
        contract = ContractService.get_contract_for(request.user, contract_id)
        return Response(AmendmentSerializer(contract.amendments.all(), many=True).data)

    @swagger_auto_schema(
        operation_summary="Propose an amendment to an active contract",
        request_body=AmendmentProposeSerializer,
        responses={**ACTION_RESPONSES, 201: ContractDetailSerializer()},
    )
    def post(self, request, contract_id):
        data, version = self.validated(request, AmendmentProposeSerializer)
        amendment = self.get_service().propose_amendment(contract_id, request.user, expected_version=version, **data)
        return self.respond(amendment.contract)


class AmendmentRespondView(ContractActionView):
    @swagger_auto_schema(
        operation_summary="Accept or reject a pending amendment",
        operation_description="Only the party that did not propose the amendment may respond.",
        request_body=AmendmentResponseSerializer,
        responses=ACTION_RESPONSES,
    )
    def post(self, request, contract_id, amendment_id):
        data, version = self.validated(request, AmendmentResponseSerializer)
        amendment = self.get_service().respond_to_amendment(
            contract_id, amendment_id, request.user, data['status'], data['notes'], expected_version=version,
        )
        return self.respond(amendment.contract)
