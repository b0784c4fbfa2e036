"""
DRF views for the payments API.

Related files:
    - services/: EscrowService, WithdrawalService
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    GET  /api/v1/payments/                  - Payments where the caller is buyer or seller
    POST /api/v1/payments/                  - Initiate a purchase
    GET  /api/v1/payments/{id}/             - Payment detail (parties and admins)
    POST /api/v1/payments/verify/           - Verify a payment by reference
    POST /api/v1/payments/{id}/release/     - Buyer releases held funds
    POST /api/v1/payments/{id}/refund/      - Seller refunds the buyer
    GET  /api/v1/payments/admin/?status=    - All payments (admin)
    GET  /api/v1/payments/sales/            - Caller's sales summary
    GET  /api/v1/payments/withdrawals/      - Caller's withdrawals
    POST /api/v1/payments/withdrawals/      - Request a withdrawal
    POST /api/v1/payments/webhooks/stripe/  - Stripe webhook endpoint

Errors raised by the services are rendered by
core.exception_handlers.api_exception_handler.

Security:
    - All endpoints require authentication except the webhook
    - The webhook verifies the Stripe signature
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from payments.serializers import (
    InitiatedPaymentSerializer,
    PaymentInitiateSerializer,
    PaymentSerializer,
    PaymentVerifySerializer,
    SalesSummarySerializer,
    WithdrawalRequestSerializer,
    WithdrawalSerializer,
)
from payments.services import EscrowService, WithdrawalService


@extend_schema_view(
    list=extend_schema(
        operation_id="list_my_payments",
        summary="List my payments",
        tags=["Payments"],
    ),
    retrieve=extend_schema(
        operation_id="get_payment",
        summary="Get payment",
        tags=["Payments"],
    ),
)
class PaymentViewSet(viewsets.GenericViewSet):
    """
    ViewSet for escrow payments and seller withdrawals.

    list:
        Payments where the caller is the buyer or the seller.

    create:
        Initiate a purchase of a listing. Returns the checkout URL.

    retrieve:
        A payment the caller is party to (admins see every payment).

    verify:
        Reconcile a payment with the gateway after the checkout redirect.

    release / refund:
        Escrow actions for the buyer and the seller respectively.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = PaymentSerializer
    lookup_value_regex = "[0-9a-f-]{36}"

    def get_queryset(self):
        return EscrowService.list_for_user(self.request.user)

    def list(self, request):
        """List the caller's payments."""
        return self._paginated(self.get_queryset(), PaymentSerializer)

    def retrieve(self, request, pk=None):
        """Get a payment the caller may see."""
        payment = EscrowService.get_payment_for(request.user, pk)
        return Response(PaymentSerializer(payment).data)

    @extend_schema(
        operation_id="initiate_payment",
        summary="Initiate purchase",
        request=PaymentInitiateSerializer,
        responses={201: InitiatedPaymentSerializer},
        tags=["Payments"],
    )
    def create(self, request):
        """Start a checkout for a listing."""
        serializer = PaymentInitiateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        initiated = EscrowService.initiate(
            serializer.validated_data["listing_id"],
            buyer=request.user,
        )

        return Response(
            InitiatedPaymentSerializer(initiated).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="verify_payment",
        summary="Verify payment",
        request=PaymentVerifySerializer,
        responses={200: PaymentSerializer},
        tags=["Payments"],
    )
    @action(detail=False, methods=["post"])
    def verify(self, request):
        """Verify a payment by its reference."""
        serializer = PaymentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payment = EscrowService.verify(serializer.validated_data["reference"], actor=request.user)
        return Response(PaymentSerializer(payment).data)

    @extend_schema(
        operation_id="release_payment",
        summary="Release held funds",
        request=None,
        responses={200: PaymentSerializer},
        tags=["Payments"],
    )
    @action(detail=True, methods=["post"])
    def release(self, request, pk=None):
        """Buyer confirms receipt and releases the funds to the seller."""
        payment = EscrowService.release(pk, actor=request.user)
        return Response(PaymentSerializer(payment).data)

    @extend_schema(
        operation_id="refund_payment",
        summary="Refund buyer",
        request=None,
        responses={200: PaymentSerializer},
        tags=["Payments"],
    )
    @action(detail=True, methods=["post"])
    def refund(self, request, pk=None):
        """Seller refunds the buyer and the listing becomes available again."""
        payment = EscrowService.refund(pk, actor=request.user)
        return Response(PaymentSerializer(payment).data)

    @extend_schema(
        operation_id="list_all_payments",
        summary="List all payments (admin)",
        parameters=[
            OpenApiParameter("status", str, description="Filter by payment status"),
        ],
        responses={200: PaymentSerializer(many=True)},
        tags=["Payments"],
    )
    @action(detail=False, methods=["get"], url_path="admin")
    def admin_overview(self, request):
        """Every payment, for admins."""
        queryset = EscrowService.list_all(
            request.user,
            status=request.query_params.get("status") or None,
        )
        return self._paginated(queryset, PaymentSerializer)

    @extend_schema(
        operation_id="get_sales_summary",
        summary="Sales summary",
        responses={200: SalesSummarySerializer},
        tags=["Withdrawals"],
    )
    @action(detail=False, methods=["get"])
    def sales(self, request):
        """Caller's sales totals and available balance."""
        summary = WithdrawalService.sales_summary(request.user)
        return Response(SalesSummarySerializer(summary).data)

    @extend_schema(
        methods=["GET"],
        operation_id="list_withdrawals",
        summary="List my withdrawals",
        responses={200: WithdrawalSerializer(many=True)},
        tags=["Withdrawals"],
    )
    @extend_schema(
        methods=["POST"],
        operation_id="request_withdrawal",
        summary="Request withdrawal",
        request=WithdrawalRequestSerializer,
        responses={201: WithdrawalSerializer},
        tags=["Withdrawals"],
    )
    @action(detail=False, methods=["get", "post"])
    def withdrawals(self, request):
        """List the caller's withdrawals, or withdraw from the balance."""
        if request.method == "GET":
            return self._paginated(
                WithdrawalService.list_for_seller(request.user),
                WithdrawalSerializer,
            )

        serializer = WithdrawalRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        withdrawal = WithdrawalService.request_withdrawal(
            seller_id=request.user.id,
            actor=request.user,
            amount=serializer.validated_data["amount"],
            bank_details=serializer.validated_data["bank_details"],
        )
        return Response(
            WithdrawalSerializer(withdrawal).data,
            status=status.HTTP_201_CREATED,
        )

    def _paginated(self, queryset, serializer_class):
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(serializer_class(page, many=True).data)
        return Response(serializer_class(queryset, many=True).data)
