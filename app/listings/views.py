"""
Views for the listings API.

URL Structure:
    /api/v1/listings/        GET (active listings), POST (create)
    /api/v1/listings/{id}/   GET
    /api/v1/listings/mine/   GET (caller's listings with fees)

Listing editing and search belong to the listing collaborator and are
not exposed here.
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from listings.models import Listing
from listings.serializers import (
    ListingCreateSerializer,
    ListingOwnerSerializer,
    ListingSerializer,
)
from listings.services import ListingService


@extend_schema_view(
    list=extend_schema(
        operation_id="list_active_listings",
        summary="List active listings",
        tags=["Listings"],
    ),
    retrieve=extend_schema(
        operation_id="get_listing",
        summary="Get listing",
        tags=["Listings"],
    ),
)
class ListingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for listing operations.

    list:
        Listings currently open for purchase.

    retrieve:
        Any listing by id, including sold and pending ones.

    create:
        Create a listing; its platform fee is created with it.

    mine:
        The caller's own listings with platform fee status.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = ListingSerializer

    def get_queryset(self):
        """Active listings for list, every listing for retrieve."""
        if self.action == "list":
            return ListingService.list_active()
        return Listing.objects.select_related("seller")

    @extend_schema(
        operation_id="create_listing",
        summary="Create listing",
        request=ListingCreateSerializer,
        responses={201: ListingOwnerSerializer},
        tags=["Listings"],
    )
    def create(self, request):
        """Create a listing owned by the caller."""
        serializer = ListingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ListingService.create_listing(
            seller=request.user,
            title=serializer.validated_data["title"],
            price=serializer.validated_data["price"],
            description=serializer.validated_data["description"],
        )

        if not result.success:
            return Response(
                {"error": result.error, "error_code": result.error_code},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(
            ListingOwnerSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="list_my_listings",
        summary="List my listings",
        responses={200: ListingOwnerSerializer(many=True)},
        tags=["Listings"],
    )
    @action(detail=False, methods=["get"])
    def mine(self, request):
        """List the caller's listings, including platform fees."""
        queryset = ListingService.list_for_seller(request.user)
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = ListingOwnerSerializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        return Response(ListingOwnerSerializer(queryset, many=True).data)
