# apps/api/views/package_views.py
"""
Package API Views

Package purchase, payments and reporting.
"""

import logging

from django.db.models import Prefetch
from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, OpenApiParameter

from apps.core.models import Package, PackageItem
from apps.core.services import LedgerService
from apps.api.serializers import (
    PackageSerializer,
    PackageDetailSerializer,
    PackageSummarySerializer,
    PackagePurchaseSerializer,
    PaymentSerializer,
    PaymentCreateSerializer,
    PackageStatisticsSerializer,
)
from shared.common.pagination import StandardPagination
from shared.common.permissions import IsClinicAdmin, IsAuthenticated
from .filters import PackageFilter

logger = logging.getLogger(__name__)


class PackageViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for packages.

    ``retrieve`` returns the package summary (sessions used, amount paid
    and outstanding balance) rather than the bare record.
    """

    queryset = Package.objects.prefetch_related(
        Prefetch('items', queryset=PackageItem.objects.select_related('service'))
    )
    serializer_class = PackageDetailSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = PackageFilter
    ordering_fields = ['created_at', 'final_price_cents', 'status']
    ordering = ['-created_at']

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.ledger_service = LedgerService()

    def get_serializer_class(self):
        """Return appropriate serializer based on action."""
        if self.action == 'create':
            return PackagePurchaseSerializer
        elif self.action == 'retrieve':
            return PackageSummarySerializer
        elif self.action == 'payments' and self.request.method == 'POST':
            return PaymentCreateSerializer
        elif self.action == 'payments':
            return PaymentSerializer
        return PackageDetailSerializer

    def get_permissions(self):
        if self.action == 'recalculate':
            return [IsClinicAdmin()]
        return super().get_permissions()

    @property
    def actor_id(self):
        return self.request.user.id

    def retrieve(self, request, *args, **kwargs):
        """Package with its session and payment totals."""
        summary = self.ledger_service.get_package_summary(kwargs['pk'])
        return Response(PackageSummarySerializer(summary).data)

    @extend_schema(request=PackagePurchaseSerializer, responses={201: PackageDetailSerializer(many=True)})
    def create(self, request, *args, **kwargs):
        """
        Purchase packages.

        One package is created per distinct service; the discount and the
        initial payment are split across them in proportion to their prices.
        """
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        packages = self.ledger_service.purchase_package(
            actor_id=self.actor_id,
            **serializer.to_service_kwargs()
        )
        created = self.get_queryset().filter(id__in=[p.id for p in packages])
        by_id = {p.id: p for p in created}
        return Response(
            PackageDetailSerializer([by_id[p.id] for p in packages], many=True).data,
            status=status.HTTP_201_CREATED
        )

    @extend_schema(
        methods=['GET'],
        responses=PaymentSerializer(many=True)
    )
    @extend_schema(
        methods=['POST'],
        request=PaymentCreateSerializer,
        responses={201: PaymentSerializer}
    )
    @action(detail=True, methods=['get', 'post'])
    def payments(self, request, pk=None):
        """List the payments of a package or record a new one."""
        if request.method == 'GET':
            payments = self.ledger_service.list_payments(pk)
            return Response(PaymentSerializer(payments, many=True).data)

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payment = self.ledger_service.add_payment(
            package_id=pk,
            amount_cents=data['amount'],
            method=data['method'],
            actor_id=self.actor_id,
            notes=data.get('notes', ''),
            paid_sessions_count=data.get('paid_sessions_count'),
        )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=None, responses=PackageSerializer)
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel a package. Its remaining sessions can no longer be booked."""
        package = self.ledger_service.cancel_package(pk, self.actor_id)
        return Response(PackageSerializer(package).data)

    @extend_schema(request=None, responses=PackageSerializer)
    @action(detail=True, methods=['post'])
    def recalculate(self, request, pk=None):
        """Re-derive the payment status from the payment history."""
        package = self.ledger_service.recalculate_payment_status(pk, self.actor_id)
        return Response(PackageSerializer(package).data)

    @extend_schema(
        parameters=[OpenApiParameter('patient_id', str, required=False)],
        responses=PackageStatisticsSerializer
    )
    @action(detail=False, methods=['get'])
    def statistics(self, request):
        """Package counts by status and revenue totals."""
        stats = self.ledger_service.get_statistics(
            patient_id=request.query_params.get('patient_id')
        )
        return Response(PackageStatisticsSerializer(stats).data)
