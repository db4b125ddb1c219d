# apps/api/views/appointment_views.py
"""
Appointment API Views

Booking, rescheduling and the appointment state transitions. Service
errors propagate to the shared exception handler, which maps them to
HTTP status codes.
"""

import logging

from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema

from apps.core.models import Appointment
from apps.core.services import BookingService
from apps.api.serializers import (
    AppointmentSerializer,
    AppointmentCalendarSerializer,
    AppointmentCreateSerializer,
    AppointmentBatchSerializer,
    AppointmentCancelSerializer,
    AppointmentRescheduleSerializer,
    AppointmentBulkCancelSerializer,
    AppointmentMarkPaidSerializer,
    CalendarQuerySerializer,
    PaymentSerializer,
)
from shared.common.pagination import StandardPagination
from shared.common.permissions import IsClinicAdmin, IsAuthenticated
from .filters import AppointmentFilter

logger = logging.getLogger(__name__)


class AppointmentViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for appointments.

    Listing and retrieval read the ORM directly; every write goes through
    the booking service.
    """

    queryset = Appointment.objects.all()
    serializer_class = AppointmentSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = AppointmentFilter
    ordering_fields = ['date', 'start_time', 'created_at', 'status']
    ordering = ['date', 'start_time']

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.booking_service = BookingService()

    def get_serializer_class(self):
        """Return appropriate serializer based on action."""
        if self.action == 'create':
            return AppointmentCreateSerializer
        elif self.action == 'batch':
            return AppointmentBatchSerializer
        elif self.action == 'cancel':
            return AppointmentCancelSerializer
        elif self.action == 'reschedule':
            return AppointmentRescheduleSerializer
        elif self.action == 'bulk_cancel':
            return AppointmentBulkCancelSerializer
        elif self.action == 'mark_paid':
            return AppointmentMarkPaidSerializer
        elif self.action == 'calendar':
            return CalendarQuerySerializer
        return AppointmentSerializer

    def get_permissions(self):
        if self.action == 'bulk_cancel':
            return [IsClinicAdmin()]
        return super().get_permissions()

    @property
    def actor_id(self):
        return self.request.user.id

    @extend_schema(request=AppointmentCreateSerializer, responses={201: AppointmentSerializer})
    def create(self, request, *args, **kwargs):
        """Book one appointment."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        appointment = self.booking_service.create_appointment(
            actor_id=self.actor_id,
            **serializer.to_service_kwargs()
        )
        return Response(
            AppointmentSerializer(appointment).data,
            status=status.HTTP_201_CREATED
        )

    @extend_schema(request=AppointmentBatchSerializer, responses={201: AppointmentSerializer(many=True)})
    @action(detail=False, methods=['post'])
    def batch(self, request):
        """Book several appointments; either all are created or none."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        appointments = self.booking_service.create_multiple_appointments(
            actor_id=self.actor_id,
            **serializer.to_service_kwargs()
        )
        return Response(
            AppointmentSerializer(appointments, many=True).data,
            status=status.HTTP_201_CREATED
        )

    @extend_schema(request=AppointmentCancelSerializer, responses=AppointmentSerializer)
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel an appointment. Cancelling twice is a no-op."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        appointment = self.booking_service.cancel_appointment(
            pk, self.actor_id, reason=serializer.validated_data['reason']
        )
        return Response(AppointmentSerializer(appointment).data)

    @extend_schema(request=None, responses=AppointmentSerializer)
    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        """Complete an appointment and use one package session."""
        appointment = self.booking_service.complete_appointment(pk, self.actor_id)
        return Response(AppointmentSerializer(appointment).data)

    @extend_schema(request=None, responses=AppointmentSerializer)
    @action(detail=True, methods=['post'], url_path='no-show')
    def no_show(self, request, pk=None):
        """Record that the patient did not come."""
        appointment = self.booking_service.mark_no_show(pk, self.actor_id)
        return Response(AppointmentSerializer(appointment).data)

    @extend_schema(request=AppointmentRescheduleSerializer, responses=AppointmentSerializer)
    @action(detail=True, methods=['post'])
    def reschedule(self, request, pk=None):
        """Move an appointment to another slot, staff member or room."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        appointment = self.booking_service.reschedule_appointment(
            pk, self.actor_id, **serializer.validated_data
        )
        return Response(AppointmentSerializer(appointment).data)

    @extend_schema(request=AppointmentBulkCancelSerializer)
    @action(detail=False, methods=['post'], url_path='bulk-cancel')
    def bulk_cancel(self, request):
        """Cancel many appointments; failures are reported per id."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self.booking_service.bulk_cancel_appointments(
            data['appointment_ids'], self.actor_id, reason=data['reason']
        )
        logger.info(
            f"Bulk cancel: {len(result['cancelled'])} cancelled, {len(result['skipped'])} skipped",
            extra={'actor_id': str(self.actor_id)}
        )
        return Response({
            'cancelled': AppointmentSerializer(result['cancelled'], many=True).data,
            'skipped': result['skipped'],
        })

    @extend_schema(request=AppointmentMarkPaidSerializer)
    @action(detail=False, methods=['post'], url_path='mark-paid')
    def mark_paid(self, request):
        """Record one payment for a set of appointments, split across their packages."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self.booking_service.mark_appointments_paid(
            data['appointment_ids'],
            amount_cents=data['amount'],
            method=data['method'],
            actor_id=self.actor_id,
            notes=data['notes'],
        )
        return Response({
            'appointment_count': result['appointment_count'],
            'payments': PaymentSerializer(result['payments'], many=True).data,
        }, status=status.HTTP_201_CREATED)

    @extend_schema(parameters=[CalendarQuerySerializer], responses=AppointmentCalendarSerializer(many=True))
    @action(detail=False, methods=['get'])
    def calendar(self, request):
        """Occupied slots in a date range, optionally for one staff member or room."""
        serializer = self.get_serializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        appointments = self.booking_service.get_calendar(
            start_date=data['start_date'],
            end_date=data['end_date'],
            staff_id=data.get('staff_id'),
            room_id=data.get('room_id'),
        )
        return Response({
            'start_date': data['start_date'].isoformat(),
            'end_date': data['end_date'].isoformat(),
            'count': len(appointments),
            'appointments': AppointmentCalendarSerializer(appointments, many=True).data,
        })
