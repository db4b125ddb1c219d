# apps/api/views/availability_views.py
"""
Availability API Views

Read-only lookups of free staff, rooms and start times.
"""

import logging

from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import extend_schema

from apps.core.services import AvailabilityService
from apps.api.serializers import (
    AvailabilityQuerySerializer,
    AvailabilityResultSerializer,
    TimeSlotsQuerySerializer,
)

logger = logging.getLogger(__name__)


class AvailabilityView(APIView):
    """Free staff members and rooms for a slot."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.availability_service = AvailabilityService()

    @extend_schema(parameters=[AvailabilityQuerySerializer], responses=AvailabilityResultSerializer)
    def get(self, request):
        serializer = AvailabilityQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self.availability_service.check_availability(
            slot_date=data['date'],
            start_time=data['start_time'],
            duration_minutes=data.get('duration_minutes'),
            service_id=data.get('service_id'),
            exclude_appointment_id=data.get('exclude_appointment_id'),
        )
        return Response(AvailabilityResultSerializer(result).data)


class TimeSlotsView(APIView):
    """Free start times of one staff member on one day."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.availability_service = AvailabilityService()

    @extend_schema(parameters=[TimeSlotsQuerySerializer])
    def get(self, request):
        serializer = TimeSlotsQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        slots = self.availability_service.get_available_time_slots(
            staff_id=data['staff_id'],
            slot_date=data['date'],
            duration_minutes=data['duration_minutes'],
            interval_minutes=data.get('interval_minutes'),
        )
        return Response({
            'staff_id': str(data['staff_id']),
            'date': data['date'].isoformat(),
            'duration_minutes': data['duration_minutes'],
            'slots': [slot.strftime('%H:%M') for slot in slots],
        })
