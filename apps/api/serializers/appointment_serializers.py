# apps/api/serializers/appointment_serializers.py
"""
Appointment Serializers

Request serializers validate shape only; availability, capacity and state
rules are enforced by the booking service.
"""

from rest_framework import serializers

from apps.core.models import Appointment, PaymentMethod
from .fields import MoneyField


class AppointmentSerializer(serializers.ModelSerializer):
    """Base appointment serializer."""

    status_display = serializers.CharField(
        source='get_status_display',
        read_only=True
    )
    start_time = serializers.TimeField(format='%H:%M')
    end_time = serializers.TimeField(format='%H:%M')

    class Meta:
        model = Appointment
        fields = [
            'id', 'patient', 'package', 'package_item', 'service',
            'staff', 'room',
            'date', 'start_time', 'end_time', 'duration_minutes',
            'status', 'status_display', 'notes',
            'cancelled_at', 'cancelled_by', 'cancellation_reason',
            'completed_at', 'completed_by',
            'created_by', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class AppointmentCalendarSerializer(AppointmentSerializer):
    """Compact serializer for calendar views."""

    class Meta(AppointmentSerializer.Meta):
        fields = [
            'id', 'patient', 'service', 'staff', 'room',
            'date', 'start_time', 'end_time', 'status',
        ]
        read_only_fields = fields


class AppointmentPaymentSerializer(serializers.Serializer):
    """Payment taken together with a booking."""

    amount = MoneyField()
    method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    notes = serializers.CharField(required=False, allow_blank=True)
    paid_sessions_count = serializers.IntegerField(min_value=1, required=False)

    def to_service_kwargs(self, data: dict) -> dict:
        """The ``payment`` argument of the booking service."""
        payment = {'amount_cents': data['amount'], 'method': data['method']}
        for key in ('notes', 'paid_sessions_count'):
            if data.get(key):
                payment[key] = data[key]
        return payment


class AppointmentSlotSerializer(serializers.Serializer):
    """One slot of a booking request."""

    staff_id = serializers.UUIDField()
    room_id = serializers.UUIDField()
    date = serializers.DateField()
    start_time = serializers.TimeField()
    service_id = serializers.UUIDField()
    package_item_id = serializers.UUIDField()
    patient_id = serializers.UUIDField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class AppointmentCreateSerializer(AppointmentSlotSerializer):
    """Serializer for booking one appointment."""

    payment = AppointmentPaymentSerializer(required=False)

    def to_service_kwargs(self) -> dict:
        """Arguments of ``BookingService.create_appointment``."""
        data = dict(self.validated_data)
        if data.get('payment'):
            data['payment'] = self.fields['payment'].to_service_kwargs(data['payment'])
        return data


class AppointmentBatchSerializer(serializers.Serializer):
    """Serializer for booking several appointments at once."""

    slots = AppointmentSlotSerializer(many=True, allow_empty=False)
    payment = AppointmentPaymentSerializer(required=False)

    def validate_slots(self, value):
        if len(value) > 50:
            raise serializers.ValidationError('At most 50 slots can be booked at once.')
        return value

    def to_service_kwargs(self) -> dict:
        """Arguments of ``BookingService.create_multiple_appointments``."""
        data = self.validated_data
        payment = None
        if data.get('payment'):
            payment = self.fields['payment'].to_service_kwargs(data['payment'])
        return {'slots': data['slots'], 'payment': payment}


class AppointmentCancelSerializer(serializers.Serializer):
    """Serializer for cancelling an appointment."""

    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=500)


class AppointmentRescheduleSerializer(serializers.Serializer):
    """Serializer for moving an appointment."""

    date = serializers.DateField(required=False)
    start_time = serializers.TimeField(required=False)
    staff_id = serializers.UUIDField(required=False)
    room_id = serializers.UUIDField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('Nothing to change.')
        return attrs


class AppointmentBulkCancelSerializer(serializers.Serializer):
    """Serializer for cancelling many appointments."""

    appointment_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=False,
        max_length=100
    )
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=500)


class AppointmentMarkPaidSerializer(serializers.Serializer):
    """Serializer for paying for a set of appointments."""

    appointment_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=False,
        max_length=100
    )
    amount = MoneyField()
    method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class CalendarQuerySerializer(serializers.Serializer):
    """Query parameters of the calendar view."""

    start_date = serializers.DateField()
    end_date = serializers.DateField()
    staff_id = serializers.UUIDField(required=False)
    room_id = serializers.UUIDField(required=False)

    def validate(self, attrs):
        if attrs['end_date'] < attrs['start_date']:
            raise serializers.ValidationError({'end_date': 'End date must not be before start date.'})
        if (attrs['end_date'] - attrs['start_date']).days > 62:
            raise serializers.ValidationError({'end_date': 'Calendar range is limited to 62 days.'})
        return attrs
