# apps/api/serializers/availability_serializers.py
"""
Availability Serializers
"""

from rest_framework import serializers

from apps.core.models import Room, StaffMember


class StaffMemberSerializer(serializers.ModelSerializer):
    """Staff member as listed in availability results."""

    full_name = serializers.SerializerMethodField()

    class Meta:
        model = StaffMember
        fields = ['id', 'first_name', 'last_name', 'full_name', 'specialization']

    def get_full_name(self, obj) -> str:
        return f"{obj.first_name} {obj.last_name}".strip()


class RoomSerializer(serializers.ModelSerializer):
    """Room as listed in availability results."""

    class Meta:
        model = Room
        fields = ['id', 'name', 'capacity']


class AvailabilityQuerySerializer(serializers.Serializer):
    """Query parameters of the availability check."""

    date = serializers.DateField()
    start_time = serializers.TimeField()
    duration_minutes = serializers.IntegerField(min_value=1, required=False)
    service_id = serializers.UUIDField(required=False)
    exclude_appointment_id = serializers.UUIDField(required=False)

    def validate(self, attrs):
        if 'duration_minutes' not in attrs and 'service_id' not in attrs:
            raise serializers.ValidationError(
                {'duration_minutes': 'Provide a duration or a service.'}
            )
        return attrs


class AvailabilityResultSerializer(serializers.Serializer):
    """Free staff and rooms for one slot."""

    date = serializers.DateField(source='slot.date')
    start_time = serializers.TimeField(source='slot.start_time', format='%H:%M')
    end_time = serializers.TimeField(source='slot.end_time', format='%H:%M')
    duration_minutes = serializers.IntegerField(source='slot.duration_minutes')
    available_staff = StaffMemberSerializer(many=True)
    available_rooms = RoomSerializer(many=True)
    total_conflicts = serializers.IntegerField()


class TimeSlotsQuerySerializer(serializers.Serializer):
    """Query parameters of the free start times lookup."""

    staff_id = serializers.UUIDField()
    date = serializers.DateField()
    duration_minutes = serializers.IntegerField(min_value=1)
    interval_minutes = serializers.IntegerField(min_value=1, required=False)
