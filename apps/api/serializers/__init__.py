"""
Clinic API Serializers
"""

from .fields import MoneyField

from .availability_serializers import (
    StaffMemberSerializer,
    RoomSerializer,
    AvailabilityQuerySerializer,
    AvailabilityResultSerializer,
    TimeSlotsQuerySerializer,
)

from .appointment_serializers import (
    AppointmentSerializer,
    AppointmentCalendarSerializer,
    AppointmentPaymentSerializer,
    AppointmentSlotSerializer,
    AppointmentCreateSerializer,
    AppointmentBatchSerializer,
    AppointmentCancelSerializer,
    AppointmentRescheduleSerializer,
    AppointmentBulkCancelSerializer,
    AppointmentMarkPaidSerializer,
    CalendarQuerySerializer,
)

from .package_serializers import (
    PackageSerializer,
    PackageDetailSerializer,
    PackageItemSerializer,
    PackageSummarySerializer,
    PaymentSerializer,
    PackagePurchaseSerializer,
    PaymentCreateSerializer,
    PackageStatisticsSerializer,
)

__all__ = [
    'MoneyField',
    # Availability
    'StaffMemberSerializer',
    'RoomSerializer',
    'AvailabilityQuerySerializer',
    'AvailabilityResultSerializer',
    'TimeSlotsQuerySerializer',
    # Appointments
    'AppointmentSerializer',
    'AppointmentCalendarSerializer',
    'AppointmentPaymentSerializer',
    'AppointmentSlotSerializer',
    'AppointmentCreateSerializer',
    'AppointmentBatchSerializer',
    'AppointmentCancelSerializer',
    'AppointmentRescheduleSerializer',
    'AppointmentBulkCancelSerializer',
    'AppointmentMarkPaidSerializer',
    'CalendarQuerySerializer',
    # Packages
    'PackageSerializer',
    'PackageDetailSerializer',
    'PackageItemSerializer',
    'PackageSummarySerializer',
    'PaymentSerializer',
    'PackagePurchaseSerializer',
    'PaymentCreateSerializer',
    'PackageStatisticsSerializer',
]
