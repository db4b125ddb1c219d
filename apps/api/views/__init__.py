"""
Clinic API Views
"""

from .availability_views import (
    AvailabilityView,
    TimeSlotsView,
)

from .appointment_views import (
    AppointmentViewSet,
)

from .package_views import (
    PackageViewSet,
)

__all__ = [
    'AvailabilityView',
    'TimeSlotsView',
    'AppointmentViewSet',
    'PackageViewSet',
]
