# apps/api/urls.py
"""
Clinic API URL Configuration

Defines all API routes for the clinic service.
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    AvailabilityView,
    TimeSlotsView,
    AppointmentViewSet,
    PackageViewSet,
)

app_name = 'api'

# Create router and register viewsets
router = DefaultRouter()
router.register(r'appointments', AppointmentViewSet, basename='appointment')
router.register(r'packages', PackageViewSet, basename='package')

urlpatterns = [
    # Availability
    path('availability/', AvailabilityView.as_view(), name='availability'),
    path('availability/slots/', TimeSlotsView.as_view(), name='available-slots'),

    # Router URLs
    path('', include(router.urls)),
]
