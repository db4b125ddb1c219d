# apps/api/views/filters.py
"""
API Filters

Django Filter classes for the clinic API.
"""

import django_filters

from apps.core.models import Appointment, Package, PaymentStatus


class AppointmentFilter(django_filters.FilterSet):
    """Filter for appointment queries."""

    # Date filters
    date = django_filters.DateFilter()
    date_from = django_filters.DateFilter(
        field_name='date',
        lookup_expr='gte'
    )
    date_to = django_filters.DateFilter(
        field_name='date',
        lookup_expr='lte'
    )

    # Status filters
    status = django_filters.ChoiceFilter(
        choices=Appointment.Status.choices
    )
    status_in = django_filters.BaseInFilter(
        field_name='status'
    )
    occupying = django_filters.BooleanFilter(
        method='filter_occupying'
    )

    # Resource filters
    patient_id = django_filters.UUIDFilter()
    staff_id = django_filters.UUIDFilter()
    room_id = django_filters.UUIDFilter()
    service_id = django_filters.UUIDFilter()
    package_id = django_filters.UUIDFilter()
    package_item_id = django_filters.UUIDFilter()

    class Meta:
        model = Appointment
        fields = [
            'status', 'date',
            'patient_id', 'staff_id', 'room_id', 'service_id',
            'package_id', 'package_item_id',
        ]

    def filter_occupying(self, queryset, name, value):
        """Appointments that hold their slot (everything but cancelled)."""
        if value:
            return queryset.filter(status__in=Appointment.get_occupying_statuses())
        return queryset.exclude(status__in=Appointment.get_occupying_statuses())


class PackageFilter(django_filters.FilterSet):
    """Filter for package queries."""

    patient_id = django_filters.UUIDFilter()
    status = django_filters.ChoiceFilter(
        choices=Package.Status.choices
    )
    payment_status = django_filters.ChoiceFilter(
        choices=PaymentStatus.choices
    )
    has_balance = django_filters.BooleanFilter(
        method='filter_has_balance'
    )
    created_from = django_filters.DateFilter(
        field_name='created_at',
        lookup_expr='date__gte'
    )
    created_to = django_filters.DateFilter(
        field_name='created_at',
        lookup_expr='date__lte'
    )

    class Meta:
        model = Package
        fields = ['patient_id', 'status', 'payment_status']

    def filter_has_balance(self, queryset, name, value):
        """Packages that are not yet fully paid."""
        if value:
            return queryset.exclude(payment_status=PaymentStatus.COMPLETED)
        return queryset.filter(payment_status=PaymentStatus.COMPLETED)
