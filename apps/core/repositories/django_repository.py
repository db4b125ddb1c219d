# apps/core/repositories/django_repository.py
"""
Django ORM repository.
"""

import logging
from contextlib import contextmanager
from datetime import date, time
from typing import Any, Iterable, List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import OperationalError, transaction
from django.db.models import Q, Sum

from ..locks import CacheLockManager
from ..models import (
    Appointment,
    Package,
    PackageItem,
    Patient,
    Payment,
    Room,
    Service,
    StaffMember,
    StaffSchedule,
)
from ..services.exceptions import RetryableError
from .base import ClinicRepository

logger = logging.getLogger(__name__)


def _get_or_none(queryset, pk):
    try:
        return queryset.get(pk=pk)
    except (queryset.model.DoesNotExist, DjangoValidationError, ValueError):
        return None


class DjangoClinicRepository(ClinicRepository):
    """Repository backed by the Django ORM and cache-based locks."""

    def __init__(self, locks=None):
        self.locks = locks or CacheLockManager()

    @contextmanager
    def atomic(self):
        try:
            with transaction.atomic():
                yield
        except OperationalError as e:
            logger.warning(f"Transaction aborted by the database: {e}")
            raise RetryableError(
                "Database is busy, retry later",
                details={'reason': str(e)}
            ) from e

    # =========================================================================
    # Directory
    # =========================================================================

    def get_patient(self, patient_id: Any) -> Optional[Patient]:
        return _get_or_none(Patient.objects.all(), patient_id)

    def get_service(self, service_id: Any) -> Optional[Service]:
        return _get_or_none(Service.objects.all(), service_id)

    def get_staff(self, staff_id: Any) -> Optional[StaffMember]:
        return _get_or_none(StaffMember.objects.all(), staff_id)

    def get_room(self, room_id: Any) -> Optional[Room]:
        return _get_or_none(Room.objects.all(), room_id)

    def list_active_staff(self) -> List[StaffMember]:
        return list(StaffMember.objects.filter(is_active=True))

    def list_active_rooms(self) -> List[Room]:
        return list(Room.objects.filter(is_active=True))

    def get_staff_schedule(self, staff_id: Any, day_of_week: int) -> Optional[StaffSchedule]:
        return StaffSchedule.objects.filter(
            staff_id=staff_id,
            day_of_week=day_of_week,
            is_active=True
        ).order_by('start_time').first()

    def list_staff_schedules(self, day_of_week: int) -> List[StaffSchedule]:
        return list(
            StaffSchedule.objects.filter(day_of_week=day_of_week, is_active=True).order_by('start_time')
        )

    # =========================================================================
    # Appointments
    # =========================================================================

    def get_appointment(self, appointment_id: Any, for_update: bool = False) -> Optional[Appointment]:
        queryset = Appointment.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        return _get_or_none(queryset, appointment_id)

    def add_appointment(self, appointment: Appointment) -> Appointment:
        appointment.save(force_insert=True)
        return appointment

    def save_appointment(self, appointment: Appointment) -> Appointment:
        appointment.save()
        return appointment

    def find_overlapping_appointments(
        self,
        slot_date: date,
        start_time: time,
        end_time: time,
        staff_id: Any = None,
        room_id: Any = None,
        exclude_appointment_id: Any = None,
    ) -> List[Appointment]:
        queryset = Appointment.objects.filter(
            date=slot_date,
            start_time__lt=end_time,
            end_time__gt=start_time,
        ).exclude(status=Appointment.Status.CANCELLED)

        resource_filter = Q()
        if staff_id:
            resource_filter |= Q(staff_id=staff_id)
        if room_id:
            resource_filter |= Q(room_id=room_id)
        if resource_filter:
            queryset = queryset.filter(resource_filter)

        if exclude_appointment_id:
            queryset = queryset.exclude(pk=exclude_appointment_id)

        return list(queryset.order_by('start_time'))

    def list_appointments(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        staff_id: Any = None,
        room_id: Any = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[Appointment]:
        queryset = Appointment.objects.all()
        if start_date:
            queryset = queryset.filter(date__gte=start_date)
        if end_date:
            queryset = queryset.filter(date__lte=end_date)
        if staff_id:
            queryset = queryset.filter(staff_id=staff_id)
        if room_id:
            queryset = queryset.filter(room_id=room_id)
        if statuses is not None:
            queryset = queryset.filter(status__in=list(statuses))
        return list(queryset.order_by('date', 'start_time'))

    def count_scheduled_for_item(self, package_item_id: Any) -> int:
        return Appointment.objects.filter(
            package_item_id=package_item_id,
            status=Appointment.Status.SCHEDULED
        ).count()

    # =========================================================================
    # Ledger
    # =========================================================================

    def get_package(self, package_id: Any, for_update: bool = False) -> Optional[Package]:
        queryset = Package.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        return _get_or_none(queryset, package_id)

    def add_package(self, package: Package) -> Package:
        package.save(force_insert=True)
        return package

    def save_package(self, package: Package) -> Package:
        package.save()
        return package

    def list_packages(self, patient_id: Any = None, status: Optional[str] = None) -> List[Package]:
        queryset = Package.objects.all()
        if patient_id:
            queryset = queryset.filter(patient_id=patient_id)
        if status:
            queryset = queryset.filter(status=status)
        return list(queryset)

    def get_package_item(self, package_item_id: Any, for_update: bool = False) -> Optional[PackageItem]:
        queryset = PackageItem.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        return _get_or_none(queryset, package_item_id)

    def list_package_items(self, package_id: Any) -> List[PackageItem]:
        return list(PackageItem.objects.filter(package_id=package_id).order_by('created_at'))

    def add_package_item(self, item: PackageItem) -> PackageItem:
        item.save(force_insert=True)
        return item

    def save_package_item(self, item: PackageItem) -> PackageItem:
        item.save()
        return item

    def add_payment(self, payment: Payment) -> Payment:
        payment.save(force_insert=True)
        return payment

    def list_payments(self, package_id: Any) -> List[Payment]:
        return list(Payment.objects.filter(package_id=package_id).order_by('created_at'))

    def total_paid(self, package_id: Any) -> int:
        total = Payment.objects.filter(package_id=package_id).aggregate(total=Sum('amount_cents'))['total']
        return total or 0

    def total_revenue(self, patient_id: Any = None) -> int:
        queryset = Payment.objects.all()
        if patient_id:
            queryset = queryset.filter(package__patient_id=patient_id)
        return queryset.aggregate(total=Sum('amount_cents'))['total'] or 0
