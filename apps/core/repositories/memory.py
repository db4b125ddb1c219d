# apps/core/repositories/memory.py
"""
In-memory repository.

Holds unsaved model instances in dictionaries and hands out copies, so a
change is only visible after it was saved, like with a database.
``atomic()`` serializes units of work on one re-entrant lock and restores
a snapshot when the block raises.
"""

import copy
import threading
import uuid
from contextlib import contextmanager
from datetime import date, time
from typing import Any, Dict, Iterable, List, Optional

from django.utils import timezone

from ..locks import ThreadLockManager
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
from .base import ClinicRepository

TABLES = (
    'patients', 'services', 'staff', 'schedules', 'rooms',
    'appointments', 'packages', 'package_items', 'payments',
)


def _key(value: Any) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class InMemoryClinicRepository(ClinicRepository):
    """Repository keeping everything in process memory."""

    def __init__(self, locks=None):
        self.locks = locks or ThreadLockManager()
        self._tables: Dict[str, Dict[uuid.UUID, Any]] = {name: {} for name in TABLES}
        self._mutex = threading.RLock()
        self._depth = 0

    @contextmanager
    def atomic(self):
        with self._mutex:
            snapshot = copy.deepcopy(self._tables) if self._depth == 0 else None
            self._depth += 1
            try:
                yield
            except BaseException:
                if snapshot is not None:
                    self._tables = snapshot
                raise
            finally:
                self._depth -= 1

    def _get(self, table: str, pk: Any):
        with self._mutex:
            obj = self._tables[table].get(_key(pk))
            return copy.copy(obj) if obj is not None else None

    def _put(self, table: str, obj, insert: bool = False):
        with self._mutex:
            now = timezone.now()
            if insert and getattr(obj, 'created_at', None) is None and hasattr(obj, 'created_at'):
                obj.created_at = now
            if hasattr(obj, 'updated_at'):
                obj.updated_at = now
            if insert and obj.pk in self._tables[table]:
                raise ValueError(f"Duplicate primary key {obj.pk} in {table}")
            self._tables[table][obj.pk] = copy.copy(obj)
            return obj

    def _all(self, table: str) -> List[Any]:
        with self._mutex:
            return [copy.copy(obj) for obj in self._tables[table].values()]

    # =========================================================================
    # Directory (seeding helpers for tests)
    # =========================================================================

    def add_patient(self, patient: Patient) -> Patient:
        return self._put('patients', patient, insert=True)

    def add_service(self, service: Service) -> Service:
        return self._put('services', service, insert=True)

    def add_staff(self, staff: StaffMember) -> StaffMember:
        return self._put('staff', staff, insert=True)

    def add_staff_schedule(self, schedule: StaffSchedule) -> StaffSchedule:
        return self._put('schedules', schedule, insert=True)

    def add_room(self, room: Room) -> Room:
        return self._put('rooms', room, insert=True)

    # =========================================================================
    # Directory
    # =========================================================================

    def get_patient(self, patient_id: Any) -> Optional[Patient]:
        return self._get('patients', patient_id)

    def get_service(self, service_id: Any) -> Optional[Service]:
        return self._get('services', service_id)

    def get_staff(self, staff_id: Any) -> Optional[StaffMember]:
        return self._get('staff', staff_id)

    def get_room(self, room_id: Any) -> Optional[Room]:
        return self._get('rooms', room_id)

    def list_active_staff(self) -> List[StaffMember]:
        return [staff for staff in self._all('staff') if staff.is_active]

    def list_active_rooms(self) -> List[Room]:
        return [room for room in self._all('rooms') if room.is_active]

    def list_staff_schedules(self, day_of_week: int) -> List[StaffSchedule]:
        schedules = [
            schedule for schedule in self._all('schedules')
            if schedule.day_of_week == day_of_week and schedule.is_active
        ]
        return sorted(schedules, key=lambda s: s.start_time)

    def get_staff_schedule(self, staff_id: Any, day_of_week: int) -> Optional[StaffSchedule]:
        staff_id = _key(staff_id)
        for schedule in self.list_staff_schedules(day_of_week):
            if schedule.staff_id == staff_id:
                return schedule
        return None

    # =========================================================================
    # Appointments
    # =========================================================================

    def get_appointment(self, appointment_id: Any, for_update: bool = False) -> Optional[Appointment]:
        return self._get('appointments', appointment_id)

    def add_appointment(self, appointment: Appointment) -> Appointment:
        return self._put('appointments', appointment, insert=True)

    def save_appointment(self, appointment: Appointment) -> Appointment:
        return self._put('appointments', appointment)

    def find_overlapping_appointments(
        self,
        slot_date: date,
        start_time: time,
        end_time: time,
        staff_id: Any = None,
        room_id: Any = None,
        exclude_appointment_id: Any = None,
    ) -> List[Appointment]:
        staff_id, room_id = _key(staff_id), _key(room_id)
        exclude_appointment_id = _key(exclude_appointment_id)
        matches = []
        for appointment in self._all('appointments'):
            if appointment.status == Appointment.Status.CANCELLED:
                continue
            if appointment.pk == exclude_appointment_id:
                continue
            if appointment.date != slot_date:
                continue
            if not (appointment.start_time < end_time and start_time < appointment.end_time):
                continue
            if (staff_id or room_id) and not (
                (staff_id and appointment.staff_id == staff_id)
                or (room_id and appointment.room_id == room_id)
            ):
                continue
            matches.append(appointment)
        return sorted(matches, key=lambda a: a.start_time)

    def list_appointments(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        staff_id: Any = None,
        room_id: Any = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[Appointment]:
        staff_id, room_id = _key(staff_id), _key(room_id)
        statuses = set(statuses) if statuses is not None else None
        appointments = [
            a for a in self._all('appointments')
            if (start_date is None or a.date >= start_date)
            and (end_date is None or a.date <= end_date)
            and (staff_id is None or a.staff_id == staff_id)
            and (room_id is None or a.room_id == room_id)
            and (statuses is None or a.status in statuses)
        ]
        return sorted(appointments, key=lambda a: (a.date, a.start_time))

    def count_scheduled_for_item(self, package_item_id: Any) -> int:
        package_item_id = _key(package_item_id)
        return sum(
            1 for a in self._all('appointments')
            if a.package_item_id == package_item_id and a.status == Appointment.Status.SCHEDULED
        )

    # =========================================================================
    # Ledger
    # =========================================================================

    def get_package(self, package_id: Any, for_update: bool = False) -> Optional[Package]:
        return self._get('packages', package_id)

    def add_package(self, package: Package) -> Package:
        return self._put('packages', package, insert=True)

    def save_package(self, package: Package) -> Package:
        return self._put('packages', package)

    def list_packages(self, patient_id: Any = None, status: Optional[str] = None) -> List[Package]:
        patient_id = _key(patient_id)
        packages = [
            p for p in self._all('packages')
            if (patient_id is None or p.patient_id == patient_id)
            and (status is None or p.status == status)
        ]
        return sorted(packages, key=lambda p: p.created_at, reverse=True)

    def get_package_item(self, package_item_id: Any, for_update: bool = False) -> Optional[PackageItem]:
        return self._get('package_items', package_item_id)

    def list_package_items(self, package_id: Any) -> List[PackageItem]:
        package_id = _key(package_id)
        items = [i for i in self._all('package_items') if i.package_id == package_id]
        return sorted(items, key=lambda i: i.created_at)

    def add_package_item(self, item: PackageItem) -> PackageItem:
        return self._put('package_items', item, insert=True)

    def save_package_item(self, item: PackageItem) -> PackageItem:
        if item.completed_count > item.session_count:
            raise ValueError("completed_count cannot exceed session_count")
        return self._put('package_items', item)

    def add_payment(self, payment: Payment) -> Payment:
        if payment.amount_cents <= 0:
            raise ValueError("Payment amount must be positive")
        return self._put('payments', payment, insert=True)

    def list_payments(self, package_id: Any) -> List[Payment]:
        package_id = _key(package_id)
        payments = [p for p in self._all('payments') if p.package_id == package_id]
        return sorted(payments, key=lambda p: p.created_at)

    def total_paid(self, package_id: Any) -> int:
        return sum(payment.amount_cents for payment in self.list_payments(package_id))

    def total_revenue(self, patient_id: Any = None) -> int:
        package_ids = {package.id for package in self.list_packages(patient_id=patient_id)}
        return sum(p.amount_cents for p in self._all('payments') if p.package_id in package_ids)
