# apps/core/repositories/base.py
"""
Storage interface of the booking engine and the ledger.

Services receive a repository instead of reaching for the ORM, so the
same business rules run against PostgreSQL in production and an
in-memory store in unit tests.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, time
from typing import Any, Iterable, List, Optional

from ..locks import KeyedLockManager
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


class ClinicRepository(ABC):
    """Abstract storage for directory lookups, appointments and the ledger."""

    locks: KeyedLockManager

    # =========================================================================
    # Transactions
    # =========================================================================

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """All-or-nothing unit of work; storage timeouts become RetryableError."""

    # =========================================================================
    # Directory
    # =========================================================================

    @abstractmethod
    def get_patient(self, patient_id: Any) -> Optional[Patient]:
        ...

    @abstractmethod
    def get_service(self, service_id: Any) -> Optional[Service]:
        ...

    @abstractmethod
    def get_staff(self, staff_id: Any) -> Optional[StaffMember]:
        ...

    @abstractmethod
    def get_room(self, room_id: Any) -> Optional[Room]:
        ...

    @abstractmethod
    def list_active_staff(self) -> List[StaffMember]:
        ...

    @abstractmethod
    def list_active_rooms(self) -> List[Room]:
        ...

    @abstractmethod
    def get_staff_schedule(self, staff_id: Any, day_of_week: int) -> Optional[StaffSchedule]:
        """First active schedule entry of the staff member for the weekday."""

    @abstractmethod
    def list_staff_schedules(self, day_of_week: int) -> List[StaffSchedule]:
        """All active schedule entries for the weekday."""

    # =========================================================================
    # Appointments
    # =========================================================================

    @abstractmethod
    def get_appointment(self, appointment_id: Any, for_update: bool = False) -> Optional[Appointment]:
        ...

    @abstractmethod
    def add_appointment(self, appointment: Appointment) -> Appointment:
        ...

    @abstractmethod
    def save_appointment(self, appointment: Appointment) -> Appointment:
        ...

    @abstractmethod
    def find_overlapping_appointments(
        self,
        slot_date: date,
        start_time: time,
        end_time: time,
        staff_id: Any = None,
        room_id: Any = None,
        exclude_appointment_id: Any = None,
    ) -> List[Appointment]:
        """
        Non-cancelled appointments whose interval overlaps ``[start, end)``.

        With ``staff_id`` and/or ``room_id`` only appointments of that staff
        member OR that room are returned; with neither, every resource counts.
        """

    @abstractmethod
    def list_appointments(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        staff_id: Any = None,
        room_id: Any = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[Appointment]:
        """Appointments ordered by date and start time."""

    @abstractmethod
    def count_scheduled_for_item(self, package_item_id: Any) -> int:
        """SCHEDULED appointments holding a session of the package item."""

    # =========================================================================
    # Ledger
    # =========================================================================

    @abstractmethod
    def get_package(self, package_id: Any, for_update: bool = False) -> Optional[Package]:
        ...

    @abstractmethod
    def add_package(self, package: Package) -> Package:
        ...

    @abstractmethod
    def save_package(self, package: Package) -> Package:
        ...

    @abstractmethod
    def list_packages(self, patient_id: Any = None, status: Optional[str] = None) -> List[Package]:
        ...

    @abstractmethod
    def get_package_item(self, package_item_id: Any, for_update: bool = False) -> Optional[PackageItem]:
        ...

    @abstractmethod
    def list_package_items(self, package_id: Any) -> List[PackageItem]:
        ...

    @abstractmethod
    def add_package_item(self, item: PackageItem) -> PackageItem:
        ...

    @abstractmethod
    def save_package_item(self, item: PackageItem) -> PackageItem:
        ...

    @abstractmethod
    def add_payment(self, payment: Payment) -> Payment:
        ...

    @abstractmethod
    def list_payments(self, package_id: Any) -> List[Payment]:
        ...

    @abstractmethod
    def total_paid(self, package_id: Any) -> int:
        """Sum of payment amounts of a package, in minor units."""

    @abstractmethod
    def total_revenue(self, patient_id: Any = None) -> int:
        """Sum of all payment amounts, optionally of one patient's packages."""
