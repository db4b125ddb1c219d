# apps/core/models/__init__.py
"""
Clinic Service Models
"""

from .directory import Patient, Service, StaffMember, StaffSchedule, Room
from .package import Package, PackageItem, Payment, PaymentStatus, PaymentMethod
from .appointment import Appointment

__all__ = [
    'Patient',
    'Service',
    'StaffMember',
    'StaffSchedule',
    'Room',
    'Package',
    'PackageItem',
    'Payment',
    'PaymentStatus',
    'PaymentMethod',
    'Appointment',
]
