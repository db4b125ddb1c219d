# apps/core/services/__init__.py
"""
Clinic Service Business Logic Services

This module exports the booking engine, the package ledger and their
exceptions.
"""

from .exceptions import (
    ClinicServiceError,
    ValidationError,
    ScheduleViolationError,
    NotFoundError,
    BookingConflictError,
    InvalidTransitionError,
    SessionOverrunError,
    OverpaymentError,
    RetryableError,
    BatchBookingError,
)
from .scheduling import TimeSlot
from .status import derive_payment_status, derive_package_status
from .pricing_service import PricingAllocator, PurchaseLine, allocate_proportionally
from .availability_service import AvailabilityService, AvailabilityResult
from .ledger_service import LedgerService
from .booking_service import BookingService

__all__ = [
    # Exceptions
    'ClinicServiceError',
    'ValidationError',
    'ScheduleViolationError',
    'NotFoundError',
    'BookingConflictError',
    'InvalidTransitionError',
    'SessionOverrunError',
    'OverpaymentError',
    'RetryableError',
    'BatchBookingError',
    # Value types and pure rules
    'TimeSlot',
    'derive_payment_status',
    'derive_package_status',
    'PricingAllocator',
    'PurchaseLine',
    'allocate_proportionally',
    # Services
    'AvailabilityService',
    'AvailabilityResult',
    'LedgerService',
    'BookingService',
]
