# apps/core/services/exceptions.py
"""
Clinic Service Exceptions

Custom exceptions for the booking engine and the package ledger.
Retryable errors (a lost booking race, a lock or transaction timeout) are
flagged so callers can distinguish them from terminal failures.
"""

from typing import Any, Dict, List, Optional


class ClinicServiceError(Exception):
    """Base exception for clinic service errors."""

    status_code = 400
    retryable = False

    def __init__(
        self,
        message: str,
        code: str = "CLINIC_SERVICE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(ClinicServiceError):
    """Raised for malformed input, before any storage access."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class ScheduleViolationError(ValidationError):
    """Raised when a slot falls outside the staff member's working hours."""

    def __init__(self, staff_id: Any, message: str):
        super().__init__(message, field="start_time", details={"staff_id": str(staff_id)})
        self.code = "OUTSIDE_WORKING_HOURS"
        self.staff_id = staff_id


class NotFoundError(ClinicServiceError):
    """Raised when a referenced record does not exist."""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any):
        message = f"{resource_type} with ID '{resource_id}' not found"
        super().__init__(
            message,
            "NOT_FOUND",
            {"resource_type": resource_type, "resource_id": str(resource_id)}
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class BookingConflictError(ClinicServiceError):
    """Raised when the requested slot is already taken."""

    status_code = 409
    retryable = True

    def __init__(self, conflicts: List[Dict[str, Any]], message: Optional[str] = None):
        if not message:
            message = f"Conflicts detected: {', '.join(c['message'] for c in conflicts)}"
        super().__init__(message, "BOOKING_CONFLICT", {"conflicts": conflicts})
        self.conflicts = conflicts


class InvalidTransitionError(ClinicServiceError):
    """Raised for a status change the state machine does not allow."""

    status_code = 409

    def __init__(
        self,
        current_state: str,
        target_state: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not message:
            message = f"Cannot transition from '{current_state}' to '{target_state}'"
        details = details or {}
        details.update({
            "current_state": current_state,
            "target_state": target_state,
        })
        super().__init__(message, "INVALID_TRANSITION", details)
        self.current_state = current_state
        self.target_state = target_state


class SessionOverrunError(ClinicServiceError):
    """Raised when a package item has no session left to use or reserve."""

    status_code = 422

    def __init__(self, package_item_id: Any, session_count: int, used_count: int):
        super().__init__(
            f"Package item '{package_item_id}' has no remaining sessions "
            f"({used_count}/{session_count} used)",
            "SESSION_OVERRUN",
            {
                "package_item_id": str(package_item_id),
                "session_count": session_count,
                "used_count": used_count,
            }
        )
        self.package_item_id = package_item_id


class OverpaymentError(ClinicServiceError):
    """Raised when a payment exceeds the remaining balance."""

    status_code = 422

    def __init__(self, amount_cents: int, remaining_cents: int, package_id: Any = None):
        super().__init__(
            f"Payment of {amount_cents} exceeds remaining balance of {remaining_cents}",
            "OVERPAYMENT",
            {
                "package_id": str(package_id) if package_id else None,
                "amount_cents": amount_cents,
                "remaining_cents": remaining_cents,
            }
        )
        self.amount_cents = amount_cents
        self.remaining_cents = remaining_cents


class RetryableError(ClinicServiceError):
    """Raised when a lock or transaction could not be obtained in time."""

    status_code = 503
    retryable = True

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "RETRYABLE", details)


class BatchBookingError(ClinicServiceError):
    """
    Raised when a batch booking is rejected as a whole.

    ``errors`` lists every failing slot as
    ``{'index', 'code', 'message', 'retryable', 'details'}``.
    Nothing from the batch was written.
    """

    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__(
            f"Batch rejected: {len(errors)} slot(s) failed",
            "BATCH_REJECTED",
            {"errors": errors}
        )
        self.errors = errors
        self.retryable = bool(errors) and all(e.get('retryable') for e in errors)
        self.status_code = 409 if self.retryable else 422

    @staticmethod
    def describe(index: int, error: ClinicServiceError) -> Dict[str, Any]:
        return {
            "index": index,
            "code": error.code,
            "message": error.message,
            "retryable": error.retryable,
            "details": error.details,
        }
