# apps/core/services/booking_service.py
"""
Booking Service

Creates appointments without double-booking staff or rooms and drives the
appointment state machine. Every write takes the per-day staff and room
locks (plus the package lock) before re-checking availability inside the
transaction that performs the insert or update.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from django.utils import timezone

from ..conf import clinic_setting
from ..events import EventType, audit_publisher, snapshot
from ..locks import package_key, room_key, staff_key
from ..models import Appointment, Package
from .availability_service import AvailabilityService
from .exceptions import (
    BatchBookingError,
    BookingConflictError,
    ClinicServiceError,
    InvalidTransitionError,
    NotFoundError,
    SessionOverrunError,
    ValidationError,
)
from .ledger_service import LedgerService
from .pricing_service import allocate_proportionally
from .scheduling import TimeSlot, parse_date
from .validation import as_uuid, optional_uuid, require_actor

logger = logging.getLogger(__name__)


@dataclass
class BookingRequest:
    """A validated booking request, resolved against the directories."""

    staff_id: uuid.UUID
    room_id: uuid.UUID
    service_id: uuid.UUID
    package_id: uuid.UUID
    package_item_id: uuid.UUID
    patient_id: uuid.UUID
    slot: TimeSlot
    notes: str = ''

    @property
    def lock_keys(self) -> List[str]:
        return [
            staff_key(self.staff_id, self.slot.date),
            room_key(self.room_id, self.slot.date),
            package_key(self.package_id),
        ]


class BookingService:
    """
    Service for appointment booking.

    Handles single and batch booking, rescheduling and the
    SCHEDULED -> COMPLETED / CANCELLED / NO_SHOW transitions.
    """

    def __init__(self, repository=None, audit=None, availability=None, ledger=None):
        if repository is None:
            from ..repositories import DjangoClinicRepository
            repository = DjangoClinicRepository()
        self.repository = repository
        self.audit = audit or audit_publisher
        self.availability = availability or AvailabilityService(repository)
        self.ledger = ledger or LedgerService(repository, self.audit)

    # ==========================================================================
    # Lookups
    # ==========================================================================

    def get_appointment(self, appointment_id: Any) -> Appointment:
        appointment = self.repository.get_appointment(as_uuid(appointment_id, 'appointment_id'))
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    def get_calendar(
        self,
        start_date: Any,
        end_date: Any,
        staff_id: Any = None,
        room_id: Any = None
    ) -> List[Appointment]:
        """Non-cancelled appointments in a date range."""
        start_date, end_date = parse_date(start_date), parse_date(end_date)
        if end_date < start_date:
            raise ValidationError("End date must not be before start date", field='end_date')
        return self.repository.list_appointments(
            start_date=start_date,
            end_date=end_date,
            staff_id=optional_uuid(staff_id, 'staff_id'),
            room_id=optional_uuid(room_id, 'room_id'),
            statuses=Appointment.get_occupying_statuses(),
        )

    # ==========================================================================
    # Booking
    # ==========================================================================

    def create_appointment(
        self,
        staff_id: Any,
        room_id: Any,
        date: Any,
        start_time: Any,
        service_id: Any,
        package_item_id: Any,
        actor_id: Any,
        patient_id: Any = None,
        notes: str = '',
        payment: Optional[Dict[str, Any]] = None
    ) -> Appointment:
        """
        Book one appointment.

        Args:
            staff_id: Staff member performing the treatment
            room_id: Room of the treatment
            date: Appointment date
            start_time: Start time; the end follows from the service duration
            service_id: Service being booked
            package_item_id: Package item the session is taken from
            actor_id: Caller the booking is attributed to
            patient_id: Optional; must own the package when given
            notes: Free text
            payment: Optional ``{'amount_cents', 'method', 'paid_sessions_count'?,
                'notes'?}`` recorded on the package in the same transaction

        Returns:
            The SCHEDULED appointment

        Raises:
            ValidationError: Malformed input, inactive records, outside
                working hours or an inactive package
            NotFoundError: Unknown staff, room, service or package item
            BookingConflictError: Staff member or room already booked
            SessionOverrunError: No unreserved session left on the item
            OverpaymentError: Payment above the package balance; nothing is booked
            RetryableError: Locks or transaction timed out
        """
        actor = require_actor(actor_id)
        request = self._prepare(
            staff_id=staff_id,
            room_id=room_id,
            date=date,
            start_time=start_time,
            service_id=service_id,
            package_item_id=package_item_id,
            patient_id=patient_id,
            notes=notes,
        )
        payment_request = None
        if payment:
            payment_request = self.ledger.prepare_payment(
                payment,
                default_sessions=1,
                default_notes=f"Payment for appointment on {request.slot.date.isoformat()}"
            )

        stored_payment = None
        with self.repository.locks.hold(request.lock_keys):
            with self.repository.atomic():
                self._check_bookable(request)
                appointment = self.repository.add_appointment(self._build_appointment(request, actor))
                if payment_request:
                    stored_payment = self.ledger.apply_payment(request.package_id, payment_request, actor)

        self.audit.publish(
            EventType.APPOINTMENT_CREATED, 'appointment', appointment.id, actor,
            after=snapshot(appointment)
        )
        if stored_payment is not None:
            self.ledger.publish_payment(stored_payment, actor)
        logger.info(
            f"Created appointment {appointment.id} for {request.slot}",
            extra={
                'appointment_id': str(appointment.id),
                'staff_id': str(request.staff_id),
                'room_id': str(request.room_id),
            }
        )
        return appointment

    def create_multiple_appointments(
        self,
        slots: List[Dict[str, Any]],
        actor_id: Any,
        payment: Optional[Dict[str, Any]] = None
    ) -> List[Appointment]:
        """
        Book several appointments as one all-or-nothing unit.

        Each slot is a dict with the arguments of ``create_appointment``.
        Slots are checked against stored appointments, against each other
        and against the sessions left on their package items. An optional
        ``payment`` covers the batch and needs every slot on one package.

        Raises:
            BatchBookingError: One entry per failing slot; nothing was written
            OverpaymentError: Payment above the package balance; nothing was written
        """
        actor = require_actor(actor_id)
        if not slots:
            raise ValidationError("At least one slot is required", field='slots')

        errors = []
        requests = []
        for index, slot in enumerate(slots):
            try:
                requests.append((index, self._prepare(
                    staff_id=slot.get('staff_id'),
                    room_id=slot.get('room_id'),
                    date=slot.get('date'),
                    start_time=slot.get('start_time'),
                    service_id=slot.get('service_id'),
                    package_item_id=slot.get('package_item_id'),
                    patient_id=slot.get('patient_id'),
                    notes=slot.get('notes') or '',
                )))
            except ClinicServiceError as e:
                errors.append(BatchBookingError.describe(index, e))
        if errors:
            raise BatchBookingError(errors)

        payment_request = None
        if payment:
            package_ids = {request.package_id for _, request in requests}
            if len(package_ids) > 1:
                raise ValidationError("A batch payment needs every slot on one package", field='payment')
            payment_request = self.ledger.prepare_payment(
                payment,
                default_sessions=len(requests),
                default_notes=f"Payment for {len(requests)} appointments"
            )

        stored_payment = None
        lock_keys = [key for _, request in requests for key in request.lock_keys]
        with self.repository.locks.hold(lock_keys):
            with self.repository.atomic():
                accepted = []
                for index, request in requests:
                    try:
                        self._check_bookable(request, pending=[r for _, r in accepted])
                    except ClinicServiceError as e:
                        errors.append(BatchBookingError.describe(index, e))
                        continue
                    accepted.append((index, request))
                if errors:
                    raise BatchBookingError(errors)

                appointments = [
                    self.repository.add_appointment(self._build_appointment(request, actor))
                    for _, request in accepted
                ]
                if payment_request:
                    stored_payment = self.ledger.apply_payment(accepted[0][1].package_id, payment_request, actor)

        for appointment in appointments:
            self.audit.publish(
                EventType.APPOINTMENT_CREATED, 'appointment', appointment.id, actor,
                after=snapshot(appointment), metadata={'batch_size': len(appointments)}
            )
        if stored_payment is not None:
            self.ledger.publish_payment(stored_payment, actor)
        logger.info(f"Created {len(appointments)} appointments in one batch")
        return appointments

    def reschedule_appointment(
        self,
        appointment_id: Any,
        actor_id: Any,
        date: Any = None,
        start_time: Any = None,
        staff_id: Any = None,
        room_id: Any = None
    ) -> Appointment:
        """Move a scheduled appointment to another slot, staff member or room."""
        actor = require_actor(actor_id)
        current = self.get_appointment(appointment_id)
        self._require_scheduled(current, Appointment.Status.SCHEDULED, "Only scheduled appointments can be rescheduled")

        slot = TimeSlot(
            parse_date(date) if date else current.date,
            start_time or current.start_time,
            current.duration_minutes,
        )
        new_staff_id = as_uuid(staff_id, 'staff_id') if staff_id else current.staff_id
        new_room_id = as_uuid(room_id, 'room_id') if room_id else current.room_id
        self._require_active_staff(new_staff_id)
        self._require_active_room(new_room_id)
        self.availability.validate_staff_schedule(new_staff_id, slot)

        lock_keys = self._slot_keys(current) + [
            staff_key(new_staff_id, slot.date),
            room_key(new_room_id, slot.date),
        ]
        with self.repository.locks.hold(lock_keys):
            with self.repository.atomic():
                appointment = self._load_for_update(current.id)
                self._require_scheduled(appointment, Appointment.Status.SCHEDULED, "Only scheduled appointments can be rescheduled")

                conflicts = self.availability.find_conflicts(
                    slot, new_staff_id, new_room_id, exclude_appointment_id=appointment.id
                )
                if conflicts:
                    raise BookingConflictError(conflicts)

                before = snapshot(appointment)
                appointment.date = slot.date
                appointment.start_time = slot.start_time
                appointment.end_time = slot.end_time
                appointment.staff_id = new_staff_id
                appointment.room_id = new_room_id
                appointment.updated_by = actor
                self.repository.save_appointment(appointment)

        self.audit.publish(
            EventType.APPOINTMENT_RESCHEDULED, 'appointment', appointment.id, actor,
            before=before, after=snapshot(appointment)
        )
        logger.info(f"Rescheduled appointment {appointment.id} to {slot}")
        return appointment

    # ==========================================================================
    # State transitions
    # ==========================================================================

    def cancel_appointment(self, appointment_id: Any, actor_id: Any, reason: str = '') -> Appointment:
        """
        Cancel an appointment.

        Cancelling a CANCELLED appointment is a no-op; COMPLETED and NO_SHOW
        cannot be cancelled.
        """
        actor = require_actor(actor_id)
        current = self.get_appointment(appointment_id)
        if current.status == Appointment.Status.CANCELLED:
            return current

        with self.repository.locks.hold(self._slot_keys(current)):
            with self.repository.atomic():
                appointment = self._load_for_update(current.id)
                if appointment.status == Appointment.Status.CANCELLED:
                    return appointment
                self._require_scheduled(appointment, Appointment.Status.CANCELLED)

                before = snapshot(appointment)
                appointment.status = Appointment.Status.CANCELLED
                appointment.cancelled_at = timezone.now()
                appointment.cancelled_by = actor
                appointment.cancellation_reason = reason or ''
                appointment.updated_by = actor
                self.repository.save_appointment(appointment)

        self.audit.publish(
            EventType.APPOINTMENT_CANCELLED, 'appointment', appointment.id, actor,
            before=before, after=snapshot(appointment)
        )
        logger.info(f"Cancelled appointment {appointment.id}")
        return appointment

    def bulk_cancel_appointments(
        self,
        appointment_ids: Iterable[Any],
        actor_id: Any,
        reason: str = ''
    ) -> Dict[str, List]:
        """Cancel each appointment independently; failures are reported, not raised."""
        require_actor(actor_id)
        cancelled = []
        skipped = []
        for appointment_id in appointment_ids:
            try:
                cancelled.append(self.cancel_appointment(appointment_id, actor_id, reason))
            except ClinicServiceError as e:
                skipped.append({'id': str(appointment_id), 'error': e.to_dict()})
        return {'cancelled': cancelled, 'skipped': skipped}

    def mark_appointments_paid(
        self,
        appointment_ids: Iterable[Any],
        amount_cents: Any,
        method: Any,
        actor_id: Any,
        notes: str = ''
    ) -> Dict[str, Any]:
        """
        Record one payment covering a set of appointments.

        Cancelled appointments are ignored. The rest are grouped by package
        and each package receives one payment, with the amount split in
        proportion to the number of appointments in the group.

        Returns:
            ``{'payments': [...], 'appointment_count': n}``

        Raises:
            NotFoundError: Unknown appointment id
            ValidationError: No ids, or every appointment is cancelled
            OverpaymentError: A share exceeds its package balance; nothing is recorded
        """
        actor = require_actor(actor_id)
        ids = list(dict.fromkeys(as_uuid(value, 'appointment_ids') for value in appointment_ids or []))
        if not ids:
            raise ValidationError("At least one appointment is required", field='appointment_ids')
        self.ledger.prepare_payment({'amount_cents': amount_cents, 'method': method})

        groups: Dict[uuid.UUID, List[Appointment]] = {}
        for appointment_id in ids:
            appointment = self.get_appointment(appointment_id)
            if appointment.status == Appointment.Status.CANCELLED:
                continue
            groups.setdefault(appointment.package_id, []).append(appointment)
        if not groups:
            raise ValidationError("All appointments are cancelled", field='appointment_ids')

        package_ids = list(groups)
        shares = allocate_proportionally(amount_cents, [len(groups[package_id]) for package_id in package_ids])

        payments = []
        with self.repository.locks.hold([package_key(package_id) for package_id in package_ids]):
            with self.repository.atomic():
                for package_id, share in zip(package_ids, shares):
                    if share <= 0:
                        continue
                    count = len(groups[package_id])
                    request = self.ledger.prepare_payment(
                        {'amount_cents': share, 'method': method, 'paid_sessions_count': count},
                        default_notes=notes or f"Payment for {count} appointments"
                    )
                    payments.append(self.ledger.apply_payment(package_id, request, actor))

        for payment in payments:
            self.ledger.publish_payment(payment, actor)
        appointment_count = sum(len(group) for group in groups.values())
        logger.info(f"Marked {appointment_count} appointments paid across {len(payments)} packages")
        return {'payments': payments, 'appointment_count': appointment_count}

    def complete_appointment(self, appointment_id: Any, actor_id: Any) -> Appointment:
        """
        Complete an appointment and consume its package session.

        When the ledger rejects the session the appointment stays SCHEDULED.
        """
        return self._finish(appointment_id, actor_id, Appointment.Status.COMPLETED, consume_session=True)

    def mark_no_show(self, appointment_id: Any, actor_id: Any) -> Appointment:
        """Record that the patient did not come."""
        return self._finish(
            appointment_id, actor_id, Appointment.Status.NO_SHOW,
            consume_session=clinic_setting('NO_SHOW_CONSUMES_SESSION')
        )

    def _finish(self, appointment_id: Any, actor_id: Any, target: str, consume_session: bool) -> Appointment:
        actor = require_actor(actor_id)
        current = self.get_appointment(appointment_id)
        self._require_scheduled(current, target)

        lock_keys = self._slot_keys(current) + [package_key(current.package_id)]
        try:
            with self.repository.locks.hold(lock_keys):
                with self.repository.atomic():
                    appointment = self._load_for_update(current.id)
                    self._require_scheduled(appointment, target)

                    before = snapshot(appointment)
                    if consume_session:
                        self.ledger.use_session(appointment.package_item_id)
                    appointment.status = target
                    if target == Appointment.Status.COMPLETED:
                        appointment.completed_at = timezone.now()
                        appointment.completed_by = actor
                    appointment.updated_by = actor
                    self.repository.save_appointment(appointment)
        except SessionOverrunError as e:
            self.ledger.publish_overrun(e, actor, appointment_id=current.id)
            raise

        event_type = (
            EventType.APPOINTMENT_COMPLETED if target == Appointment.Status.COMPLETED
            else EventType.APPOINTMENT_NO_SHOW
        )
        self.audit.publish(
            event_type, 'appointment', appointment.id, actor,
            before=before, after=snapshot(appointment),
            metadata={'session_consumed': bool(consume_session)}
        )
        logger.info(f"Appointment {appointment.id} is now {target}")
        return appointment

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _prepare(
        self,
        staff_id: Any,
        room_id: Any,
        date: Any,
        start_time: Any,
        service_id: Any,
        package_item_id: Any,
        patient_id: Any = None,
        notes: str = ''
    ) -> BookingRequest:
        """Validate a booking request and resolve its references. Reads only."""
        staff_id = as_uuid(staff_id, 'staff_id')
        room_id = as_uuid(room_id, 'room_id')
        service_id = as_uuid(service_id, 'service_id')
        package_item_id = as_uuid(package_item_id, 'package_item_id')
        patient_id = optional_uuid(patient_id, 'patient_id')
        if date is None or start_time is None:
            raise ValidationError("Date and start time are required", field='start_time')
        slot_date = parse_date(date)

        service = self.repository.get_service(service_id)
        if service is None:
            raise NotFoundError("Service", service_id)
        if not service.is_active:
            raise ValidationError(f"Service '{service.name}' is not active", field='service_id')
        slot = TimeSlot(slot_date, start_time, service.duration_minutes)

        self._require_active_staff(staff_id)
        self._require_active_room(room_id)

        item = self.repository.get_package_item(package_item_id)
        if item is None:
            raise NotFoundError("PackageItem", package_item_id)
        if item.service_id != service_id:
            raise ValidationError("Package item does not cover this service", field='package_item_id')
        package = self.repository.get_package(item.package_id)
        if package is None:
            raise NotFoundError("Package", item.package_id)
        if patient_id and package.patient_id != patient_id:
            raise ValidationError("Package does not belong to this patient", field='patient_id')

        self.availability.validate_staff_schedule(staff_id, slot)

        return BookingRequest(
            staff_id=staff_id,
            room_id=room_id,
            service_id=service_id,
            package_id=package.id,
            package_item_id=item.id,
            patient_id=package.patient_id,
            slot=slot,
            notes=notes or '',
        )

    def _check_bookable(self, request: BookingRequest, pending: Optional[List[BookingRequest]] = None) -> None:
        """
        Re-check a request inside the booking transaction.

        ``pending`` holds requests accepted earlier in the same batch and
        not yet written.
        """
        pending = pending or []

        package = self.repository.get_package(request.package_id, for_update=True)
        if package is None:
            raise NotFoundError("Package", request.package_id)
        if package.status != Package.Status.ACTIVE:
            raise ValidationError(
                f"Package is {package.status}, only active packages can be booked",
                field='package_item_id'
            )

        conflicts = self.availability.find_conflicts(request.slot, request.staff_id, request.room_id)
        for other in pending:
            if not other.slot.overlaps(request.slot):
                continue
            if other.staff_id == request.staff_id:
                conflicts.append({
                    'type': 'staff',
                    'resource_id': str(request.staff_id),
                    'appointment_id': None,
                    'message': f"Staff already booked {other.slot} in this batch",
                })
            if other.room_id == request.room_id:
                conflicts.append({
                    'type': 'room',
                    'resource_id': str(request.room_id),
                    'appointment_id': None,
                    'message': f"Room already booked {other.slot} in this batch",
                })
        if conflicts:
            raise BookingConflictError(conflicts)

        item = self.repository.get_package_item(request.package_item_id, for_update=True)
        reserved = (
            item.completed_count
            + self.repository.count_scheduled_for_item(item.id)
            + sum(1 for other in pending if other.package_item_id == item.id)
        )
        if reserved + 1 > item.session_count:
            raise SessionOverrunError(item.id, item.session_count, reserved)

    @staticmethod
    def _build_appointment(request: BookingRequest, actor: uuid.UUID) -> Appointment:
        return Appointment(
            id=uuid.uuid4(),
            patient_id=request.patient_id,
            package_id=request.package_id,
            package_item_id=request.package_item_id,
            service_id=request.service_id,
            staff_id=request.staff_id,
            room_id=request.room_id,
            date=request.slot.date,
            start_time=request.slot.start_time,
            end_time=request.slot.end_time,
            duration_minutes=request.slot.duration_minutes,
            status=Appointment.Status.SCHEDULED,
            notes=request.notes,
            created_by=actor,
        )

    def _load_for_update(self, appointment_id: uuid.UUID) -> Appointment:
        appointment = self.repository.get_appointment(appointment_id, for_update=True)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    @staticmethod
    def _slot_keys(appointment: Appointment) -> List[str]:
        return [
            staff_key(appointment.staff_id, appointment.date),
            room_key(appointment.room_id, appointment.date),
        ]

    @staticmethod
    def _require_scheduled(appointment: Appointment, target: str, message: Optional[str] = None) -> None:
        if appointment.status != Appointment.Status.SCHEDULED:
            raise InvalidTransitionError(
                appointment.status, target, message=message,
                details={'appointment_id': str(appointment.id)}
            )

    def _require_active_staff(self, staff_id: uuid.UUID) -> None:
        staff = self.repository.get_staff(staff_id)
        if staff is None:
            raise NotFoundError("StaffMember", staff_id)
        if not staff.is_active:
            raise ValidationError("Staff member is not active", field='staff_id')

    def _require_active_room(self, room_id: uuid.UUID) -> None:
        room = self.repository.get_room(room_id)
        if room is None:
            raise NotFoundError("Room", room_id)
        if not room.is_active:
            raise ValidationError("Room is not active", field='room_id')
