# apps/core/services/availability_service.py
"""
Availability Service

Answers which staff members and rooms are free for a time slot.
Pure reads: nothing here writes to storage.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Dict, List, Optional

from ..conf import clinic_setting
from ..models import Appointment, Room, StaffMember
from .exceptions import NotFoundError, ScheduleViolationError, ValidationError
from .scheduling import TimeSlot, minutes_of, parse_date, time_from_minutes
from .validation import as_uuid, optional_uuid, positive_int

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityResult:
    """Free staff and rooms for a slot, plus the number of overlapping bookings."""

    slot: TimeSlot
    available_staff: List[StaffMember] = field(default_factory=list)
    available_rooms: List[Room] = field(default_factory=list)
    total_conflicts: int = 0


def describe_conflict(appointment: Appointment, resource: str) -> Dict[str, Any]:
    resource_id = appointment.staff_id if resource == 'staff' else appointment.room_id
    return {
        'type': resource,
        'resource_id': str(resource_id),
        'appointment_id': str(appointment.id),
        'message': (
            f"{resource.capitalize()} already booked "
            f"{appointment.start_time:%H:%M}-{appointment.end_time:%H:%M} on {appointment.date.isoformat()}"
        ),
    }


class AvailabilityService:
    """
    Service for staff and room availability.

    A staff member or room is unavailable for a slot when any of its
    non-cancelled appointments overlaps the half-open interval
    ``[start, end)``. Staff must also be working at that time when
    schedule enforcement is on.
    """

    def __init__(self, repository=None):
        if repository is None:
            from ..repositories import DjangoClinicRepository
            repository = DjangoClinicRepository()
        self.repository = repository

    @property
    def enforce_schedules(self) -> bool:
        return clinic_setting('ENFORCE_STAFF_SCHEDULES')

    def check_availability(
        self,
        slot_date: Any,
        start_time: Any,
        duration_minutes: Optional[int] = None,
        service_id: Any = None,
        exclude_appointment_id: Any = None
    ) -> AvailabilityResult:
        """
        Find free staff and rooms for a slot.

        Args:
            slot_date: Date of the slot
            start_time: Start time of the slot
            duration_minutes: Slot length; defaults to the service duration
            service_id: Optional service the slot is for
            exclude_appointment_id: Appointment to ignore (when rescheduling it)

        Returns:
            AvailabilityResult
        """
        service_id = optional_uuid(service_id, 'service_id')
        exclude_appointment_id = optional_uuid(exclude_appointment_id, 'exclude_appointment_id')
        if duration_minutes is None and service_id is None:
            raise ValidationError("Either a duration or a service is required", field='duration_minutes')
        if duration_minutes is not None:
            positive_int(duration_minutes, 'duration_minutes')
        slot = TimeSlot(parse_date(slot_date), start_time, duration_minutes or 1)

        with self.repository.atomic():
            if service_id:
                service = self.repository.get_service(service_id)
                if service is None:
                    raise NotFoundError("Service", service_id)
                if duration_minutes is None:
                    slot = TimeSlot(slot.date, slot.start_time, service.duration_minutes)

            conflicts = self.repository.find_overlapping_appointments(
                slot.date, slot.start_time, slot.end_time,
                exclude_appointment_id=exclude_appointment_id
            )
            staff = self.repository.list_active_staff()
            rooms = self.repository.list_active_rooms()
            schedules = {}
            if self.enforce_schedules:
                for schedule in self.repository.list_staff_schedules(slot.date.weekday()):
                    schedules.setdefault(schedule.staff_id, schedule)

        busy_staff = {a.staff_id for a in conflicts}
        busy_rooms = {a.room_id for a in conflicts}

        available_staff = [
            member for member in staff
            if member.id not in busy_staff
            and (not self.enforce_schedules or self._schedule_allows(schedules.get(member.id), slot))
        ]
        available_rooms = [room for room in rooms if room.id not in busy_rooms]

        logger.debug(
            f"Availability for {slot}: {len(available_staff)} staff, {len(available_rooms)} rooms",
            extra={'total_conflicts': len(conflicts)}
        )
        return AvailabilityResult(
            slot=slot,
            available_staff=available_staff,
            available_rooms=available_rooms,
            total_conflicts=len(conflicts),
        )

    def find_conflicts(
        self,
        slot: TimeSlot,
        staff_id: Any = None,
        room_id: Any = None,
        exclude_appointment_id: Any = None
    ) -> List[Dict[str, Any]]:
        """
        Conflicts of a slot for one staff member and one room.

        Returns a list of ``{'type', 'resource_id', 'appointment_id', 'message'}``.
        """
        appointments = self.repository.find_overlapping_appointments(
            slot.date, slot.start_time, slot.end_time,
            staff_id=staff_id,
            room_id=room_id,
            exclude_appointment_id=exclude_appointment_id,
        )
        conflicts = []
        for appointment in appointments:
            if staff_id and appointment.staff_id == staff_id:
                conflicts.append(describe_conflict(appointment, 'staff'))
            if room_id and appointment.room_id == room_id:
                conflicts.append(describe_conflict(appointment, 'room'))
        return conflicts

    # ==========================================================================
    # Working hours
    # ==========================================================================

    @staticmethod
    def _schedule_allows(schedule, slot: TimeSlot) -> bool:
        if schedule is None:
            return False
        if not slot.within(schedule.start_time, schedule.end_time):
            return False
        if schedule.has_break and slot.overlaps_range(schedule.break_start_time, schedule.break_end_time):
            return False
        return True

    def validate_staff_schedule(self, staff_id: Any, slot: TimeSlot) -> None:
        """
        Check a slot against the staff member's working hours.

        Raises:
            ScheduleViolationError: Not working that day, outside working
                hours or during the break
        """
        if not self.enforce_schedules:
            return
        schedule = self.repository.get_staff_schedule(staff_id, slot.date.weekday())
        if schedule is None:
            raise ScheduleViolationError(staff_id, f"Staff member does not work on {slot.date:%A}")
        if not slot.within(schedule.start_time, schedule.end_time):
            raise ScheduleViolationError(
                staff_id,
                f"Slot {slot} is outside working hours "
                f"{schedule.start_time:%H:%M}-{schedule.end_time:%H:%M}"
            )
        if schedule.has_break and slot.overlaps_range(schedule.break_start_time, schedule.break_end_time):
            raise ScheduleViolationError(
                staff_id,
                f"Slot {slot} overlaps the break "
                f"{schedule.break_start_time:%H:%M}-{schedule.break_end_time:%H:%M}"
            )

    def get_available_time_slots(
        self,
        staff_id: Any,
        slot_date: Any,
        duration_minutes: int,
        interval_minutes: Optional[int] = None
    ) -> List[time]:
        """
        Free start times of a staff member on a date.

        Candidates start at the beginning of the working day and advance by
        ``interval_minutes``; a candidate is kept when it ends within working
        hours, misses the break and overlaps no booking of the staff member.
        """
        staff_id = as_uuid(staff_id, 'staff_id')
        slot_date = parse_date(slot_date)
        positive_int(duration_minutes, 'duration_minutes')
        interval_minutes = positive_int(
            interval_minutes or clinic_setting('SLOT_INTERVAL_MINUTES'),
            'interval_minutes'
        )

        with self.repository.atomic():
            if self.repository.get_staff(staff_id) is None:
                raise NotFoundError("StaffMember", staff_id)
            schedule = self.repository.get_staff_schedule(staff_id, slot_date.weekday())
            booked = self.repository.list_appointments(
                start_date=slot_date,
                end_date=slot_date,
                staff_id=staff_id,
                statuses=Appointment.get_occupying_statuses(),
            )

        if schedule is None:
            return []

        booked_slots = [TimeSlot.between(a.date, a.start_time, a.end_time) for a in booked]
        free = []
        start = minutes_of(schedule.start_time)
        last_start = minutes_of(schedule.end_time) - duration_minutes
        while start <= last_start:
            candidate = TimeSlot(slot_date, time_from_minutes(start), duration_minutes)
            if self._schedule_allows(schedule, candidate) and not any(
                candidate.overlaps(existing) for existing in booked_slots
            ):
                free.append(candidate.start_time)
            start += interval_minutes
        return free
