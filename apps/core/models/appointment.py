# apps/core/models/appointment.py
"""
Appointment Model

A booked treatment session: one staff member, one room and one time slot,
consuming a session of a package item when completed.
"""

import uuid
from django.db import models


class Appointment(models.Model):
    """
    Appointment model.

    SCHEDULED is the only non-terminal status. COMPLETED, CANCELLED and
    NO_SHOW never reopen.
    """

    class Status(models.TextChoices):
        SCHEDULED = 'scheduled', 'Scheduled'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'
        NO_SHOW = 'no_show', 'No Show'

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )

    patient = models.ForeignKey(
        'core.Patient',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    package = models.ForeignKey(
        'core.Package',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    package_item = models.ForeignKey(
        'core.PackageItem',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    service = models.ForeignKey(
        'core.Service',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    staff = models.ForeignKey(
        'core.StaffMember',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    room = models.ForeignKey(
        'core.Room',
        on_delete=models.PROTECT,
        related_name='appointments'
    )

    # Slot
    date = models.DateField(db_index=True)
    start_time = models.TimeField()
    end_time = models.TimeField()
    duration_minutes = models.PositiveIntegerField()

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.SCHEDULED,
        db_index=True
    )
    notes = models.TextField(blank=True, default='')

    # Cancellation
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.UUIDField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default='')

    # Completion
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.UUIDField(null=True, blank=True)

    # Metadata
    created_by = models.UUIDField()
    updated_by = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointments'
        ordering = ['date', 'start_time']
        indexes = [
            models.Index(fields=['staff', 'date', 'start_time']),
            models.Index(fields=['room', 'date', 'start_time']),
            models.Index(fields=['patient', 'date']),
            models.Index(fields=['package_item', 'status']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F('start_time')),
                name='valid_appointment_times'
            ),
        ]

    def __str__(self):
        return f"{self.date} {self.start_time:%H:%M}-{self.end_time:%H:%M} ({self.get_status_display()})"

    @property
    def is_terminal(self) -> bool:
        return self.status != self.Status.SCHEDULED

    @property
    def occupies_slot(self) -> bool:
        """Whether the appointment blocks its staff member and room."""
        return self.status != self.Status.CANCELLED

    @classmethod
    def get_occupying_statuses(cls):
        return [cls.Status.SCHEDULED, cls.Status.COMPLETED, cls.Status.NO_SHOW]
