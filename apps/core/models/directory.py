# apps/core/models/directory.py
"""
Directory Models

Patients, treatment services, staff, staff working hours and rooms.
The booking engine only reads these records.
"""

import uuid
from django.db import models


class Patient(models.Model):
    """Patient reference record."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patients'
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Service(models.Model):
    """
    A bookable treatment.

    One purchased instance of a service may be worth several consumable
    sessions (``sessions_per_instance``).
    """

    class Category(models.TextChoices):
        PHYSIOTHERAPY = 'physiotherapy', 'Physiotherapy'
        MASSAGE = 'massage', 'Massage'
        LYMPHATIC_DRAINAGE = 'lymphatic_drainage', 'Lymphatic Drainage'
        CONSULTATION = 'consultation', 'Consultation'
        COMBINATION = 'combination', 'Combination'
        OTHER = 'other', 'Other'

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    name = models.CharField(max_length=200)
    category = models.CharField(
        max_length=30,
        choices=Category.choices,
        default=Category.OTHER
    )
    duration_minutes = models.PositiveIntegerField()
    unit_price_cents = models.PositiveIntegerField(
        help_text='Price of one instance in minor currency units'
    )
    sessions_per_instance = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'services'
        ordering = ['name']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(duration_minutes__gt=0),
                name='service_positive_duration'
            ),
            models.CheckConstraint(
                condition=models.Q(sessions_per_instance__gte=1),
                name='service_sessions_per_instance_min'
            ),
        ]

    def __str__(self):
        return self.name


class StaffMember(models.Model):
    """Therapist or other bookable staff member."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    user_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text='Identity of the staff member in the user directory'
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    specialization = models.CharField(
        max_length=30,
        choices=Service.Category.choices,
        blank=True,
        default=''
    )
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'staff_members'
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return f"{self.first_name} {self.last_name}"


class StaffSchedule(models.Model):
    """
    Weekly working hours of a staff member.

    ``day_of_week`` follows ``date.weekday()``: 0 is Monday, 6 is Sunday.
    """

    class DayOfWeek(models.IntegerChoices):
        MONDAY = 0, 'Monday'
        TUESDAY = 1, 'Tuesday'
        WEDNESDAY = 2, 'Wednesday'
        THURSDAY = 3, 'Thursday'
        FRIDAY = 4, 'Friday'
        SATURDAY = 5, 'Saturday'
        SUNDAY = 6, 'Sunday'

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    staff = models.ForeignKey(
        StaffMember,
        on_delete=models.CASCADE,
        related_name='schedules'
    )
    day_of_week = models.PositiveSmallIntegerField(choices=DayOfWeek.choices)
    start_time = models.TimeField()
    end_time = models.TimeField()
    break_start_time = models.TimeField(null=True, blank=True)
    break_end_time = models.TimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'staff_schedules'
        ordering = ['staff', 'day_of_week']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F('start_time')),
                name='valid_schedule_hours'
            ),
        ]

    def __str__(self):
        return f"{self.staff_id} {self.get_day_of_week_display()} {self.start_time}-{self.end_time}"

    @property
    def has_break(self) -> bool:
        return self.break_start_time is not None and self.break_end_time is not None


class Room(models.Model):
    """Treatment room."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    name = models.CharField(max_length=100)
    capacity = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'rooms'
        ordering = ['name']

    def __str__(self):
        return self.name
