# apps/core/services/scheduling.py
"""
Time slot value type.

Slots are half-open intervals ``[start, end)`` within a single day,
measured in whole minutes.
"""

from dataclasses import dataclass
from datetime import date, time, datetime
from typing import Optional, Union

from .exceptions import ValidationError

MINUTES_PER_DAY = 24 * 60


def minutes_of(value: time) -> int:
    """Minutes since midnight."""
    return value.hour * 60 + value.minute


def time_from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValidationError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def parse_time(value: Union[str, time]) -> time:
    """Accept ``HH:MM`` / ``HH:MM:SS`` strings or ``time`` objects."""
    if isinstance(value, time):
        return value
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(value, fmt).time()
        except (TypeError, ValueError):
            continue
    raise ValidationError(f"Invalid time '{value}', expected HH:MM", field='start_time')


def parse_date(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD", field='date')


@dataclass(frozen=True)
class TimeSlot:
    """A date, a start time and a duration; the end time is derived."""

    date: date
    start_time: time
    duration_minutes: int

    def __post_init__(self):
        object.__setattr__(self, 'date', parse_date(self.date))
        object.__setattr__(self, 'start_time', parse_time(self.start_time).replace(second=0, microsecond=0))
        if not isinstance(self.duration_minutes, int) or isinstance(self.duration_minutes, bool):
            raise ValidationError("Duration must be a whole number of minutes", field='duration_minutes')
        if self.duration_minutes <= 0:
            raise ValidationError("Duration must be positive", field='duration_minutes')
        if self.end_minutes >= MINUTES_PER_DAY:
            raise ValidationError(
                "Appointment may not run past midnight",
                field='duration_minutes',
                details={'start_time': self.start_time.strftime('%H:%M'), 'duration_minutes': self.duration_minutes}
            )

    @classmethod
    def between(cls, slot_date: date, start_time: time, end_time: time) -> 'TimeSlot':
        """Build a slot from stored start/end times."""
        return cls(slot_date, start_time, minutes_of(end_time) - minutes_of(start_time))

    @property
    def start_minutes(self) -> int:
        return minutes_of(self.start_time)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    @property
    def end_time(self) -> time:
        return time_from_minutes(self.end_minutes)

    def overlaps(self, other: 'TimeSlot') -> bool:
        """Half-open overlap: touching slots do not overlap."""
        return (
            self.date == other.date
            and self.start_minutes < other.end_minutes
            and other.start_minutes < self.end_minutes
        )

    def overlaps_range(self, start: Optional[time], end: Optional[time]) -> bool:
        if start is None or end is None:
            return False
        return self.start_minutes < minutes_of(end) and minutes_of(start) < self.end_minutes

    def within(self, start: time, end: time) -> bool:
        return minutes_of(start) <= self.start_minutes and self.end_minutes <= minutes_of(end)

    def __str__(self):
        return f"{self.date.isoformat()} {self.start_time:%H:%M}-{self.end_time:%H:%M}"
