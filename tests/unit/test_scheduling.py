# tests/unit/test_scheduling.py
"""
Unit Tests for the time slot value type
"""

from datetime import date, time

import pytest

from apps.core.services import TimeSlot, ValidationError

DAY = date(2024, 1, 10)


class TestTimeSlot:
    """Tests for TimeSlot."""

    def test_end_time_is_derived(self):
        slot = TimeSlot(DAY, time(9, 0), 90)

        assert slot.end_time == time(10, 30)
        assert slot.start_minutes == 540
        assert slot.end_minutes == 630

    def test_accepts_iso_strings(self):
        slot = TimeSlot('2024-01-10', '09:15', 30)

        assert slot.date == DAY
        assert slot.start_time == time(9, 15)

    def test_seconds_are_dropped(self):
        assert TimeSlot(DAY, time(9, 0, 45), 30).start_time == time(9, 0)

    def test_overlapping_slots(self):
        first = TimeSlot(DAY, time(9, 0), 60)
        second = TimeSlot(DAY, time(9, 30), 60)

        assert first.overlaps(second)
        assert second.overlaps(first)

    def test_touching_slots_do_not_overlap(self):
        first = TimeSlot(DAY, time(9, 0), 60)
        second = TimeSlot(DAY, time(10, 0), 60)

        assert not first.overlaps(second)
        assert not second.overlaps(first)

    def test_slots_on_different_days_do_not_overlap(self):
        first = TimeSlot(DAY, time(9, 0), 60)
        second = TimeSlot(date(2024, 1, 11), time(9, 0), 60)

        assert not first.overlaps(second)

    def test_contained_slot_overlaps(self):
        outer = TimeSlot(DAY, time(9, 0), 120)
        inner = TimeSlot(DAY, time(9, 30), 15)

        assert outer.overlaps(inner)
        assert inner.within(time(9, 0), time(11, 0))

    def test_within_working_hours(self):
        slot = TimeSlot(DAY, time(17, 0), 60)

        assert slot.within(time(8, 0), time(18, 0))
        assert not slot.within(time(8, 0), time(17, 30))

    def test_overlaps_break(self):
        slot = TimeSlot(DAY, time(11, 30), 60)

        assert slot.overlaps_range(time(12, 0), time(13, 0))
        assert not slot.overlaps_range(None, None)
        assert not TimeSlot(DAY, time(11, 0), 60).overlaps_range(time(12, 0), time(13, 0))

    def test_between_stored_times(self):
        slot = TimeSlot.between(DAY, time(9, 0), time(9, 45))

        assert slot.duration_minutes == 45

    @pytest.mark.parametrize('duration', [0, -30])
    def test_non_positive_duration_rejected(self, duration):
        with pytest.raises(ValidationError):
            TimeSlot(DAY, time(9, 0), duration)

    def test_fractional_duration_rejected(self):
        with pytest.raises(ValidationError):
            TimeSlot(DAY, time(9, 0), 30.5)

    def test_slot_may_not_reach_midnight(self):
        with pytest.raises(ValidationError) as exc_info:
            TimeSlot(DAY, time(23, 30), 30)

        assert exc_info.value.field == 'duration_minutes'

    def test_slot_ending_before_midnight(self):
        assert TimeSlot(DAY, time(23, 0), 59).end_time == time(23, 59)

    @pytest.mark.parametrize('value', ['9am', '25:00', ''])
    def test_invalid_start_time(self, value):
        with pytest.raises(ValidationError):
            TimeSlot(DAY, value, 30)

    def test_invalid_date(self):
        with pytest.raises(ValidationError) as exc_info:
            TimeSlot('10.01.2024', time(9, 0), 30)

        assert exc_info.value.field == 'date'
