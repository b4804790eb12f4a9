"""
Core business logic for calculating bookable appointment start times.

Pure domain logic without any external dependencies (no API calls, no I/O).
The booking server remains authoritative; this calculator is what an
offline-capable client (and the mock API) uses to approximate it.
"""

from typing import Iterable, List, Sequence

from pendulum import Date, DateTime

from .models import (
    Appointment,
    SalonSchedule,
    StaffSchedule,
    TimeRange,
    at_minutes,
    format_time_of_day,
    minutes_of_day,
)


class SlotCalculator:
    """
    Calculates available appointment slots for one staff member on one date.

    Algorithm:
    1. Intersect staff working hours with salon working hours for the weekday
    2. Return nothing if an active vacation (staff or salon) covers the date
    3. Subtract active breaks and blocking appointments from the open period
    4. Walk the granularity grid from the open time and keep every start
       whose full duration fits inside one free sub-interval
    """

    def __init__(self, granularity_minutes: int = 30, timezone: str = "Europe/Sarajevo"):
        if granularity_minutes <= 0:
            raise ValueError("granularity_minutes must be greater than zero")
        self.granularity_minutes = granularity_minutes
        self.timezone = timezone

    def find_available_slots(
        self,
        day: Date,
        staff: StaffSchedule,
        salon: SalonSchedule,
        appointments: Sequence[Appointment],
        duration_minutes: int,
        not_before: DateTime | None = None,
    ) -> List[str]:
        """
        Find all bookable start times on ``day``.

        Args:
            day: The date to compute slots for
            staff: The staff member's schedule
            salon: The salon's schedule
            appointments: Existing appointments (any staff, any day)
            duration_minutes: Effective duration of the service selection
            not_before: Optional earliest allowed start (e.g. now + lead time)

        Returns:
            Chronologically ordered ``HH:MM`` strings without duplicates
        """
        free_ranges = self.free_ranges(day, staff, salon, appointments)

        if not free_ranges:
            return []

        # Grid is anchored at the open time even when the first minutes are busy.
        # Stepping happens in wall-clock minutes so DST days keep their grid.
        working_block = self._working_block(day, staff, salon)
        step = self.granularity_minutes
        close = working_block.end

        slots: List[str] = []
        minute = minutes_of_day(working_block.start)

        while True:
            candidate = at_minutes(day, minute, self.timezone)
            end = at_minutes(day, minute + duration_minutes, self.timezone)

            if candidate >= close or end > close:
                break

            if (not_before is None or candidate >= not_before) and self._fits(
                free_ranges, candidate, end
            ):
                slots.append(format_time_of_day(minute))

            minute += step

        return slots

    def free_ranges(
        self,
        day: Date,
        staff: StaffSchedule,
        salon: SalonSchedule,
        appointments: Sequence[Appointment],
    ) -> List[TimeRange]:
        """
        Open sub-intervals of ``day`` after every subtraction.
        """
        if self._on_vacation(day, staff, salon):
            return []

        working_block = self._working_block(day, staff, salon)

        if working_block is None:
            return []

        busy: List[TimeRange] = []

        for brk in list(staff.breaks) + list(salon.breaks):
            if brk.applies_to(day):
                brk_range = brk.as_range(day, self.timezone)
                if brk_range:
                    busy.append(brk_range)

        for appointment in appointments:
            if (
                appointment.staff_id == staff.staff_id
                and appointment.date == day
                and appointment.is_blocking
            ):
                busy.append(appointment.as_range(self.timezone))

        overlapping_busy = [b for b in busy if working_block.overlaps(b)]

        if not overlapping_busy:
            return [working_block]

        return self._subtract_busy_from_block(
            working_block,
            self._merge_adjacent_ranges(overlapping_busy),
        )

    def _on_vacation(self, day: Date, staff: StaffSchedule, salon: SalonSchedule) -> bool:
        return any(v.covers(day) for v in list(staff.vacations) + list(salon.vacations))

    def _working_block(
        self,
        day: Date,
        staff: StaffSchedule,
        salon: SalonSchedule,
    ) -> TimeRange | None:
        """
        Intersect staff and salon hours for the weekday.

        Staff hours are not assumed to sit inside salon hours.
        """
        staff_hours = staff.working_hours.for_date(day)
        salon_hours = salon.working_hours.for_date(day)

        if staff_hours is None or salon_hours is None:
            return None

        staff_range = staff_hours.as_range(day, self.timezone)
        salon_range = salon_hours.as_range(day, self.timezone)

        if staff_range is None or salon_range is None:
            return None

        return staff_range.intersect(salon_range)

    @staticmethod
    def _fits(free_ranges: Iterable[TimeRange], start: DateTime, end: DateTime) -> bool:
        for free in free_ranges:
            if start == end:
                # Zero-duration selections only need a free start minute
                if free.start <= start < free.end:
                    return True
            elif free.contains(start, end):
                return True
        return False

    def _subtract_busy_from_block(
        self,
        working_block: TimeRange,
        busy_ranges: List[TimeRange]
    ) -> List[TimeRange]:
        """
        Subtract busy times from a working block, yielding free time ranges.

        Example:
        Working: 09:00 - 17:00
        Busy: [10:00-11:00, 14:00-15:00]
        Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]
        """
        free_ranges: List[TimeRange] = []
        current_start = working_block.start

        for busy in sorted(busy_ranges, key=lambda r: r.start):
            clipped_busy_start = max(busy.start, working_block.start)
            clipped_busy_end = min(busy.end, working_block.end)

            if current_start < clipped_busy_start:
                free_ranges.append(
                    TimeRange(start=current_start, end=clipped_busy_start)
                )

            current_start = max(current_start, clipped_busy_end)

        if current_start < working_block.end:
            free_ranges.append(
                TimeRange(start=current_start, end=working_block.end)
            )

        return free_ranges

    def _merge_adjacent_ranges(
        self,
        ranges: List[TimeRange]
    ) -> List[TimeRange]:
        """
        Merge overlapping or adjacent time ranges.

        Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]
        """
        if not ranges:
            return []

        sorted_ranges = sorted(ranges, key=lambda r: r.start)
        merged: List[TimeRange] = [sorted_ranges[0]]

        for current in sorted_ranges[1:]:
            last = merged[-1]

            if current.start <= last.end:
                merged[-1] = TimeRange(
                    start=last.start,
                    end=max(last.end, current.end)
                )
            else:
                merged.append(current)

        return merged
