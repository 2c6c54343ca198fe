"""Candidate appointment windows offered on the customer booking page.

Pure function of ``now``; not backed by any technician calendar.
"""

from datetime import datetime, time, timedelta

from fsm_booking.core.errors import ValidationError
from fsm_booking.models.appointment import TimeSlot

MIN_HORIZON_DAYS = 14
MAX_HORIZON_DAYS = 30

# (start_hour, end_hour) windows within the 09:00–17:00 business day
DAILY_WINDOWS: tuple[tuple[int, int], ...] = ((9, 12), (13, 15), (15, 17))


def generate_time_slots(now: datetime, horizon_days: int = MIN_HORIZON_DAYS) -> list[TimeSlot]:
    """Business-day slots for the ``horizon_days`` days following ``now``."""
    if not MIN_HORIZON_DAYS <= horizon_days <= MAX_HORIZON_DAYS:
        raise ValidationError(
            f"Horizon must be between {MIN_HORIZON_DAYS} and {MAX_HORIZON_DAYS} days"
        )

    slots: list[TimeSlot] = []
    for day in range(1, horizon_days + 1):
        date = (now + timedelta(days=day)).date()
        if date.weekday() >= 5:  # Saturday / Sunday
            continue
        for index, (start_hour, end_hour) in enumerate(DAILY_WINDOWS):
            slots.append(TimeSlot(
                id=f"slot_{day}_{index}",
                start_time=datetime.combine(date, time(hour=start_hour)),
                end_time=datetime.combine(date, time(hour=end_hour)),
                is_available=True,
                is_selected=False,
            ))
    return slots
