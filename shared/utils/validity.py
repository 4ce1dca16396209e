"""
shared/utils/validity.py
Booking validity window arithmetic. Every endpoint that reports an
ongoing/past status goes through classify_booking.
"""

from datetime import date

from dateutil.relativedelta import relativedelta

from shared.models.models import BookingState


def compute_validity_date(start: date, duration_months: int) -> date:
    """
    start + duration_months calendar months.
    Month ends clamp: 2025-01-31 + 1 month -> 2025-02-28.
    """
    if duration_months <= 0:
        raise ValueError("duration_months must be positive")
    return start + relativedelta(months=duration_months)


def classify_booking(validity_date: date, today: date) -> BookingState:
    """Ongoing through the validity date itself, past from the day after."""
    if validity_date >= today:
        return BookingState.ONGOING
    return BookingState.PAST
