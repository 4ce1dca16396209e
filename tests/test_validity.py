"""
tests/test_validity.py
Calendar-month validity windows and ongoing/past classification.
"""

from datetime import date

import pytest

from shared.models.models import BookingState
from shared.utils.validity import classify_booking, compute_validity_date


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2025, 3, 15), 3, date(2025, 6, 15)),
        (date(2025, 1, 31), 1, date(2025, 2, 28)),
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2025, 11, 30), 3, date(2026, 2, 28)),
        (date(2025, 6, 1), 12, date(2026, 6, 1)),
    ],
)
def test_compute_validity_date(start, months, expected):
    assert compute_validity_date(start, months) == expected


def test_compute_validity_date_is_deterministic():
    start = date(2025, 8, 31)
    assert compute_validity_date(start, 6) == compute_validity_date(start, 6)


@pytest.mark.parametrize("months", [0, -1])
def test_non_positive_duration_rejected(months):
    with pytest.raises(ValueError):
        compute_validity_date(date(2025, 1, 1), months)


def test_booking_is_ongoing_through_its_validity_date():
    validity = date(2025, 6, 15)
    assert classify_booking(validity, date(2025, 6, 14)) == BookingState.ONGOING
    assert classify_booking(validity, date(2025, 6, 15)) == BookingState.ONGOING
    assert classify_booking(validity, date(2025, 6, 16)) == BookingState.PAST
