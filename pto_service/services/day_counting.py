from datetime import date, timedelta
from decimal import Decimal

from pto_service.core.exceptions import ValidationError
from pto_service.models.pto_request import DayPart

FULL = Decimal("1.0")
HALF = Decimal("0.5")
ZERO = Decimal("0")

_SINGLE_DAY = {
    (DayPart.FULL_DAY, DayPart.FULL_DAY): FULL,
    (DayPart.MORNING, DayPart.MORNING): HALF,
    (DayPart.AFTERNOON, DayPart.AFTERNOON): HALF,
    (DayPart.MORNING, DayPart.AFTERNOON): FULL,
}


def _as_part(value) -> DayPart:
    try:
        return DayPart(value)
    except ValueError:
        raise ValidationError(
            f"Invalid day part '{value}'. Use one of: {', '.join(p.value for p in DayPart)}.",
            details={"day_part": value},
        )


def calculate_total_days(start_date: date, end_date: date, start_time="full_day", end_time="full_day") -> Decimal:
    """
    Count requested days at half-day resolution.

    Single day: full+full and morning+afternoon are one day, matching
    half-days are half a day, anything else is rejected. Multi-day: the
    first and last day always count (by day part), intervening days count
    only on weekdays.
    """
    if end_date < start_date:
        raise ValidationError(
            "End date must be on or after start date.",
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )
    start_part = _as_part(start_time)
    end_part = _as_part(end_time)

    if start_date == end_date:
        days = _SINGLE_DAY.get((start_part, end_part), ZERO)
        if days == ZERO:
            raise ValidationError(
                f"'{start_part.value}' to '{end_part.value}' on the same day covers no time.",
                details={"start_time": start_part.value, "end_time": end_part.value},
            )
        return days

    total = HALF if start_part == DayPart.AFTERNOON else FULL

    current = start_date + timedelta(days=1)
    while current < end_date:
        if current.weekday() < 5:
            total += FULL
        current += timedelta(days=1)

    total += HALF if end_part == DayPart.MORNING else FULL
    return total


def count_weekdays(start_date: date, end_date: date) -> Decimal:
    """Weekdays in the inclusive range; used for back-dated entries."""
    if end_date < start_date:
        raise ValidationError(
            "End date must be on or after start date.",
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )
    total = ZERO
    current = start_date
    while current <= end_date:
        if current.weekday() < 5:
            total += FULL
        current += timedelta(days=1)
    return total
