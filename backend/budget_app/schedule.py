"""Due-date arithmetic for recurring allowances."""

from datetime import date, timedelta

FREQUENCIES = ("daily", "weekly", "biweekly", "monthly")

# Weekday anchors count from Sunday (0) to Saturday (6).
DEFAULT_WEEKDAY = 1
DEFAULT_MONTH_DAY = 1


def _sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def _first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def calculate_next_payment_date(
    frequency: str, anchor_day: int | None, now: date
) -> date:
    """Return the next due date after ``now`` for an allowance.

    ``anchor_day`` is a weekday (0=Sunday) for weekly allowances and a day of
    the month for monthly ones; other frequencies ignore it.  Monthly dates
    are counted in days from the first of next month, so an anchor beyond the
    length of that month rolls into the month after.  The result is always
    strictly later than ``now``.
    """

    if frequency == "daily":
        return now + timedelta(days=1)
    if frequency == "weekly":
        target = DEFAULT_WEEKDAY if anchor_day is None else anchor_day % 7
        days_ahead = (target - _sunday_based_weekday(now)) % 7 or 7
        return now + timedelta(days=days_ahead)
    if frequency == "biweekly":
        return now + timedelta(days=14)
    if frequency == "monthly":
        target = max(anchor_day or DEFAULT_MONTH_DAY, 1)
        return _first_of_next_month(now) + timedelta(days=target - 1)
    return now + timedelta(days=7)


def start_of_week(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def start_of_month(day: date) -> date:
    return day.replace(day=1)
