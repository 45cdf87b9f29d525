# shared/recurrence.py
"""
Base occurrence dates of a recurring schedule.

Weekdays follow the 0 = Sunday .. 6 = Saturday convention of the stored
settings; Python's ``date.weekday()`` (0 = Monday) is converted at the edges.
"""

import calendar
import datetime

from shared.models import ScheduleRule, MONTHLY, LAST_WEEK


def sunday_based_weekday(d: datetime.date) -> int:
    return (d.weekday() + 1) % 7


def positive_mod(value: int, modulus: int) -> int:
    # Python's % already returns a result with the sign of the modulus
    return value % modulus


def align_to_weekday_on_or_before(d: datetime.date, day_of_week: int) -> datetime.date:
    delta = (sunday_based_weekday(d) - day_of_week + 7) % 7
    return d - datetime.timedelta(days=delta)


def last_weekday_of_month(year: int, month: int, day_of_week: int) -> datetime.date:
    last_day = datetime.date(year, month, calendar.monthrange(year, month)[1])
    return align_to_weekday_on_or_before(last_day, day_of_week)


def nth_weekday_of_month(year: int, month: int, day_of_week: int, week: int) -> datetime.date:
    """
    Date of the ``week``-th ``day_of_week`` in the month.

    ``week == -1`` means the last one. Other values are clamped to 1..5 and a
    fifth occurrence that does not exist falls back to the last one.
    """
    if week == LAST_WEEK:
        return last_weekday_of_month(year, month, day_of_week)

    week = max(1, min(5, week))
    first = datetime.date(year, month, 1)
    delta_forward = (day_of_week - sunday_based_weekday(first) + 7) % 7
    target = first + datetime.timedelta(days=delta_forward + (week - 1) * 7)

    if target.month != month:
        return last_weekday_of_month(year, month, day_of_week)
    return target


def weeks_between(start: datetime.date, end: datetime.date) -> int:
    # both dates share a weekday, so the difference is an exact multiple of 7
    return (end - start).days // 7


def months_between(start: datetime.date, end: datetime.date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def is_weekly_occurrence(d: datetime.date, rule: ScheduleRule) -> bool:
    if sunday_based_weekday(d) != rule.day_of_week:
        return False
    anchor = align_to_weekday_on_or_before(rule.anchor_date, rule.day_of_week)
    return positive_mod(weeks_between(anchor, d), max(1, rule.interval)) == 0


def is_monthly_occurrence(d: datetime.date, rule: ScheduleRule) -> bool:
    occ = nth_weekday_of_month(d.year, d.month, rule.day_of_week, rule.monthly_week)
    if d != occ:
        return False
    anchor_occ = nth_weekday_of_month(
        rule.anchor_date.year, rule.anchor_date.month, rule.day_of_week, rule.monthly_week
    )
    return positive_mod(months_between(anchor_occ, occ), max(1, rule.interval)) == 0


def is_occurrence(d: datetime.date, rule: ScheduleRule) -> bool:
    if rule.frequency == MONTHLY:
        return is_monthly_occurrence(d, rule)
    return is_weekly_occurrence(d, rule)
