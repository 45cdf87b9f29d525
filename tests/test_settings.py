import datetime

import pytest

from shared.errors import InvalidTimeZone
from shared.models import ScheduleRule, MONTHLY
from shared.settings import (
    DEFAULT_AUTO_ADVANCE_MINUTES, DEFAULT_TIME, load_announcement_config,
    load_auto_advance_minutes, load_schedule_rule, local_now, save_announcement_config,
    save_auto_advance_minutes, save_schedule_rule
)


def make_rule(**kwargs):
    values = dict(
        time_zone_id="Europe/Berlin",
        frequency=MONTHLY,
        interval=2,
        day_of_week=3,
        time_of_day=datetime.time(20, 15),
        monthly_week=-1,
        anchor_date=datetime.date(2025, 3, 1),
    )
    values.update(kwargs)
    return ScheduleRule(**values)


def test_defaults_for_fresh_database():
    rule = load_schedule_rule()
    assert rule.interval == 1
    assert rule.time_of_day == DEFAULT_TIME
    assert load_auto_advance_minutes() == DEFAULT_AUTO_ADVANCE_MINUTES
    assert load_announcement_config().chat_id == 0


def test_rule_round_trip():
    saved = save_schedule_rule(make_rule())
    assert load_schedule_rule() == saved
    assert saved.monthly_week == -1


@pytest.mark.parametrize("interval, expected", [(0, 1), (-4, 1), (3, 3)])
def test_interval_is_clamped(interval, expected):
    assert save_schedule_rule(make_rule(interval=interval)).interval == expected


@pytest.mark.parametrize("week, expected", [(9, 5), (0, 1), (-3, -1), (-1, -1), (4, 4)])
def test_monthly_week_is_clamped(week, expected):
    assert save_schedule_rule(make_rule(monthly_week=week)).monthly_week == expected


def test_unknown_frequency_falls_back_to_weekly():
    assert save_schedule_rule(make_rule(frequency="Daily")).frequency == "Weekly"


def test_invalid_time_zone_is_rejected():
    with pytest.raises(InvalidTimeZone):
        save_schedule_rule(make_rule(time_zone_id="Mars/Olympus"))


def test_local_now_with_invalid_zone():
    with pytest.raises(InvalidTimeZone):
        local_now(make_rule(time_zone_id="Mars/Olympus"))


def test_local_now_is_naive():
    assert local_now(make_rule()).tzinfo is None


def test_announcement_config_round_trip():
    save_announcement_config(-100123, 25, 70, "Gloomhaven")
    config = load_announcement_config()
    assert config.chat_id == -100123
    assert (config.hour, config.minute) == (23, 59)
    assert config.event_name == "Gloomhaven"


def test_auto_advance_minutes():
    save_auto_advance_minutes(-5)
    assert load_auto_advance_minutes() == 0
    save_auto_advance_minutes(90)
    assert load_auto_advance_minutes() == 90
