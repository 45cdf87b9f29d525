import datetime

import pytest

from shared import database
from shared.models import ScheduleRule, WEEKLY
from shared.settings import save_schedule_rule


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(database, "DATABASE_PATH", str(tmp_path / "test.db"))
    database.init_db()
    yield


@pytest.fixture
def monday_rule():
    """Weekly on Monday 19:00 UTC, anchored on 2025-01-06."""
    return save_schedule_rule(ScheduleRule(
        time_zone_id="UTC",
        frequency=WEEKLY,
        interval=1,
        day_of_week=1,
        time_of_day=datetime.time(19, 0),
        monthly_week=1,
        anchor_date=datetime.date(2025, 1, 6),
    ))


class FakeJob:
    def __init__(self, callback, name, data, **trigger):
        self.callback = callback
        self.name = name
        self.data = data
        self.trigger = trigger
        self.removed = False

    def schedule_removal(self):
        self.removed = True


class FakeJobQueue:
    """Records registrations through the telegram.ext.JobQueue methods the bot uses."""

    def __init__(self):
        self.jobs = []

    def get_jobs_by_name(self, name):
        return tuple(j for j in self.jobs if j.name == name and not j.removed)

    def run_daily(self, callback, time, name=None, data=None):
        job = FakeJob(callback, name, data, time=time)
        self.jobs.append(job)
        return job

    def run_repeating(self, callback, interval, first=None, name=None, data=None):
        job = FakeJob(callback, name, data, interval=interval, first=first)
        self.jobs.append(job)
        return job


@pytest.fixture
def job_queue():
    return FakeJobQueue()
