from datetime import datetime

import pytest

from habit_notifications import collectors
from habit_notifications.collectors import ContextError, build_context, context_from_dict
from habit_notifications.config import (
    DEFAULT_NOTIFICATION_SETTINGS,
    InvalidSettingsError,
    settings_from_dict,
    settings_to_dict,
)
from habit_notifications.models import StreakSummary, TaskSummary

SNAPSHOT = {
    "date": "2024-01-15",
    "settings": {
        "global": {"enabled": True, "quietHours": {"enabled": True, "start": "23:00", "end": "07:00"}},
        "streaks": {"protectionEnabled": True, "protectionThreshold": 5},
    },
    "tasks": [
        {"id": "t1", "name": "Exercise", "completedToday": True},
        {"id": "t2", "name": "Read", "reminderEnabled": True, "reminderTime": "08:00"},
    ],
    "streaks": [
        {"taskId": "t2", "taskName": "Read", "currentStreak": 12, "bestStreak": 20, "atRisk": True},
    ],
    "timeUntilMidnight": 2.5,
    "isWeekend": False,
}


def test_defaults_round_trip():
    assert settings_to_dict(settings_from_dict()) == DEFAULT_NOTIFICATION_SETTINGS


def test_camel_case_settings_are_merged_over_defaults():
    settings = settings_from_dict(SNAPSHOT["settings"])
    assert settings.general.enabled is True
    assert settings.general.quiet_hours.start == "23:00"
    assert settings.general.weekend_mode == "normal"
    assert settings.streaks.protection_threshold == 5
    assert settings.streaks.protection_time == "21:00"
    assert settings.daily.time == "20:00"


@pytest.mark.parametrize(
    "payload",
    [
        {"daily": {"time": "8pm"}},
        {"global": {"quietHours": {"start": "25:00"}}},
        {"global": {"weekendMode": "sometimes"}},
        {"achievements": {"weeklyRecapDay": "friday"}},
        {"streaks": {"protectionThreshold": "many"}},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_settings_are_rejected(payload):
    with pytest.raises(InvalidSettingsError):
        settings_from_dict(payload)


def test_context_from_snapshot():
    context = context_from_dict(SNAPSHOT, now=datetime(2024, 1, 15, 21, 0))
    assert context.date == "2024-01-15"
    assert [t.id for t in context.tasks] == ["t1", "t2"]
    assert context.tasks[1].reminder_time == "08:00"
    assert context.completed_today == frozenset({"t1"})
    assert context.streaks[0].current_streak == 12
    assert context.streaks[0].at_risk is True
    assert context.time_until_midnight == 2.5
    assert context.is_weekend is False


def test_context_derives_missing_fields_from_now():
    saturday_evening = datetime(2024, 1, 20, 21, 0)
    context = context_from_dict({"tasks": [{"id": "t1", "name": "Run", "completed_today": True}]}, now=saturday_evening)
    assert context.date == "2024-01-20"
    assert context.time_until_midnight == pytest.approx(3.0)
    assert context.is_weekend is True
    assert context.completed_today == frozenset({"t1"})


def test_explicit_completed_today_wins():
    data = dict(SNAPSHOT, completedToday=["t2"])
    assert context_from_dict(data).completed_today == frozenset({"t2"})


@pytest.mark.parametrize(
    "data",
    [
        {"tasks": [{"name": "no id"}]},
        {"tasks": ["oops"]},
        {"streaks": [{"taskName": "orphan"}]},
        {"streaks": [{"taskId": "t1", "taskName": "Run", "currentStreak": "lots"}]},
        {"timeUntilMidnight": "soon"},
        {"settings": {"daily": {"time": "noon"}}},
        [],
    ],
)
def test_malformed_snapshots_raise_context_error(data):
    with pytest.raises(ContextError):
        context_from_dict(data)


def test_build_context():
    settings = settings_from_dict()
    tasks = [TaskSummary(id="a", name="A", completed_today=True), TaskSummary(id="b", name="B")]
    streaks = [StreakSummary(task_id="b", task_name="B", current_streak=3, at_risk=True)]
    context = build_context(settings, tasks, streaks, now=datetime(2024, 1, 17, 18, 0))

    assert context.completed_today == frozenset({"a"})
    assert context.time_until_midnight == pytest.approx(6.0)
    assert context.is_weekend is False
    assert isinstance(context.tasks, tuple)


def test_fetch_context_snapshot(monkeypatch):
    calls = {}

    class FakeResponse:
        def raise_for_status(self):
            return None

        def json(self):
            return SNAPSHOT

    def fake_get(url, headers=None, timeout=None):
        calls["url"] = url
        calls["timeout"] = timeout
        return FakeResponse()

    monkeypatch.setattr(collectors.requests, "get", fake_get)
    context = collectors.fetch_context_snapshot("http://habits.local/context")

    assert calls == {"url": "http://habits.local/context", "timeout": 5}
    assert context.streaks[0].task_name == "Read"
