from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from habit_notifications import channels, tasks
from habit_notifications.channels import CeleryPushScheduler, RedisPendingStore, send_push_via_relay
from habit_notifications.collectors import context_from_dict
from habit_notifications.models import NotificationPriority, TaskSummary

NOW = datetime(2024, 1, 15, 12, 0)


class FakeResult:
    def __init__(self, task_id):
        self.id = task_id


class FakeDeliverTask:
    def __init__(self):
        self.calls = []

    def apply_async(self, kwargs=None, eta=None):
        self.calls.append({"kwargs": kwargs, "eta": eta})
        return FakeResult(f"celery-{len(self.calls)}")


class FakeStore:
    def __init__(self):
        self.pending = {}

    def put(self, identifier, celery_id):
        self.pending[identifier] = celery_id

    def pop(self, identifier):
        return self.pending.pop(identifier, None)

    def items(self):
        return dict(self.pending)


def make_scheduler(relay_url="http://relay.local/push", store=None, deliver=None, revoked=None, tz=timezone.utc):
    deliver = deliver or FakeDeliverTask()
    revoked = revoked if revoked is not None else []
    scheduler = CeleryPushScheduler(
        deliver_task=deliver,
        revoke=revoked.append,
        relay_url=relay_url,
        clock=lambda: NOW,
        store=store or FakeStore(),
        tz=tz,
    )
    return scheduler, deliver, revoked


def test_task_reminder_is_scheduled_for_next_occurrence():
    scheduler, deliver, _ = make_scheduler()
    task = TaskSummary(id="t1", name="Stretch", icon="🧘")

    identifier = scheduler.schedule_task_reminder(task, "08:30")
    assert identifier == "task-reminder-t1"
    call = deliver.calls[0]
    assert call["eta"] == datetime(2024, 1, 16, 8, 30, tzinfo=timezone.utc)
    assert call["kwargs"]["payload"]["title"] == "🧘 Stretch"
    assert call["kwargs"]["payload"]["data"] == {"task_id": "t1", "frequency": "daily"}


def test_eta_carries_the_user_timezone():
    scheduler, deliver, _ = make_scheduler(tz=ZoneInfo("Europe/Berlin"))
    scheduler.schedule_global_daily_reminder("20:00")

    eta = deliver.calls[0]["eta"]
    assert eta.utcoffset() == timedelta(hours=1)
    assert eta.astimezone(timezone.utc) == datetime(2024, 1, 15, 19, 0, tzinfo=timezone.utc)


def test_rescheduling_revokes_previous_delivery():
    scheduler, deliver, revoked = make_scheduler()
    task = TaskSummary(id="t1", name="Stretch")
    scheduler.schedule_task_reminder(task, "13:00")
    scheduler.schedule_task_reminder(task, "14:00")

    assert revoked == ["celery-1"]
    assert scheduler.scheduled_ids() == {"task-reminder-t1": "celery-2"}

    scheduler.cancel_task_reminder("t1")
    assert revoked == ["celery-1", "celery-2"]
    assert scheduler.scheduled_ids() == {}


def test_global_daily_reminder_and_cancel_all():
    scheduler, deliver, revoked = make_scheduler()
    assert scheduler.schedule_global_daily_reminder("20:00") == "global-daily-reminder"
    assert deliver.calls[0]["eta"] == datetime(2024, 1, 15, 20, 0, tzinfo=timezone.utc)

    assert scheduler.schedule_global_daily_reminder("20:00", enabled=False) is None
    assert revoked == ["celery-1"]

    scheduler.schedule_notification("weekly_recap", "Recap", "Body", NOW, priority=NotificationPriority(level="low"))
    scheduler.schedule_task_reminder(TaskSummary(id="t9", name="Walk"), "18:00")
    scheduler.cancel_all_notifications()
    assert scheduler.scheduled_ids() == {}
    assert len(revoked) == 3


def test_cancel_unknown_identifier_is_noop():
    scheduler, _, revoked = make_scheduler()
    scheduler.cancel_notification("never-scheduled")
    assert revoked == []


def test_permissions_follow_relay_configuration():
    granted, _, _ = make_scheduler()
    assert granted.request_permissions()["status"] == "granted"
    denied, _, _ = make_scheduler(relay_url="")
    assert denied.request_permissions() == {"status": "denied", "can_ask_again": False}


def test_send_push_skips_without_relay(monkeypatch):
    monkeypatch.delenv("PUSH_RELAY_URL", raising=False)
    assert send_push_via_relay({"title": "x"}) is False


def test_send_push_posts_to_relay(monkeypatch):
    captured = {}

    class FakeResponse:
        status_code = 200
        text = "ok"

    def fake_post(url, json=None, headers=None, timeout=None):
        captured.update(url=url, json=json, headers=headers)
        return FakeResponse()

    monkeypatch.setattr(channels.requests, "post", fake_post)
    assert send_push_via_relay({"title": "Hi"}, relay_url="http://relay.local", token="secret") is True
    assert captured["json"] == {"title": "Hi"}
    assert captured["headers"]["Authorization"] == "Bearer secret"


def test_send_push_reports_relay_errors(monkeypatch):
    class FakeResponse:
        status_code = 502
        text = "bad gateway"

    monkeypatch.setattr(channels.requests, "post", lambda *a, **k: FakeResponse())
    assert send_push_via_relay({"title": "Hi"}, relay_url="http://relay.local") is False


def test_deliver_push_task(monkeypatch):
    monkeypatch.setattr(tasks, "send_push_via_relay", lambda payload: True)
    assert tasks.deliver_push.run({"identifier": "weekly_recap"}) == "sent"


def test_evaluate_task_requires_context_url(monkeypatch):
    monkeypatch.delenv("NOTIFY_CONTEXT_URL", raising=False)
    assert tasks.evaluate_notifications.run() == "0"


def protection_snapshot(protection_enabled=True, completed=False):
    return context_from_dict(
        {
            "settings": {"global": {"enabled": True}, "streaks": {"protectionEnabled": protection_enabled}},
            "tasks": [{"id": "t1", "name": "Run", "completedToday": completed}],
            "streaks": [{"taskId": "t1", "taskName": "Run", "currentStreak": 40, "atRisk": True}],
            "timeUntilMidnight": 3,
        }
    )


def run_evaluation(monkeypatch, scheduler, context):
    monkeypatch.setenv("NOTIFY_CONTEXT_URL", "http://habits.local/context")
    monkeypatch.setattr(tasks, "fetch_context_snapshot", lambda url, now=None: context)
    monkeypatch.setattr(tasks, "get_push_scheduler", lambda: scheduler)
    return tasks.evaluate_notifications.run()


def test_evaluate_task_schedules_decisions(monkeypatch):
    scheduler, deliver, _ = make_scheduler()
    assert run_evaluation(monkeypatch, scheduler, protection_snapshot()) == "1"
    assert "streak_protection" in scheduler.scheduled_ids()
    assert deliver.calls[0]["eta"].tzinfo is not None


def test_disabling_protection_revokes_pending_alert(monkeypatch):
    scheduler, _, revoked = make_scheduler()
    run_evaluation(monkeypatch, scheduler, protection_snapshot())
    pending = scheduler.scheduled_ids()["streak_protection"]

    assert run_evaluation(monkeypatch, scheduler, protection_snapshot(protection_enabled=False)) == "0"
    assert "streak_protection" not in scheduler.scheduled_ids()
    assert revoked == [pending]


def test_completing_the_habit_revokes_pending_alert(monkeypatch):
    scheduler, _, revoked = make_scheduler()
    run_evaluation(monkeypatch, scheduler, protection_snapshot())
    pending = scheduler.scheduled_ids()["streak_protection"]

    run_evaluation(monkeypatch, scheduler, protection_snapshot(completed=True))
    assert "streak_protection" not in scheduler.scheduled_ids()
    assert revoked == [pending]


def test_pending_deliveries_survive_a_new_scheduler_instance():
    store = FakeStore()
    revoked = []
    deliver = FakeDeliverTask()
    before_restart, _, _ = make_scheduler(store=store, deliver=deliver, revoked=revoked)
    before_restart.schedule_global_daily_reminder("20:00")

    after_restart, _, _ = make_scheduler(store=store, deliver=deliver, revoked=revoked)
    after_restart.schedule_global_daily_reminder("20:30")
    assert revoked == ["celery-1"]
    assert after_restart.scheduled_ids() == {"global-daily-reminder": "celery-2"}


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.expiry = {}

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    def mget(self, keys):
        return [self.data.get(key) for key in keys]

    def scan_iter(self, match=None):
        prefix = match.rstrip("*")
        return [key for key in list(self.data) if key.startswith(prefix)]

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def get(self, key):
        self.ops.append(("get", key))

    def delete(self, key):
        self.ops.append(("delete", key))

    def execute(self):
        results = []
        for op, key in self.ops:
            if op == "get":
                results.append(self.client.data.get(key))
            else:
                results.append(int(self.client.data.pop(key, None) is not None))
        return results


def test_redis_pending_store():
    client = FakeRedis()
    store = RedisPendingStore(client)
    store.put("weekly_recap", "celery-7")

    assert client.data == {"habit-notifications:pending:weekly_recap": "celery-7"}
    assert client.expiry["habit-notifications:pending:weekly_recap"] == channels.PENDING_TTL_SECONDS
    assert store.items() == {"weekly_recap": "celery-7"}
    assert store.pop("weekly_recap") == "celery-7"
    assert store.pop("weekly_recap") is None
    assert store.items() == {}


def test_default_pending_store_follows_celery_redis(monkeypatch):
    monkeypatch.setattr(channels.RedisPendingStore, "from_url", staticmethod(lambda url: url))
    monkeypatch.setenv("REDIS_URL", "redis://fallback:6379/0")

    redis_backed = SimpleNamespace(conf=SimpleNamespace(result_backend="redis://cache:6379/1", broker_url=None))
    assert channels.default_pending_store(redis_backed) == "redis://cache:6379/1"

    amqp_only = SimpleNamespace(conf=SimpleNamespace(result_backend="rpc://", broker_url="amqp://guest@rabbit//"))
    assert channels.default_pending_store(amqp_only) == "redis://fallback:6379/0"
