"""Collaborator interfaces and the Celery/HTTP push adapter.

The engine never talks to a device directly. It relies on a
``DeviceScheduler`` (fires reminders at wall-clock times) and an
``EffectsPlayer`` (sound, haptics, confetti). ``CeleryPushScheduler`` is the
server-side scheduler: reminders become Celery tasks with an ETA that post
to a push relay when they fire.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, Optional, Protocol

import redis
import requests

from .models import NotificationPriority, TaskSummary
from .quiet_hours import local_now, localize, next_daily_occurrence, user_timezone

LOGGER = logging.getLogger(__name__)

GLOBAL_DAILY_REMINDER_ID = "global-daily-reminder"
TASK_REMINDER_PREFIX = "task-reminder-"
PENDING_KEY_PREFIX = "habit-notifications:pending:"
PENDING_TTL_SECONDS = 8 * 24 * 60 * 60


class DeviceScheduler(Protocol):
    def schedule_task_reminder(self, task: TaskSummary, time: str, frequency: str = "daily") -> Optional[str]:
        ...

    def cancel_task_reminder(self, task_id: str) -> None:
        ...

    def schedule_global_daily_reminder(self, time: str, enabled: bool = True) -> Optional[str]:
        ...

    def cancel_global_daily_reminder(self) -> None:
        ...

    def cancel_all_notifications(self) -> None:
        ...

    def request_permissions(self) -> Dict[str, Any]:
        ...


class MessageScheduler(DeviceScheduler, Protocol):
    """A scheduler that can also deliver free-form messages by identifier."""

    def schedule_notification(
        self,
        identifier: str,
        title: str,
        body: str,
        at: datetime,
        priority: Optional[NotificationPriority] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        ...

    def cancel_notification(self, identifier: str) -> None:
        ...


class EffectsPlayer(Protocol):
    def play_sound(self, kind: str) -> None:
        ...

    def trigger_haptic(self) -> None:
        ...

    def trigger_confetti(self, kind: str) -> None:
        ...


def send_push_via_relay(
    payload: Dict[str, Any],
    relay_url: Optional[str] = None,
    token: Optional[str] = None,
) -> bool:
    """POST a push payload to the relay that forwards it to the user's devices."""
    relay_url = relay_url or os.getenv("PUSH_RELAY_URL")
    if not relay_url:
        LOGGER.warning("Skipping push notification '%s': PUSH_RELAY_URL not configured", payload.get("title"))
        return False

    token = token or os.getenv("PUSH_RELAY_TOKEN")
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    try:
        resp = requests.post(relay_url, json=payload, headers=headers, timeout=5)
        if resp.status_code >= 400:
            LOGGER.error("Push relay responded with %s: %s", resp.status_code, resp.text[:120])
            return False
        LOGGER.info("Sent push notification '%s' via %s", payload.get("title"), relay_url)
        return True
    except Exception as exc:  # pragma: no cover - network dependant
        LOGGER.exception("Failed to send push notification: %s", exc)
        return False


class PendingStore(Protocol):
    """Maps a notification identifier to the Celery id of its pending delivery."""

    def put(self, identifier: str, celery_id: str) -> None:
        ...

    def pop(self, identifier: str) -> Optional[str]:
        ...

    def items(self) -> Dict[str, str]:
        ...


class RedisPendingStore:
    """Pending deliveries kept in redis, shared by every worker and web process.

    Keys expire a day after the furthest delivery we ever schedule (a week
    ahead), so entries for deliveries that already ran do not pile up.
    """

    def __init__(self, client, prefix: str = PENDING_KEY_PREFIX, ttl: int = PENDING_TTL_SECONDS) -> None:
        self._client = client
        self._prefix = prefix
        self._ttl = ttl

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisPendingStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def put(self, identifier: str, celery_id: str) -> None:
        self._client.set(self._prefix + identifier, celery_id, ex=self._ttl)

    def pop(self, identifier: str) -> Optional[str]:
        pipe = self._client.pipeline()
        pipe.get(self._prefix + identifier)
        pipe.delete(self._prefix + identifier)
        celery_id, _ = pipe.execute()
        return celery_id

    def items(self) -> Dict[str, str]:
        keys = list(self._client.scan_iter(match=f"{self._prefix}*"))
        if not keys:
            return {}
        values = self._client.mget(keys)
        return {
            key[len(self._prefix):]: value
            for key, value in zip(keys, values)
            if value is not None
        }


def default_pending_store(celery=None) -> RedisPendingStore:
    """Store on the Celery app's redis result backend or broker, else ``REDIS_URL``."""
    url = None
    if celery is not None:
        url = celery.conf.result_backend or celery.conf.broker_url
    if not url or not str(url).startswith(("redis://", "rediss://", "unix://")):
        url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    return RedisPendingStore.from_url(url)


class CeleryPushScheduler:
    """Device scheduler backed by delayed Celery tasks.

    Scheduled work is tracked by identifier (``task-reminder-<task id>``,
    the global daily reminder, or a strategy type), and the identifier is
    what the scheduling calls return. Scheduling the same identifier again
    revokes the pending delivery first. The identifier to Celery id map
    lives in a :class:`PendingStore` so any process can revoke it.

    Times handed in are naive wall-clock times in ``tz`` (``NOTIFY_TIMEZONE``
    or the system zone); they are made timezone-aware before becoming an ETA.
    """

    def __init__(
        self,
        deliver_task=None,
        revoke: Optional[Callable[[str], None]] = None,
        relay_url: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        store: Optional[PendingStore] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self._deliver_task = deliver_task
        self._revoke = revoke
        self._relay_url = relay_url if relay_url is not None else os.getenv("PUSH_RELAY_URL")
        self._tz = tz if tz is not None else user_timezone()
        self._clock = clock if clock is not None else (lambda: local_now(self._tz))
        self._store = store

    @property
    def deliver_task(self):
        if self._deliver_task is None:
            from .tasks import deliver_push

            self._deliver_task = deliver_push
        return self._deliver_task

    @property
    def store(self) -> PendingStore:
        if self._store is None:
            self._store = default_pending_store(getattr(self.deliver_task, "app", None))
        return self._store

    def scheduled_ids(self) -> Dict[str, str]:
        return self.store.items()

    def schedule_notification(
        self,
        identifier: str,
        title: str,
        body: str,
        at: datetime,
        priority: Optional[NotificationPriority] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        self.cancel_notification(identifier)
        payload = {
            "identifier": identifier,
            "title": title,
            "body": body,
            "priority": priority.to_dict() if priority else None,
            "data": data or {},
        }
        eta = localize(at, self._tz)
        result = self.deliver_task.apply_async(kwargs={"payload": payload}, eta=eta)
        self.store.put(identifier, result.id)
        LOGGER.info("Scheduled push '%s' for %s (%s)", title, eta.isoformat(), identifier)
        return identifier

    def cancel_notification(self, identifier: str) -> None:
        celery_id = self.store.pop(identifier)
        if celery_id is None:
            return
        self._revoke_id(celery_id)
        LOGGER.debug("Cancelled scheduled push %s", identifier)

    def schedule_task_reminder(self, task: TaskSummary, time: str, frequency: str = "daily") -> Optional[str]:
        when = next_daily_occurrence(time, self._clock())
        icon = f"{task.icon} " if task.icon else ""
        return self.schedule_notification(
            f"{TASK_REMINDER_PREFIX}{task.id}",
            f"{icon}{task.name}",
            f"Time for {task.name}!",
            when,
            data={"task_id": task.id, "frequency": frequency},
        )

    def cancel_task_reminder(self, task_id: str) -> None:
        self.cancel_notification(f"{TASK_REMINDER_PREFIX}{task_id}")

    def schedule_global_daily_reminder(self, time: str, enabled: bool = True) -> Optional[str]:
        if not enabled:
            self.cancel_global_daily_reminder()
            return None
        return self.schedule_notification(
            GLOBAL_DAILY_REMINDER_ID,
            "Green Streak",
            "Time to log your daily habits! How did you do today?",
            next_daily_occurrence(time, self._clock()),
            data={"frequency": "daily"},
        )

    def cancel_global_daily_reminder(self) -> None:
        self.cancel_notification(GLOBAL_DAILY_REMINDER_ID)

    def cancel_all_notifications(self) -> None:
        for identifier in self.store.items():
            self.cancel_notification(identifier)
        LOGGER.info("Cancelled all scheduled push notifications")

    def request_permissions(self) -> Dict[str, Any]:
        status = "granted" if self._relay_url else "denied"
        return {"status": status, "can_ask_again": False}

    def _revoke_id(self, celery_id: str) -> None:
        if self._revoke is not None:
            self._revoke(celery_id)
        else:
            self.deliver_task.app.control.revoke(celery_id)
