"""Single entry point for push and toast notifications.

The orchestrator routes a :class:`UnifiedNotification` to the device
scheduler (``push``), the toast queue (``toast``) or both, and drains the
queue in small batches on a timer. Nothing raised by a collaborator
escapes it: a missed notification is preferable to a crashed caller.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional

from .channels import TASK_REMINDER_PREFIX, DeviceScheduler
from .config import (
    DRAIN_BATCH_SIZE,
    DRAIN_DELAY_SECONDS,
    TOAST_PRESETS,
    VALID_NOTIFICATION_TYPES,
)
from .models import QueuedToast, Toast, ToastEffects, ToastRequest, UnifiedNotification
from .queue import ToastQueue
from .toasts import ToastFactory

LOGGER = logging.getLogger(__name__)

ToastSink = Callable[[Toast], None]


def _as_effects(value: Any) -> Optional[ToastEffects]:
    if value is None or isinstance(value, ToastEffects):
        return value
    return ToastEffects(**value)


class NotificationOrchestrator:
    def __init__(
        self,
        push_service: DeviceScheduler,
        toast_factory: Optional[ToastFactory] = None,
        toast_queue: Optional[ToastQueue] = None,
        *,
        toast_sinks: Iterable[ToastSink] = (),
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
        batch_size: int = DRAIN_BATCH_SIZE,
        drain_delay: float = DRAIN_DELAY_SECONDS,
    ) -> None:
        self.push_service = push_service
        self.toast_factory = toast_factory if toast_factory is not None else ToastFactory()
        self.toast_queue = toast_queue if toast_queue is not None else ToastQueue()
        self._toast_sinks = list(toast_sinks)
        self._timer_factory = timer_factory
        self._batch_size = batch_size
        self._drain_delay = drain_delay

        self._lock = threading.Lock()
        self.is_processing_queue = False
        self._drain_timer = None
        self._destroyed = False

        LOGGER.debug("NotificationOrchestrator initialized")

    def notify(self, notification: UnifiedNotification) -> Optional[str]:
        """Deliver ``notification``; returns a reminder id when a push was scheduled."""
        kind = notification.type
        if kind not in VALID_NOTIFICATION_TYPES:
            LOGGER.warning("Unknown notification type: %r", kind)
            return None

        try:
            if kind == "push":
                return self._send_push(notification)
            if kind == "toast":
                self._send_toast(notification)
                return None

            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify") as pool:
                push = pool.submit(self._send_push, notification)
                toast = pool.submit(self._send_toast, notification)
            toast.result()
            return push.result()
        except Exception:
            LOGGER.exception("Failed to send %s notification", kind)
            return None

    def _send_push(self, notification: UnifiedNotification) -> Optional[str]:
        # The device scheduler only understands task-linked reminders.
        task = notification.data.get("task")
        try:
            if task is None:
                if notification.scheduled_time:
                    LOGGER.warning("Push notifications require task context; %r not scheduled", notification.title)
                else:
                    LOGGER.warning("Immediate push notifications are not supported; %r dropped", notification.title)
                return None
            if notification.scheduled_time is None:
                LOGGER.warning("Task push for %s has no scheduled time; dropped", task.id)
                return None

            reminder_id = self.push_service.schedule_task_reminder(
                task,
                notification.scheduled_time.strftime("%H:%M"),
                notification.data.get("frequency", "daily"),
            )
            LOGGER.debug(
                "Push notification request processed (title=%r, reminder_id=%s)",
                notification.title, reminder_id,
            )
            return reminder_id
        except Exception:
            LOGGER.exception("Failed to send push notification %r", notification.title)
            return None

    def _send_toast(self, notification: UnifiedNotification) -> None:
        request = ToastRequest(
            message=notification.message,
            variant=notification.variant or "info",
            icon=notification.icon,
            effects=notification.effects,
        )
        queued = self.toast_queue.enqueue(request, notification.priority or "medium")
        if queued is None:
            LOGGER.debug("Toast rejected by queue (dedupe or rate limit)")
            return

        if not self.is_processing_queue:
            self._process_toast_queue()

    def _process_toast_queue(self) -> None:
        with self._lock:
            if self.is_processing_queue or self._destroyed:
                return
            self.is_processing_queue = True

        try:
            for queued in self.toast_queue.dequeue_multiple(self._batch_size):
                self._realize(queued)
        finally:
            with self._lock:
                self.is_processing_queue = False
                destroyed = self._destroyed
            # Checked after the guard is released: a toast enqueued while the
            # guard was held is either seen here or drained by its own caller.
            if not destroyed and self.toast_queue.size() > 0:
                self._schedule_drain()

    def _realize(self, queued: QueuedToast) -> None:
        toast = self.toast_factory.create_toast(queued.data)
        if queued.data.effects:
            self.toast_factory.trigger_effects(queued.data.effects)
        for sink in self._toast_sinks:
            try:
                sink(toast)
            except Exception:
                LOGGER.exception("Toast sink failed for %s", toast.id)
        LOGGER.debug("Toast processed from queue: %s (priority=%s)", toast.id, queued.priority)

    def _schedule_drain(self) -> None:
        with self._lock:
            if self._destroyed:
                return
            if self._drain_timer is not None:
                self._drain_timer.cancel()

            def fired() -> None:
                self._drain_timer_fired(timer)

            timer = self._timer_factory(self._drain_delay, fired)
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._drain_timer = timer
        timer.start()

    def _drain_timer_fired(self, timer: Any) -> None:
        with self._lock:
            # a newer timer may already have replaced this one
            if self._drain_timer is timer:
                self._drain_timer = None
        self._process_toast_queue()

    def _preset(self, name: str, message: str, overrides: Dict[str, Any]) -> None:
        fields: Dict[str, Any] = {"type": "toast", "message": message}
        fields.update(TOAST_PRESETS[name])
        fields.update(overrides)
        fields["effects"] = _as_effects(fields.get("effects"))
        self.notify(UnifiedNotification(**fields))

    def success(self, message: str, **overrides: Any) -> None:
        self._preset("success", message, overrides)

    def error(self, message: str, **overrides: Any) -> None:
        self._preset("error", message, overrides)

    def warning(self, message: str, **overrides: Any) -> None:
        self._preset("warning", message, overrides)

    def info(self, message: str, **overrides: Any) -> None:
        self._preset("info", message, overrides)

    def celebration(self, message: str, **overrides: Any) -> None:
        self._preset("celebration", message, overrides)

    def schedule(self, notification: UnifiedNotification, at: datetime) -> Optional[str]:
        """Schedule a push for ``at``. Toasts are always immediate and return ``None``."""
        if notification.type == "toast":
            LOGGER.warning("Cannot schedule toast notifications")
            return None
        notification.scheduled_time = at
        return self.notify(notification)

    def cancel(self, notification_id: str) -> None:
        """Cancel a task reminder by the id ``schedule`` returned.

        The device scheduler addresses reminders by task id only, so ids of
        any other kind are logged and left untouched.
        """
        if not notification_id.startswith(TASK_REMINDER_PREFIX):
            LOGGER.warning("Cancel requires task context; %s left untouched", notification_id)
            return
        task_id = notification_id[len(TASK_REMINDER_PREFIX):]
        try:
            self.push_service.cancel_task_reminder(task_id)
        except Exception:
            LOGGER.exception("Failed to cancel notification %s", notification_id)

    def cancel_all(self) -> None:
        try:
            self.push_service.cancel_all_notifications()
            LOGGER.debug("Cancelled all scheduled notifications")
        except Exception:
            LOGGER.exception("Failed to cancel all notifications")

    def get_queue_stats(self) -> Dict[str, object]:
        return self.toast_queue.get_stats()

    def clear_toast_queue(self) -> None:
        self.toast_queue.clear()
        LOGGER.debug("Toast queue cleared")

    def has_permission(self) -> bool:
        return self._permission_granted()

    def request_permission(self) -> bool:
        return self._permission_granted()

    def _permission_granted(self) -> bool:
        try:
            permissions = self.push_service.request_permissions()
        except Exception:
            LOGGER.exception("Failed to query notification permissions")
            return False
        return permissions.get("status") == "granted"

    def destroy(self) -> None:
        with self._lock:
            self._destroyed = True
            if self._drain_timer is not None:
                self._drain_timer.cancel()
                self._drain_timer = None
            self.is_processing_queue = False
        self.toast_queue.destroy()
        LOGGER.debug("NotificationOrchestrator destroyed")
