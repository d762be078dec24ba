"""Strategy evaluation loop and reminder synchronisation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .channels import DeviceScheduler, MessageScheduler
from .models import NotificationContext, NotificationPriority, NotificationSettings, TaskSummary
from .strategies import NotificationStrategy, default_strategies

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class StrategyDecision:
    """A strategy that fired, with everything needed to deliver it."""

    type: str
    title: str
    body: str
    scheduled_time: datetime
    priority: NotificationPriority

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "body": self.body,
            "scheduled_time": self.scheduled_time.isoformat(),
            "priority": self.priority.to_dict(),
        }


def evaluate_strategies(
    context: NotificationContext,
    strategies: Optional[Sequence[NotificationStrategy]] = None,
    now: Optional[datetime] = None,
) -> List[StrategyDecision]:
    if not context.settings.general.enabled:
        LOGGER.debug("Notifications globally disabled; skipping evaluation")
        return []

    now = now or datetime.now()
    decisions: List[StrategyDecision] = []
    for strategy in strategies if strategies is not None else default_strategies():
        if not strategy.should_notify(context, now):
            continue
        message = strategy.get_message(context)
        decisions.append(
            StrategyDecision(
                type=strategy.type,
                title=message.title,
                body=message.body,
                scheduled_time=strategy.get_schedule_time(context, now),
                priority=strategy.get_priority(context),
            )
        )
    LOGGER.info("Evaluated notification strategies for %s: %d to send", context.date, len(decisions))
    return decisions


def dispatch_decisions(
    decisions: Iterable[StrategyDecision],
    scheduler: MessageScheduler,
    strategy_types: Optional[Iterable[str]] = None,
) -> int:
    """Schedule each decision as a push keyed by strategy type; returns how many were scheduled.

    A strategy in ``strategy_types`` (every default strategy when omitted)
    that produced no decision has its pending push cancelled, so a push
    that no longer applies is never delivered.
    """
    if strategy_types is None:
        strategy_types = [strategy.type for strategy in default_strategies()]

    scheduled = 0
    fired = set()
    for decision in decisions:
        fired.add(decision.type)
        try:
            scheduler.schedule_notification(
                decision.type,
                decision.title,
                decision.body,
                decision.scheduled_time,
                priority=decision.priority,
                data={"type": decision.type},
            )
            scheduled += 1
        except Exception:
            LOGGER.exception("Failed to schedule %s notification", decision.type)

    for kind in strategy_types:
        if kind in fired:
            continue
        try:
            scheduler.cancel_notification(kind)
        except Exception:
            LOGGER.exception("Failed to cancel stale %s notification", kind)
    return scheduled


def _attempt(action: Callable[..., Any], *args: Any) -> bool:
    try:
        action(*args)
        return True
    except Exception:
        LOGGER.exception("Reminder sync step %s%r failed", getattr(action, "__name__", action), args)
        return False


def sync_reminders(
    settings: NotificationSettings,
    tasks: Iterable[TaskSummary],
    scheduler: DeviceScheduler,
) -> int:
    """Bring the scheduler's reminders in line with the current settings and tasks.

    Every scheduler call is attempted on its own, so one failing reminder
    never keeps the others from syncing. Returns how many calls failed.
    """
    if not settings.general.enabled:
        failed = not _attempt(scheduler.cancel_all_notifications)
        LOGGER.info("All notifications disabled")
        return int(failed)

    failures = 0
    # smart mode sends the daily summary strategy instead of the static reminder
    if settings.daily.enabled and not settings.daily.smart_mode:
        failures += not _attempt(scheduler.schedule_global_daily_reminder, settings.daily.time, True)
    else:
        failures += not _attempt(scheduler.cancel_global_daily_reminder)

    for task in tasks:
        if task.reminder_enabled and task.reminder_time:
            failures += not _attempt(scheduler.schedule_task_reminder, task, task.reminder_time, "daily")
        else:
            failures += not _attempt(scheduler.cancel_task_reminder, task.id)

    if failures:
        LOGGER.warning("Reminder sync finished with %d failed calls", failures)
    return failures
