from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from celery import shared_task

from .channels import CeleryPushScheduler, send_push_via_relay
from .collectors import fetch_context_snapshot
from .quiet_hours import local_now, user_timezone
from .service import dispatch_decisions, evaluate_strategies, sync_reminders
from .strategies import default_strategies

LOGGER = logging.getLogger(__name__)

# Pending deliveries live in redis, so this per-process instance holds no state
# another worker would need.
_push_scheduler: Optional[CeleryPushScheduler] = None


def get_push_scheduler() -> CeleryPushScheduler:
    global _push_scheduler
    if _push_scheduler is None:
        _push_scheduler = CeleryPushScheduler()
    return _push_scheduler


@shared_task(name="habit_notifications.tasks.deliver_push")
def deliver_push(payload: Dict[str, Any]) -> str:
    delivered = send_push_via_relay(payload)
    LOGGER.info("Push '%s' delivered=%s", payload.get("identifier"), delivered)
    return "sent" if delivered else "skipped"


@shared_task(name="habit_notifications.tasks.evaluate_notifications")
def evaluate_notifications() -> str:
    context_url = os.getenv("NOTIFY_CONTEXT_URL")
    if not context_url:
        LOGGER.warning("Skipping notification evaluation: NOTIFY_CONTEXT_URL not configured")
        return "0"

    now = local_now(user_timezone())
    context = fetch_context_snapshot(context_url, now=now)
    scheduler = get_push_scheduler()
    sync_reminders(context.settings, context.tasks, scheduler)

    strategies = default_strategies()
    decisions = evaluate_strategies(context, strategies, now=now)
    scheduled = dispatch_decisions(decisions, scheduler, [strategy.type for strategy in strategies])
    LOGGER.info("Scheduled %d strategy notifications", scheduled)
    return str(scheduled)
