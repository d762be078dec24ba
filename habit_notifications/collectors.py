from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional

import requests

from .config import InvalidSettingsError, settings_from_dict
from .models import NotificationContext, NotificationSettings, StreakSummary, TaskSummary
from .quiet_hours import hours_until_midnight

LOGGER = logging.getLogger(__name__)


class ContextError(ValueError):
    """Raised when a context snapshot cannot be turned into a NotificationContext."""


def _pick(data: Mapping[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def task_from_dict(data: Mapping[str, Any]) -> TaskSummary:
    if not isinstance(data, Mapping):
        raise ContextError("task entries must be JSON objects")
    try:
        return TaskSummary(
            id=str(data["id"]),
            name=str(data["name"]),
            icon=data.get("icon"),
            reminder_enabled=bool(_pick(data, "reminderEnabled", "reminder_enabled", False)),
            reminder_time=_pick(data, "reminderTime", "reminder_time"),
            last_completion_date=_pick(data, "lastCompletionDate", "last_completion_date"),
            completed_today=bool(_pick(data, "completedToday", "completed_today", False)),
        )
    except KeyError as exc:
        raise ContextError(f"task is missing {exc.args[0]!r}") from exc


def streak_from_dict(data: Mapping[str, Any]) -> StreakSummary:
    if not isinstance(data, Mapping):
        raise ContextError("streak entries must be JSON objects")
    if _pick(data, "taskId", "task_id") is None:
        raise ContextError("streak is missing 'taskId'")
    try:
        return StreakSummary(
            task_id=str(_pick(data, "taskId", "task_id")),
            task_name=str(_pick(data, "taskName", "task_name")),
            current_streak=int(_pick(data, "currentStreak", "current_streak", 0)),
            best_streak=int(_pick(data, "bestStreak", "best_streak", 0)),
            last_completion_date=_pick(data, "lastCompletionDate", "last_completion_date"),
            at_risk=bool(_pick(data, "atRisk", "at_risk", False)),
        )
    except (TypeError, ValueError) as exc:
        raise ContextError(f"invalid streak entry: {exc}") from exc


def build_context(
    settings: NotificationSettings,
    tasks: Iterable[TaskSummary],
    streaks: Iterable[StreakSummary],
    now: Optional[datetime] = None,
) -> NotificationContext:
    """Assemble a context for ``now`` from task and streak summaries."""
    now = now or datetime.now()
    tasks = tuple(tasks)
    return NotificationContext(
        date=now.date().isoformat(),
        tasks=tasks,
        streaks=tuple(streaks),
        completed_today=frozenset(task.id for task in tasks if task.completed_today),
        settings=settings,
        time_until_midnight=hours_until_midnight(now),
        is_weekend=now.weekday() >= 5,
    )


def context_from_dict(data: Mapping[str, Any], now: Optional[datetime] = None) -> NotificationContext:
    """Parse a JSON context snapshot.

    ``date``, ``completedToday``, ``timeUntilMidnight`` and ``isWeekend`` are
    optional; missing values are derived from the task list and ``now``.
    """
    if not isinstance(data, Mapping):
        raise ContextError("context snapshot must be a JSON object")

    try:
        settings = settings_from_dict(data.get("settings") or {})
    except InvalidSettingsError as exc:
        raise ContextError(str(exc)) from exc

    tasks = [task_from_dict(item) for item in data.get("tasks") or []]
    streaks = [streak_from_dict(item) for item in data.get("streaks") or []]
    context = build_context(settings, tasks, streaks, now)

    overrides: Dict[str, Any] = {}
    if "date" in data:
        overrides["date"] = str(data["date"])
    completed = _pick(data, "completedToday", "completed_today")
    if completed is not None:
        overrides["completed_today"] = frozenset(str(task_id) for task_id in completed)
    remaining = _pick(data, "timeUntilMidnight", "time_until_midnight")
    if remaining is not None:
        try:
            overrides["time_until_midnight"] = max(0.0, float(remaining))
        except (TypeError, ValueError) as exc:
            raise ContextError("timeUntilMidnight must be a number") from exc
    weekend = _pick(data, "isWeekend", "is_weekend")
    if weekend is not None:
        overrides["is_weekend"] = bool(weekend)

    return replace(context, **overrides) if overrides else context


def fetch_context_snapshot(url: str, timeout: float = 5, now: Optional[datetime] = None) -> NotificationContext:
    """Retrieve a context snapshot from the habit service, derived for ``now``."""
    resp = requests.get(url, headers={"Accept": "application/json"}, timeout=timeout)
    resp.raise_for_status()
    LOGGER.debug("Fetched notification context from %s", url)
    return context_from_dict(resp.json(), now=now)


__all__ = [
    "ContextError",
    "build_context",
    "context_from_dict",
    "fetch_context_snapshot",
    "streak_from_dict",
    "task_from_dict",
]
