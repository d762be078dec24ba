"""Notification orchestration for the habit tracker.

Strategies decide whether, when, what and how urgently to notify; the
orchestrator delivers the result as a scheduled push, an in-app toast, or
both.
"""

from habit_notifications.config import InvalidSettingsError, settings_from_dict
from habit_notifications.collectors import ContextError, build_context, context_from_dict
from habit_notifications.models import (
    NotificationContext,
    NotificationPriority,
    NotificationSettings,
    StreakSummary,
    TaskSummary,
    Toast,
    ToastEffects,
    UnifiedNotification,
)
from habit_notifications.orchestrator import NotificationOrchestrator
from habit_notifications.queue import ToastQueue
from habit_notifications.quiet_hours import is_in_quiet_hours, should_apply_weekend_mode
from habit_notifications.service import StrategyDecision, evaluate_strategies
from habit_notifications.strategies import (
    DailySummaryStrategy,
    StreakProtectionStrategy,
    WeeklyRecapStrategy,
)

__all__ = [
    "ContextError",
    "DailySummaryStrategy",
    "InvalidSettingsError",
    "NotificationContext",
    "NotificationOrchestrator",
    "NotificationPriority",
    "NotificationSettings",
    "StrategyDecision",
    "StreakProtectionStrategy",
    "StreakSummary",
    "TaskSummary",
    "Toast",
    "ToastEffects",
    "ToastQueue",
    "UnifiedNotification",
    "WeeklyRecapStrategy",
    "build_context",
    "context_from_dict",
    "evaluate_strategies",
    "is_in_quiet_hours",
    "settings_from_dict",
    "should_apply_weekend_mode",
]
