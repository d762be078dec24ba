"""Notification strategies.

Each strategy answers four questions for a :class:`NotificationContext`:
should we notify, what do we say, when, and how urgently. Strategies keep no
state between calls and never mutate the context, so one instance can be
shared by the evaluation loop and the HTTP surface.
"""
from __future__ import annotations

import logging
import math
import random
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence

from .config import (
    CRITICAL_STREAK_DAYS,
    HIGH_VALUE_STREAK_DAYS,
    PROTECTION_WINDOW_HOURS,
    STREAK_MILESTONES,
)
from .models import NotificationContext, NotificationPriority, StrategyMessage, StreakSummary
from .quiet_hours import (
    RECAP_DAY_INDEX,
    is_in_quiet_hours,
    next_daily_occurrence,
    next_weekly_occurrence,
    should_apply_weekend_mode,
    sunday_weekday,
)

LOGGER = logging.getLogger(__name__)

APP_TITLE = "Green Streak"
STATIC_DAILY_MESSAGE = "Time to log your daily habits! How did you do today?"

MOTIVATIONAL_QUOTES = (
    "Success is the sum of small efforts repeated day in and day out.",
    "We are what we repeatedly do. Excellence, then, is not an act, but a habit.",
    "The secret of getting ahead is getting started.",
    "Don't watch the clock; do what it does. Keep going.",
    "A year from now, you'll wish you had started today.",
    "The only way to do great work is to love what you do.",
    "Believe you can and you're halfway there.",
    "Success is not final, failure is not fatal: it is the courage to continue that counts.",
    "The difference between ordinary and extraordinary is that little extra.",
    "Your future is created by what you do today, not tomorrow.",
)


class NotificationStrategy(Protocol):
    type: str

    def should_notify(self, context: NotificationContext, now: Optional[datetime] = None) -> bool:
        ...

    def get_message(self, context: NotificationContext) -> StrategyMessage:
        ...

    def get_schedule_time(self, context: NotificationContext, now: Optional[datetime] = None) -> datetime:
        ...

    def get_priority(self, context: NotificationContext) -> NotificationPriority:
        ...


def default_priority(context: NotificationContext, level: str = "medium") -> NotificationPriority:
    general = context.settings.general
    return NotificationPriority(
        level=level,
        sound=general.sound_enabled,
        vibrate=general.vibration_enabled,
    )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _log_decision(strategy_type: str, decision: bool, reason: str, **details) -> None:
    LOGGER.debug("%s strategy: %s (decision=%s, %s)", strategy_type, reason, decision, details)


class DailySummaryStrategy:
    """Evening summary of today's progress."""

    type = "daily_summary"

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def should_notify(self, context: NotificationContext, now: Optional[datetime] = None) -> bool:
        settings = context.settings
        if not settings.daily.enabled:
            _log_decision(self.type, False, "Daily notifications disabled")
            return False
        if is_in_quiet_hours(settings, now):
            _log_decision(self.type, False, "In quiet hours")
            return False
        if should_apply_weekend_mode(settings, context.is_weekend):
            _log_decision(self.type, False, "Weekend mode active")
            return False
        _log_decision(self.type, True, "Should send daily notification")
        return True

    def get_message(self, context: NotificationContext) -> StrategyMessage:
        if context.settings.daily.smart_mode:
            body = self._smart_message(context)
        else:
            body = STATIC_DAILY_MESSAGE

        if context.settings.daily.include_motivation:
            quote = self._rng.choice(MOTIVATIONAL_QUOTES)
            body = f'{body}\n\n💭 "{quote}"'

        return StrategyMessage(title=APP_TITLE, body=body)

    def get_schedule_time(self, context: NotificationContext, now: Optional[datetime] = None) -> datetime:
        return next_daily_occurrence(context.settings.daily.time, now)

    def get_priority(self, context: NotificationContext) -> NotificationPriority:
        if any(streak.at_risk for streak in context.streaks):
            return default_priority(context, "high")
        return default_priority(context)

    def _smart_message(self, context: NotificationContext) -> str:
        completed = len(context.completed_today)
        total = len(context.tasks)
        percentage = round_half_up(completed / total * 100) if total > 0 else 0

        if completed == total and total > 0:
            return f"Perfect day! All {total} habits completed! 🌟"
        if percentage >= 80:
            return f"Great job! You completed {completed}/{total} habits today 🎯"
        if percentage >= 50:
            return f"Good progress! {completed}/{total} habits done. Keep going! 💪"
        if completed > 0:
            return f"You've started! {completed}/{total} complete. Finish strong! 🚀"

        at_risk = [streak for streak in context.streaks if streak.at_risk]
        if len(at_risk) == 1:
            streak = at_risk[0]
            return f"Don't break your {streak.current_streak} day {streak.task_name} streak! 🔥"
        if at_risk:
            longest = max(streak.current_streak for streak in at_risk)
            return f"{len(at_risk)} streaks at risk! Your longest is {longest} days 🔥"

        return "Time to log today's habits! How did you do? 📝"


class StreakProtectionStrategy:
    """Late-evening warning for streaks that will reset at midnight."""

    type = "streak_protection"

    def should_notify(self, context: NotificationContext, now: Optional[datetime] = None) -> bool:
        settings = context.settings
        if not settings.streaks.protection_enabled:
            _log_decision(self.type, False, "Streak protection disabled")
            return False

        at_risk = self.at_risk_streaks(context)
        if not at_risk:
            _log_decision(self.type, False, "No streaks at risk")
            return False

        if context.time_until_midnight > PROTECTION_WINDOW_HOURS:
            _log_decision(
                self.type, False, "Too early for streak protection",
                hours_remaining=context.time_until_midnight,
            )
            return False

        high_value = any(
            streak.at_risk and streak.current_streak >= HIGH_VALUE_STREAK_DAYS
            for streak in context.streaks
        )
        if not high_value and is_in_quiet_hours(settings, now):
            _log_decision(self.type, False, "In quiet hours and no critical streaks")
            return False

        _log_decision(
            self.type, True, "Should send streak protection",
            at_risk_count=len(at_risk), hours_remaining=context.time_until_midnight,
        )
        return True

    def get_message(self, context: NotificationContext) -> StrategyMessage:
        at_risk = self.at_risk_streaks(context)
        hours_left = math.ceil(context.time_until_midnight)

        if not at_risk:
            return StrategyMessage(title="Streaks Safe", body="All your streaks are safe for today! 🛡️")

        if len(at_risk) == 1:
            streak = at_risk[0]
            urgency = _urgency_marker(context.time_until_midnight)
            return StrategyMessage(
                title=f"Streak at Risk {urgency}",
                body=(
                    f"Your {streak.current_streak} day {streak.task_name} streak "
                    f"ends in {hours_left} hours!"
                ),
            )

        longest = max(streak.current_streak for streak in at_risk)
        names = ", ".join(streak.task_name for streak in at_risk[:2])
        more = f" +{len(at_risk) - 2} more" if len(at_risk) > 2 else ""
        return StrategyMessage(
            title=f"{len(at_risk)} Streaks at Risk! 🚨",
            body=f"{names}{more} • Longest: {longest} days • {hours_left}h remaining",
        )

    def get_schedule_time(self, context: NotificationContext, now: Optional[datetime] = None) -> datetime:
        return next_daily_occurrence(context.settings.streaks.protection_time, now)

    def get_priority(self, context: NotificationContext) -> NotificationPriority:
        at_risk = self.at_risk_streaks(context)
        if not at_risk:
            return default_priority(context)

        longest = max(streak.current_streak for streak in at_risk)
        hours_left = context.time_until_midnight

        if longest >= CRITICAL_STREAK_DAYS or hours_left <= 1:
            return NotificationPriority(level="critical", sound=True, vibrate=True, persistent=True)
        if longest >= HIGH_VALUE_STREAK_DAYS or hours_left <= 2:
            return default_priority(context, "high")
        if longest >= 7:
            return default_priority(context, "medium")
        return default_priority(context, "low")

    @staticmethod
    def at_risk_streaks(context: NotificationContext) -> List[StreakSummary]:
        threshold = context.settings.streaks.protection_threshold
        return [
            streak
            for streak in context.streaks
            if streak.at_risk
            and streak.current_streak >= threshold
            and streak.task_id not in context.completed_today
        ]


def _urgency_marker(hours_remaining: float) -> str:
    if hours_remaining <= 1:
        return "🚨"
    if hours_remaining <= 2:
        return "⚠️"
    if hours_remaining <= 3:
        return "⏰"
    return "🔥"


class WeeklyRecapStrategy:
    """Once-a-week summary with streak highlights.

    The weekly completion figures are estimated from today's completions;
    no seven-day history is part of the context.
    """

    type = "weekly_recap"

    def should_notify(self, context: NotificationContext, now: Optional[datetime] = None) -> bool:
        settings = context.settings
        if not settings.achievements.weekly_recap_enabled:
            _log_decision(self.type, False, "Weekly recap disabled")
            return False

        now = now or datetime.now()
        today = sunday_weekday(now)
        target = RECAP_DAY_INDEX[settings.achievements.weekly_recap_day]
        if today != target:
            _log_decision(self.type, False, "Not the scheduled recap day", today=today, target=target)
            return False

        if is_in_quiet_hours(settings, now):
            _log_decision(self.type, False, "In quiet hours")
            return False

        _log_decision(self.type, True, "Should send weekly recap")
        return True

    def get_message(self, context: NotificationContext) -> StrategyMessage:
        stats = self.weekly_stats(context)
        rate = stats["completion_rate"]

        if rate == 100:
            title = "Perfect Week! 🏆"
            body = (
                f"Incredible! You completed all {stats['total_possible']} habits this week! "
                "Keep up the amazing work!"
            )
        elif rate >= 80:
            title = "Great Week! 🌟"
            body = (
                f"You completed {stats['total_completed']}/{stats['total_possible']} habits "
                f"({rate}%). Excellent consistency!"
            )
        elif rate >= 60:
            title = "Good Progress! 💪"
            body = (
                f"You completed {stats['total_completed']}/{stats['total_possible']} habits "
                f"({rate}%). Keep building momentum!"
            )
        else:
            title = "New Week, New Start! 🚀"
            body = (
                f"You completed {stats['total_completed']} habits this week. "
                "Every day is a fresh opportunity!"
            )

        if stats["longest_streak"] > 0:
            body += f"\n\n🔥 Longest streak: {stats['longest_streak']} days"
        if stats["new_milestones"]:
            body += f"\n🎉 New milestones: {', '.join(stats['new_milestones'])}"

        return StrategyMessage(title=title, body=body)

    def get_schedule_time(self, context: NotificationContext, now: Optional[datetime] = None) -> datetime:
        achievements = context.settings.achievements
        return next_weekly_occurrence(
            RECAP_DAY_INDEX[achievements.weekly_recap_day],
            achievements.weekly_recap_time,
            now,
        )

    def get_priority(self, context: NotificationContext) -> NotificationPriority:
        return NotificationPriority(level="low", sound=False, vibrate=False)

    @staticmethod
    def weekly_stats(context: NotificationContext) -> Dict[str, object]:
        total_possible = len(context.tasks) * 7
        # TODO: replace with real seven-day totals once a weekly log summary is added to the context
        estimated_completed = len(context.completed_today) * 5
        completion_rate = (
            round_half_up(estimated_completed / total_possible * 100) if total_possible > 0 else 0
        )
        longest = max((streak.current_streak for streak in context.streaks), default=0)
        milestones = [
            f"{streak.task_name} ({STREAK_MILESTONES[streak.current_streak]})"
            for streak in context.streaks
            if streak.current_streak in STREAK_MILESTONES
        ]
        return {
            "total_completed": estimated_completed,
            "total_possible": total_possible,
            "completion_rate": completion_rate,
            "longest_streak": longest,
            "new_milestones": milestones,
        }


def default_strategies() -> Sequence[NotificationStrategy]:
    return [DailySummaryStrategy(), StreakProtectionStrategy(), WeeklyRecapStrategy()]
