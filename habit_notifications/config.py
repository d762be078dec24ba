"""Shared configuration defaults and limits for the notification engine."""
from __future__ import annotations

import copy
import re
from typing import Any, Dict, Mapping

from .models import (
    AchievementSettings,
    DailySettings,
    GlobalSettings,
    NotificationSettings,
    QuietHours,
    StreakSettings,
)

DEFAULT_NOTIFICATION_SETTINGS: Dict[str, Dict[str, Any]] = {
    "global": {
        "enabled": False,
        "quiet_hours": {"enabled": False, "start": "22:00", "end": "08:00"},
        "weekend_mode": "normal",
        "sound_enabled": True,
        "vibration_enabled": True,
    },
    "daily": {
        "enabled": False,
        "time": "20:00",
        "smart_mode": True,
        "include_motivation": False,
    },
    "streaks": {
        "protection_enabled": False,
        "protection_time": "21:00",
        "protection_threshold": 3,
        "priority_based_alerts": True,
    },
    "achievements": {
        "enabled": True,
        "milestone_alerts": True,
        "weekly_recap_enabled": False,
        "weekly_recap_day": "sunday",
        "weekly_recap_time": "19:00",
    },
}

VALID_WEEKEND_MODES = {"off", "reduced", "normal"}
VALID_RECAP_DAYS = {"sunday", "monday"}
VALID_NOTIFICATION_TYPES = {"push", "toast", "both"}
VALID_VARIANTS = {"success", "warning", "info", "celebration", "error"}

PRIORITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}
PRIORITY_LEVELS = ("low", "medium", "high", "critical")

# Toast queue limits
MAX_QUEUE_SIZE = 50
DEDUP_WINDOW_SECONDS = 2.0
RATE_LIMIT_WINDOW_SECONDS = 10.0
RATE_LIMIT_MAX = 5
HASH_CLEANUP_INTERVAL_SECONDS = 5.0

# Orchestrator drain loop
DRAIN_BATCH_SIZE = 3
DRAIN_DELAY_SECONDS = 0.5

# Streak escalation thresholds (days / hours)
HIGH_VALUE_STREAK_DAYS = 30
CRITICAL_STREAK_DAYS = 100
PROTECTION_WINDOW_HOURS = 4
STREAK_MILESTONES = {7: "1 week", 30: "1 month", 100: "100 days!"}

TOAST_PRESETS: Dict[str, Dict[str, Any]] = {
    "success": {"variant": "success", "icon": "✅", "priority": "medium", "effects": {"sound": "success"}},
    "error": {"variant": "error", "icon": "❌", "priority": "high", "effects": {"sound": "error"}},
    "warning": {"variant": "warning", "icon": "⚠️", "priority": "medium"},
    "info": {"variant": "info", "icon": "ℹ️", "priority": "low"},
    "celebration": {
        "variant": "celebration",
        "icon": "🎉",
        "priority": "high",
        "effects": {"sound": "milestone", "confetti": "burst", "haptic": True},
    },
}

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


class InvalidSettingsError(ValueError):
    """Raised when a settings payload cannot describe a usable configuration."""


def is_valid_time(value: Any) -> bool:
    return isinstance(value, str) and bool(_TIME_RE.match(value))


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Mapping):
            value = _normalize_keys(value)
        normalized[_snake(str(key))] = value
    return normalized


def _deep_merge(base: Dict[str, Any], extra: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in extra.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _require_time(section: str, key: str, value: Any) -> str:
    if not is_valid_time(value):
        raise InvalidSettingsError(f"{section}.{key} must be HH:MM, got {value!r}")
    return value


def settings_from_dict(data: Mapping[str, Any] | None = None) -> NotificationSettings:
    """Merge a (possibly partial) settings payload over the defaults.

    Accepts camelCase keys as stored by the mobile client as well as
    snake_case keys.
    """
    if data is not None and not isinstance(data, Mapping):
        raise InvalidSettingsError("settings payload must be a mapping")
    merged = _deep_merge(DEFAULT_NOTIFICATION_SETTINGS, _normalize_keys(data or {}))
    for section in ("global", "daily", "streaks", "achievements"):
        if not isinstance(merged[section], dict):
            raise InvalidSettingsError(f"{section} must be an object")
    if not isinstance(merged["global"]["quiet_hours"], dict):
        raise InvalidSettingsError("global.quiet_hours must be an object")

    general = merged["global"]
    quiet = general["quiet_hours"]
    daily = merged["daily"]
    streaks = merged["streaks"]
    achievements = merged["achievements"]

    weekend_mode = str(general["weekend_mode"]).lower()
    if weekend_mode not in VALID_WEEKEND_MODES:
        raise InvalidSettingsError(f"global.weekend_mode must be one of {sorted(VALID_WEEKEND_MODES)}")
    recap_day = str(achievements["weekly_recap_day"]).lower()
    if recap_day not in VALID_RECAP_DAYS:
        raise InvalidSettingsError(f"achievements.weekly_recap_day must be one of {sorted(VALID_RECAP_DAYS)}")
    try:
        threshold = int(streaks["protection_threshold"])
    except (TypeError, ValueError) as exc:
        raise InvalidSettingsError("streaks.protection_threshold must be an integer") from exc
    if threshold < 0:
        raise InvalidSettingsError("streaks.protection_threshold must not be negative")

    return NotificationSettings(
        general=GlobalSettings(
            enabled=bool(general["enabled"]),
            quiet_hours=QuietHours(
                enabled=bool(quiet["enabled"]),
                start=_require_time("global.quiet_hours", "start", quiet["start"]),
                end=_require_time("global.quiet_hours", "end", quiet["end"]),
            ),
            weekend_mode=weekend_mode,
            sound_enabled=bool(general["sound_enabled"]),
            vibration_enabled=bool(general["vibration_enabled"]),
        ),
        daily=DailySettings(
            enabled=bool(daily["enabled"]),
            time=_require_time("daily", "time", daily["time"]),
            smart_mode=bool(daily["smart_mode"]),
            include_motivation=bool(daily["include_motivation"]),
        ),
        streaks=StreakSettings(
            protection_enabled=bool(streaks["protection_enabled"]),
            protection_time=_require_time("streaks", "protection_time", streaks["protection_time"]),
            protection_threshold=threshold,
            priority_based_alerts=bool(streaks["priority_based_alerts"]),
        ),
        achievements=AchievementSettings(
            enabled=bool(achievements["enabled"]),
            milestone_alerts=bool(achievements["milestone_alerts"]),
            weekly_recap_enabled=bool(achievements["weekly_recap_enabled"]),
            weekly_recap_day=recap_day,
            weekly_recap_time=_require_time("achievements", "weekly_recap_time", achievements["weekly_recap_time"]),
        ),
    )


def settings_to_dict(settings: NotificationSettings) -> Dict[str, Dict[str, Any]]:
    general = settings.general
    return {
        "global": {
            "enabled": general.enabled,
            "quiet_hours": {
                "enabled": general.quiet_hours.enabled,
                "start": general.quiet_hours.start,
                "end": general.quiet_hours.end,
            },
            "weekend_mode": general.weekend_mode,
            "sound_enabled": general.sound_enabled,
            "vibration_enabled": general.vibration_enabled,
        },
        "daily": {
            "enabled": settings.daily.enabled,
            "time": settings.daily.time,
            "smart_mode": settings.daily.smart_mode,
            "include_motivation": settings.daily.include_motivation,
        },
        "streaks": {
            "protection_enabled": settings.streaks.protection_enabled,
            "protection_time": settings.streaks.protection_time,
            "protection_threshold": settings.streaks.protection_threshold,
            "priority_based_alerts": settings.streaks.priority_based_alerts,
        },
        "achievements": {
            "enabled": settings.achievements.enabled,
            "milestone_alerts": settings.achievements.milestone_alerts,
            "weekly_recap_enabled": settings.achievements.weekly_recap_enabled,
            "weekly_recap_day": settings.achievements.weekly_recap_day,
            "weekly_recap_time": settings.achievements.weekly_recap_time,
        },
    }
