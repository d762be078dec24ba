from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple, Union


@dataclass(frozen=True, slots=True)
class QuietHours:
    """Time-of-day window (``HH:MM`` bounds) during which alerts are held back."""

    enabled: bool = False
    start: str = "22:00"
    end: str = "08:00"


@dataclass(frozen=True, slots=True)
class GlobalSettings:
    enabled: bool = False
    quiet_hours: QuietHours = field(default_factory=QuietHours)
    weekend_mode: str = "normal"  # off, reduced, normal
    sound_enabled: bool = True
    vibration_enabled: bool = True


@dataclass(frozen=True, slots=True)
class DailySettings:
    enabled: bool = False
    time: str = "20:00"
    smart_mode: bool = True
    include_motivation: bool = False


@dataclass(frozen=True, slots=True)
class StreakSettings:
    protection_enabled: bool = False
    protection_time: str = "21:00"
    protection_threshold: int = 3
    priority_based_alerts: bool = True


@dataclass(frozen=True, slots=True)
class AchievementSettings:
    enabled: bool = True
    milestone_alerts: bool = True
    weekly_recap_enabled: bool = False
    weekly_recap_day: str = "sunday"  # sunday, monday
    weekly_recap_time: str = "19:00"


@dataclass(frozen=True, slots=True)
class NotificationSettings:
    """Immutable settings snapshot used for one evaluation.

    ``general`` holds what the settings store calls the ``global`` section.
    """

    general: GlobalSettings = field(default_factory=GlobalSettings)
    daily: DailySettings = field(default_factory=DailySettings)
    streaks: StreakSettings = field(default_factory=StreakSettings)
    achievements: AchievementSettings = field(default_factory=AchievementSettings)


@dataclass(frozen=True, slots=True)
class TaskSummary:
    id: str
    name: str
    icon: Optional[str] = None
    reminder_enabled: bool = False
    reminder_time: Optional[str] = None
    last_completion_date: Optional[str] = None
    completed_today: bool = False


@dataclass(frozen=True, slots=True)
class StreakSummary:
    task_id: str
    task_name: str
    current_streak: int = 0
    best_streak: int = 0
    last_completion_date: Optional[str] = None
    at_risk: bool = False


@dataclass(frozen=True, slots=True)
class NotificationContext:
    """Everything a strategy needs to make a decision, assembled by the caller."""

    date: str
    tasks: Tuple[TaskSummary, ...] = ()
    streaks: Tuple[StreakSummary, ...] = ()
    completed_today: FrozenSet[str] = frozenset()
    settings: NotificationSettings = field(default_factory=NotificationSettings)
    time_until_midnight: float = 0.0
    is_weekend: bool = False


@dataclass(frozen=True, slots=True)
class NotificationPriority:
    level: str = "medium"  # low, medium, high, critical
    sound: bool = False
    vibrate: bool = False
    persistent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "sound": self.sound,
            "vibrate": self.vibrate,
            "persistent": self.persistent,
        }


@dataclass(frozen=True, slots=True)
class StrategyMessage:
    title: str
    body: str


@dataclass(frozen=True, slots=True)
class ToastEffects:
    sound: Optional[str] = None  # sound kind or "none"
    confetti: Union[bool, str, None] = None  # True, "burst", "fireworks", "rain"
    haptic: bool = False


@dataclass(frozen=True, slots=True)
class ToastAction:
    label: str
    on_press: Callable[[], None]


@dataclass(frozen=True, slots=True)
class ToastRequest:
    """A toast as asked for by a caller, before it receives a display id."""

    message: str
    variant: str = "info"
    icon: Optional[str] = None
    effects: Optional[ToastEffects] = None
    duration: Optional[int] = None
    action: Optional[ToastAction] = None
    on_dismiss: Optional[Callable[[], None]] = None
    id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Toast:
    """A displayable toast. ``duration == 0`` keeps it on screen until dismissed."""

    id: str
    message: str
    variant: str = "info"
    duration: Optional[int] = None
    icon: Optional[str] = None
    effects: Optional[ToastEffects] = None
    action: Optional[ToastAction] = None
    on_dismiss: Optional[Callable[[], None]] = None

    def to_dict(self) -> Dict[str, Any]:
        effects = None
        if self.effects is not None:
            effects = {
                "sound": self.effects.sound,
                "confetti": self.effects.confetti,
                "haptic": self.effects.haptic,
            }
        return {
            "id": self.id,
            "message": self.message,
            "variant": self.variant,
            "duration": self.duration,
            "icon": self.icon,
            "effects": effects,
            "action": self.action.label if self.action else None,
        }


@dataclass(slots=True)
class QueuedToast:
    """Queue entry. Owned by the queue until it is dequeued."""

    id: str
    message: str
    priority: str
    timestamp: float
    hash: str
    data: ToastRequest


@dataclass(slots=True)
class UnifiedNotification:
    """Channel-agnostic request handed to the orchestrator."""

    type: str  # push, toast, both
    message: str
    title: Optional[str] = None
    priority: Optional[str] = None
    variant: Optional[str] = None
    icon: Optional[str] = None
    effects: Optional[ToastEffects] = None
    scheduled_time: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)
