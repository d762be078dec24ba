"""Turns queued toast requests into displayable toasts and fires their effects."""
from __future__ import annotations

import itertools
import logging
import time
from typing import Callable, Optional

from .channels import EffectsPlayer
from .models import Toast, ToastEffects, ToastRequest

LOGGER = logging.getLogger(__name__)


class ToastFactory:
    def __init__(
        self,
        effects: Optional[EffectsPlayer] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._effects = effects
        self._clock = clock
        self._counter = itertools.count()

    def create_toast(self, request: ToastRequest) -> Toast:
        toast_id = f"toast-{int(self._clock() * 1000)}-{next(self._counter)}"
        toast = Toast(
            id=toast_id,
            message=request.message,
            variant=request.variant,
            duration=request.duration,
            icon=request.icon,
            effects=request.effects,
            action=request.action,
            on_dismiss=request.on_dismiss,
        )
        LOGGER.debug("Toast created: %s (%s) %r", toast.id, toast.variant, toast.message)
        return toast

    def trigger_effects(self, effects: Optional[ToastEffects]) -> None:
        """Fire sound, confetti and haptics. Failures are logged, never raised."""
        if effects is None or self._effects is None:
            return

        wants_sound = bool(effects.sound) and effects.sound != "none"
        if wants_sound:
            self._fire("play_sound", effects.sound)

        if effects.confetti:
            kind = effects.confetti if isinstance(effects.confetti, str) else "burst"
            self._fire("trigger_confetti", kind)

        # a played sound already carries its haptic pulse
        if effects.haptic and not wants_sound:
            self._fire("trigger_haptic")

    def _fire(self, method: str, *args) -> None:
        try:
            getattr(self._effects, method)(*args)
        except Exception:
            LOGGER.exception("Toast effect %s%r failed", method, args)
