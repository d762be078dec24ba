# app.py
from __future__ import annotations

import logging
import os
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Optional

from flask import Flask, jsonify, request

import celery_app  # noqa: F401  configures the Celery app the push tasks are sent through
from habit_notifications.channels import CeleryPushScheduler
from habit_notifications.collectors import ContextError, context_from_dict, task_from_dict
from habit_notifications.config import (
    PRIORITY_RANK,
    TOAST_PRESETS,
    VALID_NOTIFICATION_TYPES,
    VALID_VARIANTS,
)
from habit_notifications.models import Toast, ToastEffects, UnifiedNotification
from habit_notifications.orchestrator import NotificationOrchestrator
from habit_notifications.service import evaluate_strategies

LOGGER = logging.getLogger(__name__)

app = Flask(__name__)

DEBUG = os.getenv("FLASK_ENV") != "production"
RECENT_TOAST_LIMIT = int(os.getenv("RECENT_TOAST_LIMIT", "50"))

recent_toasts: Deque[Toast] = deque(maxlen=RECENT_TOAST_LIMIT)


def create_orchestrator() -> NotificationOrchestrator:
    return NotificationOrchestrator(
        CeleryPushScheduler(),
        toast_sinks=[recent_toasts.append],
    )


orchestrator = create_orchestrator()


class InvalidPayload(ValueError):
    pass


def _parse_when(raw: Any) -> Optional[datetime]:
    if raw in (None, ""):
        return None
    try:
        return datetime.fromisoformat(str(raw))
    except ValueError as exc:
        raise InvalidPayload(f"invalid datetime: {raw!r}") from exc


def _parse_effects(raw: Any) -> Optional[ToastEffects]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise InvalidPayload("effects must be an object")
    return ToastEffects(
        sound=raw.get("sound"),
        confetti=raw.get("confetti"),
        haptic=bool(raw.get("haptic", False)),
    )


def _toast_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key in ("title", "icon"):
        if payload.get(key) is not None:
            fields[key] = str(payload[key])
    priority = payload.get("priority")
    if priority is not None:
        if priority not in PRIORITY_RANK:
            raise InvalidPayload(f"invalid priority: {priority!r}")
        fields["priority"] = priority
    variant = payload.get("variant")
    if variant is not None:
        if variant not in VALID_VARIANTS:
            raise InvalidPayload(f"invalid variant: {variant!r}")
        fields["variant"] = variant
    if "effects" in payload:
        fields["effects"] = _parse_effects(payload["effects"])
    return fields


def _require_message(payload: Dict[str, Any]) -> str:
    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        raise InvalidPayload("Missing message")
    return message


def _build_notification(payload: Dict[str, Any]) -> UnifiedNotification:
    kind = payload.get("type", "toast")
    if kind not in VALID_NOTIFICATION_TYPES:
        raise InvalidPayload(f"invalid type: {kind!r}")

    data = dict(payload.get("data") or {})
    if data.get("task") is not None:
        try:
            data["task"] = task_from_dict(data["task"])
        except ContextError as exc:
            raise InvalidPayload(str(exc)) from exc

    return UnifiedNotification(
        type=kind,
        message=_require_message(payload),
        scheduled_time=_parse_when(payload.get("scheduled_time")),
        data=data,
        **_toast_fields(payload),
    )


@app.errorhandler(InvalidPayload)
def handle_bad_request(exc: InvalidPayload):
    return jsonify({"error": str(exc)}), 400


@app.route("/health", methods=["GET"])
def health():
    return jsonify({"ok": True})


@app.route("/notifications/queue", methods=["GET"])
def queue_stats():
    return jsonify(orchestrator.get_queue_stats())


@app.route("/notifications/queue", methods=["DELETE"])
def queue_clear():
    orchestrator.clear_toast_queue()
    return jsonify({"ok": True})


@app.route("/notifications/toasts", methods=["GET"])
def toasts_recent():
    return jsonify([toast.to_dict() for toast in recent_toasts])


@app.route("/notifications/notify", methods=["POST"])
def notify():
    payload = request.get_json(silent=True) or {}
    notification = _build_notification(payload)
    reminder_id = orchestrator.notify(notification)
    return jsonify({"accepted": True, "reminder_id": reminder_id}), 202


@app.route("/notifications/<helper>", methods=["POST"])
def notify_preset(helper: str):
    if helper not in TOAST_PRESETS:
        return jsonify({"error": f"Unknown notification helper: {helper}"}), 404
    payload = request.get_json(silent=True) or {}
    message = _require_message(payload)
    getattr(orchestrator, helper)(message, **_toast_fields(payload))
    return jsonify({"accepted": True}), 202


@app.route("/notifications/evaluate", methods=["POST"])
def evaluate():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Missing context"}), 400
    now = _parse_when(payload.get("now"))
    try:
        context = context_from_dict(payload.get("context", payload), now=now)
    except ContextError as exc:
        return jsonify({"error": str(exc)}), 400

    decisions = evaluate_strategies(context, now=now)
    return jsonify({"date": context.date, "decisions": [d.to_dict() for d in decisions]})


# ------------- Run -------------
if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG if DEBUG else logging.INFO)
    app.run(debug=DEBUG)
