"""In-process priority queue for short-lived toasts.

Provides priority ordering (stable within a priority), deduplication of
repeated messages, rolling-window rate limiting and overflow protection.
All mutations go through one lock, so enqueue order is acceptance order.
"""
from __future__ import annotations

import hashlib
import logging
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional

from .config import (
    DEDUP_WINDOW_SECONDS,
    HASH_CLEANUP_INTERVAL_SECONDS,
    MAX_QUEUE_SIZE,
    PRIORITY_LEVELS,
    PRIORITY_RANK,
    RATE_LIMIT_MAX,
    RATE_LIMIT_WINDOW_SECONDS,
)
from .models import QueuedToast, ToastRequest

LOGGER = logging.getLogger(__name__)


def message_hash(message: str) -> str:
    return hashlib.sha1(message.encode("utf-8")).hexdigest()


class ToastQueue:
    def __init__(
        self,
        *,
        max_queue_size: int = MAX_QUEUE_SIZE,
        dedup_window: float = DEDUP_WINDOW_SECONDS,
        rate_limit_window: float = RATE_LIMIT_WINDOW_SECONDS,
        rate_limit_max: int = RATE_LIMIT_MAX,
        cleanup_interval: Optional[float] = HASH_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_queue_size = max_queue_size
        self.dedup_window = dedup_window
        self.rate_limit_window = rate_limit_window
        self.rate_limit_max = rate_limit_max
        self._clock = clock

        self._queue: List[QueuedToast] = []
        self._recent_hashes: Dict[str, float] = {}
        self._rate_limit_timestamps: List[float] = []
        self._lock = threading.RLock()

        self._cleanup_interval = cleanup_interval
        self._cleanup_timer: Optional[threading.Timer] = None
        if cleanup_interval:
            self._schedule_cleanup()

    def enqueue(self, toast: ToastRequest, priority: str = "medium") -> Optional[QueuedToast]:
        """Queue ``toast``; returns ``None`` when it is a duplicate or rate limited."""
        if priority not in PRIORITY_RANK:
            raise ValueError(f"Unknown toast priority: {priority!r}")

        with self._lock:
            now = self._clock()
            digest = message_hash(toast.message)

            if not self._should_show(digest, now):
                LOGGER.debug("Toast deduplicated: %r (hash=%s)", toast.message, digest)
                return None

            if not self._check_rate_limit(now):
                LOGGER.warning(
                    "Toast rate limit exceeded (%d in %.0fs window, max %d)",
                    len(self._rate_limit_timestamps), self.rate_limit_window, self.rate_limit_max,
                )
                return None

            queued = QueuedToast(
                id=toast.id or f"queued-{int(now * 1000)}-{uuid.uuid4().hex[:8]}",
                message=toast.message,
                priority=priority,
                timestamp=now,
                hash=digest,
                data=toast,
            )
            self._queue.insert(self._insert_index(priority), queued)

            if len(self._queue) > self.max_queue_size:
                removed = self._queue[self.max_queue_size:]
                del self._queue[self.max_queue_size:]
                LOGGER.warning("Toast queue overflow, removed %d toasts", len(removed))

            self._recent_hashes[digest] = now
            self._rate_limit_timestamps.append(now)

            LOGGER.debug(
                "Toast enqueued: %s (priority=%s, queue_size=%d)",
                queued.id, priority, len(self._queue),
            )
            return queued

    def dequeue(self) -> Optional[QueuedToast]:
        with self._lock:
            if not self._queue:
                return None
            toast = self._queue.pop(0)
            LOGGER.debug(
                "Toast dequeued: %s (priority=%s, remaining=%d)",
                toast.id, toast.priority, len(self._queue),
            )
            return toast

    def peek(self) -> Optional[QueuedToast]:
        with self._lock:
            return self._queue[0] if self._queue else None

    def dequeue_multiple(self, limit: int) -> List[QueuedToast]:
        with self._lock:
            toasts = self._queue[:max(limit, 0)]
            del self._queue[:len(toasts)]
            if toasts:
                LOGGER.debug(
                    "Dequeued %d toasts (remaining=%d)", len(toasts), len(self._queue)
                )
            return toasts

    def size(self) -> int:
        with self._lock:
            return len(self._queue)

    def __len__(self) -> int:
        return self.size()

    def clear(self) -> None:
        with self._lock:
            previous = len(self._queue)
            self._queue = []
            self._recent_hashes.clear()
            self._rate_limit_timestamps = []
        LOGGER.debug("Toast queue cleared (previous_size=%d)", previous)

    def destroy(self) -> None:
        """Stop the cleanup timer and drop all state."""
        with self._lock:
            self._cleanup_interval = None
            if self._cleanup_timer is not None:
                self._cleanup_timer.cancel()
                self._cleanup_timer = None
        self.clear()
        LOGGER.debug("Toast queue destroyed")

    def get_stats(self) -> Dict[str, object]:
        with self._lock:
            self._prune_rate_limit(self._clock())
            counts = {level: 0 for level in PRIORITY_LEVELS}
            for toast in self._queue:
                counts[toast.priority] += 1
            return {
                "queue_size": len(self._queue),
                "rate_limit_remaining": max(0, self.rate_limit_max - len(self._rate_limit_timestamps)),
                "recent_hashes_count": len(self._recent_hashes),
                "priority_counts": counts,
            }

    def cleanup_old_hashes(self) -> int:
        """Forget hashes older than twice the dedup window. Returns how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [
                digest
                for digest, seen in self._recent_hashes.items()
                if now - seen > self.dedup_window * 2
            ]
            for digest in expired:
                del self._recent_hashes[digest]
        if expired:
            LOGGER.debug("Cleaned up %d old toast hashes", len(expired))
        return len(expired)

    def _should_show(self, digest: str, now: float) -> bool:
        last_shown = self._recent_hashes.get(digest)
        return last_shown is None or now - last_shown >= self.dedup_window

    def _prune_rate_limit(self, now: float) -> None:
        self._rate_limit_timestamps = [
            stamp for stamp in self._rate_limit_timestamps if now - stamp < self.rate_limit_window
        ]

    def _check_rate_limit(self, now: float) -> bool:
        self._prune_rate_limit(now)
        return len(self._rate_limit_timestamps) < self.rate_limit_max

    def _insert_index(self, priority: str) -> int:
        target = PRIORITY_RANK[priority]
        for index, queued in enumerate(self._queue):
            if PRIORITY_RANK[queued.priority] < target:
                return index
        return len(self._queue)

    def _schedule_cleanup(self) -> None:
        timer = threading.Timer(self._cleanup_interval, self._run_cleanup)
        timer.daemon = True
        self._cleanup_timer = timer
        timer.start()

    def _run_cleanup(self) -> None:
        try:
            self.cleanup_old_hashes()
        finally:
            with self._lock:
                if self._cleanup_interval:
                    self._schedule_cleanup()
