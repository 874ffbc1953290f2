"""Progress indicator for long-running extraction and processing.

Progress advances on a fixed timer rather than with the real work, and is
capped below 100 until the operation finishes or fails.
"""

import asyncio
import logging
import random
import threading
from datetime import datetime
from typing import Any

from statement_ledger.config import settings

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Tracks one operation at a time for the single workspace."""

    def __init__(
        self,
        tick_seconds: float | None = None,
        step_max: float | None = None,
        ceiling: float | None = None,
        reset_seconds: float | None = None,
    ):
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.progress_tick_seconds
        self.step_max = step_max if step_max is not None else settings.progress_step_max
        self.ceiling = ceiling if ceiling is not None else settings.progress_ceiling
        self.reset_seconds = reset_seconds if reset_seconds is not None else settings.progress_reset_seconds

        self._lock = threading.Lock()
        self._ticker: asyncio.Task | None = None
        self._reset_handle: asyncio.TimerHandle | None = None
        self._state: dict[str, Any] = {}
        self._set("idle", None, 0.0, "")

    def _set(self, status: str, stage: str | None, progress: float, message: str) -> None:
        with self._lock:
            self._state = {
                "status": status,
                "stage": stage,
                "progress": progress,
                "message": message,
                "timestamp": datetime.now().isoformat(),
            }

    def _cancel_timers(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            with self._lock:
                current = self._state["progress"]
                if current >= self.ceiling:
                    return
                self._state["progress"] = min(current + random.random() * self.step_max, self.ceiling)

    def start(self, stage: str, message: str) -> None:
        """Reset to 0 and start advancing on the timer. Must run inside an event loop."""
        self._cancel_timers()
        self._set("processing", stage, 0.0, message)
        self._ticker = asyncio.get_running_loop().create_task(self._tick())
        logger.info(f"[PROGRESS] {stage} started - {message}")

    def _schedule_clear(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.clear()
            return
        self._reset_handle = loop.call_later(self.reset_seconds, self.clear)

    def finish(self) -> None:
        """Jump to 100 and return to idle shortly after."""
        self._cancel_timers()
        with self._lock:
            stage, message = self._state["stage"], self._state["message"]
        self._set("complete", stage, 100.0, message)
        self._schedule_clear()

    def fail(self, message: str) -> None:
        """Stop the timer, show the error, and return to idle shortly after."""
        self._cancel_timers()
        with self._lock:
            stage = self._state["stage"]
        self._set("error", stage, 0.0, message)
        logger.info(f"[PROGRESS] {stage} failed - {message}")
        self._schedule_clear()

    def clear(self) -> None:
        self._cancel_timers()
        self._set("idle", None, 0.0, "")

    def snapshot(self) -> dict[str, Any]:
        """Copy of the current progress state."""
        with self._lock:
            return dict(self._state)
