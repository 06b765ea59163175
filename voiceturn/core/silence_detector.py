"""
voiceturn - Silence Detector
============================

Auto-stop for a recording: fires once after the input loudness has stayed
below a threshold for a fixed duration.

The timer starts at the first sub-threshold sample and is cleared by any
sample at or above the threshold. Polling runs as an asyncio task that
sleeps between ticks, so it never blocks the event loop.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional


logger = logging.getLogger(__name__)


@dataclass
class SilenceDetectorConfig:
    threshold: float = 0.01         # Loudness below this counts as silence
    silence_duration_ms: int = 1000  # Sustained silence before timeout
    poll_interval_ms: int = 100     # Tick cadence

    @property
    def silence_duration_sec(self) -> float:
        return self.silence_duration_ms / 1000.0

    @property
    def poll_interval_sec(self) -> float:
        return self.poll_interval_ms / 1000.0


class SilenceDetector:
    """
    Raises ``silence-timeout`` once per recording.

    Usage:
        detector = SilenceDetector(SilenceDetectorConfig())
        detector.start(analyzer.poll, on_timeout=lambda: ...)
        ...
        detector.cancel()  # manual stop, never fires
    """

    def __init__(
        self,
        config: Optional[SilenceDetectorConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or SilenceDetectorConfig()
        self._clock = clock
        self._silence_start: Optional[float] = None
        self._fired = False
        self._task: Optional[asyncio.Task] = None

    @property
    def silence_start(self) -> Optional[float]:
        return self._silence_start

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def reset(self) -> None:
        self._silence_start = None
        self._fired = False

    def tick(self, level: float, now: float) -> bool:
        """
        Feed one loudness sample.

        Returns:
            True exactly once, on the tick where the timeout fires
        """
        if self._fired:
            return False

        if level < self.config.threshold:
            if self._silence_start is None:
                self._silence_start = now
            elif now - self._silence_start >= self.config.silence_duration_sec:
                self._fired = True
                return True
        else:
            # Speech resets the timer
            self._silence_start = None

        return False

    def start(self, level_fn: Callable[[], float], on_timeout: Callable[[], None]) -> None:
        """Start polling ``level_fn`` on the running event loop."""
        self.cancel()
        self.reset()
        self._task = asyncio.get_running_loop().create_task(
            self._poll(level_fn, on_timeout), name="silence-detector"
        )

    async def _poll(self, level_fn: Callable[[], float], on_timeout: Callable[[], None]) -> None:
        interval = self.config.poll_interval_sec
        while True:
            await asyncio.sleep(interval)
            if self.tick(level_fn(), self._clock()):
                logger.debug("[Silence] Timeout after %d ms", self.config.silence_duration_ms)
                on_timeout()
                return

    def cancel(self) -> None:
        """Stop polling without firing. Safe to call at any time."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # Called from inside on_timeout: the poll loop is already returning
        if task is not current:
            task.cancel()
