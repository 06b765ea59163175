"""
Pipeline Run
============

Everything one listen → transcribe → respond → speak attempt owns:
its cancellation token, capture session, playback scheduler, the
processing task and any pending auto-restart timer. A run is created at
the start of a turn and released as a whole at the run boundary, so no
stream, timer or task survives into the next run.
"""

import asyncio
import logging
from typing import Optional

from voiceturn.core.audio_input import AudioCaptureSession, StopReason
from voiceturn.core.interrupt import CancellationToken
from voiceturn.core.playback import SpeechPlaybackScheduler


logger = logging.getLogger(__name__)


class PipelineRun:
    def __init__(
        self,
        token: CancellationToken,
        capture: AudioCaptureSession,
        scheduler: SpeechPlaybackScheduler,
    ):
        self.token = token
        self.capture = capture
        self.scheduler = scheduler
        self.task: Optional[asyncio.Task] = None
        self.restart_task: Optional[asyncio.Task] = None
        self.transcription_sent = False

    @property
    def run_id(self) -> int:
        return self.token.run_id

    def cancel_restart(self) -> None:
        task, self.restart_task = self.restart_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def release(self) -> None:
        """Stop capture and playback and drop pending timers. Idempotent."""
        self.cancel_restart()
        self.capture.stop(StopReason.CANCELLED)
        self.scheduler.stop()
        logger.debug("[Run %d] Released", self.run_id)
