"""
voiceturn - Dialogue Orchestrator
=================================

State machine for one voice conversation:

    IDLE ──start──▶ LISTENING ──silence / stop──▶ THINKING ──reply──▶ TALKING
      ▲                 │                            │                   │
      └───interrupt─────┘◀──────────interrupt────────┘     playback done │
                        ▲                                  (after delay) │
                        └──────────────interrupt (barge-in)──────────────┘

Pipeline:
1. Capture microphone audio until silence (or manual stop)
2. Transcribe the segment
3. Generate the reply (streamed when supported)
4. Synthesize chunks and play them gaplessly
5. Listen again after a short delay

Entry points (request_start / request_interrupt / request_hide) may be
called at any time from hotkeys, clicks or window events; all state
mutation happens here.
"""

import asyncio
import logging
from typing import Callable, Coroutine, List, Optional, Set

from voiceturn.core.audio_input import AudioCaptureSession, AudioSegment, StopReason
from voiceturn.core.errors import CaptureError, Cancelled, NoSpeechDetected, StageError
from voiceturn.core.interfaces import LanguageModel, Synthesizer, Transcriber
from voiceturn.core.interrupt import InterruptController
from voiceturn.core.playback import SpeechPlaybackScheduler
from voiceturn.pipeline.config import (
    STATE_DISPLAY,
    STATUS_CONFIGURE,
    STATUS_LISTENING,
    STATUS_MIC_DENIED,
    STATUS_NO_SPEECH,
    STATUS_READY,
    STATUS_SPEAKING,
    STATUS_THINKING,
    STATUS_TRANSCRIBING,
    AgentState,
    DialogueConfig,
)
from voiceturn.pipeline.run import PipelineRun
from voiceturn.pipeline.speech_processor import SpeechProcessor


logger = logging.getLogger(__name__)

StateListener = Callable[[AgentState, AgentState], None]
StatusListener = Callable[[str], None]


class DialogueOrchestrator:
    """
    Main dialogue orchestrator.

    Usage:
        orchestrator = DialogueOrchestrator(
            transcriber, language_model, synthesizer,
            capture_factory=lambda: AudioCaptureSession(config.capture),
            scheduler_factory=lambda: SpeechPlaybackScheduler(SoundDeviceSink()),
        )
        orchestrator.add_state_listener(lambda old, new: print(new))
        await orchestrator.request_start()
        ...
        await orchestrator.close()
    """

    def __init__(
        self,
        transcriber: Optional[Transcriber],
        language_model: Optional[LanguageModel],
        synthesizer: Optional[Synthesizer],
        capture_factory: Callable[[], AudioCaptureSession],
        scheduler_factory: Callable[[], SpeechPlaybackScheduler],
        config: Optional[DialogueConfig] = None,
    ):
        self.config = config or DialogueConfig()
        self._speech = SpeechProcessor(self.config, transcriber, language_model, synthesizer)
        self._capture_factory = capture_factory
        self._scheduler_factory = scheduler_factory

        self._state = AgentState.IDLE
        self._status = STATUS_READY
        self._state_listeners: List[StateListener] = []
        self._status_listeners: List[StatusListener] = []

        self._interrupts = InterruptController()
        self._run: Optional[PipelineRun] = None
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def state(self) -> AgentState:
        """Current agent state."""
        return self._state

    @property
    def status(self) -> str:
        """Last user-facing status message."""
        return self._status

    @property
    def current_run(self) -> Optional[PipelineRun]:
        return self._run

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def input_volume(self) -> float:
        """Microphone loudness in [0, 1] while listening."""
        run = self._run
        if run is None or self._state is not AgentState.LISTENING:
            return 0.0
        return run.capture.volume()

    def output_volume(self) -> float:
        """Playback loudness in [0, 1] while talking."""
        run = self._run
        if run is None or self._state is not AgentState.TALKING:
            return 0.0
        return run.scheduler.volume()

    def _set_state(self, new_state: AgentState) -> None:
        old_state, self._state = self._state, new_state
        if old_state is new_state:
            return
        logger.info("[Dialogue] %s -> %s", old_state.name, new_state.name)
        for listener in list(self._state_listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception("[Dialogue] State listener failed")

    def _set_status(self, status: str) -> None:
        self._status = status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("[Dialogue] Status listener failed")

    # =========================================================================
    # Entry points
    # =========================================================================

    async def request_start(self, manual: bool = True) -> bool:
        """
        Begin a new turn.

        A manual request (click, hotkey, window shown) while a run is active
        aborts that run first; an automatic one (scheduled restart) is
        ignored unless the orchestrator is idle.

        Returns:
            True if the orchestrator is now listening
        """
        async with self._lock:
            if self._closed:
                return False
            if self._state is not AgentState.IDLE:
                if not manual:
                    logger.debug("[Dialogue] Auto-start ignored in %s", self._state.name)
                    return False
                await self._abort_run()
            return await self._start_run()

    async def request_stop(self) -> None:
        """User finished speaking: stop capture and process the recording."""
        run = self._run
        if run is not None:
            await self._on_capture_done(run, StopReason.MANUAL)

    async def request_interrupt(self) -> None:
        """
        Barge-in / cancel.

        LISTENING and THINKING return to IDLE and discard any in-flight
        result; TALKING stops playback and starts listening again at once.
        """
        async with self._lock:
            state = self._state
            if state is AgentState.TALKING:
                logger.info("[Dialogue] Barge-in")
                await self._abort_run()
                if not self._closed:
                    await self._start_run()
            else:
                await self._abort_run()

    async def request_hide(self) -> None:
        """Window hidden/closed: full teardown back to IDLE."""
        async with self._lock:
            await self._abort_run()

    async def request_toggle(self) -> None:
        """Single action button: start when idle, otherwise interrupt."""
        if self._state is AgentState.IDLE:
            await self.request_start(manual=True)
        else:
            await self.request_interrupt()

    async def close(self) -> None:
        """Tear everything down and cancel background tasks."""
        async with self._lock:
            self._closed = True
            await self._abort_run()
        tasks = [t for t in self._tasks if t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def _start_run(self) -> bool:
        """IDLE → LISTENING. Caller holds the lock."""
        if not self._speech.is_configured:
            self._set_status(STATUS_CONFIGURE)
            return False

        # Previous run's resources are released before new ones are acquired
        await self._interrupts.teardown()

        token = self._interrupts.begin_run()
        run = PipelineRun(token, self._capture_factory(), self._scheduler_factory())
        self._run = run
        self._interrupts.add_teardown(run.release)

        try:
            await run.capture.start(
                on_auto_stop=lambda reason: self._spawn(self._on_capture_done(run, reason))
            )
        except CaptureError as e:
            logger.error("[Dialogue] Capture failed: %s", e)
            token.cancel()
            await self._interrupts.teardown()
            self._set_state(AgentState.IDLE)
            self._set_status(STATUS_MIC_DENIED)
            return False

        self._set_state(AgentState.LISTENING)
        self._set_status(STATUS_LISTENING)
        return True

    async def _abort_run(self) -> None:
        """Any state → IDLE with full teardown. Caller holds the lock."""
        self._interrupts.interrupt()
        await self._interrupts.teardown()
        self._set_state(AgentState.IDLE)
        self._set_status(STATUS_READY)

    async def _on_capture_done(self, run: PipelineRun, reason: StopReason) -> None:
        """LISTENING → THINKING on silence timeout or manual stop."""
        async with self._lock:
            if run is not self._run or run.token.cancelled or self._state is not AgentState.LISTENING:
                return
            segment = run.capture.stop(reason)
            self._set_state(AgentState.THINKING)
            self._set_status(STATUS_TRANSCRIBING)
            if segment is None:
                segment = AudioSegment(data=b"", sample_rate=run.capture.config.sample_rate, duration=0.0)
            run.transcription_sent = True
            run.task = self._spawn(self._process(run, segment))

    async def _process(self, run: PipelineRun, segment: AudioSegment) -> None:
        """THINKING → TALKING → (IDLE, then LISTENING). Never raises."""
        token = run.token
        try:
            text = await self._speech.transcribe(segment, token)
            logger.info("[Dialogue] You: %s", text)
            self._set_status(STATUS_THINKING)

            reply = await self._speech.generate(text, token)
            logger.info("[Dialogue] Assistant: %s", reply)

            InterruptController.checkpoint(token)
            self._set_state(AgentState.TALKING)
            self._set_status(STATUS_SPEAKING)

            finished = await self._speech.speak(reply, token, run.scheduler)
            InterruptController.checkpoint(token)
            run.scheduler.stop()
            if finished:
                self._set_state(AgentState.IDLE)
                self._set_status(STATUS_READY)
                self._schedule_restart(run, self.config.restart_after_talking_sec)

        except Cancelled:
            logger.debug("[Dialogue] Run %d result discarded", run.run_id)
        except NoSpeechDetected as e:
            if token.cancelled:
                return
            logger.info("[Dialogue] No speech detected (%s)", e)
            self._set_state(AgentState.IDLE)
            self._set_status(STATUS_NO_SPEECH)
            self._schedule_restart(run, self.config.restart_after_no_speech_sec)
        except StageError as e:
            if token.cancelled:
                return
            logger.error("[Dialogue] %s failed: %s", e.stage, e)
            self._fail(run, f"Error: {e}")
        except Exception as e:
            if token.cancelled:
                return
            logger.exception("[Dialogue] Unexpected pipeline failure")
            self._fail(run, f"Error: {e}")

    def _fail(self, run: PipelineRun, message: str) -> None:
        """Stage error: back to IDLE with a message, no auto-restart."""
        run.scheduler.stop()
        self._set_state(AgentState.IDLE)
        self._set_status(message)

    def _schedule_restart(self, run: PipelineRun, delay: float) -> None:
        run.cancel_restart()
        run.restart_task = self._spawn(self._restart_after(run, delay))

    async def _restart_after(self, run: PipelineRun, delay: float) -> None:
        await asyncio.sleep(delay)
        if run.token.cancelled or run is not self._run:
            return
        # Detach so the new run's teardown of this one does not cancel us
        run.restart_task = None
        await self.request_start(manual=False)

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def __repr__(self) -> str:
        return f"DialogueOrchestrator(state={STATE_DISPLAY[self._state]!r}, status={self._status!r})"
