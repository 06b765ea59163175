"""
Shared fixtures and fakes
=========================

Fake microphone stream, fake audio sink (manual or real-time clock) and
fake providers, so the pipeline can be exercised without audio hardware
or network access.
"""

import asyncio
import sys
import time
from pathlib import Path
from typing import List, Optional

# Ensure the project root is on path when running tests from a checkout
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import numpy as np
import pytest

from voiceturn.core.audio_input import AudioCaptureConfig, AudioCaptureSession
from voiceturn.core.errors import CaptureError
from voiceturn.core.playback import PlaybackConfig, SpeechPlaybackScheduler
from voiceturn.core.silence_detector import SilenceDetectorConfig
from voiceturn.pipeline.config import AgentState, DialogueConfig
from voiceturn.pipeline.orchestrator import DialogueOrchestrator
from voiceturn.utils.audio_utils import encode_wav


# =============================================================================
# Audio helpers
# =============================================================================

def tone(duration: float, sample_rate: int = 16000, amplitude: float = 0.3, freq: float = 220.0) -> np.ndarray:
    t = np.arange(int(duration * sample_rate)) / sample_rate
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def wav_bytes(duration: float, sample_rate: int = 24000, amplitude: float = 0.3) -> bytes:
    return encode_wav(tone(duration, sample_rate, amplitude), sample_rate)


# =============================================================================
# Microphone
# =============================================================================

class PortAudioError(Exception):
    """Same base class as sounddevice.PortAudioError."""


class FakeInputStream:
    """Stands in for sounddevice.InputStream; frames are pushed with emit()."""

    def __init__(self, sample_rate, channels, blocksize, device, callback, start_error=None):
        self.sample_rate = sample_rate
        self.start_error = start_error
        self.blocksize = blocksize
        self.callback = callback
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True

    def emit(self, samples: np.ndarray) -> None:
        for i in range(0, len(samples), self.blocksize):
            block = samples[i:i + self.blocksize].reshape(-1, 1)
            self.callback(block, len(block), None, None)


class FakeMicrophone:
    """Stream factory that remembers every stream it opened."""

    def __init__(self, deny: bool = False, start_error: Exception = None):
        self.deny = deny
        self.start_error = start_error
        self.streams: List[FakeInputStream] = []

    def __call__(self, sample_rate, channels, blocksize, device, callback):
        if self.deny:
            raise CaptureError("Permission denied")
        stream = FakeInputStream(sample_rate, channels, blocksize, device, callback, self.start_error)
        self.streams.append(stream)
        return stream

    @property
    def latest(self) -> Optional[FakeInputStream]:
        return self.streams[-1] if self.streams else None

    @property
    def open_streams(self) -> List[FakeInputStream]:
        return [s for s in self.streams if s.started and not s.closed]


async def pump(n: int = 3) -> None:
    """Let call_soon_threadsafe callbacks run."""
    for _ in range(n):
        await asyncio.sleep(0)


# =============================================================================
# Speaker
# =============================================================================

class FakeSink:
    """
    AudioSink with a manual clock (``now``) or, with realtime=True, a clock
    driven by time.monotonic since open().
    """

    def __init__(self, sample_rate: int = 24000, realtime: bool = False):
        self.sample_rate = sample_rate
        self.realtime = realtime
        self.now = 0.0
        self.opened_at: Optional[float] = None
        self.played = []
        self.open_count = 0
        self.close_count = 0
        self.stop_all_count = 0
        self.recent = np.zeros(0, dtype=np.float32)

    @property
    def current_time(self) -> float:
        if self.realtime:
            if self.opened_at is None:
                return 0.0
            return time.monotonic() - self.opened_at
        return self.now

    @property
    def is_open(self) -> bool:
        return self.open_count > self.close_count

    def open(self):
        self.open_count += 1
        self.opened_at = time.monotonic()

    def play(self, chunk):
        self.played.append(chunk)

    def stop_all(self):
        self.stop_all_count += 1

    def recent_samples(self, n):
        return self.recent[-n:]

    def close(self):
        self.close_count += 1


# =============================================================================
# Providers
# =============================================================================

class FakeTranscriber:
    def __init__(self, text: str = "hello there", error: Exception = None):
        self.text = text
        self.error = error
        self.calls = []
        self.gate: Optional[asyncio.Event] = None

    async def transcribe(self, segment):
        self.calls.append(segment)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.text


class FakeLanguageModel:
    def __init__(self, reply: str = "Hi! How can I help?", error: Exception = None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def respond(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeStreamingLanguageModel(FakeLanguageModel):
    def __init__(self, increments: List[str]):
        super().__init__(reply="".join(increments))
        self.increments = increments
        self.stream_calls = []
        self.step: Optional[asyncio.Event] = None
        self.yielded = 0

    async def stream_respond(self, text):
        self.stream_calls.append(text)
        for increment in self.increments:
            if self.step is not None:
                await self.step.wait()
                self.step.clear()
            self.yielded += 1
            yield increment


class FakeSynthesizer:
    def __init__(self, seconds_per_chunk: float = 0.05, error: Exception = None):
        self.seconds_per_chunk = seconds_per_chunk
        self.error = error
        self.calls = []

    async def synthesize(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return wav_bytes(self.seconds_per_chunk)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def microphone():
    return FakeMicrophone()


@pytest.fixture
def fast_capture_config():
    """16kHz capture with a 100ms silence timeout polled every 10ms."""
    return AudioCaptureConfig(
        sample_rate=16000,
        frame_ms=20,
        silence=SilenceDetectorConfig(threshold=0.01, silence_duration_ms=100, poll_interval_ms=10),
    )


@pytest.fixture
def dialogue_config(fast_capture_config):
    return DialogueConfig(
        capture=fast_capture_config,
        playback=PlaybackConfig(lead_in_sec=0.01, finish_poll_interval_ms=5, volume_poll_interval_ms=5),
        restart_after_talking_ms=50,
        restart_after_no_speech_ms=150,
    )


class Harness:
    """Orchestrator wired to fakes, with a record of every state change."""

    def __init__(self, config, microphone, transcriber, language_model, synthesizer):
        self.microphone = microphone
        self.transcriber = transcriber
        self.language_model = language_model
        self.synthesizer = synthesizer
        self.sinks: List[FakeSink] = []
        self.states: List[AgentState] = []
        self.statuses: List[str] = []

        self.orchestrator = DialogueOrchestrator(
            transcriber,
            language_model,
            synthesizer,
            capture_factory=lambda: AudioCaptureSession(config.capture, stream_factory=microphone),
            scheduler_factory=self._new_scheduler,
            config=config,
        )
        self.orchestrator.add_state_listener(lambda old, new: self.states.append(new))
        self.orchestrator.add_status_listener(self.statuses.append)
        self._config = config

    def _new_scheduler(self):
        sink = FakeSink(realtime=True)
        self.sinks.append(sink)
        return SpeechPlaybackScheduler(sink, self._config.playback)

    @property
    def state(self) -> AgentState:
        return self.orchestrator.state

    async def wait_for(self, state: AgentState, timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        while self.orchestrator.state is not state:
            if time.monotonic() > deadline:
                raise AssertionError(f"timed out waiting for {state}, still {self.orchestrator.state}")
            await asyncio.sleep(0.005)

    async def say(self, seconds: float = 0.3) -> None:
        """Speak into the current microphone stream."""
        self.microphone.latest.emit(tone(seconds))
        await pump()


@pytest.fixture
def make_harness(dialogue_config, microphone):
    def _make(transcriber=None, language_model=None, synthesizer=None, config=None):
        return Harness(
            config or dialogue_config,
            microphone,
            transcriber if transcriber is not None else FakeTranscriber(),
            language_model if language_model is not None else FakeLanguageModel(),
            synthesizer if synthesizer is not None else FakeSynthesizer(),
        )
    return _make
