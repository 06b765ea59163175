"""
voiceturn - Speech Playback Scheduler
=====================================

Gapless playback of synthesized speech delivered in several chunks.

Each chunk is decoded independently and scheduled on the sink's audio
clock at ``next_start_time``, which then advances by the chunk duration.
If decoding took so long that ``next_start_time`` is already in the past,
it is clamped to just after "now" instead of scheduling into the past.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from voiceturn.core.errors import SynthesisError
from voiceturn.core.interfaces import AudioSink
from voiceturn.core.volume import OUTPUT_GAIN, VolumeAnalyzer, VolumeAnalyzerConfig
from voiceturn.utils.audio_utils import DEFAULT_PCM_SAMPLE_RATE, decode_audio, resample


logger = logging.getLogger(__name__)


@dataclass
class PlaybackConfig:
    lead_in_sec: float = 0.1             # Initial buffer before the first chunk
    epsilon_sec: float = 0.01            # Margin when clamping a late start time
    pcm_sample_rate: int = DEFAULT_PCM_SAMPLE_RATE  # Rate assumed for raw PCM input
    volume_poll_interval_ms: int = 16    # ~60 Hz output meter
    finish_poll_interval_ms: int = 50
    volume_window: int = 256


@dataclass
class PlaybackChunk:
    """Decoded audio plus its scheduled start on the audio clock."""
    samples: np.ndarray = field(repr=False)
    sample_rate: int
    start_time: float

    @property
    def duration(self) -> float:
        return self.samples.size / self.sample_rate

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


class SpeechPlaybackScheduler:
    """
    Schedules decoded chunks back to back on an audio sink.

    Usage:
        scheduler = SpeechPlaybackScheduler(SoundDeviceSink())
        scheduler.start()
        for audio_bytes in synthesized:
            await scheduler.schedule(audio_bytes)
        await scheduler.wait_finished()
    """

    def __init__(self, sink: AudioSink, config: Optional[PlaybackConfig] = None):
        self.config = config or PlaybackConfig()
        self._sink = sink
        self._analyzer = VolumeAnalyzer(VolumeAnalyzerConfig(
            window=self.config.volume_window,
            gain=OUTPUT_GAIN,
        ))
        self._active = False
        self._next_start_time = 0.0
        self._chunks: List[PlaybackChunk] = []
        self._volume_task: Optional[asyncio.Task] = None
        self._stopped = asyncio.Event()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def next_start_time(self) -> float:
        return self._next_start_time

    @property
    def pending_chunks(self) -> List[PlaybackChunk]:
        """Chunks scheduled and not yet finished."""
        self._release_finished()
        return list(self._chunks)

    def start(self) -> None:
        """Open the sink and begin a new schedule. No-op if already active."""
        if self._active:
            return
        self._sink.open()
        self._active = True
        self._stopped = asyncio.Event()
        self._chunks = []
        self._next_start_time = self._sink.current_time + self.config.lead_in_sec
        self._volume_task = asyncio.get_running_loop().create_task(
            self._poll_volume(), name="output-volume"
        )

    async def schedule(self, audio: bytes) -> Optional[PlaybackChunk]:
        """
        Decode synthesized audio and schedule it after the previous chunk.

        Returns:
            The scheduled chunk, or None if playback was stopped meanwhile
            or the audio was empty

        Raises:
            SynthesisError: If the audio cannot be decoded
        """
        # Decode is a suspension point; stop() may land here
        await asyncio.sleep(0)
        if not self._active:
            return None

        try:
            samples, sample_rate = decode_audio(audio, self.config.pcm_sample_rate)
        except ValueError as e:
            raise SynthesisError(f"Could not decode synthesized audio: {e}") from e

        if not self._active:
            return None
        return self.schedule_samples(samples, sample_rate)

    def schedule_samples(self, samples: np.ndarray, sample_rate: int) -> Optional[PlaybackChunk]:
        """Schedule already decoded float32 samples."""
        if not self._active:
            return None

        samples = resample(np.asarray(samples, dtype=np.float32), sample_rate, self._sink.sample_rate)
        if samples.size == 0:
            return None

        now = self._sink.current_time
        if self._next_start_time < now:
            self._next_start_time = now + self.config.epsilon_sec

        chunk = PlaybackChunk(samples=samples, sample_rate=self._sink.sample_rate, start_time=self._next_start_time)
        self._sink.play(chunk)
        self._next_start_time += chunk.duration

        self._release_finished()
        self._chunks.append(chunk)
        logger.debug("[Playback] Chunk at %.3fs (%.3fs)", chunk.start_time, chunk.duration)
        return chunk

    def _release_finished(self) -> None:
        if not self._chunks:
            return
        now = self._sink.current_time
        self._chunks = [c for c in self._chunks if c.end_time > now]

    async def wait_finished(self) -> bool:
        """
        Wait until every scheduled chunk has played.

        Returns:
            True on natural completion, False if stopped first
        """
        poll = self.config.finish_poll_interval_ms / 1000.0
        while self._active:
            remaining = self._next_start_time - self._sink.current_time
            if remaining <= 0:
                self._chunks = []
                return True
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=min(remaining, poll))
            except asyncio.TimeoutError:
                pass
        return False

    async def _poll_volume(self) -> None:
        interval = self.config.volume_poll_interval_ms / 1000.0
        while self._active:
            self._analyzer.reset()
            self._analyzer.feed(self._sink.recent_samples(self.config.volume_window))
            self._analyzer.poll()
            await asyncio.sleep(interval)

    def volume(self) -> float:
        """Current output loudness in [0, 1]; 0 when nothing is playing."""
        if not self._active:
            return 0.0
        return self._analyzer.level

    def stop(self) -> None:
        """Halt all scheduled and in-flight chunks and release the sink. Idempotent."""
        if not self._active:
            return
        self._active = False
        self._stopped.set()

        task, self._volume_task = self._volume_task, None
        if task is not None and not task.done():
            task.cancel()

        self._sink.stop_all()
        self._sink.close()
        self._chunks = []
        self._analyzer.reset()
        logger.debug("[Playback] Stopped")
