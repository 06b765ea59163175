"""
voiceturn - Audio Output Module
===============================

Plays scheduled speech chunks through the speakers.

The sink owns one sounddevice output stream for the lifetime of a
playback schedule. Its audio clock is the number of frames handed to the
device so far, so a chunk scheduled at ``start_time`` begins on exactly
that sample and back-to-back chunks concatenate without gaps.

Dependencies:
- sounddevice (uses PortAudio)
"""

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

import numpy as np

from voiceturn.core.errors import SynthesisError
from voiceturn.utils.ring_buffer import RingBuffer

if TYPE_CHECKING:
    from voiceturn.core.playback import PlaybackChunk


logger = logging.getLogger(__name__)


@dataclass
class AudioOutputConfig:
    """Configuration for audio output."""
    sample_rate: int = 24000
    device: Optional[int] = None    # None = default device
    volume: float = 1.0             # 0.0 to 1.0
    latency: str = "low"            # "low", "high"
    blocksize: int = 480            # 20ms at 24kHz
    monitor_window: int = 256       # Samples kept for the output level meter


class SoundDeviceSink:
    """
    Sample-accurate mixer on top of ``sounddevice.OutputStream``.

    Usage:
        sink = SoundDeviceSink(AudioOutputConfig())
        sink.open()
        sink.play(chunk)        # chunk.start_time on sink.current_time's clock
        ...
        sink.close()
    """

    def __init__(self, config: Optional[AudioOutputConfig] = None):
        self.config = config or AudioOutputConfig()
        self.sample_rate = self.config.sample_rate

        self._lock = threading.Lock()
        self._stream = None
        self._frames_rendered = 0
        self._scheduled: List["PlaybackChunk"] = []
        self._recent = RingBuffer(self.config.monitor_window)

    @property
    def current_time(self) -> float:
        """Seconds of audio handed to the device since open()."""
        with self._lock:
            return self._frames_rendered / self.sample_rate

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(self) -> None:
        """
        Open and start the output stream.

        Raises:
            SynthesisError: If the output device cannot be opened
        """
        if self._stream is not None:
            return

        try:
            import sounddevice as sd
        except OSError as e:
            raise SynthesisError(f"Audio backend unavailable: {e}") from e

        with self._lock:
            self._frames_rendered = 0
            self._scheduled = []
            self._recent.clear()

        try:
            stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self.config.blocksize,
                device=self.config.device,
                latency=self.config.latency,
                callback=self._callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise SynthesisError(f"Audio output unavailable: {e}") from e

        self._stream = stream
        logger.debug("[AudioOutput] Opened (%d Hz, device=%s)", self.sample_rate, self.config.device or "default")

    def _callback(self, outdata, frames, time_info, status) -> None:
        """Runs on the audio thread: mix every chunk overlapping this block."""
        if status:
            logger.debug("[AudioOutput] Status: %s", status)

        block = np.zeros(frames, dtype=np.float32)
        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames
            remaining = []
            for chunk in self._scheduled:
                chunk_start = int(round(chunk.start_time * self.sample_rate))
                chunk_end = chunk_start + chunk.samples.size
                if chunk_end <= block_start:
                    continue  # finished, release it
                remaining.append(chunk)
                lo = max(chunk_start, block_start)
                hi = min(chunk_end, block_end)
                if lo < hi:
                    block[lo - block_start:hi - block_start] += chunk.samples[lo - chunk_start:hi - chunk_start]
            self._scheduled = remaining
            self._frames_rendered = block_end

            block = np.clip(block * self.config.volume, -1.0, 1.0)
            self._recent.push(block)

        outdata[:, 0] = block

    def play(self, chunk: "PlaybackChunk") -> None:
        if chunk.sample_rate != self.sample_rate:
            raise ValueError(f"chunk rate {chunk.sample_rate} != sink rate {self.sample_rate}")
        with self._lock:
            self._scheduled.append(chunk)

    def stop_all(self) -> None:
        """Drop every scheduled and playing chunk."""
        with self._lock:
            self._scheduled = []
            self._recent.clear()

    def recent_samples(self, n: int) -> np.ndarray:
        with self._lock:
            samples = self._recent.get_all()
        return samples[-n:] if n < samples.size else samples

    def close(self) -> None:
        """Stop the stream and release the device. Idempotent."""
        self.stop_all()
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning("[AudioOutput] Error closing stream: %s", e)
        logger.debug("[AudioOutput] Closed")

    @staticmethod
    def list_devices() -> List[dict]:
        """
        List available audio output devices.

        Returns:
            List of device info dictionaries
        """
        import sounddevice as sd

        output_devices = []
        for i, device in enumerate(sd.query_devices()):
            if device["max_output_channels"] > 0:
                output_devices.append({
                    "id": i,
                    "name": device["name"],
                    "channels": device["max_output_channels"],
                    "sample_rate": device["default_samplerate"],
                })
        return output_devices
