"""
voiceturn - Audio Capture Module
================================

Records one utterance from the microphone.

Features:
- sounddevice input stream (injectable factory for other backends/tests)
- Frames marshalled from the PortAudio thread onto the event loop
- Live input loudness for UI reactivity
- Silence auto-stop and maximum-duration cap
- Finalized WAV segment on stop
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

from voiceturn.core.errors import CaptureError
from voiceturn.core.interfaces import InputStream, InputStreamFactory
from voiceturn.core.silence_detector import SilenceDetector, SilenceDetectorConfig
from voiceturn.core.volume import INPUT_GAIN, VolumeAnalyzer, VolumeAnalyzerConfig, compute_volume
from voiceturn.utils.audio_utils import encode_wav


logger = logging.getLogger(__name__)


class StopReason(Enum):
    MANUAL = "manual"
    SILENCE = "silence"
    MAX_DURATION = "max-duration"
    CANCELLED = "cancelled"


@dataclass
class AudioSegment:
    """A finalized recording: WAV bytes plus metadata."""
    data: bytes
    sample_rate: int
    duration: float
    mime_type: str = "audio/wav"
    samples: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32), repr=False)

    @property
    def is_empty(self) -> bool:
        return self.samples.size == 0

    def is_silent(self, threshold: float = 0.01) -> bool:
        """
        True when the whole recording stays below ``threshold``.

        Loudness is measured on the input meter's scale (RMS times
        INPUT_GAIN), the same scale the silence detector compares against.
        """
        return self.is_empty or compute_volume(self.samples, INPUT_GAIN) < threshold


@dataclass
class AudioCaptureConfig:
    sample_rate: int = 16000
    channels: int = 1
    frame_ms: int = 20
    device: Optional[int] = None
    mic_gain: float = 1.0            # Microphone boost (1.0 = none)
    max_duration_sec: float = 60.0   # Hard cap on one recording
    volume_window: int = 256         # Samples per loudness window
    silence: SilenceDetectorConfig = field(default_factory=SilenceDetectorConfig)

    @property
    def frame_samples(self) -> int:
        """Samples per frame."""
        return int(self.sample_rate * self.frame_ms / 1000)

    @property
    def max_samples(self) -> int:
        return int(self.max_duration_sec * self.sample_rate)


def open_sounddevice_stream(
    sample_rate: int,
    channels: int,
    blocksize: int,
    device: Optional[int],
    callback: Callable,
) -> InputStream:
    """Open (not start) a sounddevice input stream."""
    try:
        import sounddevice as sd
    except OSError as e:
        # PortAudio library missing
        raise CaptureError(f"Audio backend unavailable: {e}") from e

    try:
        return sd.InputStream(
            samplerate=sample_rate,
            channels=channels,
            dtype="float32",
            blocksize=blocksize,
            callback=callback,
            device=device,
            latency="low",
        )
    except sd.PortAudioError as e:
        raise CaptureError(f"Microphone unavailable: {e}") from e


AutoStopCallback = Callable[[StopReason], None]


class AudioCaptureSession:
    """
    Owns the microphone stream and recording buffer for one recording.

    Usage:
        capture = AudioCaptureSession(AudioCaptureConfig())
        await capture.start(on_auto_stop=lambda reason: ...)
        ...
        segment = capture.stop(StopReason.MANUAL)
    """

    def __init__(
        self,
        config: Optional[AudioCaptureConfig] = None,
        stream_factory: Optional[InputStreamFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or AudioCaptureConfig()
        self._stream_factory = stream_factory or open_sounddevice_stream
        self._analyzer = VolumeAnalyzer(VolumeAnalyzerConfig(
            window=self.config.volume_window,
            gain=INPUT_GAIN,
        ))
        self._detector = SilenceDetector(self.config.silence, clock=clock)

        self._stream: Optional[InputStream] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._frames: List[np.ndarray] = []
        self._recorded_samples = 0
        self._active = False
        self._generation = 0
        self._on_auto_stop: Optional[AutoStopCallback] = None
        self._status_count = 0

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def recorded_seconds(self) -> float:
        return self._recorded_samples / self.config.sample_rate

    async def start(self, on_auto_stop: Optional[AutoStopCallback] = None) -> None:
        """
        Open the microphone and start recording.

        Raises:
            CaptureError: Permission denied, no device, or already recording
        """
        if self._active:
            raise CaptureError("Capture already active")

        self._loop = asyncio.get_running_loop()
        self._generation += 1
        self._frames = []
        self._recorded_samples = 0
        self._status_count = 0
        self._analyzer.reset()
        self._on_auto_stop = on_auto_stop

        generation = self._generation
        try:
            stream = self._stream_factory(
                self.config.sample_rate,
                self.config.channels,
                self.config.frame_samples,
                self.config.device,
                lambda indata, frames, time_info, status: self._audio_callback(
                    generation, indata, status
                ),
            )
        except CaptureError:
            raise
        except (OSError, ValueError, RuntimeError) as e:
            raise CaptureError(f"Microphone access denied: {e}") from e

        try:
            stream.start()
        except Exception as e:
            # sounddevice.PortAudioError (busy or denied device) derives from Exception
            self._stream = stream
            self._release_stream()
            raise CaptureError(f"Microphone access denied: {e}") from e

        self._stream = stream
        self._active = True
        self._detector.start(self._analyzer.poll, lambda: self._auto_stop(StopReason.SILENCE))
        logger.info("[Capture] Started (%d Hz, %d ms frames)", self.config.sample_rate, self.config.frame_ms)

    def _audio_callback(self, generation: int, indata, status) -> None:
        """Runs on the audio thread: hand the frame over to the event loop."""
        if status:
            self._status_count += 1
            # Only log occasionally to avoid spam
            if self._status_count % 100 == 1:
                logger.warning("[Capture] Audio status: %s", status)

        audio = np.asarray(indata, dtype=np.float32)
        if audio.ndim > 1:
            audio = audio.mean(axis=1)
        audio = audio.astype(np.float32).copy()
        if self.config.mic_gain != 1.0:
            audio = (audio * self.config.mic_gain).clip(-1.0, 1.0)

        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._on_frame, generation, audio)
        except RuntimeError:
            # Loop shut down between the check and the call
            pass

    def _on_frame(self, generation: int, audio: np.ndarray) -> None:
        if not self._active or generation != self._generation:
            return
        self._frames.append(audio)
        self._recorded_samples += audio.size
        self._analyzer.feed(audio)
        if self._recorded_samples >= self.config.max_samples:
            logger.info("[Capture] Max duration reached (%.1fs)", self.config.max_duration_sec)
            self._auto_stop(StopReason.MAX_DURATION)

    def _auto_stop(self, reason: StopReason) -> None:
        callback, self._on_auto_stop = self._on_auto_stop, None
        self._detector.cancel()
        if callback is not None and self._active:
            callback(reason)

    def stop(self, reason: StopReason = StopReason.MANUAL) -> Optional[AudioSegment]:
        """
        Stop recording and release the microphone.

        Returns:
            The finalized segment, or None if cancelled or not recording
        """
        if not self._active:
            return None

        self._active = False
        self._generation += 1
        self._on_auto_stop = None
        self._detector.cancel()
        self._release_stream()
        self._analyzer.reset()

        frames, self._frames = self._frames, []
        logger.info("[Capture] Stopped (%s, %.2fs)", reason.value, self.recorded_seconds)
        if reason is StopReason.CANCELLED:
            return None

        if frames:
            samples = np.concatenate(frames).astype(np.float32)
        else:
            samples = np.zeros(0, dtype=np.float32)
        return AudioSegment(
            data=encode_wav(samples, self.config.sample_rate),
            sample_rate=self.config.sample_rate,
            duration=samples.size / self.config.sample_rate,
            samples=samples,
        )

    def _release_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            # Device may already be gone; the stream is dropped either way
            logger.warning("[Capture] Error closing microphone: %s", e)

    def volume(self) -> float:
        """Current input loudness in [0, 1]; 0 when not recording."""
        if not self._active:
            return 0.0
        return self._analyzer.poll()

    @staticmethod
    def list_devices() -> List[Dict]:
        """
        List available audio input devices.

        Returns:
            List of dicts with keys: index, name, channels, sample_rate
        """
        import sounddevice as sd

        devices = []
        for i, dev in enumerate(sd.query_devices()):
            if dev["max_input_channels"] > 0:
                devices.append({
                    "index": i,
                    "name": dev["name"],
                    "channels": dev["max_input_channels"],
                    "sample_rate": int(dev["default_samplerate"]),
                })
        return devices
