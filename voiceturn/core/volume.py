"""
voiceturn - Volume Analyzer
===========================

Normalized loudness (0..1) of a rolling audio window, used both for
silence detection on the microphone side and for UI reactivity on the
playback side.

Computation:
1. Normalize samples to [-1, 1] (uint8 offset, int16, or float)
2. RMS over the window
3. Fixed linear gain, clamped to [0, 1]
"""

from dataclasses import dataclass

import numpy as np

from voiceturn.utils.audio_utils import compute_rms, to_float
from voiceturn.utils.ring_buffer import RingBuffer


# Empirical gains: the mic side is amplified a little more than playback
INPUT_GAIN = 5.0
OUTPUT_GAIN = 4.0


def compute_volume(samples: np.ndarray, gain: float = INPUT_GAIN) -> float:
    """
    Compute a normalized loudness value for a buffer of samples.

    Args:
        samples: Time-domain samples (uint8, int16 or float)
        gain: Linear gain applied to the RMS

    Returns:
        Loudness in [0, 1]; 0.0 for an empty buffer
    """
    samples = np.asarray(samples)
    if samples.size == 0:
        return 0.0
    rms = compute_rms(to_float(samples).ravel())
    return float(min(1.0, max(0.0, rms * gain)))


@dataclass
class VolumeAnalyzerConfig:
    window: int = 256     # Samples per analysis window
    gain: float = INPUT_GAIN


class VolumeAnalyzer:
    """
    Loudness of the most recent ``window`` samples.

    ``feed`` is called with every block of audio; ``poll`` recomputes the
    level from the current window and stores it; ``level`` returns the last
    computed value without recomputing.

    Usage:
        analyzer = VolumeAnalyzer(VolumeAnalyzerConfig(gain=5.0))
        analyzer.feed(frame)
        level = analyzer.poll()
    """

    def __init__(self, config: VolumeAnalyzerConfig = None):
        self.config = config or VolumeAnalyzerConfig()
        self._window = RingBuffer(self.config.window)
        self._level = 0.0

    def feed(self, samples: np.ndarray) -> None:
        self._window.push(to_float(samples).ravel())

    def poll(self) -> float:
        """Recompute the level from the current window."""
        self._level = compute_volume(self._window.get_all(), self.config.gain)
        return self._level

    @property
    def level(self) -> float:
        """Last computed level."""
        return self._level

    def reset(self) -> None:
        self._window.clear()
        self._level = 0.0
