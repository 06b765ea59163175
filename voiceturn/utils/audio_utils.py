"""
voiceturn - Audio Utilities
===========================

Common audio processing functions used across modules.
"""

import io
import struct
from math import gcd
from typing import Tuple

import numpy as np
import scipy.io.wavfile
import scipy.signal


# Raw PCM from synthesis providers (OpenAI-style "pcm" format): 24kHz, 16-bit, mono
DEFAULT_PCM_SAMPLE_RATE = 24000


def compute_rms(audio: np.ndarray) -> float:
    """
    Compute RMS (Root Mean Square) energy of audio.

    Args:
        audio: Audio samples (any dtype)

    Returns:
        RMS value (float)
    """
    if audio.size == 0:
        return 0.0

    audio = audio.astype(np.float64)
    return float(np.sqrt(np.mean(audio ** 2)))


def int16_to_float(audio: np.ndarray) -> np.ndarray:
    """
    Convert int16 [-32768, 32767] audio to float32 [-1, 1].

    Args:
        audio: Int16 audio array

    Returns:
        Float32 audio array
    """
    return audio.astype(np.float32) / 32768.0


def uint8_to_float(audio: np.ndarray) -> np.ndarray:
    """Convert unsigned 8-bit audio (128 = silence) to float32 [-1, 1]."""
    return (audio.astype(np.float32) - 128.0) / 128.0


def float_to_int16(audio: np.ndarray) -> np.ndarray:
    """
    Convert float32 [-1, 1] audio to int16 [-32768, 32767].

    Args:
        audio: Float32 audio array

    Returns:
        Int16 audio array
    """
    clipped = np.clip(audio, -1.0, 1.0)
    return (clipped * 32767).astype(np.int16)


def to_float(audio: np.ndarray) -> np.ndarray:
    """
    Normalize samples of any supported dtype to float32 in [-1, 1].

    uint8 is treated as unsigned-offset 8-bit, int16 as signed 16-bit,
    int32 as signed 32-bit; floating input is passed through.
    """
    audio = np.asarray(audio)
    if audio.dtype == np.uint8:
        return uint8_to_float(audio)
    if audio.dtype == np.int16:
        return int16_to_float(audio)
    if audio.dtype == np.int32:
        return audio.astype(np.float32) / 2147483648.0
    return audio.astype(np.float32)


def pcm_bytes_to_float(pcm: bytes) -> np.ndarray:
    """
    Convert PCM bytes to float32 audio.

    Args:
        pcm: PCM bytes (little-endian int16)

    Returns:
        Float32 audio array
    """
    # Drop a trailing odd byte rather than failing on a torn sample
    usable = len(pcm) - (len(pcm) % 2)
    int16_audio = np.frombuffer(pcm[:usable], dtype="<i2")
    return int16_to_float(int16_audio)


def resample(audio: np.ndarray, from_sr: int, to_sr: int) -> np.ndarray:
    """
    Resample audio to different sample rate (polyphase).

    Args:
        audio: Audio array
        from_sr: Source sample rate
        to_sr: Target sample rate

    Returns:
        Resampled audio
    """
    if from_sr == to_sr or audio.size == 0:
        return audio.astype(np.float32)

    g = gcd(int(from_sr), int(to_sr))
    y = scipy.signal.resample_poly(audio, up=int(to_sr) // g, down=int(from_sr) // g)
    return y.astype(np.float32)


def encode_wav(audio: np.ndarray, sample_rate: int) -> bytes:
    """Encode float32 mono audio as a 16-bit PCM WAV file in memory."""
    buf = io.BytesIO()
    scipy.io.wavfile.write(buf, sample_rate, float_to_int16(np.asarray(audio, dtype=np.float32)))
    return buf.getvalue()


def is_wav(data: bytes) -> bool:
    """Check for a RIFF/WAVE header."""
    return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE"


def decode_audio(data: bytes, pcm_sample_rate: int = DEFAULT_PCM_SAMPLE_RATE) -> Tuple[np.ndarray, int]:
    """
    Decode synthesized audio bytes to float32 mono samples.

    WAV input is parsed with its own header; anything else is taken as
    raw little-endian PCM16 at ``pcm_sample_rate``.

    Returns:
        Tuple of (samples, sample_rate)

    Raises:
        ValueError: If a WAV header is present but the file cannot be parsed
    """
    if is_wav(data):
        try:
            sample_rate, audio = scipy.io.wavfile.read(io.BytesIO(data))
        except (EOFError, struct.error) as e:
            raise ValueError(f"truncated WAV: {e}") from e
        audio = to_float(audio)
        if audio.ndim > 1:
            audio = audio.mean(axis=1).astype(np.float32)
        return audio, int(sample_rate)

    return pcm_bytes_to_float(data), pcm_sample_rate
