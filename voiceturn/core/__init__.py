# voiceturn - Core Package
from .audio_input import AudioCaptureSession, AudioCaptureConfig, AudioSegment, StopReason
from .audio_output import SoundDeviceSink, AudioOutputConfig
from .errors import (
    CaptureError,
    Cancelled,
    LLMError,
    NoSpeechDetected,
    StageError,
    SynthesisError,
    TranscriptionError,
    VoiceTurnError,
)
from .interrupt import CancellationToken, InterruptController
from .playback import SpeechPlaybackScheduler, PlaybackChunk, PlaybackConfig
from .silence_detector import SilenceDetector, SilenceDetectorConfig
from .volume import VolumeAnalyzer, compute_volume

__all__ = [
    "AudioCaptureSession",
    "AudioCaptureConfig",
    "AudioSegment",
    "StopReason",
    "SoundDeviceSink",
    "AudioOutputConfig",
    "CaptureError",
    "Cancelled",
    "LLMError",
    "NoSpeechDetected",
    "StageError",
    "SynthesisError",
    "TranscriptionError",
    "VoiceTurnError",
    "CancellationToken",
    "InterruptController",
    "SpeechPlaybackScheduler",
    "PlaybackChunk",
    "PlaybackConfig",
    "SilenceDetector",
    "SilenceDetectorConfig",
    "VolumeAnalyzer",
    "compute_volume",
]
