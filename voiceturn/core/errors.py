"""
voiceturn - Errors
==================

Stage errors end the current pipeline run and are reported to the user.
``NoSpeechDetected`` and ``Cancelled`` are control-flow signals: the first
schedules an automatic retry, the second is discarded silently.
"""


class VoiceTurnError(Exception):
    """Base class for all voiceturn exceptions."""


class StageError(VoiceTurnError):
    """A pipeline stage failed; fatal to the current run."""

    stage = "pipeline"


class CaptureError(StageError):
    """Microphone permission denied or no input device available."""

    stage = "capture"


class TranscriptionError(StageError):
    """Transcription provider failed."""

    stage = "transcription"


class LLMError(StageError):
    """Language model provider failed."""

    stage = "llm"


class SynthesisError(StageError):
    """Speech synthesis failed, or its audio could not be decoded."""

    stage = "synthesis"


class NoSpeechDetected(VoiceTurnError):
    """The recording held no speech (silent audio or empty transcript)."""


class Cancelled(VoiceTurnError):
    """The run's cancellation token was set; the result must be discarded."""
