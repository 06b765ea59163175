"""
Component Manager
=================

Builds the orchestrator's collaborators from settings: audio backends,
per-run capture/playback factories, and the provider objects named by
import path. Separates component setup from orchestration logic.
"""

import importlib
import logging
from typing import Any, Optional

from voiceturn.config.settings import Settings
from voiceturn.core.audio_input import AudioCaptureConfig, AudioCaptureSession
from voiceturn.core.audio_output import AudioOutputConfig, SoundDeviceSink
from voiceturn.core.playback import PlaybackConfig, SpeechPlaybackScheduler
from voiceturn.core.silence_detector import SilenceDetectorConfig
from voiceturn.pipeline.config import DialogueConfig
from voiceturn.pipeline.orchestrator import DialogueOrchestrator


logger = logging.getLogger(__name__)


def load_object(path: str) -> Any:
    """
    Import ``package.module:attr`` and call it if it is callable.

    Raises:
        ValueError: Malformed path
        ImportError / AttributeError: Target not found
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"expected 'package.module:factory', got {path!r}")
    target = getattr(importlib.import_module(module_name), attr)
    return target() if callable(target) else target


def build_dialogue_config(settings: Settings) -> DialogueConfig:
    audio = settings.audio
    return DialogueConfig(
        capture=AudioCaptureConfig(
            sample_rate=audio.sample_rate,
            frame_ms=audio.frame_ms,
            device=audio.input_device,
            mic_gain=audio.mic_gain,
            max_duration_sec=audio.max_recording_sec,
            silence=SilenceDetectorConfig(
                threshold=settings.silence.threshold,
                silence_duration_ms=settings.silence.duration_ms,
                poll_interval_ms=settings.silence.poll_interval_ms,
            ),
        ),
        playback=PlaybackConfig(),
        restart_after_talking_ms=settings.dialogue.restart_after_talking_ms,
        restart_after_no_speech_ms=settings.dialogue.restart_after_no_speech_ms,
        max_chunk_chars=settings.dialogue.max_chunk_chars,
        prefer_streaming=settings.dialogue.prefer_streaming,
        skip_silent_segments=settings.dialogue.skip_silent_segments,
    )


class ComponentManager:
    """
    Manages the orchestrator's components.

    Components:
    - transcriber / language_model / synthesizer: provider objects
    - capture_factory: new AudioCaptureSession per run
    - scheduler_factory: new SpeechPlaybackScheduler (own output stream) per run
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.config = build_dialogue_config(settings)

        self.transcriber: Optional[Any] = None
        self.language_model: Optional[Any] = None
        self.synthesizer: Optional[Any] = None

    def initialize_all(self) -> None:
        """Load every configured provider."""
        providers = self.settings.providers
        self.transcriber = self._load_provider("Transcriber", providers.transcriber)
        self.language_model = self._load_provider("Language model", providers.language_model)
        self.synthesizer = self._load_provider("Synthesizer", providers.synthesizer)

    def _load_provider(self, label: str, path: str) -> Optional[Any]:
        if not path:
            logger.warning("[Components] %s: not configured", label)
            return None
        provider = load_object(path)
        logger.info("[Components] %s: %s", label, path)
        return provider

    def create_capture(self) -> AudioCaptureSession:
        return AudioCaptureSession(self.config.capture)

    def create_scheduler(self) -> SpeechPlaybackScheduler:
        sink = SoundDeviceSink(AudioOutputConfig(
            sample_rate=self.settings.audio.output_sample_rate,
            device=self.settings.audio.output_device,
            volume=self.settings.audio.output_volume,
        ))
        return SpeechPlaybackScheduler(sink, self.config.playback)

    def build_orchestrator(self) -> DialogueOrchestrator:
        return DialogueOrchestrator(
            self.transcriber,
            self.language_model,
            self.synthesizer,
            capture_factory=self.create_capture,
            scheduler_factory=self.create_scheduler,
            config=self.config,
        )
