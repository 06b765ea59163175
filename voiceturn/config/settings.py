"""
voiceturn - Configuration Module

Centralized configuration loading from environment variables
(optionally seeded from a ``.env`` file).
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


ENV_PREFIX = "VOICETURN_"


def _env_str(key: str, default: str = "") -> str:
    return os.getenv(ENV_PREFIX + key, default)


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(ENV_PREFIX + key, str(default)))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(ENV_PREFIX + key, str(default)))
    except ValueError:
        return default


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(ENV_PREFIX + key, str(default)).lower().strip()
    return value in ("true", "1", "yes", "on")


def _env_device(key: str) -> Optional[int]:
    value = _env_str(key, "").strip()
    return int(value) if value.isdigit() else None


@dataclass
class AudioSettings:
    """Audio input/output configuration."""
    sample_rate: int = 16000
    frame_ms: int = 20
    input_device: Optional[int] = None
    output_device: Optional[int] = None
    output_sample_rate: int = 24000
    mic_gain: float = 1.0
    output_volume: float = 1.0
    max_recording_sec: float = 60.0


@dataclass
class SilenceSettings:
    """End-of-speech detection."""
    threshold: float = 0.01
    duration_ms: int = 1000
    poll_interval_ms: int = 100


@dataclass
class DialogueSettings:
    """Turn-taking behaviour."""
    restart_after_talking_ms: int = 500
    restart_after_no_speech_ms: int = 1500
    max_chunk_chars: int = 4000
    prefer_streaming: bool = True
    skip_silent_segments: bool = True


@dataclass
class ProviderSettings:
    """Import paths ("package.module:factory") of the provider objects."""
    transcriber: str = ""
    language_model: str = ""
    synthesizer: str = ""


@dataclass
class DebugSettings:
    debug: bool = False
    log_level: str = "INFO"


@dataclass
class Settings:
    """Main configuration container."""
    audio: AudioSettings = field(default_factory=AudioSettings)
    silence: SilenceSettings = field(default_factory=SilenceSettings)
    dialogue: DialogueSettings = field(default_factory=DialogueSettings)
    providers: ProviderSettings = field(default_factory=ProviderSettings)
    debug: DebugSettings = field(default_factory=DebugSettings)


def load_settings(env_path: Optional[str] = ".env") -> Settings:
    """Load configuration from environment variables."""
    if env_path:
        load_dotenv(env_path, override=False)

    return Settings(
        audio=AudioSettings(
            sample_rate=_env_int("SAMPLE_RATE", 16000),
            frame_ms=_env_int("FRAME_MS", 20),
            input_device=_env_device("INPUT_DEVICE"),
            output_device=_env_device("OUTPUT_DEVICE"),
            output_sample_rate=_env_int("OUTPUT_SAMPLE_RATE", 24000),
            mic_gain=_env_float("MIC_GAIN", 1.0),
            output_volume=_env_float("OUTPUT_VOLUME", 1.0),
            max_recording_sec=_env_float("MAX_RECORDING_SEC", 60.0),
        ),
        silence=SilenceSettings(
            threshold=_env_float("SILENCE_THRESHOLD", 0.01),
            duration_ms=_env_int("SILENCE_DURATION_MS", 1000),
            poll_interval_ms=_env_int("SILENCE_POLL_MS", 100),
        ),
        dialogue=DialogueSettings(
            restart_after_talking_ms=_env_int("RESTART_AFTER_TALKING_MS", 500),
            restart_after_no_speech_ms=_env_int("RESTART_AFTER_NO_SPEECH_MS", 1500),
            max_chunk_chars=_env_int("MAX_CHUNK_CHARS", 4000),
            prefer_streaming=_env_bool("PREFER_STREAMING", True),
            skip_silent_segments=_env_bool("SKIP_SILENT_SEGMENTS", True),
        ),
        providers=ProviderSettings(
            transcriber=_env_str("TRANSCRIBER", ""),
            language_model=_env_str("LANGUAGE_MODEL", ""),
            synthesizer=_env_str("SYNTHESIZER", ""),
        ),
        debug=DebugSettings(
            debug=_env_bool("DEBUG", False),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        ),
    )
