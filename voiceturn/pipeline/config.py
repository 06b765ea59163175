"""
Dialogue Configuration
======================

Agent states and the timing/behaviour knobs of the dialogue orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum

from voiceturn.core.audio_input import AudioCaptureConfig
from voiceturn.core.playback import PlaybackConfig
from voiceturn.utils.text_utils import DEFAULT_MAX_CHUNK_CHARS


class AgentState(Enum):
    """Visual agent state published to the UI."""
    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    TALKING = "talking"


# State display strings
STATE_DISPLAY = {
    AgentState.IDLE: "🔇 Idle",
    AgentState.LISTENING: "🎤 Listening",
    AgentState.THINKING: "🧠 Thinking",
    AgentState.TALKING: "🔊 Talking",
}


# Status messages
STATUS_READY = "Ready"
STATUS_LISTENING = "Listening..."
STATUS_TRANSCRIBING = "Transcribing..."
STATUS_THINKING = "Thinking..."
STATUS_SPEAKING = "Speaking..."
STATUS_NO_SPEECH = "No speech detected"
STATUS_MIC_DENIED = "Microphone access denied"
STATUS_CONFIGURE = "Configure API keys"


@dataclass
class DialogueConfig:
    """Configuration for the dialogue orchestrator."""

    # =========================================================================
    # Audio
    # =========================================================================
    capture: AudioCaptureConfig = field(default_factory=AudioCaptureConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)

    # =========================================================================
    # Timing (empirical UX constants)
    # =========================================================================
    restart_after_talking_ms: int = 500      # Back to listening after a reply
    restart_after_no_speech_ms: int = 1500   # Retry after an empty recording

    # =========================================================================
    # Reply handling
    # =========================================================================
    max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS
    prefer_streaming: bool = True      # Use LanguageModel.stream_respond when present
    skip_silent_segments: bool = True  # Treat an all-silent recording as no speech

    @property
    def restart_after_talking_sec(self) -> float:
        return self.restart_after_talking_ms / 1000.0

    @property
    def restart_after_no_speech_sec(self) -> float:
        return self.restart_after_no_speech_ms / 1000.0
