"""Protocol interfaces for external collaborators.

Providers (transcription, language model, synthesis) and the audio
backends are supplied by the host application; the core only talks to
them through these narrow capabilities.
"""

from typing import TYPE_CHECKING, AsyncIterator, Callable, Optional, Protocol

import numpy as np

if TYPE_CHECKING:
    from voiceturn.core.audio_input import AudioSegment
    from voiceturn.core.playback import PlaybackChunk


class Transcriber(Protocol):
    """Turns a recorded segment into text."""

    async def transcribe(self, segment: "AudioSegment") -> str:
        """Return the transcript; empty string when nothing was said."""


class LanguageModel(Protocol):
    """Produces the assistant reply for a user utterance."""

    async def respond(self, text: str) -> str:
        """Return the complete reply text."""


class StreamingLanguageModel(LanguageModel, Protocol):
    """Language model that can also stream its reply."""

    def stream_respond(self, text: str) -> AsyncIterator[str]:
        """Yield reply text increments; finite and not restartable."""


class Synthesizer(Protocol):
    """Converts reply text into audio bytes (WAV or raw PCM16)."""

    async def synthesize(self, text: str) -> bytes:
        """Return synthesized audio for one text chunk."""


class InputStream(Protocol):
    """A started/stoppable microphone stream (sounddevice.InputStream shape)."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


# Called as factory(sample_rate, channels, blocksize, device, callback).
# The callback receives (indata, frames, time_info, status) on the audio thread.
InputStreamFactory = Callable[[int, int, int, Optional[int], Callable], InputStream]


class AudioSink(Protocol):
    """Output device with its own audio clock (seconds since the sink opened)."""

    sample_rate: int

    @property
    def current_time(self) -> float: ...

    def open(self) -> None: ...

    def play(self, chunk: "PlaybackChunk") -> None:
        """Queue a chunk to start at ``chunk.start_time`` on the audio clock."""

    def stop_all(self) -> None:
        """Drop every scheduled and playing chunk."""

    def recent_samples(self, n: int) -> np.ndarray:
        """Last ``n`` samples actually sent to the device."""

    def close(self) -> None: ...
