"""
Speech Processor
================

The three network-bound stages of a turn: STT → LLM → TTS.

Each stage checks the run's cancellation token as soon as its await
returns, so a result that arrives after an interrupt is dropped instead of
driving the next stage. Provider exceptions are translated into the
matching stage error.
"""

import logging
import time
from typing import List, Optional

from voiceturn.core.audio_input import AudioSegment
from voiceturn.core.errors import (
    Cancelled,
    LLMError,
    NoSpeechDetected,
    SynthesisError,
    TranscriptionError,
)
from voiceturn.core.interfaces import LanguageModel, Synthesizer, Transcriber
from voiceturn.core.interrupt import CancellationToken, InterruptController
from voiceturn.core.playback import SpeechPlaybackScheduler
from voiceturn.pipeline.config import DialogueConfig
from voiceturn.utils.text_utils import chunk_text


logger = logging.getLogger(__name__)


class SpeechProcessor:
    """
    Runs transcription, reply generation and synthesis for one run.
    """

    def __init__(
        self,
        config: DialogueConfig,
        transcriber: Optional[Transcriber],
        language_model: Optional[LanguageModel],
        synthesizer: Optional[Synthesizer],
    ):
        self.config = config
        self._transcriber = transcriber
        self._llm = language_model
        self._tts = synthesizer

    @property
    def is_configured(self) -> bool:
        """Transcription and a language model are both required."""
        return self._transcriber is not None and self._llm is not None

    async def transcribe(self, segment: AudioSegment, token: CancellationToken) -> str:
        """
        Transcribe a finalized segment.

        Raises:
            NoSpeechDetected: Silent segment or empty transcript
            TranscriptionError: Provider failure
            Cancelled: Token set while the request was in flight
        """
        threshold = self.config.capture.silence.threshold
        if segment.is_empty or (self.config.skip_silent_segments and segment.is_silent(threshold)):
            raise NoSpeechDetected("silent recording")

        start_time = time.monotonic()
        try:
            text = await self._transcriber.transcribe(segment)
        except TranscriptionError:
            raise
        except Exception as e:
            raise TranscriptionError(str(e) or type(e).__name__) from e
        InterruptController.checkpoint(token)

        text = (text or "").strip()
        logger.debug("[STT] %.2fs: %r", time.monotonic() - start_time, text)
        if not text:
            raise NoSpeechDetected("empty transcript")
        return text

    async def generate(self, text: str, token: CancellationToken) -> str:
        """
        Get the reply text, streaming when the model supports it.

        Raises:
            LLMError: Provider failure or empty reply
            Cancelled: Token set during the request or between increments
        """
        start_time = time.monotonic()
        stream = getattr(self._llm, "stream_respond", None) if self.config.prefer_streaming else None
        try:
            if stream is not None:
                parts: List[str] = []
                async for increment in stream(text):
                    InterruptController.checkpoint(token)
                    parts.append(increment)
                reply = "".join(parts)
            else:
                reply = await self._llm.respond(text)
        except (Cancelled, LLMError):
            raise
        except Exception as e:
            raise LLMError(str(e) or type(e).__name__) from e
        InterruptController.checkpoint(token)

        reply = (reply or "").strip()
        logger.debug("[LLM] %.2fs, %d chars", time.monotonic() - start_time, len(reply))
        if not reply:
            raise LLMError("empty response")
        return reply

    async def speak(self, reply: str, token: CancellationToken, scheduler: SpeechPlaybackScheduler) -> bool:
        """
        Synthesize the reply chunk by chunk and schedule it gaplessly.

        Chunk N+1 is synthesized while chunk N plays.

        Returns:
            True when playback completed, False if it was stopped

        Raises:
            SynthesisError: Provider or decode failure
            Cancelled: Token set between chunks
        """
        if self._tts is None:
            raise SynthesisError("no synthesizer configured")

        chunks = chunk_text(reply, self.config.max_chunk_chars)
        scheduler.start()

        for i, chunk in enumerate(chunks):
            InterruptController.checkpoint(token)
            try:
                audio = await self._tts.synthesize(chunk)
            except SynthesisError:
                raise
            except Exception as e:
                raise SynthesisError(str(e) or type(e).__name__) from e
            InterruptController.checkpoint(token)

            await scheduler.schedule(audio)
            InterruptController.checkpoint(token)
            logger.debug("[TTS] Chunk %d/%d scheduled", i + 1, len(chunks))

        finished = await scheduler.wait_finished()
        InterruptController.checkpoint(token)
        return finished
