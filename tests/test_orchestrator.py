"""
Tests: Dialogue orchestrator
============================

End-to-end turns against fake microphone, sink and providers, with
timings shortened in conftest.py (100 ms silence timeout, 50 ms restart
after talking, 150 ms after no speech).

Run with pytest:
    python -m pytest tests/test_orchestrator.py -v
"""

import asyncio

import numpy as np
import pytest

from conftest import (
    FakeLanguageModel,
    FakeStreamingLanguageModel,
    FakeSynthesizer,
    FakeTranscriber,
    PortAudioError,
    pump,
    tone,
)
from voiceturn.core.audio_input import AudioCaptureSession
from voiceturn.core.errors import LLMError
from voiceturn.pipeline.config import AgentState
from voiceturn.pipeline.orchestrator import DialogueOrchestrator


# =============================================================================
# Happy path
# =============================================================================

@pytest.mark.asyncio
async def test_full_turn_returns_to_listening(make_harness):
    h = make_harness()
    assert await h.orchestrator.request_start()
    assert h.state is AgentState.LISTENING

    await h.say()
    await h.orchestrator.request_stop()
    await h.wait_for(AgentState.TALKING)
    await h.wait_for(AgentState.IDLE)
    assert h.orchestrator.status == "Ready"
    await h.wait_for(AgentState.LISTENING)

    assert h.states[:5] == [
        AgentState.LISTENING,
        AgentState.THINKING,
        AgentState.TALKING,
        AgentState.IDLE,
        AgentState.LISTENING,
    ]
    assert "Transcribing..." in h.statuses
    assert "Thinking..." in h.statuses
    assert "Speaking..." in h.statuses
    assert len(h.transcriber.calls) == 1
    assert h.language_model.calls == ["hello there"]
    assert h.synthesizer.calls == ["Hi! How can I help?"]
    assert len(h.sinks[0].played) == 1
    assert not h.sinks[0].is_open
    assert len(h.microphone.streams) == 2
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_silence_ends_recording(make_harness):
    h = make_harness()
    await h.orchestrator.request_start()
    await h.say(0.3)
    h.microphone.latest.emit(np.zeros(800, dtype=np.float32))
    await pump()

    await h.wait_for(AgentState.TALKING)
    segment = h.transcriber.calls[0]
    assert segment.duration == pytest.approx(0.35, abs=0.03)
    assert h.microphone.streams[0].closed
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_streaming_reply_spoken_whole(make_harness):
    llm = FakeStreamingLanguageModel(["Sure, ", "it is ", "noon."])
    h = make_harness(language_model=llm)
    await h.orchestrator.request_start()
    await h.say()
    await h.orchestrator.request_stop()
    await h.wait_for(AgentState.TALKING)

    assert llm.stream_calls == ["hello there"]
    assert h.synthesizer.calls == ["Sure, it is noon."]
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_volume_only_in_matching_state(make_harness):
    h = make_harness()
    await h.orchestrator.request_start()
    await h.say()
    assert h.orchestrator.input_volume() > 0.0
    assert h.orchestrator.output_volume() == 0.0
    await h.orchestrator.close()
    assert h.orchestrator.input_volume() == 0.0


# =============================================================================
# No speech
# =============================================================================

@pytest.mark.asyncio
async def test_empty_transcript_retries_after_delay(make_harness):
    h = make_harness(transcriber=FakeTranscriber("   "))
    await h.orchestrator.request_start()
    await h.say()
    await h.orchestrator.request_stop()

    await h.wait_for(AgentState.IDLE)
    assert h.orchestrator.status == "No speech detected"
    assert h.language_model.calls == []

    await asyncio.sleep(0.05)
    assert h.state is AgentState.IDLE
    await h.wait_for(AgentState.LISTENING, timeout=1.0)
    assert len(h.microphone.streams) == 2
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_quiet_speech_reaches_transcriber(make_harness):
    h = make_harness()
    await h.orchestrator.request_start()
    h.microphone.latest.emit(tone(0.8, amplitude=0.012))
    await pump()
    assert h.orchestrator.input_volume() > 0.01
    h.microphone.latest.emit(np.zeros(9600, dtype=np.float32))
    await pump()
    await h.orchestrator.request_stop()

    await h.wait_for(AgentState.TALKING)
    assert len(h.transcriber.calls) == 1
    assert h.orchestrator.status == "Speaking..."
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_silent_recording_never_reaches_transcriber(make_harness):
    h = make_harness()
    await h.orchestrator.request_start()
    h.microphone.latest.emit(np.zeros(3200, dtype=np.float32))
    await pump()
    await h.orchestrator.request_stop()

    await h.wait_for(AgentState.IDLE)
    assert h.orchestrator.status == "No speech detected"
    assert h.transcriber.calls == []
    await h.orchestrator.close()


# =============================================================================
# Interrupts
# =============================================================================

@pytest.mark.asyncio
async def test_interrupt_while_listening(make_harness):
    h = make_harness()
    await h.orchestrator.request_start()
    await h.say()

    await h.orchestrator.request_interrupt()

    assert h.state is AgentState.IDLE
    assert h.orchestrator.status == "Ready"
    assert h.microphone.streams[0].closed
    await asyncio.sleep(0.25)
    assert h.transcriber.calls == []
    assert h.state is AgentState.IDLE
    assert len(h.microphone.streams) == 1
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_interrupt_while_thinking_discards_result(make_harness):
    h = make_harness()
    h.transcriber.gate = asyncio.Event()
    await h.orchestrator.request_start()
    await h.say()
    await h.orchestrator.request_stop()
    await h.wait_for(AgentState.THINKING)

    await h.orchestrator.request_interrupt()
    assert h.state is AgentState.IDLE

    # Transcript arrives after the interrupt
    h.transcriber.gate.set()
    await asyncio.sleep(0.2)
    assert h.language_model.calls == []
    assert h.state is AgentState.IDLE
    assert AgentState.TALKING not in h.states
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_interrupt_mid_stream_discards_reply(make_harness):
    llm = FakeStreamingLanguageModel(["One. ", "Two. ", "Three."])
    llm.step = asyncio.Event()
    h = make_harness(language_model=llm)
    await h.orchestrator.request_start()
    await h.say()
    await h.orchestrator.request_stop()
    await h.wait_for(AgentState.THINKING)

    llm.step.set()
    await asyncio.sleep(0.02)
    await h.orchestrator.request_interrupt()
    llm.step.set()
    await asyncio.sleep(0.05)

    assert h.synthesizer.calls == []
    assert h.state is AgentState.IDLE
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_barge_in_while_talking(make_harness):
    h = make_harness(synthesizer=FakeSynthesizer(seconds_per_chunk=2.0))
    await h.orchestrator.request_start()
    await h.say()
    await h.orchestrator.request_stop()
    await h.wait_for(AgentState.TALKING)
    await asyncio.sleep(0.02)
    first_run = h.orchestrator.current_run

    await h.orchestrator.request_interrupt()

    assert h.state is AgentState.LISTENING
    first_sink = h.sinks[0]
    assert first_sink.stop_all_count == 1
    assert not first_sink.is_open
    assert len(h.microphone.streams) == 2
    assert h.microphone.streams[0].closed
    assert h.microphone.streams[1].started and not h.microphone.streams[1].closed
    assert first_run.token.cancelled
    assert h.orchestrator.current_run.run_id != first_run.run_id
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_hide_while_talking_tears_down(make_harness):
    h = make_harness(synthesizer=FakeSynthesizer(seconds_per_chunk=2.0))
    await h.orchestrator.request_start()
    await h.say()
    await h.orchestrator.request_stop()
    await h.wait_for(AgentState.TALKING)

    await h.orchestrator.request_hide()

    assert h.state is AgentState.IDLE
    assert not h.sinks[0].is_open
    await asyncio.sleep(0.2)
    assert h.state is AgentState.IDLE
    assert len(h.microphone.streams) == 1
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_interrupt_while_idle_cancels_pending_restart(make_harness):
    h = make_harness(transcriber=FakeTranscriber(""))
    await h.orchestrator.request_start()
    await h.say()
    await h.orchestrator.request_stop()
    await h.wait_for(AgentState.IDLE)

    await h.orchestrator.request_interrupt()
    await asyncio.sleep(0.3)
    assert h.state is AgentState.IDLE
    assert len(h.microphone.streams) == 1
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_toggle(make_harness):
    h = make_harness()
    await h.orchestrator.request_toggle()
    assert h.state is AgentState.LISTENING
    await h.orchestrator.request_toggle()
    assert h.state is AgentState.IDLE
    await h.orchestrator.close()


# =============================================================================
# Start requests
# =============================================================================

@pytest.mark.asyncio
async def test_auto_start_ignored_when_busy(make_harness):
    h = make_harness()
    await h.orchestrator.request_start()
    run = h.orchestrator.current_run

    assert await h.orchestrator.request_start(manual=False) is False
    assert h.orchestrator.current_run is run
    assert len(h.microphone.streams) == 1
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_manual_start_when_busy_restarts(make_harness):
    h = make_harness()
    await h.orchestrator.request_start()
    first = h.orchestrator.current_run

    assert await h.orchestrator.request_start() is True
    assert h.orchestrator.current_run is not first
    assert first.token.cancelled
    assert h.microphone.streams[0].closed
    assert len(h.microphone.open_streams) == 1
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_only_one_microphone_open_across_turns(make_harness):
    h = make_harness()
    for _ in range(3):
        await h.orchestrator.request_start()
        assert len(h.microphone.open_streams) == 1
    await h.orchestrator.close()
    assert h.microphone.open_streams == []


# =============================================================================
# Failures
# =============================================================================

@pytest.mark.asyncio
async def test_microphone_denied(make_harness):
    h = make_harness()
    h.microphone.deny = True
    assert await h.orchestrator.request_start() is False
    assert h.state is AgentState.IDLE
    assert h.orchestrator.status == "Microphone access denied"
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_microphone_busy_on_stream_start(make_harness):
    h = make_harness()
    h.microphone.start_error = PortAudioError("Error starting stream: Device unavailable")

    assert await h.orchestrator.request_start() is False

    assert h.state is AgentState.IDLE
    assert h.orchestrator.status == "Microphone access denied"
    assert h.microphone.latest.closed
    assert h.orchestrator.input_volume() == 0.0
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_stage_error_stops_without_restart(make_harness):
    h = make_harness(language_model=FakeLanguageModel(error=LLMError("rate limited")))
    await h.orchestrator.request_start()
    await h.say()
    await h.orchestrator.request_stop()

    await h.wait_for(AgentState.IDLE)
    assert h.orchestrator.status == "Error: rate limited"
    await asyncio.sleep(0.3)
    assert h.state is AgentState.IDLE
    assert len(h.microphone.streams) == 1
    assert h.synthesizer.calls == []
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_missing_providers(dialogue_config, microphone):
    orchestrator = DialogueOrchestrator(
        None,
        None,
        None,
        capture_factory=lambda: AudioCaptureSession(dialogue_config.capture, stream_factory=microphone),
        scheduler_factory=lambda: None,
        config=dialogue_config,
    )
    assert await orchestrator.request_start() is False
    assert orchestrator.state is AgentState.IDLE
    assert orchestrator.status == "Configure API keys"
    assert microphone.streams == []
    await orchestrator.close()


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_transitions(make_harness):
    h = make_harness()

    def broken(old, new):
        raise RuntimeError("ui gone")

    h.orchestrator.add_state_listener(broken)
    assert await h.orchestrator.request_start()
    assert h.state is AgentState.LISTENING
    await h.orchestrator.close()


@pytest.mark.asyncio
async def test_closed_orchestrator_refuses_start(make_harness):
    h = make_harness()
    await h.orchestrator.close()
    assert await h.orchestrator.request_start() is False
