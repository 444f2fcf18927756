"""Tests for SessionOrchestrator wiring between the pipeline and the server channel."""

from __future__ import annotations

import asyncio
import inspect
from unittest.mock import AsyncMock, MagicMock

import pytest

from interview_voice.errors import AcquisitionError, ConnectionSetupError
from interview_voice.schemas.channel import ServerError, SessionCompleted, TextChunk, TextComplete
from interview_voice.services.server_channel import DISCONNECT
from interview_voice.services.session_orchestrator import SessionOrchestrator
from interview_voice.services.signals import StatusBroadcaster
from interview_voice.services.stt_service import TranscriptionSession
from interview_voice.services.tts.audio_queue import AudioPlaybackQueue
from interview_voice.services.tts_service import AudioUnit


class FakeChannel:
    def __init__(self):
        self.handlers: dict = {}
        self.is_open = False
        self.emitted: list[tuple[str, dict]] = []
        self.closed = False

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    async def connect(self):
        self.is_open = True

    async def emit(self, event, data=None):
        self.emitted.append((event, data))

    async def close(self):
        self.is_open = False
        self.closed = True
        await self.fire(DISCONNECT)

    async def fire(self, event, *args):
        for handler in self.handlers.get(event, []):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result


class FakeHandle:
    def __init__(self):
        self.stopped = False

    def stop(self):
        self.stopped = True

    def close(self):
        pass


class FakeOutput:
    def __init__(self):
        self.handles: list[FakeHandle] = []
        self.played: list[AudioUnit] = []

    def play(self, unit, on_finished):
        self.played.append(unit)
        handle = FakeHandle()
        self.handles.append(handle)
        return handle


def _results(text: str, is_final: bool = True, speech_final: bool = True) -> dict:
    return {
        "type": "Results",
        "channel": {"alternatives": [{"transcript": text}]},
        "is_final": is_final,
        "speech_final": speech_final,
    }


def _words(n: int) -> str:
    return " ".join(f"word{i}" for i in range(1, n + 1))


@pytest.fixture
def broadcaster():
    return StatusBroadcaster()


@pytest.fixture
def messages(broadcaster):
    received: list[dict] = []
    broadcaster.subscribe(received.append)
    return received


@pytest.fixture
def pipeline(broadcaster):
    channel = FakeChannel()
    transcription = TranscriptionSession("dg-key", broadcaster=broadcaster)
    transcription.start = AsyncMock()
    synthesizer = MagicMock()
    synthesizer.convert = AsyncMock(return_value=AudioUnit(pcm=b"\x00\x00" * 10, sample_rate=24000))
    synthesizer.aclose = AsyncMock()
    output = FakeOutput()
    playback = AudioPlaybackQueue(transcription.speaking, output=output, broadcaster=broadcaster)
    orchestrator = SessionOrchestrator(
        "session-1",
        channel,
        transcription,
        synthesizer,
        playback,
        close_delay=0,
        broadcaster=broadcaster,
    )
    return orchestrator, channel, transcription, synthesizer, playback, output


@pytest.mark.asyncio
async def test_connect_joins_session(pipeline):
    orchestrator, channel, *_ = pipeline

    await orchestrator.connect()

    assert channel.is_open is True
    assert channel.emitted == [("join_session", {"sessionId": "session-1"})]


@pytest.mark.asyncio
async def test_start_session_starts_listening_then_notifies_server(pipeline):
    orchestrator, channel, transcription, *_ = pipeline
    await orchestrator.connect()

    await orchestrator.start_session()

    transcription.start.assert_awaited_once()
    assert channel.emitted[-1] == ("start_session", {})


@pytest.mark.asyncio
async def test_start_failure_propagates_without_starting_server_session(pipeline):
    orchestrator, channel, transcription, *_ = pipeline
    transcription.start.side_effect = AcquisitionError("Microphone unavailable")
    await orchestrator.connect()

    with pytest.raises(AcquisitionError):
        await orchestrator.start_session()

    assert ("start_session", {}) not in channel.emitted


@pytest.mark.asyncio
async def test_channel_drop_during_start_stops_transcription(pipeline, messages):
    orchestrator, channel, transcription, *_ = pipeline
    await orchestrator.connect()
    channel.emit = AsyncMock(side_effect=ConnectionSetupError("Lost connection to interview server"))
    transcription.stop = AsyncMock()

    with pytest.raises(ConnectionSetupError):
        await orchestrator.start_session()

    transcription.start.assert_awaited_once()
    transcription.stop.assert_awaited_once()
    assert not any(m["type"] == "session_started" for m in messages)


@pytest.mark.asyncio
async def test_text_chunks_are_synthesized_and_played(pipeline, messages):
    orchestrator, channel, _, synthesizer, _, output = pipeline

    await channel.fire("text_chunk", TextChunk(chunk=_words(20) + " "))
    await channel.fire("text_chunk", TextChunk(chunk="Ready when you are."))
    await channel.fire("text_complete", TextComplete(fullText=_words(20) + " Ready when you are."))

    batches = [call.args[0] for call in synthesizer.convert.await_args_list]
    assert batches == [_words(20), "Ready when you are."]
    assert len(output.played) == 1
    assert [m["type"] for m in messages].count("assistant_responding") == 1


@pytest.mark.asyncio
async def test_end_of_speech_sends_joined_utterances(pipeline, messages):
    orchestrator, channel, transcription, _, playback, _ = pipeline
    await orchestrator.connect()
    orchestrator.buffer.pending_text = "stale text from the last answer"

    transcription.handle_message(_results("I have five years", speech_final=False))
    transcription.handle_message(_results("of Python experience."))
    await asyncio.sleep(0)

    assert channel.emitted[-1] == (
        "user_response",
        {"text": "I have five years of Python experience."},
    )
    assert transcription.finalized_utterances == []
    assert orchestrator.buffer.pending_text == ""
    assert {"type": "user_response", "text": "I have five years of Python experience."} in messages


@pytest.mark.asyncio
async def test_identical_consecutive_response_is_suppressed(pipeline):
    orchestrator, channel, transcription, *_ = pipeline
    await orchestrator.connect()

    transcription.handle_message(_results("Yes."))
    await asyncio.sleep(0)
    transcription.handle_message(_results("Yes."))
    await asyncio.sleep(0)

    responses = [e for e in channel.emitted if e[0] == "user_response"]
    assert responses == [("user_response", {"text": "Yes."})]
    assert transcription.finalized_utterances == []


@pytest.mark.asyncio
async def test_nothing_is_sent_while_channel_is_closed(pipeline):
    orchestrator, channel, transcription, *_ = pipeline

    transcription.handle_message(_results("Hello?"))
    await asyncio.sleep(0)

    assert channel.emitted == []
    assert transcription.finalized_utterances == ["Hello?"]


@pytest.mark.asyncio
async def test_user_speech_interrupts_assistant_audio(pipeline):
    orchestrator, channel, transcription, _, playback, output = pipeline

    await channel.fire("text_chunk", TextChunk(chunk=_words(20)))
    await channel.fire("text_chunk", TextChunk(chunk=" " + _words(20)))
    assert playback.is_playing is True

    transcription.handle_message(_results("Sorry,", is_final=False, speech_final=False))

    assert output.handles[0].stopped is True
    assert playback.is_playing is False
    assert len(playback) == 1


@pytest.mark.asyncio
async def test_session_completed_tears_down_and_closes_channel(pipeline, messages):
    orchestrator, channel, transcription, _, playback, output = pipeline
    await orchestrator.connect()
    await channel.fire("text_chunk", TextChunk(chunk=_words(20)))

    await channel.fire("session_completed", SessionCompleted(message="Thanks!", score=82))
    await asyncio.wait_for(orchestrator.wait_closed(), timeout=1)

    assert channel.closed is True
    assert output.handles[0].stopped is True
    assert playback.is_playing is False
    assert orchestrator.completed.score == 82
    assert {"type": "session_completed", "message": "Thanks!", "score": 82} in messages


@pytest.mark.asyncio
async def test_server_error_is_broadcast(pipeline, messages):
    orchestrator, channel, *_ = pipeline

    await channel.fire("error", ServerError(message="Interview not found"))

    assert {"type": "server_error", "message": "Interview not found"} in messages


@pytest.mark.asyncio
async def test_aclose_releases_everything(pipeline):
    orchestrator, channel, transcription, synthesizer, playback, output = pipeline
    await orchestrator.connect()
    await channel.fire("text_chunk", TextChunk(chunk=_words(20)))

    await orchestrator.aclose()

    assert channel.closed is True
    synthesizer.aclose.assert_awaited_once()
    assert output.handles[0].stopped is True
    await asyncio.wait_for(orchestrator.wait_closed(), timeout=1)
