"""Tests for the command-line front end."""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from rich.console import Console
from websockets.exceptions import ConnectionClosedError

from interview_voice.errors import AcquisitionError, InterviewApiError
from interview_voice.main import CallView, _run_call, _run_command, build_parser
from interview_voice.schemas.interviews import Interview
from interview_voice.services.stt_service import ConnectionState, TranscriptionSession


def _console() -> Console:
    return Console(record=True, width=120)


def _api_mock(**methods) -> MagicMock:
    api = MagicMock()
    api.__aenter__ = AsyncMock(return_value=api)
    api.__aexit__ = AsyncMock(return_value=False)
    for name, value in methods.items():
        setattr(api, name, value)
    return api


def test_parser_subcommands():
    parser = build_parser()

    assert parser.parse_args(["call", "abc"]).interview_id == "abc"
    assert parser.parse_args(["delete", "abc", "-y"]).yes is True
    create = parser.parse_args(["create", "-t", "SRE", "-c", "Globex", "-d", "On call"])
    assert (create.title, create.company, create.description) == ("SRE", "Globex", "On call")

    with pytest.raises(SystemExit):
        parser.parse_args([])


def test_call_view_tracks_status_messages():
    view = CallView("SRE at Globex")

    view.handle({"type": "session_started", "session_id": "abc"})
    assert view.status == "Listening"

    view.on_speaking(True)
    view.handle({"type": "interim_transcript", "text": "I think"})
    view.handle({"type": "user_response", "text": "I think so."})
    assert view.interim == ""
    assert view.last_answer == "I think so."

    view.handle({"type": "playback_started", "text": "Great answer.", "remaining": 1})
    view.handle({"type": "session_completed", "message": "Thanks!", "score": 88.0})
    assert view.assistant_text == "Great answer."
    assert view.score == 88.0

    console = _console()
    console.print(view.render())
    output = console.export_text()
    assert "SRE at Globex" in output
    assert "Score: 88" in output


@pytest.mark.asyncio
async def test_list_command_renders_table():
    api = _api_mock(
        list_interviews=AsyncMock(
            return_value=[Interview(_id="abc", title="SRE", company="Globex", status="scheduled")]
        )
    )
    console = _console()
    settings = MagicMock(server_url="http://server.test", request_timeout=5.0)
    settings.token_value.return_value = None

    with patch("interview_voice.main.InterviewApiClient", return_value=api):
        code = await _run_command(argparse.Namespace(command="list"), settings, console)

    assert code == 0
    assert "Globex" in console.export_text()


@pytest.mark.asyncio
async def test_api_errors_exit_non_zero():
    api = _api_mock(
        get_feedback=AsyncMock(side_effect=InterviewApiError(404, "Feedback not available yet"))
    )
    console = _console()
    settings = MagicMock(server_url="http://server.test", request_timeout=5.0)
    settings.token_value.return_value = None

    with patch("interview_voice.main.InterviewApiClient", return_value=api):
        code = await _run_command(
            argparse.Namespace(command="feedback", interview_id="abc"), settings, console
        )

    assert code == 1
    assert "Feedback not available yet" in console.export_text()


def _call_settings(tmp_path: Path) -> MagicMock:
    settings = MagicMock(
        server_url="http://server.test",
        channel_url="ws://server.test/ws/interview",
        request_timeout=5.0,
        session_close_delay_seconds=0,
        voice_settings_path=tmp_path / "voice.json",
    )
    settings.require_deepgram_key.return_value = "dg-key"
    settings.token_value.return_value = None
    return settings


def _interview_api() -> MagicMock:
    return _api_mock(
        get_interview=AsyncMock(
            return_value=Interview(_id="abc", title="SRE", company="Globex")
        )
    )


class DroppingSocket:
    """Accepts the join, then fails every later send as if the server hung up."""

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = asyncio.Event()

    async def send(self, message: str) -> None:
        if self.sent:
            raise ConnectionClosedError(None, None)
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self

    async def __anext__(self):
        await self.closed.wait()
        raise StopAsyncIteration

    async def close(self) -> None:
        self.closed.set()


@pytest.mark.asyncio
async def test_call_start_failure_prints_hint_and_releases(tmp_path):
    orchestrator = MagicMock()
    orchestrator.connect = AsyncMock()
    orchestrator.start_session = AsyncMock(side_effect=AcquisitionError("No input device"))
    orchestrator.aclose = AsyncMock()
    console = _console()

    with patch("interview_voice.main.InterviewApiClient", return_value=_interview_api()), patch(
        "interview_voice.main.SessionOrchestrator", return_value=orchestrator
    ):
        code = await _run_call(_call_settings(tmp_path), console, "abc")

    output = console.export_text()
    assert code == 1
    assert "Could not start the call: No input device" in output
    assert "Check that a microphone is connected" in output
    orchestrator.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_channel_drop_during_call_start_returns_to_not_started(tmp_path):
    sessions: list[TranscriptionSession] = []

    def make_session(*args, **kwargs) -> TranscriptionSession:
        session = TranscriptionSession(*args, **kwargs)

        async def start() -> None:
            session.state = ConnectionState.ACTIVE

        session.start = start
        sessions.append(session)
        return session

    sock = DroppingSocket()
    console = _console()

    with patch("interview_voice.main.InterviewApiClient", return_value=_interview_api()), patch(
        "interview_voice.main.TranscriptionSession", side_effect=make_session
    ), patch(
        "interview_voice.services.server_channel.websockets.connect",
        new=AsyncMock(return_value=sock),
    ):
        code = await _run_call(_call_settings(tmp_path), console, "abc")

    output = console.export_text()
    assert code == 1
    assert sock.sent == [{"type": "join_session", "sessionId": "abc"}]
    assert "Lost connection to interview server" in output
    assert "Check your network connection" in output
    assert sessions[0].state is ConnectionState.CLOSED
    assert sock.closed.is_set()


@pytest.mark.asyncio
async def test_create_prompts_again_for_empty_answers():
    api = _api_mock(create_interview=AsyncMock(return_value="new-id"))
    console = _console()
    settings = MagicMock(server_url="http://server.test", request_timeout=5.0)
    settings.token_value.return_value = None
    args = argparse.Namespace(command="create", title=None, company=None, description=None)

    with patch("interview_voice.main.InterviewApiClient", return_value=api), patch(
        "interview_voice.main.Prompt.ask", side_effect=["", "  ", "SRE", "Globex", "On call"]
    ):
        code = await _run_command(args, settings, console)

    assert code == 0
    api.create_interview.assert_awaited_once_with("SRE", "Globex", "On call")
    assert "Job title is required" in console.export_text()


@pytest.mark.asyncio
async def test_settings_command_updates_and_resets(tmp_path):
    settings = MagicMock(voice_settings_path=tmp_path / "voice.json")
    console = _console()

    code = await _run_command(
        argparse.Namespace(command="settings", assignments=["tts.batch_words=12"], reset=False),
        settings,
        console,
    )
    assert code == 0
    assert json.loads((tmp_path / "voice.json").read_text())["tts"]["batch_words"] == 12
    assert "tts.batch_words" in console.export_text()

    code = await _run_command(
        argparse.Namespace(command="settings", assignments=[], reset=True), settings, console
    )
    assert code == 0
    assert json.loads((tmp_path / "voice.json").read_text())["tts"]["batch_words"] == 20


@pytest.mark.asyncio
async def test_settings_command_rejects_unknown_field(tmp_path):
    settings = MagicMock(voice_settings_path=tmp_path / "voice.json")
    console = _console()

    code = await _run_command(
        argparse.Namespace(command="settings", assignments=["stt.volume=3"], reset=False),
        settings,
        console,
    )

    assert code == 2
    assert "Unknown voice setting: stt.volume" in console.export_text()
    assert not (tmp_path / "voice.json").exists()
