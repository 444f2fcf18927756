#!/usr/bin/env python3
"""Interview Voice CLI - practice interviews by voice from the terminal.

Lists, creates and deletes interviews on the interview server, runs a live
voice call against one of them and shows the feedback afterwards.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.style import Style
from rich.table import Table
from rich.text import Text

from interview_voice.config import Settings, get_settings
from interview_voice.errors import (
    AcquisitionError,
    ConnectionSetupError,
    InterviewApiError,
    VoiceClientError,
)
from interview_voice.logging_handlers import SessionLogFileHandler, cleanup_old_logs
from interview_voice.logging_settings import parse_logging_settings
from interview_voice.schemas.interviews import FeedbackReport, Interview
from interview_voice.schemas.voice_settings import VoiceSettings
from interview_voice.services.interview_api import InterviewApiClient
from interview_voice.services.server_channel import ServerChannel
from interview_voice.services.session_orchestrator import SessionOrchestrator
from interview_voice.services.signals import SpeakingSignal, StatusBroadcaster
from interview_voice.services.stt_service import TranscriptionSession
from interview_voice.services.tts.audio_queue import AudioPlaybackQueue
from interview_voice.services.tts_service import SpeechSynthesizer
from interview_voice.services.voice_settings import (
    get_voice_settings_service,
    iter_fields,
    parse_assignments,
)

logger = logging.getLogger(__name__)

# Styles
USER_STYLE = Style(color="bright_blue", bold=True)
ASSISTANT_STYLE = Style(color="bright_green")
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _configure_logging(settings: Settings, prefix: str) -> Optional[Path]:
    """Set up terminal and per-run file logging; returns the log file path."""

    log_settings = parse_logging_settings(settings.logging_settings_path)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: list[logging.Handler] = []
    log_path: Optional[Path] = None

    if log_settings.terminal_level is not None:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_settings.terminal_level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if log_settings.session_file_level is not None:
        cleanup_old_logs(settings.log_dir, log_settings.retention_hours)
        file_handler = SessionLogFileHandler(settings.log_dir, prefix=prefix)
        file_handler.setLevel(log_settings.session_file_level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
        log_path = file_handler.log_path

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=log_settings.root_level, handlers=handlers, force=True)

    # Quiet down noisy third-party libraries
    if log_settings.root_level > logging.DEBUG:
        for name in ("httpx", "httpcore", "websockets"):
            logging.getLogger(name).setLevel(logging.WARNING)

    return log_path


class CallView:
    """Live terminal view of one call, fed by status broadcasts."""

    def __init__(self, title: str):
        self.title = title
        self.live: Optional[Live] = None
        self.status = "Connecting..."
        self.user_speaking = False
        self.interim = ""
        self.last_answer = ""
        self.assistant_text = ""
        self.queue_length = 0
        self.score: Optional[float] = None

    def on_speaking(self, speaking: bool) -> None:
        self.user_speaking = speaking
        self.refresh()

    def handle(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "session_started":
            self.status = "Listening"
        elif kind == "interim_transcript":
            self.interim = message.get("text", "")
        elif kind == "user_response":
            self.last_answer = message.get("text", "")
            self.interim = ""
            self.assistant_text = ""
            self.status = "Waiting for interviewer"
        elif kind == "assistant_responding":
            self.status = "Interviewer speaking"
        elif kind == "playback_started":
            self.assistant_text = message.get("text", "")
        elif kind == "playback_queue":
            self.queue_length = message.get("length", 0)
        elif kind in ("playback_finished", "playback_interrupted"):
            self.queue_length = message.get("remaining", self.queue_length)
            if kind == "playback_interrupted":
                self.status = "Listening"
        elif kind == "session_completed":
            self.score = message.get("score")
            self.status = message.get("message") or "Interview complete"
        elif kind == "server_error":
            self.status = f"Server error: {message.get('message')}"
        elif kind in ("transcription_closed", "channel_disconnected"):
            self.status = "Disconnected"
        else:
            return
        self.refresh()

    def refresh(self) -> None:
        if self.live is not None:
            self.live.update(self.render())

    def render(self) -> Panel:
        mic = Text("● speaking", style=USER_STYLE) if self.user_speaking else Text("○ silent", style="dim")
        header = Text.assemble(mic, "   ", (self.status, INFO_STYLE))
        if self.queue_length:
            header.append(f"   queued: {self.queue_length}", style="dim")

        body = [header, Text()]
        if self.assistant_text:
            body.append(Text.assemble(("Interviewer: ", "bold"), (self.assistant_text, ASSISTANT_STYLE)))
        if self.last_answer:
            body.append(Text.assemble(("You: ", "bold"), (self.last_answer, USER_STYLE)))
        if self.interim:
            body.append(Text(f"… {self.interim}", style="italic dim"))
        if self.score is not None:
            body.append(Text(f"Score: {self.score:g}", style="bold"))
        return Panel(Group(*body), title=self.title, border_style="blue")


def _render_interviews(console: Console, interviews: list[Interview]) -> None:
    if not interviews:
        console.print("[dim]No interviews yet. Create one with `interview-voice create`.[/dim]")
        return
    table = Table(title="Interviews")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Company")
    table.add_column("Status")
    table.add_column("Created")
    for interview in interviews:
        created = interview.created_at.strftime("%Y-%m-%d") if interview.created_at else ""
        table.add_row(interview.id, interview.title, interview.company, interview.status, created)
    console.print(table)


def _render_feedback(console: Console, report: FeedbackReport) -> None:
    feedback = report.feedback
    title = "Feedback"
    if report.interview_details:
        title = f"Feedback: {report.interview_details.title} at {report.interview_details.company}"

    lines = [Text(f"Overall score: {feedback.overall_score:g}/100", style="bold")]
    if feedback.confidence_assessment:
        lines.append(
            Text(
                f"Confidence: {feedback.confidence_assessment.score:g}"
                f" - {feedback.confidence_assessment.explanation}"
            )
        )
    for label, assessment in (
        ("Communication", feedback.communication_style),
        ("Approach", feedback.approach_analysis),
    ):
        if assessment:
            lines.append(Text(f"{label}: {assessment.type} - {assessment.explanation}"))

    for label, items, style in (
        ("Strengths", feedback.strengths, "green"),
        ("Weaknesses", feedback.weaknesses, "red"),
        ("Improvements", feedback.improvements, "yellow"),
    ):
        if items:
            lines.append(Text())
            lines.append(Text(label, style=f"bold {style}"))
            lines.extend(Text(f"  • {item}") for item in items)

    console.print(Panel(Group(*lines), title=title, border_style="green"))


def _render_voice_settings(console: Console, settings: VoiceSettings, path: Path) -> None:
    table = Table(title="Voice settings", caption=str(path), caption_style="dim")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for name, value in iter_fields(settings):
        table.add_row(name, str(value))
    console.print(table)


def _ask_required(console: Console, label: str) -> str:
    while True:
        answer = Prompt.ask(label, console=console).strip()
        if answer:
            return answer
        console.print(f"{label} is required", style=ERROR_STYLE)


def _run_settings(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    service = get_voice_settings_service(settings.voice_settings_path)
    if args.reset:
        voice = service.reset_to_defaults()
        console.print("Voice settings reset to defaults", style=INFO_STYLE)
    elif args.assignments:
        try:
            update = parse_assignments(args.assignments)
        except ValueError as e:
            console.print(f"Error: {e}", style=ERROR_STYLE)
            return 2
        voice = service.update_settings(update)
        console.print("Voice settings updated", style=INFO_STYLE)
    else:
        voice = service.get_settings()
    _render_voice_settings(console, voice, service.path)
    return 0


def _start_error_hint(error: VoiceClientError) -> str:
    if isinstance(error, AcquisitionError):
        return "Check that a microphone is connected and not in use by another application."
    if isinstance(error, ConnectionSetupError):
        return "Check your network connection, DEEPGRAM_API_KEY and INTERVIEW_CHANNEL_URL."
    return "Try starting the call again."


async def _run_call(settings: Settings, console: Console, interview_id: str) -> int:
    try:
        api_key = settings.require_deepgram_key()
    except ValueError as e:
        console.print(f"Error: {e}", style=ERROR_STYLE)
        return 2

    voice = get_voice_settings_service(settings.voice_settings_path).get_settings()
    token = settings.token_value()

    title = f"Interview {interview_id}"
    async with InterviewApiClient(
        str(settings.server_url), token, timeout=settings.request_timeout
    ) as api:
        try:
            interview = await api.get_interview(interview_id)
            title = f"{interview.title} at {interview.company}"
        except InterviewApiError as e:
            console.print(f"Could not load interview: {e.message}", style=ERROR_STYLE)
            return 1

        broadcaster = StatusBroadcaster()
        speaking = SpeakingSignal()
        transcription = TranscriptionSession(
            api_key, voice.stt, speaking=speaking, broadcaster=broadcaster
        )
        synthesizer = SpeechSynthesizer(api_key, voice.tts, timeout=settings.request_timeout)
        playback = AudioPlaybackQueue(speaking, broadcaster=broadcaster)
        channel = ServerChannel(settings.channel_url, token)
        orchestrator = SessionOrchestrator(
            interview_id,
            channel,
            transcription,
            synthesizer,
            playback,
            batch_words=voice.tts.batch_words,
            close_delay=settings.session_close_delay_seconds,
            broadcaster=broadcaster,
        )

        view = CallView(title)
        broadcaster.subscribe(view.handle)
        speaking.subscribe(view.on_speaking)

        try:
            try:
                await orchestrator.connect()
                await orchestrator.start_session()
            except VoiceClientError as e:
                logger.error(f"Failed to start call: {e}")
                console.print(f"Could not start the call: {e}", style=ERROR_STYLE)
                console.print(_start_error_hint(e), style=INFO_STYLE)
                return 1

            with Live(view.render(), console=console, refresh_per_second=8) as live:
                view.live = live
                await orchestrator.wait_closed()
        finally:
            view.live = None
            await orchestrator.aclose()

        if orchestrator.completed is None:
            console.print("[dim]Call ended before the interview finished.[/dim]")
            return 0

        try:
            _render_feedback(console, await api.get_feedback(interview_id))
        except InterviewApiError as e:
            console.print(f"[dim]Feedback not available yet: {e.message}[/dim]")
    return 0


async def _run_command(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    if args.command == "call":
        return await _run_call(settings, console, args.interview_id)
    if args.command == "settings":
        return _run_settings(args, settings, console)

    async with InterviewApiClient(
        str(settings.server_url), settings.token_value(), timeout=settings.request_timeout
    ) as api:
        try:
            if args.command == "list":
                _render_interviews(console, await api.list_interviews())

            elif args.command == "create":
                job_title = args.title or _ask_required(console, "Job title")
                company = args.company or _ask_required(console, "Company")
                description = args.description or _ask_required(console, "Job description")
                interview_id = await api.create_interview(job_title, company, description)
                console.print(f"Created interview [bold]{interview_id}[/bold]", style=INFO_STYLE)
                console.print(f"[dim]Start it with: interview-voice call {interview_id}[/dim]")

            elif args.command == "show":
                interview = await api.get_interview(args.interview_id)
                console.print(
                    Panel(
                        interview.description or "(no description)",
                        title=f"{interview.title} at {interview.company} [{interview.status}]",
                        border_style="blue",
                    )
                )

            elif args.command == "delete":
                if not args.yes and not Confirm.ask(f"Delete interview {args.interview_id}?"):
                    return 0
                await api.delete_interview(args.interview_id)
                console.print("Interview deleted", style=INFO_STYLE)

            elif args.command == "feedback":
                _render_feedback(console, await api.get_feedback(args.interview_id))

        except InterviewApiError as e:
            console.print(f"Error ({e.status_code}): {e.message}", style=ERROR_STYLE)
            return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="interview-voice",
        description="Interview Voice - practice job interviews by voice",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  interview-voice list                   Show your interviews
  interview-voice create --title "Backend Engineer" --company Acme
  interview-voice call <id>              Start a voice interview
  interview-voice feedback <id>          Show feedback after the call
  interview-voice settings tts.model=aura-orion-en

Environment Variables:
  INTERVIEW_SERVER_URL    Interview server URL
  INTERVIEW_CHANNEL_URL   Websocket URL used during calls
  INTERVIEW_API_TOKEN     Bearer token for the interview server
  DEEPGRAM_API_KEY        Deepgram key for transcription and speech
""",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List interviews")

    create = subparsers.add_parser("create", help="Create an interview")
    create.add_argument("--title", "-t", help="Job title")
    create.add_argument("--company", "-c", help="Company name")
    create.add_argument("--description", "-d", help="Job description")

    for name, help_text in (
        ("show", "Show an interview"),
        ("feedback", "Show feedback for a completed interview"),
        ("call", "Start a voice interview"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("interview_id", help="Interview ID")

    delete = subparsers.add_parser("delete", help="Delete an interview")
    delete.add_argument("interview_id", help="Interview ID")
    delete.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    voice = subparsers.add_parser("settings", help="Show or change voice tuning")
    voice.add_argument(
        "assignments",
        nargs="*",
        metavar="SECTION.FIELD=VALUE",
        help="Settings to change, e.g. stt.endpointing_ms=500",
    )
    voice.add_argument("--reset", action="store_true", help="Restore the default tuning")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    console = Console()

    log_path = _configure_logging(settings, prefix=args.command)
    if log_path is not None and args.command == "call":
        console.print(f"[dim]Logging to {log_path}[/dim]")

    try:
        return asyncio.run(_run_command(args, settings, console))
    except KeyboardInterrupt:
        console.print("\n[dim]Goodbye![/dim]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
