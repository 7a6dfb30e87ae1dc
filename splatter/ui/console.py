"""Terminal front end: rich display of companion state plus line-based commands."""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from pubsub import pub
from rich.console import Console
from rich.table import Table

from ..errors import ErrorKind
from ..models.events import CaptionEvent, LevelReading
from ..models.session import AppPhase, ConversationSession
from ..services.caption_service import CAPTION_TOPIC
from ..services.orchestrator import (
    ERROR_TOPIC,
    LEVEL_TOPIC,
    PHASE_TOPIC,
    REPLY_TOPIC,
    TRANSCRIPT_TOPIC,
)

logger = logging.getLogger(__name__)

PHASE_LABELS = {
    AppPhase.IDLE: ("⏹️  Ready", "bold yellow"),
    AppPhase.LISTENING: ("🔴 Listening...", "bold red"),
    AppPhase.PROCESSING: ("⏳ Thinking...", "bold blue"),
    AppPhase.TEXT_FALLBACK: ("⌨️  Type your answer", "bold magenta"),
}

HELP_TEXT = ("Commands: [bold green]Enter[/bold green]=tap to talk, "
             "[bold blue]t <text>[/bold blue]=type, [bold]v[/bold]=toggle voice detection, "
             "[bold]k[/bold]=type instead, [bold]m[/bold]=use voice, [bold red]q[/bold red]=quit")


@dataclass
class Command:
    """One parsed line of terminal input."""
    name: str
    text: str = ""


def parse_command(line: str) -> Command:
    """Map a raw input line to a command.

    An empty line is a tap. ``t <text>`` submits text. Anything else that is
    not a known single-letter command is treated as typed text too.
    """
    stripped = line.strip()
    if not stripped:
        return Command("tap")

    lowered = stripped.lower()
    if lowered in ("q", "quit", "exit"):
        return Command("quit")
    if lowered == "v":
        return Command("toggle_vad")
    if lowered == "k":
        return Command("type_instead")
    if lowered == "m":
        return Command("use_voice")
    if lowered.startswith("t "):
        return Command("text", stripped[2:].strip())
    return Command("text", stripped)


class ConsoleDisplay:
    """Renders companion topics to the terminal."""

    def __init__(self, console: Optional[Console] = None, show_levels: bool = False):
        self.console = console or Console()
        self.show_levels = show_levels
        self._last_caption = ""
        self._subscribed = False

    def subscribe(self) -> None:
        if self._subscribed:
            return
        pub.subscribe(self.on_phase, PHASE_TOPIC)
        pub.subscribe(self.on_transcript, TRANSCRIPT_TOPIC)
        pub.subscribe(self.on_reply, REPLY_TOPIC)
        pub.subscribe(self.on_error, ERROR_TOPIC)
        pub.subscribe(self.on_caption, CAPTION_TOPIC)
        pub.subscribe(self.on_level, LEVEL_TOPIC)
        self._subscribed = True

    def unsubscribe(self) -> None:
        if not self._subscribed:
            return
        pub.unsubscribe(self.on_phase, PHASE_TOPIC)
        pub.unsubscribe(self.on_transcript, TRANSCRIPT_TOPIC)
        pub.unsubscribe(self.on_reply, REPLY_TOPIC)
        pub.unsubscribe(self.on_error, ERROR_TOPIC)
        pub.unsubscribe(self.on_caption, CAPTION_TOPIC)
        pub.unsubscribe(self.on_level, LEVEL_TOPIC)
        self._subscribed = False

    def show_banner(self, greeting: str, vad_enabled: bool) -> None:
        self.console.print("🎙️  Splatter - Daily Reflection", style="bold blue")
        self.console.print("=" * 50)
        mode = "voice detection" if vad_enabled else "tap to talk"
        self.console.print(f"Mode: {mode}")
        self.console.print(HELP_TEXT)
        self.console.print("=" * 50)
        self.console.print(f"\n[bold cyan]Splatter:[/bold cyan] {greeting}\n")

    def on_phase(self, phase: AppPhase, previous: AppPhase) -> None:
        label, style = PHASE_LABELS[phase]
        self._last_caption = ""
        self.console.print(label, style=style)

    def on_transcript(self, text: str) -> None:
        self.console.print(f"[bold green]You:[/bold green] {text}")

    def on_reply(self, text: str) -> None:
        self.console.print(f"[bold cyan]Splatter:[/bold cyan] {text}\n")

    def on_error(self, kind: ErrorKind, message: str) -> None:
        self.console.print(f"❌ {message}", style="red")

    def on_caption(self, event: CaptionEvent) -> None:
        if event.display_text and event.display_text != self._last_caption:
            self._last_caption = event.display_text
            self.console.print(f"   {event.display_text}", style="dim")

    def on_level(self, reading: LevelReading) -> None:
        if not self.show_levels:
            return
        level = max(reading.level_db, -100.0)
        bar = "█" * int((level + 100.0) / 5)
        marker = "*" if reading.is_active else " "
        self.console.print(f"{marker} [{bar:<20}] {reading.level_db:6.1f} dB", style="dim")

    def show_history(self, sessions: List[ConversationSession]) -> None:
        if not sessions:
            self.console.print("No past conversations found.", style="yellow")
            return

        table = Table(title="Past conversations")
        table.add_column("Started")
        table.add_column("Exchanges", justify="right")
        table.add_column("First answer")
        for session in sessions:
            first = session.conversation[0].user_message if session.conversation else ""
            if len(first) > 60:
                first = first[:57] + "..."
            started = (session.started_at or "")[:16].replace("T", " ")
            table.add_row(started,
                          str(len(session.conversation)), first)
        self.console.print(table)


class LineInputHandler:
    """Reads terminal lines on a background thread and hands commands to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, callback: Callable[[Command], None],
                 prompt: str = "> "):
        """Initialize the handler.

        Args:
            loop: Loop the callback runs on
            callback: Receives each parsed command on the loop thread
            prompt: Input prompt
        """
        self.loop = loop
        self.callback = callback
        self.prompt = prompt
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, daemon=True)
        self.thread.name = "TerminalInputThread"
        self.thread.start()
        logger.info("Line input handler started")

    def stop(self) -> None:
        # input() cannot be interrupted; the daemon thread ends with the process
        self.running = False
        logger.info("Line input handler stopped")

    def _input_loop(self) -> None:
        while self.running:
            try:
                line = input(self.prompt)
            except (EOFError, KeyboardInterrupt):
                line = "q"

            command = parse_command(line)
            try:
                self.loop.call_soon_threadsafe(self.callback, command)
            except RuntimeError:
                # Event loop already closed
                break
            if command.name == "quit":
                break
        self.running = False
