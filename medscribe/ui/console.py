"""Rich terminal view of a live consultation."""

import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from pubsub.core import Publisher
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.markdown import Markdown

from ..models.events import SessionEvent, SESSION_STARTED, SESSION_STOPPED, SESSION_FAILED
from ..models.transcription import Segment
from ..transcription.publisher import LIFECYCLE_TOPIC

logger = logging.getLogger(__name__)

SPEAKER_STYLES = {
    "Doctor": "bold cyan",
    "Patient": "bold green",
}


@dataclass
class ConsoleStatus:
    """What the live view currently shows."""
    state: str = "idle"
    session_id: Optional[str] = None
    transcript: str = ""
    interim_tail: str = ""
    segments: List[Segment] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class TranscriptConsole:
    """Renders controller callbacks and lifecycle events with rich."""

    def __init__(self, publisher: Publisher, console: Optional[Console] = None):
        """Initialize console view.

        Args:
            publisher: Application Publisher carrying lifecycle events
            console: Rich console to draw on
        """
        self.console = console or Console()
        self.status = ConsoleStatus()
        self.live: Optional[Live] = None

        # pypubsub keeps only a weak reference to this listener
        publisher.subscribe(self._on_lifecycle, LIFECYCLE_TOPIC)

    def attach(self, controller) -> None:
        controller.on_transcript_update(self.on_transcript_update)
        controller.on_segment_complete(self.on_segment_complete)
        controller.on_error(self.on_error)

    def start_live(self) -> None:
        self.live = Live(self.render(), console=self.console, refresh_per_second=4)
        self.live.start()

    def stop_live(self) -> None:
        if self.live is not None:
            self.live.update(self.render())
            self.live.stop()
            self.live = None

    def _refresh(self) -> None:
        if self.live is not None:
            self.live.update(self.render())

    # -- callbacks -------------------------------------------------------

    def on_transcript_update(self, text: str, is_interim: bool) -> None:
        if is_interim:
            committed = self.status.transcript
            self.status.interim_tail = text[len(committed):] if text.startswith(committed) else text
        else:
            self.status.transcript = text
            self.status.interim_tail = ""
        self._refresh()

    def on_segment_complete(self, segment: Segment) -> None:
        self.status.segments.append(segment)
        self._refresh()

    def on_error(self, message: str) -> None:
        self.status.errors.append(message)
        if self.live is None:
            self.console.print(f"[bold red]❌ {message}[/bold red]")
        self._refresh()

    def _on_lifecycle(self, event: SessionEvent) -> None:
        if event.event_type == SESSION_STARTED:
            self.status = ConsoleStatus(state="recording", session_id=event.session_id)
        elif event.event_type == SESSION_STOPPED:
            self.status.state = "stopped"
        elif event.event_type == SESSION_FAILED:
            self.status.state = "failed"
        logger.debug(f"Console saw {event.event_type} for {event.session_id}")
        self._refresh()

    # -- rendering -------------------------------------------------------

    def render(self) -> Panel:
        header = Text.assemble(
            ("🎙️  MedScribe", "bold blue"), "  |  ",
            self._state_text(), "  |  ",
            f"Session: {self.status.session_id or 'None'}",
        )

        body = Text()
        for segment in self.status.segments[-12:]:
            body.append(f"{segment.speaker}: ", style=SPEAKER_STYLES.get(segment.speaker, "bold white"))
            body.append(segment.text + "\n")
        if self.status.interim_tail:
            body.append(self.status.interim_tail, style="dim italic")
        if not body.plain:
            body.append("Listening...", style="dim white italic")

        parts = [header, Text(""), body]
        for message in self.status.errors[-3:]:
            parts.append(Text(f"❌ {message}", style="bold red"))
        return Panel(Group(*parts), title="Live transcript", border_style="bright_blue")

    def _state_text(self) -> Text:
        if self.status.state == "recording":
            return Text("🔴 RECORDING", style="bold red")
        if self.status.state == "failed":
            return Text("⚠️  FAILED", style="bold yellow")
        return Text("⏹️  STOPPED", style="bold yellow")

    def show_result(self, result: Dict[str, Any]) -> None:
        self.console.print(Panel(result.get("transcript") or "(no speech transcribed)",
                                 title="Transcript", border_style="green"))
        medical = result.get("medical_info", {})
        if any(medical.values()):
            table = Table(title="Medical information", header_style="bold magenta")
            table.add_column("Category", style="cyan")
            table.add_column("Entities", style="white")
            for category, entities in medical.items():
                if entities:
                    table.add_row(category, ", ".join(e["text"] for e in entities))
            self.console.print(table)

    def show_note(self, note: Dict[str, Any]) -> None:
        self.console.print(Panel(Markdown(note["content"]), title=f"{note['template'].upper()} note",
                                 border_style="cyan"))
        if note.get("billing"):
            table = Table(title="MBS billing suggestions", header_style="bold magenta")
            table.add_column("Item", style="cyan")
            table.add_column("Description", style="white")
            for item in note["billing"]:
                table.add_row(item["code"], item["description"])
            self.console.print(table)
        for message in note.get("errors", []):
            self.console.print(f"[yellow]⚠️  {message}[/yellow]")

    def show_specialties(self, specialties: List[Dict[str, str]]) -> None:
        table = Table(title="Specialties", header_style="bold magenta")
        table.add_column("Value", style="cyan")
        table.add_column("Label", style="white")
        for specialty in specialties:
            table.add_row(specialty["value"], specialty["label"])
        self.console.print(table)

    def show_history(self, consultations: List[Dict[str, Any]]) -> None:
        if not consultations:
            self.console.print("[dim]No saved consultations[/dim]")
            return
        table = Table(title="Consultation history", header_style="bold magenta")
        table.add_column("ID", style="cyan")
        table.add_column("Saved", style="white")
        table.add_column("Specialty", style="white")
        table.add_column("Note", style="white")
        table.add_column("Preview", style="dim")
        for item in consultations:
            table.add_row(item["consultation_id"], item.get("saved_at") or "", item.get("specialty") or "",
                          "yes" if item.get("has_note") else "no", item.get("preview") or "")
        self.console.print(table)
