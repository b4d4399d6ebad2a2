"""Terminal view of one recording: live capture meters, then the streamed transcript."""

import sys
import time
import threading
import logging
from datetime import datetime
from typing import Iterable, Optional

from pubsub import pub
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models.audio import CaptureTelemetry
from ..models.session import RecordingStatus
from ..models.transcription import TranscriptionState
from ..services.publisher import TOPIC_CAPTURE, TOPIC_STATUS, TOPIC_TRANSCRIPTION
from ..services.recording import Recording
from ..services.session_registry import SessionRegistry


logger = logging.getLogger(__name__)

STATUS_STYLES = {
    RecordingStatus.RECORDING: "bold red",
    RecordingStatus.STOPPING: "bold yellow",
    RecordingStatus.STOPPED: "bold green",
}


def format_time(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%H:%M:%S")


def render_recording(status: RecordingStatus,
                     telemetry: Optional[CaptureTelemetry],
                     transcription: Optional[TranscriptionState]) -> Panel:
    """Build the panel for a recording from its latest snapshots."""
    meters = Table.grid(padding=(0, 2))
    meters.add_column(style="cyan")
    meters.add_column()
    meters.add_row("Status", Text(status.value, style=STATUS_STYLES[status]))
    if telemetry is not None:
        meters.add_row("Duration", telemetry.duration)
        meters.add_row("Sound Level", telemetry.levels)

    parts = [meters]
    if transcription is not None:
        parts.append(Text(""))
        if transcription.latest_thought:
            parts.append(Text(transcription.latest_thought, style="dim italic"))
        body_style = "red" if transcription.error else "white"
        parts.append(Text(transcription.display_text(), style=body_style))
        if transcription.finished:
            parts.append(Text(_usage_line(transcription), style="dim"))

    return Panel(Group(*parts), title="vxg", border_style="blue")


def _usage_line(state: TranscriptionState) -> str:
    fields = []
    if state.audio_length_seconds is not None:
        fields.append(f"audio {state.audio_length_seconds:.1f}s")
    for label, value in (("in", state.input_tokens),
                         ("out", state.output_tokens),
                         ("thoughts", state.thoughts_tokens)):
        if value is not None:
            fields.append(f"{label} {value}")
    return "tokens: " + ", ".join(fields) if fields else ""


def render_history(recordings: Iterable[Recording]) -> Table:
    """Table of stopped recordings, newest first."""
    table = Table(title="Recordings", show_header=True, header_style="bold magenta")
    table.add_column("Time", style="cyan")
    table.add_column("Id", style="dim")
    table.add_column("Transcript")

    for recording in recordings:
        state = recording.transcription
        text = state.transcription.strip() if state else "No transcription"
        table.add_row(format_time(recording.created_at), recording.id, text)
    return table


class RecordingScreen:
    """Drives one recording from the terminal.

    Snapshots arrive over pub/sub and are only read by the render loop.
    """

    def __init__(self, registry: SessionRegistry, console: Optional[Console] = None):
        self.registry = registry
        self.console = console or Console()
        self.recording_id: Optional[str] = None

        self.status = RecordingStatus.RECORDING
        self.telemetry: Optional[CaptureTelemetry] = None
        self.transcription: Optional[TranscriptionState] = None

        self._stop_requested = threading.Event()

    def on_status(self, recording_id: str, snapshot: RecordingStatus) -> None:
        if recording_id == self.recording_id:
            self.status = snapshot

    def on_capture(self, recording_id: str, snapshot: CaptureTelemetry) -> None:
        if recording_id == self.recording_id:
            self.telemetry = snapshot

    def on_transcription(self, recording_id: str, snapshot: TranscriptionState) -> None:
        if recording_id == self.recording_id:
            self.transcription = snapshot

    def _subscribe(self) -> None:
        pub.subscribe(self.on_status, TOPIC_STATUS)
        pub.subscribe(self.on_capture, TOPIC_CAPTURE)
        pub.subscribe(self.on_transcription, TOPIC_TRANSCRIPTION)

    def _unsubscribe(self) -> None:
        for listener, topic in ((self.on_status, TOPIC_STATUS),
                                (self.on_capture, TOPIC_CAPTURE),
                                (self.on_transcription, TOPIC_TRANSCRIPTION)):
            try:
                pub.unsubscribe(listener, topic)
            except Exception as e:
                logger.warning(f"Error during unsubscribe from {topic}: {e}")

    def _wait_for_enter(self) -> None:
        sys.stdin.readline()
        self._stop_requested.set()

    def _follow(self, recording: Recording) -> None:
        """Seed from the recording's current snapshots; pub/sub keeps them fresh."""
        self.recording_id = recording.id
        self.status = recording.status
        self.telemetry = recording.telemetry
        self.transcription = recording.transcription

    def record(self, duration: Optional[float] = None) -> Recording:
        """Record until Enter (or `duration` seconds), then show the transcription."""
        self._subscribe()
        try:
            recording = self.registry.start_recording()
            self._follow(recording)
            if duration is None:
                threading.Thread(target=self._wait_for_enter, daemon=True).start()
                self.console.print("Recording... press Enter to stop", style="yellow")
            started = time.monotonic()

            with Live(self.render(), console=self.console, refresh_per_second=10) as live:
                while True:
                    if recording.status is RecordingStatus.RECORDING:
                        timed_out = duration is not None and time.monotonic() - started >= duration
                        if timed_out or self._stop_requested.is_set():
                            recording.stop()
                    elif recording.wait_until_transcribed(timeout=0):
                        self._follow(recording)
                        live.update(self.render())
                        break
                    live.update(self.render())
                    time.sleep(0.1)
            return recording
        finally:
            self._unsubscribe()

    def retry(self, recording: Recording) -> None:
        """Re-run transcription of a stopped recording and show it streaming."""
        self._subscribe()
        try:
            self._follow(recording)
            thread = recording.retry()
            with Live(self.render(), console=self.console, refresh_per_second=10) as live:
                while thread.is_alive():
                    live.update(self.render())
                    time.sleep(0.1)
                self._follow(recording)
                live.update(self.render())
        finally:
            self._unsubscribe()

    def render(self) -> Panel:
        return render_recording(self.status, self.telemetry, self.transcription)

    def print_history(self) -> None:
        recordings = self.registry.stopped_recordings
        if not recordings:
            self.console.print("No recordings in the last 24 hours", style="dim")
            return
        self.console.print(render_history(recordings))
