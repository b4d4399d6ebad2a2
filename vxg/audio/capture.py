"""Audio capture through an external recorder process (sox by default)."""

import codecs
import logging
import re
import signal
import subprocess
import threading
from typing import Callable, List, Optional, Sequence

from ..exceptions import CaptureSpawnError
from ..models.audio import CaptureTelemetry


logger = logging.getLogger(__name__)

# Mono MP3 at a constant 128 kbit/s, small buffer so stop is responsive.
DEFAULT_COMMAND = [
    "sox", "-S", "-c", "1", "-d",
    "-t", "mp3", "-C", "128", "--buffer", "256", "-",
]

LEVEL_PATTERN = re.compile(r"\[[-= |]+\]")
DURATION_PATTERN = re.compile(r"\d\d:\d\d:\d\d\.\d\d")
LINE_BREAK = re.compile(r"[\r\n]")

READ_SIZE = 4096


def parse_progress_line(line: str, telemetry: CaptureTelemetry) -> CaptureTelemetry:
    """Return telemetry updated from one progress line.

    The level meter and the duration are matched independently; a line that
    matches neither leaves the telemetry as it was.
    """
    levels = telemetry.levels
    duration = telemetry.duration

    level_match = LEVEL_PATTERN.search(line)
    if level_match:
        levels = level_match.group(0)

    duration_match = DURATION_PATTERN.search(line)
    if duration_match:
        duration = duration_match.group(0)

    if levels == telemetry.levels and duration == telemetry.duration:
        return telemetry
    return CaptureTelemetry(levels=levels, duration=duration)


class AudioCapture:
    """Owns one capture subprocess and everything it produces.

    Encoded audio arrives on the process's stdout and is buffered in memory.
    Human readable progress arrives on stderr and is parsed into
    `CaptureTelemetry`. When the process exits, for whatever reason, the
    capture is finished: `wait()` returns and done callbacks run once.
    """

    def __init__(
        self,
        session_id: str,
        command: Optional[Sequence[str]] = None,
        abort_timeout: float = 5.0,
        on_telemetry: Optional[Callable[[CaptureTelemetry], None]] = None,
    ):
        """Initialize audio capture.

        Args:
            session_id: Recording this capture belongs to (used in logs)
            command: Recorder command line; must write audio to stdout and
                     progress to stderr and exit on SIGINT
            abort_timeout: Seconds to wait after SIGINT before terminating,
                           and again before killing
            on_telemetry: Called with each new telemetry snapshot
        """
        self.session_id = session_id
        self.command: List[str] = list(command or DEFAULT_COMMAND)
        self.abort_timeout = abort_timeout
        self.on_telemetry = on_telemetry

        self.returncode: Optional[int] = None

        self._process: Optional[subprocess.Popen] = None
        self._chunks: List[bytes] = []
        self._buffer_lock = threading.Lock()
        self._telemetry = CaptureTelemetry()

        self._finished = threading.Event()
        self._callbacks: List[Callable[["AudioCapture"], None]] = []
        self._callbacks_lock = threading.Lock()
        self._abort_requested = False
        self._readers: List[threading.Thread] = []

    def start(self) -> "AudioCapture":
        """Spawn the recorder process and its reader threads.

        Raises:
            CaptureSpawnError: If the process cannot be started.
        """
        if self._process is not None:
            raise RuntimeError("AudioCapture already started")

        logger.info(f"Starting capture for {self.session_id}: {' '.join(self.command)}")
        try:
            self._process = subprocess.Popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            logger.error(f"Could not start capture process for {self.session_id}: {e}")
            raise CaptureSpawnError(f"Failed to start '{self.command[0]}': {e}") from e

        self._readers = [
            threading.Thread(target=self._read_audio, name=f"CaptureAudio-{self.session_id}", daemon=True),
            threading.Thread(target=self._read_progress, name=f"CaptureProgress-{self.session_id}", daemon=True),
        ]
        for reader in self._readers:
            reader.start()

        waiter = threading.Thread(target=self._wait_for_exit, name=f"CaptureWait-{self.session_id}", daemon=True)
        waiter.start()
        return self

    @property
    def telemetry(self) -> CaptureTelemetry:
        return self._telemetry

    @property
    def levels(self) -> str:
        return self._telemetry.levels

    @property
    def duration(self) -> str:
        return self._telemetry.duration

    @property
    def is_finished(self) -> bool:
        return self._finished.is_set()

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    def get_buffer(self) -> bytes:
        """All audio bytes received so far, in arrival order."""
        with self._buffer_lock:
            return b"".join(self._chunks)

    def get_buffer_size(self) -> int:
        with self._buffer_lock:
            return sum(len(chunk) for chunk in self._chunks)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the process has exited and output is drained."""
        return self._finished.wait(timeout)

    def add_done_callback(self, callback: Callable[["AudioCapture"], None]) -> None:
        """Run `callback(capture)` once capture finishes (immediately if it already has)."""
        with self._callbacks_lock:
            if not self._finished.is_set():
                self._callbacks.append(callback)
                return
        callback(self)

    def abort(self) -> bool:
        """Ask the recorder to stop by sending SIGINT.

        Returns:
            True if a signal was sent, False if capture was not running or an
            abort was already requested.
        """
        if self._process is None or self._finished.is_set() or self._abort_requested:
            return False
        self._abort_requested = True

        logger.info(f"Interrupting capture for {self.session_id}")
        try:
            self._process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            logger.debug(f"Capture process for {self.session_id} already exited")
            return False

        escalation = threading.Thread(target=self._escalate, name=f"CaptureAbort-{self.session_id}", daemon=True)
        escalation.start()
        return True

    def _escalate(self) -> None:
        """Terminate, then kill, a recorder that ignores SIGINT."""
        if self._finished.wait(self.abort_timeout):
            return
        logger.warning(f"Capture for {self.session_id} ignored SIGINT for {self.abort_timeout}s, terminating")
        try:
            self._process.terminate()
        except ProcessLookupError:
            return

        if self._finished.wait(self.abort_timeout):
            return
        logger.warning(f"Capture for {self.session_id} still running, killing")
        try:
            self._process.kill()
        except ProcessLookupError:
            pass

    def _read_audio(self) -> None:
        stream = self._process.stdout
        try:
            while True:
                chunk = stream.read1(READ_SIZE)
                if not chunk:
                    break
                with self._buffer_lock:
                    self._chunks.append(chunk)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading audio from capture {self.session_id}: {e}")
        finally:
            stream.close()

    def _read_progress(self) -> None:
        # sox redraws its progress line with carriage returns, so split on both.
        stream = self._process.stderr
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        try:
            while True:
                data = stream.read1(READ_SIZE)
                if not data:
                    break
                pending += decoder.decode(data)
                *lines, pending = LINE_BREAK.split(pending)
                for line in lines:
                    self._handle_progress_line(line)
            pending += decoder.decode(b"", final=True)
            if pending:
                self._handle_progress_line(pending)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading progress from capture {self.session_id}: {e}")
        finally:
            stream.close()

    def _handle_progress_line(self, line: str) -> None:
        if not line:
            return
        updated = parse_progress_line(line, self._telemetry)
        if updated is self._telemetry:
            return
        self._telemetry = updated
        if self.on_telemetry:
            # stderr must keep draining or the recorder blocks on a full pipe
            try:
                self.on_telemetry(updated)
            except Exception:
                logger.exception(f"Telemetry handler failed for {self.session_id}")

    def _wait_for_exit(self) -> None:
        self.returncode = self._process.wait()
        for reader in self._readers:
            reader.join()

        logger.info(f"Capture for {self.session_id} exited with code {self.returncode} "
                    f"({self.get_buffer_size()} bytes)")

        with self._callbacks_lock:
            self._finished.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception(f"Capture completion handler failed for {self.session_id}")
