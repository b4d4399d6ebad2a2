"""Session registry: the live recording, its history, and startup recovery."""

import logging
import threading
import time
from typing import Dict, List, Optional, Tuple, Union

from ..exceptions import RecordingInProgressError
from ..models.session import LogEntry, RecordingStatus
from ..storage.file_manager import FileManager
from ..storage.ids import timestamp_from_id
from ..transcription.base import AbstractTranscriptionBackend
from .publisher import publish_registry_change
from .recording import CaptureFactory, DEFAULT_BITRATE_KBPS, Recording

logger = logging.getLogger(__name__)

MAX_RECOVERY_AGE_HOURS = 24
MAX_RECOVERED_RECORDINGS = 10


def effective_timestamp(entry: LogEntry) -> Optional[int]:
    """When a log entry's recording was created, in ms.

    Falls back to the timestamp embedded in the recording id for entries
    written before `createdAt` was logged. None if neither is usable.
    """
    if entry.created_at is not None:
        return entry.created_at
    try:
        return timestamp_from_id(entry.recording_id)
    except ValueError:
        return None


def select_recent_entries(entries: List[LogEntry],
                          now_ms: int,
                          max_age_hours: float = MAX_RECOVERY_AGE_HOURS,
                          limit: int = MAX_RECOVERED_RECORDINGS) -> List[Tuple[int, LogEntry]]:
    """Pick the newest log entries inside the recovery window.

    A recording transcribed more than once has one line per success; the last
    line in the log wins. Result is newest first, at most `limit` long.
    """
    latest: Dict[str, LogEntry] = {}
    for entry in entries:
        latest[entry.recording_id] = entry

    cutoff = now_ms - int(max_age_hours * 3600 * 1000)
    dated = []
    for entry in latest.values():
        timestamp = effective_timestamp(entry)
        if timestamp is None:
            logger.warning(f"Skipping log entry with unusable id {entry.recording_id!r}")
            continue
        if timestamp < cutoff:
            continue
        dated.append((timestamp, entry))

    dated.sort(key=lambda item: item[0], reverse=True)
    return dated[:limit]


class SessionRegistry:
    """Owns at most one live recording plus the history of stopped ones."""

    def __init__(self,
                 file_manager: FileManager,
                 backend: AbstractTranscriptionBackend,
                 capture_factory: Optional[CaptureFactory] = None,
                 bitrate_kbps: int = DEFAULT_BITRATE_KBPS,
                 max_age_hours: float = MAX_RECOVERY_AGE_HOURS,
                 max_recovered: int = MAX_RECOVERED_RECORDINGS):
        """Initialize session registry.

        Args:
            file_manager: Storage for audio, transcripts and the log
            backend: Transcription backend handed to every recording
            capture_factory: Builds the AudioCapture for new recordings
            bitrate_kbps: Capture bitrate
            max_age_hours: Recovery window
            max_recovered: Maximum number of recordings recovered at startup
        """
        self.file_manager = file_manager
        self.backend = backend
        self.capture_factory = capture_factory
        self.bitrate_kbps = bitrate_kbps
        self.max_age_hours = max_age_hours
        self.max_recovered = max_recovered

        self.latest_recording_id: Optional[str] = None
        self._current: Optional[Recording] = None
        self._stopped: Tuple[Recording, ...] = ()
        self._lock = threading.RLock()

    @property
    def current_recording(self) -> Optional[Recording]:
        return self._current

    @property
    def stopped_recordings(self) -> Tuple[Recording, ...]:
        """History, newest first. A tuple snapshot; never mutated in place."""
        return self._stopped

    @property
    def is_recording(self) -> bool:
        return self._current is not None

    def start_recording(self) -> Recording:
        """Start a new recording and make it current.

        Raises:
            RecordingInProgressError: If the current recording is still capturing.
            CaptureSpawnError: If the capture process cannot be started.
        """
        with self._lock:
            current = self._current
            if current is not None and current.status is not RecordingStatus.STOPPED:
                raise RecordingInProgressError(f"Recording {current.id} is still {current.status.value}")

            # Held across construction so an instantly-exiting capture cannot
            # report stopped before it is current.
            recording = Recording(
                self.file_manager,
                self.backend,
                on_stopped=self._on_recording_stopped,
                capture_factory=self.capture_factory,
                bitrate_kbps=self.bitrate_kbps,
            )
            self._current = recording
            self._notify()

        logger.info(f"Recording started: {recording.id}")
        return recording

    def stop_recording(self) -> bool:
        """Stop the current recording, if there is one."""
        current = self._current
        if current is None:
            return False
        return current.stop()

    def _on_recording_stopped(self, recording: Recording) -> None:
        with self._lock:
            if self._current is not recording:
                return
            self.latest_recording_id = recording.id
            self._current = None
            self._stopped = (recording,) + self._stopped
            self._notify()
        logger.info(f"Recording {recording.id} moved to history")

    def find_recording(self, recording_id: str) -> Optional[Recording]:
        current = self._current
        if current is not None and current.id == recording_id:
            return current
        for recording in self._stopped:
            if recording.id == recording_id:
                return recording
        return None

    def delete_recording(self, recording: Union[Recording, str]) -> bool:
        """Remove a recording from history. Files on disk are left alone.

        Returns:
            True if something was removed.
        """
        recording_id = recording if isinstance(recording, str) else recording.id
        with self._lock:
            remaining = tuple(r for r in self._stopped if r.id != recording_id)
            if len(remaining) == len(self._stopped):
                return False
            self._stopped = remaining
            if self.latest_recording_id == recording_id:
                self.latest_recording_id = None
            self._notify()

        logger.info(f"Recording {recording_id} deleted from history")
        return True

    def load_past_recordings(self, now_ms: Optional[int] = None) -> List[Recording]:
        """Recover recent recordings from the log.

        Entries older than the recovery window are ignored, the newest ones
        are kept, and entries whose transcript or audio file is gone are
        skipped. Recovered recordings are placed before any existing history.

        Returns:
            The recovered recordings, newest first.
        """
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        entries = list(self.file_manager.read_log_entries())
        selected = select_recent_entries(entries, now_ms, self.max_age_hours, self.max_recovered)

        with self._lock:
            known = {r.id for r in self._stopped}
            if self._current is not None:
                known.add(self._current.id)

        recovered: List[Recording] = []
        for _, entry in selected:
            if entry.recording_id in known:
                continue
            transcript = self.file_manager.load_transcript(entry.recording_id)
            if transcript is None or not self.file_manager.audio_exists(entry.recording_id):
                logger.debug(f"Files missing for {entry.recording_id}, not recovering it")
                continue
            recovered.append(Recording.from_log_entry(
                entry, transcript, self.file_manager, self.backend, self.bitrate_kbps))

        if recovered:
            with self._lock:
                self._stopped = tuple(recovered) + self._stopped
                self._notify()

        logger.info(f"Recovered {len(recovered)} of {len(entries)} logged recordings")
        return recovered

    def _notify(self) -> None:
        publish_registry_change(self._current, self._stopped)
