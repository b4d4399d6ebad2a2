"""File management for recorded audio, transcripts and the transcription log."""

import json
import logging
import threading
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError

from ..exceptions import PersistenceError, RecoveryParseError
from ..models.session import LogEntry


logger = logging.getLogger(__name__)

LOG_FILENAME = "transcription-log.ndjson"

# Appends from every FileManager in the process go through one lock so that
# recordings finishing together never interleave partial lines.
_log_lock = threading.Lock()


def parse_log_line(line: str) -> LogEntry:
    """Parse one NDJSON line of the transcription log.

    Raises:
        RecoveryParseError: If the line is not valid JSON or not a log entry.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise RecoveryParseError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise RecoveryParseError(f"Expected an object, got {type(data).__name__}")

    try:
        return LogEntry.model_validate(data)
    except ValidationError as e:
        raise RecoveryParseError(f"Invalid log entry: {e}") from e


class FileManager:
    """Manages the base directory holding `<id>.mp3`, `<id>.txt` and the log."""

    def __init__(self, data_dir: str):
        """Initialize file manager with data directory.

        Args:
            data_dir: Base directory for storing all data. Created lazily on
                      first write.
        """
        self.data_dir = Path(data_dir)
        self.log_path = self.data_dir / LOG_FILENAME

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def audio_path(self, recording_id: str) -> Path:
        return self.data_dir / f"{recording_id}.mp3"

    def transcript_path(self, recording_id: str) -> Path:
        return self.data_dir / f"{recording_id}.txt"

    def save_audio_file(self, recording_id: str, audio_data: bytes) -> Path:
        """Write captured audio, creating the base directory if needed.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        path = self.audio_path(recording_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'wb') as f:
                f.write(audio_data)
        except OSError as e:
            logger.error(f"Error saving audio file {path}: {e}")
            raise PersistenceError(f"Failed to save audio file {path}: {e}") from e

        logger.info(f"Audio file saved: {path} ({len(audio_data)} bytes)")
        return path

    def save_transcript(self, recording_id: str, text: str) -> Path:
        """Write the final transcript as UTF-8, replacing any earlier one.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        path = self.transcript_path(recording_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                f.write(text)
        except OSError as e:
            logger.error(f"Error saving transcript {path}: {e}")
            raise PersistenceError(f"Failed to save transcript {path}: {e}") from e

        logger.info(f"Transcript saved: {path} ({len(text)} chars)")
        return path

    def append_log_entry(self, entry: LogEntry) -> None:
        """Append one entry to the log as a single line write.

        Raises:
            PersistenceError: If the log cannot be appended to.
        """
        line = entry.to_json_line()
        with _log_lock:
            try:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_path, 'a', encoding='utf-8') as f:
                    f.write(line)
            except OSError as e:
                logger.error(f"Error appending to log {self.log_path}: {e}")
                raise PersistenceError(f"Failed to append to log {self.log_path}: {e}") from e

        logger.debug(f"Log entry appended for {entry.recording_id}")

    def read_log_entries(self) -> Iterator[LogEntry]:
        """Yield log entries in file order, skipping lines that do not parse."""
        if not self.log_path.exists():
            logger.debug(f"No transcription log at {self.log_path}")
            return

        with open(self.log_path, 'r', encoding='utf-8') as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    yield parse_log_line(line)
                except RecoveryParseError as e:
                    logger.warning(f"Skipping log line {line_number}: {e}")

    def load_transcript(self, recording_id: str) -> Optional[str]:
        """Read a transcript, or None when it is missing or unreadable."""
        path = self.transcript_path(recording_id)
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read transcript {path}: {e}")
            return None

    def load_audio(self, recording_id: str) -> Optional[bytes]:
        """Read saved audio, or None when it is missing or unreadable."""
        path = self.audio_path(recording_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read audio file {path}: {e}")
            return None

    def audio_exists(self, recording_id: str) -> bool:
        return self.audio_path(recording_id).is_file()
