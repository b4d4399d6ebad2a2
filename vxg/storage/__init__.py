"""On-disk storage for recordings."""

from .file_manager import FileManager, parse_log_line
from .ids import generate_recording_id, timestamp_from_id

__all__ = [
    "FileManager",
    "parse_log_line",
    "generate_recording_id",
    "timestamp_from_id",
]
