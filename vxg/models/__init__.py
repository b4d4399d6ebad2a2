"""Data models for the vxg application."""

from .transcription import TranscriptionChunk, TranscriptionState
from .audio import CaptureTelemetry
from .session import LogEntry, RecordingStatus

__all__ = [
    "TranscriptionChunk",
    "TranscriptionState",
    "CaptureTelemetry",
    "LogEntry",
    "RecordingStatus",
]
