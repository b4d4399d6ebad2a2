"""Audio capture module."""

from .capture import AudioCapture, parse_progress_line

__all__ = [
    'AudioCapture',
    'parse_progress_line',
]
