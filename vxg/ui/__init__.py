"""Terminal user interface for vxg."""

from .recording_screen import RecordingScreen, render_history, render_recording

__all__ = [
    "RecordingScreen",
    "render_history",
    "render_recording",
]
