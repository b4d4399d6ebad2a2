"""Audio-related data models."""

from dataclasses import dataclass


INITIAL_LEVELS = "[      |      ]"
INITIAL_DURATION = "00:00:00.00"


@dataclass(frozen=True)
class CaptureTelemetry:
    """Latest level meter and elapsed time reported by the capture process."""
    levels: str = INITIAL_LEVELS
    duration: str = INITIAL_DURATION
