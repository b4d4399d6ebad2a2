"""Services layer for vxg application logic."""

from .recording import Recording
from .session_registry import SessionRegistry
from .publisher import StatePublisher

__all__ = [
    "Recording",
    "SessionRegistry",
    "StatePublisher",
]
