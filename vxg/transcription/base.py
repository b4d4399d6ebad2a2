"""Abstract base classes for transcription backends."""

from abc import ABC, abstractmethod
from typing import Dict, Any, Iterator
import logging

from ..models.transcription import TranscriptionChunk

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for streaming transcription backends."""

    service_name = "unknown"

    @abstractmethod
    def transcribe_stream(self, audio_data: bytes) -> Iterator[TranscriptionChunk]:
        """Submit a complete recording and stream back incremental results.

        The returned iterator is lazy, single-consumer and finite. It raises
        `TranscriptionError` from the point where the provider fails.

        Args:
            audio_data: Encoded audio (MP3) bytes

        Returns:
            Iterator of TranscriptionChunk deltas
        """
        pass

    @abstractmethod
    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration.

        Returns:
            True if initialization successful, False otherwise
        """
        pass

    def cleanup(self) -> None:
        """Clean up backend resources."""
        pass

    def get_stats(self) -> Dict[str, Any]:
        """Get backend statistics."""
        return {"service": self.service_name}
