"""Transcription module for vxg."""

from .base import AbstractTranscriptionBackend
from ..models.transcription import TranscriptionChunk
from .gemini_backend import GeminiBackend, TRANSCRIPTION_PROMPT

__all__ = [
    "AbstractTranscriptionBackend",
    "TranscriptionChunk",
    "GeminiBackend",
    "TRANSCRIPTION_PROMPT",
]
