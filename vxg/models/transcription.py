"""Transcription-related data models."""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class TranscriptionChunk:
    """One element of a streaming transcription response.

    Every field is optional: a chunk may carry only text, only a reasoning
    snippet, only usage counters, or any mix of them.
    """
    text: Optional[str] = None
    thought: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    thoughts_tokens: Optional[int] = None


@dataclass(frozen=True)
class TranscriptionState:
    """Snapshot of one transcription attempt.

    Instances are never mutated; every update produces a new snapshot so
    observers can hold on to whatever they were handed.
    """
    finished: bool = False
    transcription: str = ""
    error: Optional[str] = None
    latest_thought: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    thoughts_tokens: Optional[int] = None
    audio_length_seconds: Optional[float] = None

    @classmethod
    def started(cls, audio_length_seconds: Optional[float]) -> "TranscriptionState":
        return cls(audio_length_seconds=audio_length_seconds)

    def merge(self, chunk: TranscriptionChunk) -> "TranscriptionState":
        """Fold a streamed chunk into a new snapshot.

        Text is appended. Counters keep their previous value when the chunk
        does not report one.
        """
        return replace(
            self,
            transcription=self.transcription + (chunk.text or ""),
            latest_thought=chunk.thought if chunk.thought else self.latest_thought,
            input_tokens=_sticky(chunk.input_tokens, self.input_tokens),
            output_tokens=_sticky(chunk.output_tokens, self.output_tokens),
            thoughts_tokens=_sticky(chunk.thoughts_tokens, self.thoughts_tokens),
        )

    def finish(self) -> "TranscriptionState":
        return replace(self, finished=True, latest_thought=None)

    def fail(self, error: str) -> "TranscriptionState":
        return replace(self, finished=True, latest_thought=None, error=error)

    @property
    def in_progress(self) -> bool:
        return not self.finished

    def display_text(self) -> str:
        """Render the state for a text view: partial text, '...' while running, error last."""
        text = self.transcription
        if not self.finished:
            text += "..."
        if self.error:
            text += f"\n\nError: {self.error}"
        return text


def _sticky(new: Optional[int], old: Optional[int]) -> Optional[int]:
    return new if new is not None else old
