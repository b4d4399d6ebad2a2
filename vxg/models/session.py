"""Session-related data models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordingStatus(Enum):
    """Capture status of a recording. Only ever moves forward."""
    RECORDING = "recording"
    STOPPING = "stopping"
    STOPPED = "stopped"


class LogEntry(BaseModel):
    """One line of the transcription log, written after a successful transcription."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    recording_id: str = Field(alias="recordingId", min_length=1)
    created_at: Optional[int] = Field(default=None, alias="createdAt")
    audio_length_seconds: Optional[float] = Field(default=None, alias="audioLengthSeconds")
    input_tokens: Optional[int] = Field(default=None, alias="inputTokens")
    output_tokens: Optional[int] = Field(default=None, alias="outputTokens")
    thoughts_tokens: Optional[int] = Field(default=None, alias="thoughtsTokens")
    transcription_length: int = Field(alias="transcriptionLength", ge=0)

    def to_json_line(self) -> str:
        """Serialize to a single NDJSON line (trailing newline included)."""
        return self.model_dump_json(by_alias=True, exclude_none=True) + "\n"
