"""Exceptions raised across the recording and transcription lifecycle."""


class VxgError(RuntimeError):
    """Base class for all vxg errors."""


class CaptureSpawnError(VxgError):
    """Raised when the audio capture subprocess cannot be started."""


class TranscriptionError(VxgError):
    """Raised when the streaming transcription call fails."""


class RecoveryParseError(VxgError):
    """Raised when a transcription log line cannot be parsed."""


class PersistenceError(VxgError):
    """Raised when audio, transcript or log files cannot be written."""


class RecordingInProgressError(VxgError):
    """Raised when a recording is started while another one is still capturing."""
