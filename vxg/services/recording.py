"""Recording session: capture, then transcribe, then persist."""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from ..audio.capture import AudioCapture
from ..exceptions import PersistenceError
from ..models.audio import CaptureTelemetry
from ..models.session import LogEntry, RecordingStatus
from ..models.transcription import TranscriptionState
from ..storage.file_manager import FileManager
from ..storage.ids import generate_recording_id, timestamp_from_id
from ..transcription.base import AbstractTranscriptionBackend
from .publisher import StatePublisher, TOPIC_CAPTURE, TOPIC_STATUS, TOPIC_TRANSCRIPTION

logger = logging.getLogger(__name__)

DEFAULT_BITRATE_KBPS = 128

CaptureFactory = Callable[[str, Callable[[CaptureTelemetry], None]], AudioCapture]


def default_capture_factory(session_id: str,
                            on_telemetry: Callable[[CaptureTelemetry], None]) -> AudioCapture:
    return AudioCapture(session_id, on_telemetry=on_telemetry)


def audio_length_seconds(byte_count: int, bitrate_kbps: int = DEFAULT_BITRATE_KBPS) -> float:
    """Duration of constant-bitrate audio from its size."""
    return byte_count / (bitrate_kbps * 1000 / 8)


class Recording:
    """One capture-then-transcribe session.

    Capture status only moves forward: recording -> stopping -> stopped. The
    transcription axis is separate and can be re-run once an attempt has
    finished. Both `status` and `transcription` are replaced wholesale on
    every change and announced on pub/sub.
    """

    def __init__(self,
                 file_manager: FileManager,
                 backend: AbstractTranscriptionBackend,
                 on_stopped: Optional[Callable[["Recording"], None]] = None,
                 capture_factory: Optional[CaptureFactory] = None,
                 bitrate_kbps: int = DEFAULT_BITRATE_KBPS,
                 log_entry: Optional[LogEntry] = None,
                 transcript: str = ""):
        """Create a recording.

        Without `log_entry` a new recording is made and capture starts
        immediately. With one, the finished recording it describes is
        rebuilt instead: no capture, and audio is read back from disk when
        it is transcribed again.

        Args:
            file_manager: Where audio, transcripts and the log live
            backend: Transcription backend used once capture stops
            on_stopped: Called once when capture has finished
            capture_factory: Builds the (unstarted) AudioCapture
            bitrate_kbps: Capture bitrate, used to compute audio length
            log_entry: Log line of an earlier recording to rebuild
            transcript: Transcript text of that earlier recording

        Raises:
            CaptureSpawnError: If the capture process cannot be started.
        """
        self.file_manager = file_manager
        self.backend = backend
        self.on_stopped = on_stopped
        self.bitrate_kbps = bitrate_kbps
        self.capture: Optional[AudioCapture] = None
        self._transcription: Optional[TranscriptionState] = None
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)

        if log_entry is not None:
            self.id = log_entry.recording_id
            self.created_at = log_entry.created_at
            if self.created_at is None:
                self.created_at = timestamp_from_id(self.id)
            self.recovered = True
            self._status = RecordingStatus.STOPPED
            self._transcription = TranscriptionState(
                finished=True,
                transcription=transcript,
                input_tokens=log_entry.input_tokens,
                output_tokens=log_entry.output_tokens,
                thoughts_tokens=log_entry.thoughts_tokens,
                audio_length_seconds=log_entry.audio_length_seconds,
            )
            self._publisher = StatePublisher(self.id)
            return

        self.id = generate_recording_id()
        self.created_at = timestamp_from_id(self.id)
        self.recovered = False
        self._status = RecordingStatus.RECORDING
        self._publisher = StatePublisher(self.id)

        factory = capture_factory or default_capture_factory
        self.capture = factory(self.id, self._on_telemetry)
        # registered before start so completion always runs on the capture's thread
        self.capture.add_done_callback(self._on_capture_finished)
        self.capture.start()
        logger.info(f"Recording {self.id} started")
        self._publisher.publish(TOPIC_STATUS, self._status)

    @classmethod
    def from_log_entry(cls,
                       entry: LogEntry,
                       transcript: str,
                       file_manager: FileManager,
                       backend: AbstractTranscriptionBackend,
                       bitrate_kbps: int = DEFAULT_BITRATE_KBPS) -> "Recording":
        """Rebuild a finished recording from its log entry and transcript text."""
        return cls(file_manager, backend, bitrate_kbps=bitrate_kbps, log_entry=entry, transcript=transcript)

    def __repr__(self) -> str:
        return f"Recording(id={self.id!r}, status={self._status.value!r})"

    @property
    def status(self) -> RecordingStatus:
        return self._status

    @property
    def transcription(self) -> Optional[TranscriptionState]:
        return self._transcription

    @property
    def telemetry(self) -> Optional[CaptureTelemetry]:
        return self.capture.telemetry if self.capture else None

    @property
    def audio_file_path(self) -> Path:
        return self.file_manager.audio_path(self.id)

    @property
    def transcript_file_path(self) -> Path:
        return self.file_manager.transcript_path(self.id)

    def stop(self) -> bool:
        """Stop capturing. Only acts while recording.

        Returns:
            True if the recording moved to stopping, False otherwise.
        """
        with self._lock:
            if self._status is not RecordingStatus.RECORDING:
                return False
            self._status = RecordingStatus.STOPPING
            self._changed.notify_all()

        logger.info(f"Stopping recording {self.id}")
        self._publisher.publish(TOPIC_STATUS, RecordingStatus.STOPPING)
        self.capture.abort()
        return True

    def _on_telemetry(self, telemetry: CaptureTelemetry) -> None:
        self._publisher.publish(TOPIC_CAPTURE, telemetry)

    def _on_capture_finished(self, capture: AudioCapture) -> None:
        with self._lock:
            self._status = RecordingStatus.STOPPED
            self._changed.notify_all()
        logger.info(f"Recording {self.id} stopped")
        self._publisher.publish(TOPIC_STATUS, RecordingStatus.STOPPED)

        if self.on_stopped:
            try:
                self.on_stopped(self)
            except Exception:
                logger.exception(f"on_stopped handler failed for {self.id}")

        self.transcribe()

    def _resolve_audio(self) -> Optional[bytes]:
        if self.capture is not None:
            if self._status is not RecordingStatus.STOPPED:
                return None
            return self.capture.get_buffer()
        return self.file_manager.load_audio(self.id)

    def _ensure_audio_saved(self, audio: bytes) -> None:
        """Write the captured audio unless it is already on disk.

        Raises:
            PersistenceError: If the audio file cannot be written.
        """
        if self.capture is None or self.file_manager.audio_exists(self.id):
            return
        self.file_manager.save_audio_file(self.id, audio)

    def transcribe(self) -> bool:
        """Run one transcription attempt to completion on the calling thread.

        The audio file is written first if it is not on disk yet; when that
        fails the attempt ends at once with the write error. Does nothing
        while another attempt is unfinished, or when there is no audio to
        send (capture still running, or a recovered recording whose audio
        file is gone).

        Returns:
            True if an attempt ran, False if it was skipped.
        """
        with self._lock:
            if self._transcription is not None and not self._transcription.finished:
                logger.debug(f"Transcription already in progress for {self.id}")
                return False

            audio = self._resolve_audio()
            if audio is None:
                logger.warning(f"No audio available to transcribe for {self.id}")
                return False

            state = TranscriptionState.started(audio_length_seconds(len(audio), self.bitrate_kbps))
            try:
                self._ensure_audio_saved(audio)
            except PersistenceError as e:
                state = state.fail(str(e))
            self._transcription = state
            self._changed.notify_all()
        self._publisher.publish(TOPIC_TRANSCRIPTION, state)
        if state.finished:
            return True

        logger.info(f"Transcribing {self.id} ({len(audio)} bytes, "
                    f"{state.audio_length_seconds:.1f}s) with {self.backend.service_name}")
        try:
            for chunk in self.backend.transcribe_stream(audio):
                state = state.merge(chunk)
                self._set_transcription(state)
        except Exception as e:
            logger.error(f"Transcription failed for {self.id}: {e}")
            self._set_transcription(state.fail(str(e)))
            return True

        state = state.finish()
        logger.info(f"Transcription finished for {self.id} ({len(state.transcription)} chars)")
        # files are written before the finished snapshot is visible
        self._set_transcription(self._persist(state))
        return True

    def retry(self) -> threading.Thread:
        """Re-run transcription in the background with the same audio."""
        thread = threading.Thread(target=self.transcribe, name=f"Transcribe-{self.id}", daemon=True)
        thread.start()
        return thread

    def _persist(self, state: TranscriptionState) -> TranscriptionState:
        try:
            self.file_manager.save_transcript(self.id, state.transcription)
            self.file_manager.append_log_entry(LogEntry(
                recording_id=self.id,
                created_at=self.created_at,
                audio_length_seconds=state.audio_length_seconds,
                input_tokens=state.input_tokens,
                output_tokens=state.output_tokens,
                thoughts_tokens=state.thoughts_tokens,
                transcription_length=len(state.transcription),
            ))
        except PersistenceError as e:
            return state.fail(str(e))
        return state

    def _set_transcription(self, state: TranscriptionState) -> None:
        with self._lock:
            self._transcription = state
            self._changed.notify_all()
        self._publisher.publish(TOPIC_TRANSCRIPTION, state)

    def wait_until_transcribed(self, timeout: Optional[float] = None) -> bool:
        """Block until capture has stopped and the latest attempt has finished."""
        def done() -> bool:
            state = self._transcription
            return self._status is RecordingStatus.STOPPED and state is not None and state.finished

        with self._changed:
            return self._changed.wait_for(done, timeout)
