"""Integration tests running a real recorder subprocess."""

import pytest
import json
import signal
import sys
import time
from functools import partial
from unittest.mock import Mock

from vxg.audio.capture import AudioCapture
from vxg.models.session import RecordingStatus
from vxg.services.session_registry import SessionRegistry


def wait_for(predicate, timeout=10.0):
    """Poll until predicate() is true."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.mark.integration
class TestAudioCaptureProcess:
    """Test cases for AudioCapture against a real child process."""

    def test_buffers_audio_and_parses_progress(self, fake_recorder):
        updates = []
        capture = AudioCapture("rec1", command=fake_recorder(), on_telemetry=updates.append).start()
        try:
            assert capture.pid is not None
            assert wait_for(lambda: capture.duration == "00:00:02.00" and capture.get_buffer_size() == 16000)
            assert capture.levels == "[ =====|===== ]"
            assert capture.get_buffer_size() == 16000
            assert [u.duration for u in updates] == ["00:00:01.00", "00:00:02.00"]
            assert capture.is_finished is False
        finally:
            capture.abort()
            capture.wait(timeout=10)

    def test_abort_flushes_remaining_audio(self, fake_recorder):
        done = Mock()
        capture = AudioCapture("rec1", command=fake_recorder())
        capture.add_done_callback(done)
        capture.start()
        assert wait_for(lambda: capture.get_buffer_size() == 16000)

        assert capture.abort() is True
        assert capture.abort() is False
        assert capture.wait(timeout=10) is True

        assert capture.returncode == 0
        assert capture.get_buffer() == b"\xff" * 32000
        done.assert_called_once_with(capture)

    def test_stubborn_recorder_is_terminated(self, fake_recorder):
        capture = AudioCapture("rec1", command=fake_recorder(ignore_sigint=True), abort_timeout=0.2).start()
        assert wait_for(lambda: capture.get_buffer_size() == 16000)

        capture.abort()

        assert capture.wait(timeout=10) is True
        assert capture.returncode == -signal.SIGTERM
        assert capture.get_buffer_size() == 16000

    def test_recorder_exiting_on_its_own(self):
        command = [sys.executable, "-c", "import sys; sys.stdout.buffer.write(b'abc'); sys.stderr.write('[|] 00:00:00.10')"]
        capture = AudioCapture("rec1", command=command).start()

        assert capture.wait(timeout=10) is True
        assert capture.get_buffer() == b"abc"
        assert capture.duration == "00:00:00.10"
        assert capture.levels == "[|]"
        assert capture.abort() is False

        late = Mock()
        capture.add_done_callback(late)
        late.assert_called_once_with(capture)

    def test_start_twice_raises(self):
        capture = AudioCapture("rec1", command=[sys.executable, "-c", "pass"]).start()
        try:
            with pytest.raises(RuntimeError):
                capture.start()
        finally:
            capture.wait(timeout=10)


@pytest.mark.integration
class TestRecordingLifecycle:
    """End to end: record, stop, transcribe, persist, recover."""

    def test_record_stop_transcribe_and_recover(self, fake_recorder, file_manager, hello_backend):
        def build(session_id, on_telemetry, command):
            return AudioCapture(session_id, command=command, abort_timeout=2.0, on_telemetry=on_telemetry)

        registry = SessionRegistry(file_manager, hello_backend,
                                   capture_factory=partial(build, command=fake_recorder()))

        recording = registry.start_recording()
        assert wait_for(lambda: recording.telemetry.duration == "00:00:02.00")
        assert registry.stop_recording() is True
        assert recording.wait_until_transcribed(timeout=10) is True

        assert recording.status is RecordingStatus.STOPPED
        assert registry.current_recording is None
        assert registry.stopped_recordings == (recording,)
        state = recording.transcription
        assert state.transcription == "Hello"
        assert state.error is None
        assert state.audio_length_seconds == 2.0

        assert file_manager.load_audio(recording.id) == b"\xff" * 32000
        assert file_manager.load_transcript(recording.id) == "Hello"
        [line] = file_manager.log_path.read_text(encoding="utf-8").splitlines()
        assert json.loads(line)["recordingId"] == recording.id

        fresh = SessionRegistry(file_manager, hello_backend)
        [recovered] = fresh.load_past_recordings()
        assert recovered.id == recording.id
        assert recovered.created_at == recording.created_at
        assert recovered.transcription.transcription == "Hello"
        assert recovered.transcription.input_tokens == 10
