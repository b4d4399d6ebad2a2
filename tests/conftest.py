"""Pytest configuration and fixtures for vxg tests."""

import pytest
import sys
import tempfile
import textwrap
import threading
import logging
from pathlib import Path
from typing import Iterator, List, Optional

from pubsub import pub

from vxg.audio.capture import parse_progress_line
from vxg.models.audio import CaptureTelemetry
from vxg.models.transcription import TranscriptionChunk
from vxg.storage.file_manager import FileManager
from vxg.transcription.base import AbstractTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Two seconds of audio at 128 kbit/s
TWO_SECONDS_OF_MP3 = b"\xff" * 32000


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without subprocesses")
    config.addinivalue_line("markers", "integration: tests that run a recorder subprocess")


@pytest.fixture(autouse=True)
def reset_pubsub():
    """Drop listeners left behind by a test."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def file_manager(temp_data_dir):
    return FileManager(temp_data_dir)


class ScriptedBackend(AbstractTranscriptionBackend):
    """Backend that replays fixed chunks, optionally blocking or failing at the end."""

    service_name = "scripted"

    def __init__(self,
                 chunks: Optional[List[TranscriptionChunk]] = None,
                 error: Optional[Exception] = None,
                 gate: Optional[threading.Event] = None):
        self.chunks = list(chunks or [])
        self.error = error
        self.gate = gate
        self.entered = threading.Event()
        self.calls: List[bytes] = []

    def initialize(self) -> bool:
        return True

    def transcribe_stream(self, audio_data: bytes) -> Iterator[TranscriptionChunk]:
        self.calls.append(audio_data)
        self.entered.set()
        for chunk in self.chunks:
            yield chunk
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        if self.error is not None:
            raise self.error


class FakeCapture:
    """Stands in for AudioCapture; the test decides when the recorder exits."""

    def __init__(self, session_id, on_telemetry, audio: bytes = TWO_SECONDS_OF_MP3):
        self.session_id = session_id
        self.on_telemetry = on_telemetry
        self.audio = audio
        self.telemetry = CaptureTelemetry()
        self.started = False
        self.abort_calls = 0
        self.is_finished = False
        self._callbacks = []

    def start(self):
        self.started = True
        return self

    def add_done_callback(self, callback):
        if self.is_finished:
            callback(self)
        else:
            self._callbacks.append(callback)

    def abort(self):
        self.abort_calls += 1
        return True

    def get_buffer(self):
        return self.audio

    def emit_progress(self, line: str) -> None:
        self.telemetry = parse_progress_line(line, self.telemetry)
        self.on_telemetry(self.telemetry)

    def finish(self) -> None:
        """Simulate the recorder exiting; completion runs on the calling thread."""
        self.is_finished = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)


@pytest.fixture
def fake_captures():
    """List that collects every FakeCapture the factory builds."""
    return []


@pytest.fixture
def capture_factory(fake_captures):
    def factory(session_id, on_telemetry):
        capture = FakeCapture(session_id, on_telemetry)
        fake_captures.append(capture)
        return capture
    return factory


@pytest.fixture
def hello_backend():
    return ScriptedBackend([
        TranscriptionChunk(text="Hel"),
        TranscriptionChunk(text="lo"),
        TranscriptionChunk(input_tokens=10),
    ])


RECORDER_SCRIPT = textwrap.dedent('''
    import signal
    import sys
    import time

    IGNORE_SIGINT = {ignore_sigint}

    def stop(signum, frame):
        # flush the last half of the audio, like sox does on interrupt
        sys.stdout.buffer.write(b"\\xff" * 16000)
        sys.stdout.buffer.flush()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal.SIG_IGN if IGNORE_SIGINT else stop)

    sys.stdout.buffer.write(b"\\xff" * 16000)
    sys.stdout.buffer.flush()
    sys.stderr.write("Input File     : 'default' (coreaudio)\\n")
    sys.stderr.write("In:0.00% 00:00:01.00 [00:00:00.00] Out:16.0k [  ===|===   ] Hd:0.0 Clip:0\\r")
    sys.stderr.write("In:0.00% 00:00:02.00 [00:00:00.00] Out:32.0k [ =====|===== ] Hd:0.0 Clip:0\\r")
    sys.stderr.flush()
    while True:
        time.sleep(0.05)
''')


@pytest.fixture
def fake_recorder(tmp_path):
    """Command line of a Python script that behaves like `sox ... -`."""
    def build(ignore_sigint: bool = False) -> List[str]:
        script = tmp_path / ("recorder_stubborn.py" if ignore_sigint else "recorder.py")
        script.write_text(RECORDER_SCRIPT.format(ignore_sigint=ignore_sigint))
        return [sys.executable, str(script)]
    return build


@pytest.fixture
def scripted_backend():
    """Factory for ScriptedBackend instances."""
    return ScriptedBackend


@pytest.fixture
def mp3_audio():
    return TWO_SECONDS_OF_MP3
