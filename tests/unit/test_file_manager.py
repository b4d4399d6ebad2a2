"""Unit tests for FileManager class."""

import pytest
import json
import threading
from pathlib import Path
from unittest.mock import patch

from vxg.exceptions import PersistenceError, RecoveryParseError
from vxg.models.session import LogEntry
from vxg.storage.file_manager import FileManager, LOG_FILENAME, parse_log_line


@pytest.mark.unit
class TestFileManager:
    """Test cases for FileManager class."""

    def test_initialization_does_not_create_directory(self, temp_data_dir):
        """Test FileManager initialization."""
        base = Path(temp_data_dir) / "vxg"
        fm = FileManager(str(base))

        assert fm.data_dir == base
        assert fm.log_path == base / LOG_FILENAME
        assert not base.exists()

    def test_paths_derived_from_id(self, temp_data_dir):
        fm = FileManager(temp_data_dir)

        assert fm.audio_path("abc") == Path(temp_data_dir) / "abc.mp3"
        assert fm.transcript_path("abc") == Path(temp_data_dir) / "abc.txt"

    def test_save_audio_file_creates_directory(self, temp_data_dir):
        """Test saving audio file."""
        fm = FileManager(str(Path(temp_data_dir) / "nested" / "vxg"))

        path = fm.save_audio_file("rec1", b"\xff\xfb\x90\x00" * 10)

        assert path.exists()
        assert path.read_bytes() == b"\xff\xfb\x90\x00" * 10
        assert fm.audio_exists("rec1")
        assert fm.load_audio("rec1") == b"\xff\xfb\x90\x00" * 10

    def test_save_transcript_overwrites(self, file_manager):
        file_manager.save_transcript("rec1", "first")
        file_manager.save_transcript("rec1", "zweite Überschrift")

        assert file_manager.load_transcript("rec1") == "zweite Überschrift"
        assert file_manager.transcript_path("rec1").read_bytes() == "zweite Überschrift".encode("utf-8")

    def test_missing_files(self, file_manager):
        assert file_manager.load_transcript("nope") is None
        assert file_manager.load_audio("nope") is None
        assert file_manager.audio_exists("nope") is False

    def test_unreadable_audio_is_none(self, file_manager, caplog):
        file_manager.audio_path("rec1").mkdir(parents=True)

        assert file_manager.load_audio("rec1") is None
        assert "Could not read audio file" in caplog.text

        with patch('pathlib.Path.read_bytes', side_effect=PermissionError("Access denied")):
            assert file_manager.load_audio("rec2") is None

    def test_append_log_entry_writes_one_line_each(self, file_manager):
        file_manager.append_log_entry(LogEntry(
            recording_id="rec1", created_at=1000, audio_length_seconds=2.0,
            input_tokens=10, transcription_length=5))
        file_manager.append_log_entry(LogEntry(recording_id="rec2", created_at=2000, transcription_length=0))

        lines = file_manager.log_path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0]) == {
            "recordingId": "rec1",
            "createdAt": 1000,
            "audioLengthSeconds": 2.0,
            "inputTokens": 10,
            "transcriptionLength": 5,
        }
        assert json.loads(lines[1]) == {"recordingId": "rec2", "createdAt": 2000, "transcriptionLength": 0}

    def test_concurrent_appends_do_not_interleave(self, file_manager):
        def worker(n):
            for i in range(50):
                file_manager.append_log_entry(LogEntry(
                    recording_id=f"rec-{n}-{i}-" + "x" * 200, created_at=i, transcription_length=i))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = list(file_manager.read_log_entries())
        assert len(entries) == 400
        assert len({e.recording_id for e in entries}) == 400

    def test_read_log_entries_skips_malformed_lines(self, file_manager, caplog):
        file_manager.data_dir.mkdir(parents=True, exist_ok=True)
        file_manager.log_path.write_text(
            '{"recordingId": "good1", "createdAt": 1, "transcriptionLength": 3}\n'
            'this is not json\n'
            '\n'
            '["a", "list"]\n'
            '{"recordingId": "missing-length"}\n'
            '{"recordingId": "good2", "transcriptionLength": 0}\n',
            encoding="utf-8",
        )

        entries = list(file_manager.read_log_entries())

        assert [e.recording_id for e in entries] == ["good1", "good2"]
        assert entries[1].created_at is None
        assert "Skipping log line 2" in caplog.text

    def test_read_log_entries_without_log(self, file_manager):
        assert list(file_manager.read_log_entries()) == []

    def test_parse_log_line_errors(self):
        with pytest.raises(RecoveryParseError):
            parse_log_line("{")
        with pytest.raises(RecoveryParseError):
            parse_log_line('{"recordingId": "", "transcriptionLength": 1}')
        with pytest.raises(RecoveryParseError):
            parse_log_line('{"recordingId": "a", "transcriptionLength": -1}')

    def test_parse_log_line_accepts_snake_case(self):
        entry = parse_log_line('{"recording_id": "a", "transcription_length": 4}')

        assert entry.recording_id == "a"
        assert entry.transcription_length == 4

    def test_error_handling_save_audio_file(self, file_manager):
        """Test error handling when saving audio file fails."""
        with patch('builtins.open', side_effect=PermissionError("Access denied")):
            with pytest.raises(PersistenceError):
                file_manager.save_audio_file("rec1", b"test data")

    def test_error_handling_append_log(self, file_manager):
        with patch('builtins.open', side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError, match="disk full"):
                file_manager.append_log_entry(LogEntry(recording_id="r", transcription_length=1))
