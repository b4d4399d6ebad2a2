"""Main application entry point for vxg."""

import sys
import argparse
import logging
from functools import partial
from pathlib import Path
from typing import Optional

from . import __version__
from .audio.capture import AudioCapture
from .config import VxgConfig
from .exceptions import VxgError
from .services.session_registry import SessionRegistry
from .storage.file_manager import FileManager
from .transcription.gemini_backend import GeminiBackend
from .ui.recording_screen import RecordingScreen

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = VxgConfig(config_path)
        # Set up logging (override config with command line if specified)
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)
        self.registry: Optional[SessionRegistry] = None

    def init(self) -> None:
        # Initialize services
        logger.info("Initializing services...")

        command = self.config.get_capture_command()
        abort_timeout = float(self.config.get('audio.abort_timeout_seconds', 5.0))
        bitrate_kbps = int(self.config.get('audio.bitrate_kbps', 128))
        logger.info(f"Capture command: {' '.join(command)} ({bitrate_kbps} kbit/s)")

        self.backend = GeminiBackend.from_config(self.config)
        if not self.backend.initialize():
            raise RuntimeError("Gemini backend failed to initialize")

        self.registry = SessionRegistry(
            file_manager=FileManager(self.config.get_data_directory()),
            backend=self.backend,
            capture_factory=partial(_build_capture, command=command, abort_timeout=abort_timeout),
            bitrate_kbps=bitrate_kbps,
            max_age_hours=float(self.config.get('recovery.max_age_hours', 24)),
            max_recovered=int(self.config.get('recovery.max_recordings', 10)),
        )
        self.registry.load_past_recordings()
        self.screen = RecordingScreen(self.registry)

    def run(self, duration: Optional[float]) -> None:
        recording = self.screen.record(duration)
        state = recording.transcription
        if state is not None and state.error:
            logger.error(f"Recording {recording.id} finished with error: {state.error}")

    def list_recordings(self) -> None:
        self.screen.print_history()

    def retry(self, recording_id: str) -> None:
        recording = self.registry.find_recording(recording_id)
        if recording is None:
            raise VxgError(f"No recent recording with id {recording_id}")
        self.screen.retry(recording)

    def cleanup(self) -> None:
        if self.registry is not None:
            self.registry.stop_recording()
            current = self.registry.current_recording
            if current is not None:
                current.wait_until_transcribed(timeout=10)
        self.backend.cleanup()


def _build_capture(session_id, on_telemetry, command, abort_timeout) -> AudioCapture:
    return AudioCapture(session_id, command=command, abort_timeout=abort_timeout,
                        on_telemetry=on_telemetry)


def setup_logging(config, level: str = "INFO") -> None:

    """Set up logging configuration from YAML config."""
    # Get log file path from config
    log_file_path = config.get('logging.file_path')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # Set up handlers
    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    # Log startup
    logger = logging.getLogger(__name__)
    logger.info("=" * 50)
    logger.info("vxg starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for vxg."""
    parser = argparse.ArgumentParser(
        description="vxg - record from the microphone, then transcribe",
        epilog="Press Enter to stop recording"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, INFO)"
    )

    parser.add_argument(
        "--duration",
        type=float,
        help="Stop recording automatically after this many seconds"
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="List recordings from the last 24 hours and exit"
    )

    parser.add_argument(
        "--retry",
        metavar="ID",
        help="Transcribe a recent recording again from its saved audio"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"vxg v{__version__}"
    )

    args = parser.parse_args()

    server = None
    try:
        server = Server(args.config, args.log_level)
        server.init()
        if args.list:
            server.list_recordings()
        elif args.retry:
            server.retry(args.retry)
        else:
            server.run(args.duration)
    except KeyboardInterrupt:
        if server is not None and server.registry is not None:
            server.cleanup()
        print("\nGoodbye!")
    except (VxgError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
