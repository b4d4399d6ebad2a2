"""Simple YAML configuration loader for vxg."""

import copy
import os
import tempfile
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    'audio': {
        'command': [
            'sox', '-S', '-c', '1', '-d',
            '-t', 'mp3', '-C', '128', '--buffer', '256', '-',
        ],
        'bitrate_kbps': 128,
        'abort_timeout_seconds': 5.0,
    },
    'gemini': {
        'model': 'gemini-2.5-flash',
        'include_thoughts': True,
        'vertex': False,
        'location': 'us-central1',
    },
    'storage': {
        'data_directory': os.path.join(tempfile.gettempdir(), 'vxg'),
    },
    'recovery': {
        'max_age_hours': 24,
        'max_recordings': 10,
    },
    'logging': {
        'level': 'INFO',
        'file_path': os.path.join(tempfile.gettempdir(), 'vxg', 'logs', 'vxg.log'),
        'console_output': True,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class VxgConfig:
    """vxg configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, the built-in
                        defaults are used.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config = copy.deepcopy(DEFAULT_CONFIG)
            return

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        # Resolve relative paths
        self._resolve_paths(loaded)

        config = _merge(copy.deepcopy(DEFAULT_CONFIG), loaded)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (('gemini', 'credentials_path'),
                             ('storage', 'data_directory'),
                             ('logging', 'file_path')):
            value = config.get(section, {}).get(key) if isinstance(config.get(section), dict) else None
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'gemini.model').

        Args:
            key_path: Dot-separated key path (e.g., 'storage.data_directory')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'gemini.model')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        # Set the final value
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_gemini_api_key(self) -> Optional[str]:
        """Get the Gemini API key from config, falling back to GEMINI_API_KEY."""
        return self.get('gemini.api_key') or os.environ.get('GEMINI_API_KEY')

    def get_credentials_path(self) -> Optional[str]:
        """Get service account path for Vertex AI mode - CRASHES if configured but missing."""
        creds_path = self.get('gemini.credentials_path')
        if not creds_path:
            return None

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise FileNotFoundError(f"Google credentials file not found: {creds_path}")

        return str(creds_file.absolute())

    def get_capture_command(self) -> List[str]:
        """Get the capture subprocess command as an argument list."""
        command = self.get('audio.command')
        if isinstance(command, str):
            return command.split()
        return [str(part) for part in command]

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory')
        return str(Path(data_dir).absolute())
