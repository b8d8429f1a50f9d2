"""YAML configuration loader for MedScribe."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..errors import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "audio": {
        "sample_rate": 16000,
        "channels": 1,
        "frame_samples": 2048,
        "device_index": None,
    },
    "transcription": {
        "language": "en-US",
        "specialty": "PRIMARYCARE",
        "mode": "CONVERSATION",
        "show_speaker_labels": True,
    },
    "session": {
        "max_pending_frames": 64,
        "transport_queue_frames": 8,
        "drain_timeout_seconds": 3.0,
        "handshake_timeout_seconds": 10.0,
    },
    "google_cloud": {
        "credentials_path": None,
        "use_enhanced_model": True,
        "enable_automatic_punctuation": True,
    },
    "usage": {
        "free_daily_limit": 5,
    },
    "openai": {
        "api_key": None,
        "model": "gpt-4o-mini",
    },
    "storage": {
        "data_directory": "data",
        "max_history_items": 100,
    },
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/medscribe.log",
        "console_output": True,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class MedScribeConfig:
    """MedScribe configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used and relative paths resolve against the
                        current directory.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is not None and not self.config_file.exists():
            raise ConfigError(f"Configuration file not found: {self.config_file}",
                              field="config_path", value=config_path)

        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file over the defaults."""
        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            config = copy.deepcopy(DEFAULT_CONFIG)
            self._resolve_paths(config, Path.cwd())
            return config

        logger.info(f"Loading configuration from: {self.config_file}")
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file: {e}", cause=e)

        if not loaded:
            raise ConfigError(f"Configuration file is empty: {self.config_file}")
        if not isinstance(loaded, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_file}")

        config = _merge(DEFAULT_CONFIG, loaded)
        self._resolve_paths(config, self.config_file.parent)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any], config_dir: Path) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        creds_path = config['google_cloud'].get('credentials_path')
        if creds_path and not os.path.isabs(creds_path):
            config['google_cloud']['credentials_path'] = str(config_dir / creds_path)

        data_dir = config['storage'].get('data_directory')
        if data_dir and not os.path.isabs(data_dir):
            config['storage']['data_directory'] = str(config_dir / data_dir)

        log_path = config['logging'].get('file_path')
        if log_path and not os.path.isabs(log_path):
            config['logging']['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'session.drain_timeout_seconds').

        Args:
            key_path: Dot-separated key path
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

        return default if value is None else value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'transcription.specialty')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_google_credentials_path(self) -> str:
        """Get Google credentials path, raising ConfigError if not usable."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            raise ConfigError("Google credentials path not configured (google_cloud.credentials_path)",
                              field="google_cloud.credentials_path")

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise ConfigError(f"Google credentials file not found: {creds_path}",
                              field="google_cloud.credentials_path", value=creds_path)

        return str(creds_file.absolute())

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_openai_api_key(self) -> Optional[str]:
        """OpenAI key from config, falling back to the OPENAI_API_KEY variable."""
        return self.get('openai.api_key') or os.environ.get('OPENAI_API_KEY')
