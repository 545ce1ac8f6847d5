"""YAML configuration loader for kwscapture."""

import os
import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULTS: Dict[str, Any] = {
    "capture": {
        "max_duration_ms": 2000,
        "duration_tolerance_ms": 220,
        "tick_interval_ms": 100,
        "acquire_timeout_ms": 30000,
        "rejection_policy": "gate",
        "state_topic": "capture.state",
    },
    "audio": {
        "sample_rate": 48000,
        "channels": 1,
        "chunk_size": 1024,
        "input_device_index": None,
    },
    "normalizer": {
        "target_sample_rate": 16000,
    },
    "gate": {},
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/kwscapture.log",
        "console_output": True,
    },
}

REJECTION_POLICIES = ("gate", "duration")


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class KwsCaptureConfig:
    """kwscapture configuration loader."""

    def __init__(self, config_path: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        """Initialize configuration.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        (merged with ``data``) are used.
            data: Optional in-memory settings merged over the defaults
        """
        self.config_file: Optional[Path] = Path(config_path) if config_path else None

        if self.config_file is not None:
            if not self.config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
            logger.info(f"Loading configuration from: {self.config_file}")
            loaded = self._load_config()
        else:
            loaded = {}

        if data:
            loaded = _merge(loaded, data)
        self.config = _merge(DEFAULTS, loaded)
        self._validate()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KwsCaptureConfig":
        """Build a configuration from a plain mapping without touching disk."""
        return cls(data=data)

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration root must be a mapping")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        if 'logging' in config and 'file_path' in config['logging']:
            log_path = config['logging']['file_path']
            if not os.path.isabs(log_path):
                config['logging']['file_path'] = str(config_dir / log_path)

    def _validate(self) -> None:
        policy = self.get('capture.rejection_policy')
        if policy not in REJECTION_POLICIES:
            raise ValueError(
                f"capture.rejection_policy must be one of {REJECTION_POLICIES}, got {policy!r}"
            )
        for key in ('capture.max_duration_ms', 'capture.tick_interval_ms',
                    'capture.acquire_timeout_ms', 'normalizer.target_sample_rate'):
            if int(self.get(key)) <= 0:
                raise ValueError(f"{key} must be positive")
        if int(self.get('capture.duration_tolerance_ms')) < 0:
            raise ValueError("capture.duration_tolerance_ms must not be negative")

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'capture.max_duration_ms').

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

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'capture.max_duration_ms')
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

    @property
    def max_duration_ms(self) -> int:
        return int(self.get('capture.max_duration_ms'))

    @property
    def duration_tolerance_ms(self) -> int:
        return int(self.get('capture.duration_tolerance_ms'))

    @property
    def target_sample_rate(self) -> int:
        return int(self.get('normalizer.target_sample_rate'))

    def get_log_file_path(self) -> str:
        """Get log file path."""
        log_path = self.get('logging.file_path', 'data/logs/kwscapture.log')
        return str(Path(log_path).absolute())
