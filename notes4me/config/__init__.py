"""YAML configuration and settings store for Notes4Me."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..models.recording import RetentionPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "notes4me.yaml"

DEFAULTS: Dict[str, Any] = {
    "storage": {
        "output_directory": str(Path.home() / "Documents" / "MeetingRecordings"),
        "retention_days": 7,
    },
    "pipeline": {
        "auto_process": True,
        "retention_sweep_hours": 24,
    },
    "capture": {
        "size_check_seconds": 30,
    },
    "whisper": {
        "binary_path": None,
        "model_path": None,
    },
    "ollama": {
        "base_url": "http://localhost:11434",
        "model": "llama3.2",
    },
    "logging": {
        "level": "INFO",
        "file_path": None,  # Defaults to <output_directory>/logs/notes4me.log
        "console_output": True,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Notes4MeConfig:
    """Settings store backed by an optional YAML file."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults
                        are used and ``save`` requires an explicit path.
        """
        self.config_file: Optional[Path] = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config = copy.deepcopy(DEFAULTS)
            return

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = _merge(DEFAULTS, loaded)
        self._resolve_paths(config)
        self._validate(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (("storage", "output_directory"),
                             ("logging", "file_path"),
                             ("whisper", "binary_path"),
                             ("whisper", "model_path")):
            value = config.get(section, {}).get(key)
            if not value:
                continue
            value = os.path.expanduser(str(value))
            if not os.path.isabs(value):
                value = str(config_dir / value)
            config[section][key] = value

    def _validate(self, config: Dict[str, Any]) -> None:
        # Raises ValueError for values outside 1-30
        RetentionPolicy(config["storage"]["retention_days"])

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'storage.retention_days').

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
            key_path: Dot-separated path to config value (e.g., 'pipeline.auto_process')
            value: Value to set

        Raises:
            ValueError: If retention days fall outside the allowed range
        """
        if key_path == "storage.retention_days":
            RetentionPolicy(value)

        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict or not isinstance(config_dict[key], dict):
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def save(self, config_path: Optional[str] = None) -> Path:
        """Write the current settings back to YAML.

        Args:
            config_path: Target file; defaults to the file the config was loaded from

        Returns:
            Path written
        """
        target = Path(config_path) if config_path else self.config_file
        if target is None:
            raise ValueError("No configuration file to save to")

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.config, f, default_flow_style=False, sort_keys=False)

        self.config_file = target
        logger.info(f"Configuration saved to: {target}")
        return target

    def get_output_directory(self) -> Path:
        """Get base directory holding recordings/, processed/ and temp/."""
        output_dir = self.get('storage.output_directory') or DEFAULTS["storage"]["output_directory"]
        return Path(os.path.expanduser(str(output_dir))).absolute()

    def get_retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(self.get('storage.retention_days', 7))

    def get_auto_process(self) -> bool:
        return bool(self.get('pipeline.auto_process', True))

    def get_log_file_path(self) -> Path:
        log_path = self.get('logging.file_path')
        if log_path:
            return Path(log_path)
        return self.get_output_directory() / "logs" / "notes4me.log"


def find_config_file(start_dir: Optional[str] = None) -> Optional[Path]:
    """Look for notes4me.yaml in ``start_dir`` and its parents, then in ~/.config/notes4me."""
    current = Path(start_dir or os.getcwd()).absolute()
    for directory in [current, *current.parents]:
        candidate = directory / DEFAULT_CONFIG_FILENAME
        if candidate.exists():
            return candidate

    user_config = Path.home() / ".config" / "notes4me" / DEFAULT_CONFIG_FILENAME
    if user_config.exists():
        return user_config
    return None


def load_config(config_path: Optional[str] = None) -> Notes4MeConfig:
    """Load the given config file, or the first one found, or defaults."""
    if config_path:
        return Notes4MeConfig(config_path)
    found = find_config_file()
    return Notes4MeConfig(str(found) if found else None)
