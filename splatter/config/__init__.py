"""Simple YAML configuration loader for Splatter."""

import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

# Secrets are read from the environment unless the YAML sets them explicitly
ENV_KEYS = {
    'openai.api_key': 'OPENAI_API_KEY',
    'elevenlabs.api_key': 'ELEVENLABS_API_KEY',
    'supabase.url': 'SUPABASE_URL',
    'supabase.anon_key': 'SUPABASE_ANON_KEY',
}


@dataclass
class VadSettings:
    """Voice activity detection tuning."""
    start_threshold_db: float = -35.0
    confidence_frames: int = 3
    short_pause_seconds: float = 0.8
    long_silence_seconds: float = 2.5
    min_speech_seconds: float = 0.5
    stop_delay_seconds: float = 0.1
    # Minimum confirmed caption length that enables the short-pause path
    short_pause_min_chars: int = 10
    caption_assisted_pause: bool = True


@dataclass
class CaptureSettings:
    """Microphone constraints and analyser geometry."""
    sample_rate: int = 44100
    channels: int = 1
    chunk_size: int = 1024
    echo_cancellation: bool = True
    noise_suppression: bool = True
    fft_size: int = 512
    smoothing_time_constant: float = 0.8
    frame_interval_seconds: float = 1 / 60


@dataclass
class CaptionSettings:
    """Live caption engine settings."""
    enabled: bool = True
    language: str = "en-US"
    min_restart_interval_seconds: float = 1.0


class SplatterConfig:
    """Splatter configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, looks for splatter.yaml
                        in the current directory.
        """
        self.config_file = Path(config_path or "splatter.yaml")

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'SplatterConfig':
        """Build a configuration directly from a dictionary (no file, no path resolution)."""
        instance = cls.__new__(cls)
        instance.config_file = None
        instance.config = config
        return instance

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)

            if not config:
                raise ValueError("Configuration file is empty")

            # Resolve relative paths
            self._resolve_paths(config)

            logger.info("Configuration loaded successfully")
            return config

        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except ValueError:
            raise
        except Exception as e:
            raise ValueError(f"Failed to load configuration: {e}")

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (('google_cloud', 'credentials_path'),
                             ('storage', 'data_directory'),
                             ('logging', 'file_path')):
            if section in config and config[section] and key in config[section]:
                value = config[section][key]
                if value and not os.path.isabs(value):
                    config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'vad.start_threshold_db').

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
            key_path: Dot-separated path to config value (e.g., 'vad.enabled')
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

    def get_secret(self, key_path: str) -> Optional[str]:
        """Get an API key or URL from the config, falling back to its environment variable."""
        value = self.get(key_path)
        if value:
            return value
        env_name = ENV_KEYS.get(key_path)
        return os.environ.get(env_name) if env_name else None

    def get_google_credentials_path(self) -> Optional[str]:
        """Get Google credentials path, or None when live captions run without one."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            return None

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise FileNotFoundError(f"Google credentials file not found: {creds_path}")

        return str(creds_file.absolute())

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def vad_settings(self) -> VadSettings:
        return _build(VadSettings, self.get('vad', {}) or {})

    def capture_settings(self) -> CaptureSettings:
        return _build(CaptureSettings, self.get('audio', {}) or {})

    def caption_settings(self) -> CaptionSettings:
        return _build(CaptionSettings, self.get('captions', {}) or {})


def _build(settings_cls, section: Dict[str, Any]):
    """Build a settings dataclass from a config section, ignoring unknown keys."""
    known = settings_cls.__dataclass_fields__
    unknown = set(section) - set(known)
    if unknown:
        logger.warning(f"Ignoring unknown {settings_cls.__name__} keys: {sorted(unknown)}")
    return settings_cls(**{k: v for k, v in section.items() if k in known})
